"""Entity State Machine - guarded transitions for lifecycle status enums.

A machine is configured with its states, the allowed (source, target) edges
and per-edge guards over the entity + transition context.

    transition(entity, target, context) -> updated copy of entity

No side effects beyond returning the new state; callers persist.
Terminal states have no outgoing edges: any transition out of them
fails with InvalidTransition.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from ultrabms.core.errors import GuardRejected, InvalidTransition

S = TypeVar("S", bound=Enum)
E = TypeVar("E", bound=BaseModel)


class Trigger(str, Enum):
    """Why a transition is being attempted."""
    MANUAL = "MANUAL"
    DAILY_SCAN = "DAILY_SCAN"
    EXTENSION = "EXTENSION"
    CHECKOUT = "CHECKOUT"
    CHECKOUT_RELEASE = "CHECKOUT_RELEASE"
    ASSIGNMENT = "ASSIGNMENT"
    APPROVAL = "APPROVAL"
    CONVERSION = "CONVERSION"
    RELEASE_HOLD = "RELEASE_HOLD"


@dataclass
class TransitionContext:
    """Inputs guards may inspect besides the entity itself."""
    today: Optional[date] = None
    actor_id: Optional[UUID] = None
    trigger: Trigger = Trigger.MANUAL
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Guard:
    """Predicate that must hold for an edge to be taken."""
    check: Callable[[Any, TransitionContext], bool]
    reason: str


class EntityStateMachine(Generic[S, E]):
    """Generic guarded-transition engine."""

    def __init__(
        self,
        name: str,
        states: Iterable[S],
        edges: Iterable[tuple[S, S] | tuple[S, S, list[Guard]]],
        status_field: str = "status",
        terminal: Iterable[S] = (),
    ) -> None:
        self.name = name
        self.status_field = status_field
        self._states: frozenset[S] = frozenset(states)
        self._edges: dict[S, dict[S, tuple[Guard, ...]]] = {s: {} for s in self._states}

        for edge in edges:
            source, target = edge[0], edge[1]
            guards = tuple(edge[2]) if len(edge) > 2 else ()
            if source not in self._states or target not in self._states:
                raise ValueError(f"{name}: edge {source} -> {target} uses an undeclared state")
            self._edges[source][target] = guards

        self._terminal = frozenset(terminal)
        for state in self._terminal:
            if self._edges[state]:
                raise ValueError(f"{name}: terminal state {state.value} has outgoing edges")

    @property
    def states(self) -> frozenset[S]:
        return self._states

    def is_terminal(self, state: S) -> bool:
        return state in self._terminal or not self._edges.get(state)

    def allowed_targets(self, source: S) -> set[S]:
        return set(self._edges.get(source, {}))

    def can_transition(self, source: S, target: S) -> bool:
        """Check if an edge is declared (guards not evaluated)."""
        return target in self._edges.get(source, {})

    def check(self, entity: E, target: S, context: Optional[TransitionContext] = None) -> None:
        """
        Validate a transition without applying it.

        Raises:
            InvalidTransition: If the edge is not declared
            GuardRejected: If the edge is declared but a guard fails
        """
        context = context or TransitionContext()
        source = getattr(entity, self.status_field)

        if source in self._terminal or not self.can_transition(source, target):
            raise InvalidTransition(self.name, source, target)

        for guard in self._edges[source][target]:
            if not guard.check(entity, context):
                raise GuardRejected(self.name, source, target, guard.reason)

    def transition(
        self,
        entity: E,
        target: S,
        context: Optional[TransitionContext] = None,
        **changes: Any,
    ) -> E:
        """
        Transition an entity to a new state.

        Args:
            entity: The entity to transition
            target: The target state
            context: Inputs for guard evaluation
            **changes: Additional fields to update on the returned copy

        Returns:
            Updated copy of the entity

        Raises:
            InvalidTransition: If the edge is not declared
            GuardRejected: If the edge's guard fails
        """
        self.check(entity, target, context)
        return entity.model_copy(update={self.status_field: target, **changes})
