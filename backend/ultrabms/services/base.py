"""
Ultra BMS - Lifecycle Service Base

Shared plumbing for services that mutate aggregates:

    1. open a unit of work
    2. load, calculate, transition (each transition is queued for audit)
    3. commit
    4. record the audit trail and publish events (commit-then-publish)
"""

import logging
import uuid
from typing import Any, Optional

from ultrabms.bridges.notifications import LoggingNotificationGateway, NotificationGateway
from ultrabms.bridges.persistence import PersistenceGateway
from ultrabms.core.clock import Clock, IdFactory, SystemClock
from ultrabms.core.errors import GuardRejected
from ultrabms.models.audit import TransitionRecord
from ultrabms.models.base import Aggregate
from ultrabms.models.events import LifecycleEvent
from ultrabms.models.lease import LeaseAccount
from ultrabms.services.audit import AuditService
from ultrabms.services.dispatcher import EventDispatcher
from ultrabms.services.fsm import EntityStateMachine, TransitionContext

logger = logging.getLogger(__name__)


def _lease_of(entity: Aggregate, moved: Aggregate) -> Optional[uuid.UUID]:
    if isinstance(entity, LeaseAccount):
        return entity.id
    return getattr(moved, "lease_account_id", None) or getattr(entity, "lease_account_id", None)


class LifecycleService:
    """Base for services that drive aggregates through their state machines."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        notifications: Optional[NotificationGateway] = None,
        clock: Optional[Clock] = None,
        audit: Optional[AuditService] = None,
        dispatcher: Optional[EventDispatcher] = None,
        id_factory: Optional[IdFactory] = None,
    ) -> None:
        self._persistence = persistence
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService()
        self._dispatcher = dispatcher or EventDispatcher(
            notifications or LoggingNotificationGateway()
        )
        self._new_id = id_factory or uuid.uuid4

    @property
    def audit(self) -> AuditService:
        return self._audit

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    def _move(
        self,
        machine: EntityStateMachine,
        entity: Aggregate,
        target: Any,
        context: TransitionContext,
        trail: list[TransitionRecord],
        **changes: Any,
    ) -> Any:
        """Transition through the machine and queue an audit record."""
        source = getattr(entity, machine.status_field)
        try:
            moved = machine.transition(entity, target, context, **changes)
        except GuardRejected as e:
            logger.warning(f"{machine.name} {entity.id}: {e}")
            raise
        trail.append(TransitionRecord(
            machine=machine.name,
            entity_id=entity.id,
            lease_account_id=_lease_of(entity, moved),
            from_state=source.value,
            to_state=target.value,
            trigger=context.trigger.value,
            actor_id=context.actor_id,
            recorded_at=self._clock.now(),
        ))
        return moved

    def _after_commit(
        self,
        events: list[LifecycleEvent],
        trail: list[TransitionRecord],
    ) -> list[LifecycleEvent]:
        """Record the trail and dispatch. Returns events whose delivery failed."""
        self._audit.record_all(trail)
        return self._dispatcher.publish(events)
