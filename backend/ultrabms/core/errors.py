"""
Ultra BMS - Lifecycle Error Taxonomy

Every error a lifecycle operation can surface to its caller.
All validation happens before a unit of work commits, so raising
one of these never leaves an aggregate partially updated.
"""

from typing import Any, Optional


class LifecycleError(Exception):
    """Base class for all lifecycle engine errors."""
    code = "LIFECYCLE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(LifecycleError):
    """Raised when an entity does not exist."""
    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: Any) -> None:
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class InvalidTransition(LifecycleError):
    """Raised when no edge is declared between two states."""
    code = "INVALID_TRANSITION"

    def __init__(self, machine: str, source: Any, target: Any) -> None:
        super().__init__(f"Invalid {machine} transition: {_label(source)} -> {_label(target)}")
        self.machine = machine
        self.source = source
        self.target = target


class GuardRejected(LifecycleError):
    """Raised when an edge exists but its guard fails."""
    code = "GUARD_REJECTED"

    def __init__(self, machine: str, source: Any, target: Any, reason: str) -> None:
        super().__init__(
            f"{machine} transition {_label(source)} -> {_label(target)} rejected: {reason}"
        )
        self.machine = machine
        self.source = source
        self.target = target
        self.reason = reason


class InvalidDate(LifecycleError):
    code = "INVALID_DATE"


class InvalidAmount(LifecycleError):
    code = "INVALID_AMOUNT"


class InvalidDeduction(LifecycleError):
    code = "INVALID_DEDUCTION"


class InvalidDeposit(LifecycleError):
    code = "INVALID_DEPOSIT"


class InvalidRefundDetails(LifecycleError):
    code = "INVALID_REFUND_DETAILS"


class AlreadyTerminated(LifecycleError):
    code = "ALREADY_TERMINATED"


class AlreadyCheckedOut(LifecycleError):
    code = "ALREADY_CHECKED_OUT"


class ConcurrentModification(LifecycleError):
    """Optimistic-lock conflict. Caller may retry from a fresh read."""
    code = "CONCURRENT_MODIFICATION"

    def __init__(self, kind: str, entity_id: Any, expected_version: Optional[int] = None) -> None:
        detail = f" (expected version {expected_version})" if expected_version is not None else ""
        super().__init__(f"{kind} {entity_id} was modified concurrently{detail}")
        self.kind = kind
        self.entity_id = entity_id
        self.expected_version = expected_version


class DuplicateNotice(LifecycleError):
    """An expiration notice already exists for (lease, threshold)."""
    code = "DUPLICATE_NOTICE"


def _label(state: Any) -> str:
    return getattr(state, "value", str(state))
