"""
Ultra BMS - Persistence Gateway

Contract:
    - Every operation runs inside exactly one unit of work
    - Writes are staged and applied atomically on commit
    - Each aggregate carries a version; a commit whose expected version
      no longer matches the stored one raises ConcurrentModification
      and applies nothing
    - ExpirationNotice rows are unique per (lease_account_id, threshold_days)

    with gateway.transaction() as uow:
        lease = uow.get(LeaseAccount, lease_id)
        lease = uow.save(lease.model_copy(update={...}))
    # committed here; any exception inside the block rolls back
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, TypeVar

from ultrabms.core.errors import DuplicateNotice, NotFound
from ultrabms.models.base import Aggregate
from ultrabms.models.expiration import ExpirationNotice

A = TypeVar("A", bound=Aggregate)

StagedWrite = tuple[Aggregate, int]


def status_of(aggregate: Aggregate) -> Optional[str]:
    """Indexed status value of an aggregate, if it has one."""
    value = getattr(aggregate, "status", None)
    if value is None:
        value = getattr(aggregate, "refund_status", None)
    return getattr(value, "value", value)


def lease_account_of(aggregate: Aggregate) -> Optional[uuid.UUID]:
    return getattr(aggregate, "lease_account_id", None)


def _matches(
    aggregate: Aggregate,
    statuses: Optional[set[str]],
    lease_account_id: Optional[uuid.UUID],
) -> bool:
    if statuses is not None and status_of(aggregate) not in statuses:
        return False
    if lease_account_id is not None and lease_account_of(aggregate) != lease_account_id:
        return False
    return True


class UnitOfWork(ABC):
    """
    Buffered transaction over the aggregate store.

    Reads see this unit's own staged writes. Nothing reaches the
    store until commit().
    """

    def __init__(self) -> None:
        self._staged: dict[tuple[str, uuid.UUID], StagedWrite] = {}
        self._notices: dict[tuple[uuid.UUID, int], ExpirationNotice] = {}
        self._closed = False

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self._close()

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, kind: type[A], entity_id: uuid.UUID) -> A:
        """Load one aggregate. Raises NotFound."""
        staged = self._staged.get((kind.KIND, entity_id))
        if staged is not None:
            return staged[0]
        found = self._load(kind, entity_id)
        if found is None:
            raise NotFound(kind.KIND, entity_id)
        return found

    def find(
        self,
        kind: type[A],
        status_in: Optional[Iterable[Any]] = None,
        lease_account_id: Optional[uuid.UUID] = None,
    ) -> list[A]:
        statuses = None
        if status_in is not None:
            statuses = {getattr(s, "value", s) for s in status_in}

        results: dict[uuid.UUID, A] = {
            row.id: row for row in self._query(kind, statuses, lease_account_id)
        }
        for (staged_kind, entity_id), (aggregate, _) in self._staged.items():
            if staged_kind != kind.KIND:
                continue
            if _matches(aggregate, statuses, lease_account_id):
                results[entity_id] = aggregate
            else:
                results.pop(entity_id, None)
        return list(results.values())

    def notice_exists(self, lease_account_id: uuid.UUID, threshold_days: int) -> bool:
        if (lease_account_id, threshold_days) in self._notices:
            return True
        return self._has_notice(lease_account_id, threshold_days)

    def list_notices(self, lease_account_id: uuid.UUID) -> list[ExpirationNotice]:
        notices = list(self._load_notices(lease_account_id))
        notices.extend(n for n in self._notices.values() if n.lease_account_id == lease_account_id)
        return sorted(notices, key=lambda n: n.threshold_days, reverse=True)

    # =========================================================================
    # WRITES
    # =========================================================================

    def add(self, aggregate: A) -> A:
        """Stage a new aggregate. Returns it at version 1."""
        if aggregate.version != 0:
            raise ValueError(f"{aggregate.KIND} {aggregate.id} is already persisted")
        staged = aggregate.model_copy(update={"version": 1})
        self._staged[(aggregate.KIND, aggregate.id)] = (staged, 0)
        return staged

    def save(self, aggregate: A) -> A:
        """Stage an update of a loaded aggregate. Returns it at its next version."""
        key = (aggregate.KIND, aggregate.id)
        if key in self._staged:
            previous, expected = self._staged[key]
            if aggregate.version != previous.version:
                raise ValueError(f"{aggregate.KIND} {aggregate.id} saved from a stale copy")
            staged = aggregate
        else:
            if aggregate.version == 0:
                return self.add(aggregate)
            expected = aggregate.version
            staged = aggregate.model_copy(update={"version": aggregate.version + 1})
        self._staged[key] = (staged, expected)
        return staged

    def add_notice(self, notice: ExpirationNotice) -> ExpirationNotice:
        """Stage a dedup row. Raises DuplicateNotice if one exists."""
        if self.notice_exists(notice.lease_account_id, notice.threshold_days):
            raise DuplicateNotice(
                f"Notice already sent for lease {notice.lease_account_id} "
                f"at {notice.threshold_days} days"
            )
        self._notices[(notice.lease_account_id, notice.threshold_days)] = notice
        return notice

    # =========================================================================
    # COMMIT / ROLLBACK
    # =========================================================================

    def commit(self) -> None:
        if self._closed:
            return
        writes = list(self._staged.values())
        notices = list(self._notices.values())
        self._clear()
        if writes or notices:
            self._apply(writes, notices)
        self._closed = True

    def rollback(self) -> None:
        self._clear()
        self._closed = True

    def _clear(self) -> None:
        self._staged.clear()
        self._notices.clear()

    def _close(self) -> None:
        pass

    # =========================================================================
    # STORE ACCESS
    # =========================================================================

    @abstractmethod
    def _load(self, kind: type[A], entity_id: uuid.UUID) -> Optional[A]:
        ...

    @abstractmethod
    def _query(
        self,
        kind: type[A],
        statuses: Optional[set[str]],
        lease_account_id: Optional[uuid.UUID],
    ) -> Iterable[A]:
        ...

    @abstractmethod
    def _has_notice(self, lease_account_id: uuid.UUID, threshold_days: int) -> bool:
        ...

    @abstractmethod
    def _load_notices(self, lease_account_id: uuid.UUID) -> Iterable[ExpirationNotice]:
        ...

    @abstractmethod
    def _apply(self, writes: list[StagedWrite], notices: list[ExpirationNotice]) -> None:
        """
        Apply staged writes atomically.

        Raises:
            ConcurrentModification: an expected version no longer matches
            DuplicateNotice: a notice row already exists
        """
        ...


class PersistenceGateway(ABC):
    """Source of units of work."""

    @abstractmethod
    def transaction(self) -> UnitOfWork:
        ...
