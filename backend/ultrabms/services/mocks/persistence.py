"""
Ultra BMS - In-Memory Persistence

This is a MOCK implementation of the persistence gateway.
In production, SqlAlchemyPersistenceGateway backs the same contract.

Commits are atomic under a lock: every expected version is checked
before anything is written. Aggregates are copied in and out, so
callers never hold the stored instance.
"""

import threading
import uuid
from typing import Iterable, Optional, TypeVar

from ultrabms.bridges.persistence import (
    PersistenceGateway,
    StagedWrite,
    UnitOfWork,
    _matches,
)
from ultrabms.core.errors import ConcurrentModification, DuplicateNotice
from ultrabms.models.base import Aggregate
from ultrabms.models.expiration import ExpirationNotice

A = TypeVar("A", bound=Aggregate)


class InMemoryUnitOfWork(UnitOfWork):

    def __init__(self, gateway: "InMemoryPersistenceGateway") -> None:
        super().__init__()
        self._gateway = gateway

    def _load(self, kind: type[A], entity_id: uuid.UUID) -> Optional[A]:
        with self._gateway._lock:
            row = self._gateway._rows.get((kind.KIND, entity_id))
        return row.model_copy(deep=True) if row is not None else None

    def _query(self, kind, statuses, lease_account_id) -> Iterable[Aggregate]:
        with self._gateway._lock:
            rows = [
                row.model_copy(deep=True) for (row_kind, _), row in self._gateway._rows.items()
                if row_kind == kind.KIND
            ]
        return [row for row in rows if _matches(row, statuses, lease_account_id)]

    def _has_notice(self, lease_account_id: uuid.UUID, threshold_days: int) -> bool:
        with self._gateway._lock:
            return (lease_account_id, threshold_days) in self._gateway._notices

    def _load_notices(self, lease_account_id: uuid.UUID) -> Iterable[ExpirationNotice]:
        with self._gateway._lock:
            return [
                n for (lease_id, _), n in self._gateway._notices.items()
                if lease_id == lease_account_id
            ]

    def _apply(self, writes: list[StagedWrite], notices: list[ExpirationNotice]) -> None:
        self._gateway._apply(writes, notices)


class InMemoryPersistenceGateway(PersistenceGateway):
    """
    Mock aggregate store.

    Test hooks:
        fail_commits_for(entity_id, exc): the next commit touching the
            entity raises exc instead of applying
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[tuple[str, uuid.UUID], Aggregate] = {}
        self._notices: dict[tuple[uuid.UUID, int], ExpirationNotice] = {}
        self._failures: dict[uuid.UUID, Exception] = {}
        self._commit_count = 0

    def transaction(self) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self)

    @property
    def commit_count(self) -> int:
        return self._commit_count

    def fail_commits_for(self, entity_id: uuid.UUID, exc: Exception) -> None:
        """Make the next commit touching entity_id raise exc."""
        self._failures[entity_id] = exc

    def seed(self, *aggregates: Aggregate) -> list[Aggregate]:
        """Insert aggregates directly (test setup). Returns them at version 1."""
        with self.transaction() as uow:
            stored = [uow.add(a) for a in aggregates]
        return stored

    def reset(self) -> None:
        with self._lock:
            self._rows.clear()
            self._notices.clear()
            self._failures.clear()
            self._commit_count = 0

    def _apply(self, writes: list[StagedWrite], notices: list[ExpirationNotice]) -> None:
        with self._lock:
            for aggregate, _ in writes:
                if aggregate.id in self._failures:
                    raise self._failures.pop(aggregate.id)

            for aggregate, expected in writes:
                current = self._rows.get((aggregate.KIND, aggregate.id))
                current_version = current.version if current is not None else 0
                if current_version != expected:
                    raise ConcurrentModification(aggregate.KIND, aggregate.id, expected)

            for notice in notices:
                if (notice.lease_account_id, notice.threshold_days) in self._notices:
                    raise DuplicateNotice(
                        f"Notice already sent for lease {notice.lease_account_id} "
                        f"at {notice.threshold_days} days"
                    )

            for aggregate, _ in writes:
                self._rows[(aggregate.KIND, aggregate.id)] = aggregate.model_copy(deep=True)
            for notice in notices:
                self._notices[(notice.lease_account_id, notice.threshold_days)] = notice
            self._commit_count += 1
