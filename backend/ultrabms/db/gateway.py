"""
Ultra BMS - SQL Persistence Gateway

SQLAlchemy implementation of the persistence contract.

Optimistic locking:
    UPDATE lifecycle_aggregates SET version = :next, ...
    WHERE kind = :kind AND id = :id AND version = :expected
    -> 0 rows updated means someone else committed first
"""

import logging
import uuid
from typing import Iterable, Optional, TypeVar

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ultrabms.bridges.persistence import (
    PersistenceGateway,
    StagedWrite,
    UnitOfWork,
    lease_account_of,
    status_of,
)
from ultrabms.core.errors import ConcurrentModification, DuplicateNotice
from ultrabms.db.models import AggregateRow, ExpirationNoticeRow
from ultrabms.db.session import build_engine, build_session_maker, create_schema
from ultrabms.models.base import Aggregate
from ultrabms.models.expiration import ExpirationNotice

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=Aggregate)


def _to_model(kind: type[A], row: AggregateRow) -> A:
    return kind.model_validate({**row.payload, "version": row.version})


def _to_notice(row: ExpirationNoticeRow) -> ExpirationNotice:
    return ExpirationNotice(
        lease_account_id=row.lease_account_id,
        threshold_days=row.threshold_days,
        lease_end=row.lease_end,
        sent_at=row.sent_at,
    )


class SqlAlchemyUnitOfWork(UnitOfWork):

    def __init__(self, session: Session) -> None:
        super().__init__()
        self._session = session

    def _load(self, kind: type[A], entity_id: uuid.UUID) -> Optional[A]:
        row = self._session.get(AggregateRow, (kind.KIND, entity_id))
        return _to_model(kind, row) if row is not None else None

    def _query(self, kind, statuses, lease_account_id) -> Iterable[Aggregate]:
        stmt = select(AggregateRow).where(AggregateRow.kind == kind.KIND)
        if statuses is not None:
            stmt = stmt.where(AggregateRow.status.in_(statuses))
        if lease_account_id is not None:
            stmt = stmt.where(AggregateRow.lease_account_id == lease_account_id)
        return [_to_model(kind, row) for row in self._session.scalars(stmt)]

    def _has_notice(self, lease_account_id: uuid.UUID, threshold_days: int) -> bool:
        stmt = select(ExpirationNoticeRow.id).where(
            ExpirationNoticeRow.lease_account_id == lease_account_id,
            ExpirationNoticeRow.threshold_days == threshold_days,
        )
        return self._session.scalar(stmt) is not None

    def _load_notices(self, lease_account_id: uuid.UUID) -> Iterable[ExpirationNotice]:
        stmt = select(ExpirationNoticeRow).where(
            ExpirationNoticeRow.lease_account_id == lease_account_id
        )
        return [_to_notice(row) for row in self._session.scalars(stmt)]

    def _write(self, aggregate: Aggregate, expected: int) -> None:
        values = {
            "version": aggregate.version,
            "status": status_of(aggregate),
            "lease_account_id": lease_account_of(aggregate),
            "payload": aggregate.model_dump(mode="json", exclude={"version"}),
        }
        if expected == 0:
            self._session.add(AggregateRow(kind=aggregate.KIND, id=aggregate.id, **values))
            try:
                self._session.flush()
            except IntegrityError as exc:
                raise ConcurrentModification(aggregate.KIND, aggregate.id, expected) from exc
            return

        result = self._session.execute(
            update(AggregateRow)
            .where(
                AggregateRow.kind == aggregate.KIND,
                AggregateRow.id == aggregate.id,
                AggregateRow.version == expected,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModification(aggregate.KIND, aggregate.id, expected)

    def _insert_notice(self, notice: ExpirationNotice) -> None:
        self._session.add(ExpirationNoticeRow(
            lease_account_id=notice.lease_account_id,
            threshold_days=notice.threshold_days,
            lease_end=notice.lease_end,
            sent_at=notice.sent_at,
        ))
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise DuplicateNotice(
                f"Notice already sent for lease {notice.lease_account_id} "
                f"at {notice.threshold_days} days"
            ) from exc

    def _apply(self, writes: list[StagedWrite], notices: list[ExpirationNotice]) -> None:
        try:
            for aggregate, expected in writes:
                self._write(aggregate, expected)
            for notice in notices:
                self._insert_notice(notice)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

    def rollback(self) -> None:
        super().rollback()
        self._session.rollback()

    def _close(self) -> None:
        self._session.close()


class SqlAlchemyPersistenceGateway(PersistenceGateway):
    """Persistence gateway over a SQLAlchemy engine."""

    def __init__(self, session_maker: sessionmaker[Session]) -> None:
        self._session_maker = session_maker

    @classmethod
    def from_url(cls, url: Optional[str] = None, create_tables: bool = False) -> "SqlAlchemyPersistenceGateway":
        engine: Engine = build_engine(url)
        if create_tables:
            create_schema(engine)
        logger.info(f"Persistence gateway bound to {engine.url.render_as_string(hide_password=True)}")
        return cls(build_session_maker(engine))

    def transaction(self) -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(self._session_maker())
