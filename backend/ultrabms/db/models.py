"""
Ultra BMS - SQLAlchemy ORM Models

Aggregates are stored as versioned JSON documents with their
status and lease account pulled out into indexed columns.
Expiration notices get their own table so the
(lease_account_id, threshold_days) uniqueness is enforced by the database.
"""

import uuid
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class AggregateRow(Base):
    """One lifecycle aggregate (lease, settlement, spot, lead, quotation, extension)."""

    __tablename__ = "lifecycle_aggregates"

    kind: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[Optional[str]] = mapped_column(String(32))
    lease_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("version > 0", name="lifecycle_aggregates_version_positive"),
        Index("idx_lifecycle_aggregates_status", "kind", "status"),
        Index("idx_lifecycle_aggregates_lease", "kind", "lease_account_id"),
    )


class ExpirationNoticeRow(Base):
    """Append-only dedup record for threshold notices."""

    __tablename__ = "expiration_notices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lease_account_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    threshold_days: Mapped[int] = mapped_column(Integer, nullable=False)
    lease_end: Mapped[date] = mapped_column(Date, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "lease_account_id", "threshold_days", name="uq_expiration_notice_lease_threshold"
        ),
    )
