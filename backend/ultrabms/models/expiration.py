"""
Ultra BMS - Lease Expiration Schemas

ExpirationNotice rows make the daily scan idempotent:
one row per (lease_account_id, threshold_days), ever.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ultrabms.core.config import settings
from ultrabms.core.types import MoneyAmount
from ultrabms.models.events import LifecycleEvent
from ultrabms.models.lease import LeaseStatus


class MonitorState(str, Enum):
    IDLE = "IDLE"
    SCANNING = "SCANNING"
    DONE = "DONE"


class ExpirationConfig(BaseModel):
    """Configuration for the expiration monitor."""
    thresholds: list[int] = Field(default_factory=lambda: list(settings.EXPIRY_THRESHOLDS))
    expiring_soon_days: int = settings.EXPIRING_SOON_DAYS

    @property
    def descending(self) -> list[int]:
        return sorted(set(self.thresholds), reverse=True)


class ExpirationNotice(BaseModel):
    """Dedup record for a threshold notice. Append-only."""
    model_config = ConfigDict(frozen=True)

    lease_account_id: uuid.UUID
    threshold_days: int
    sent_at: datetime
    lease_end: date

    @property
    def idempotency_key(self) -> str:
        return f"{self.lease_account_id}:{self.threshold_days}"


class ScanFailure(BaseModel):
    """An aggregate the scan could not process. Non-fatal to the batch."""
    entity_id: uuid.UUID
    kind: str = "lease_account"
    error_type: str
    message: str


class ScanReport(BaseModel):
    """Result of one daily scan."""
    scan_date: date
    started_at: datetime
    finished_at: datetime
    leases_examined: int = 0
    transitioned_to_expiring: list[uuid.UUID] = Field(default_factory=list)
    notices_created: list[ExpirationNotice] = Field(default_factory=list)
    quotations_expired: list[uuid.UUID] = Field(default_factory=list)
    events: list[LifecycleEvent] = Field(default_factory=list)
    failures: list[ScanFailure] = Field(default_factory=list)

    @property
    def notifications_sent(self) -> int:
        return len(self.notices_created)

    @property
    def succeeded(self) -> bool:
        return not self.failures


# =============================================================================
# READ MODELS
# =============================================================================

class ExpiringLease(BaseModel):
    lease_account_id: uuid.UUID
    tenant_id: uuid.UUID
    unit_id: uuid.UUID
    status: LeaseStatus
    lease_end: date
    days_remaining: int
    total_monthly: MoneyAmount
    notified_thresholds: list[int] = Field(default_factory=list)


class ExpiringLeasesSummary(BaseModel):
    """Leases bucketed by days remaining.

    Buckets are keyed by notice threshold and are cumulative: a lease in
    the 14-day bucket also appears in every wider one.
    """
    as_of: date
    buckets: dict[int, list[ExpiringLease]] = Field(default_factory=dict)

    def within(self, days: int) -> list[ExpiringLease]:
        return self.buckets.get(days, [])

    def count(self, days: int) -> int:
        return len(self.within(days))

    @property
    def within_14_days(self) -> list[ExpiringLease]:
        return self.within(14)

    @property
    def within_30_days(self) -> list[ExpiringLease]:
        return self.within(30)

    @property
    def within_60_days(self) -> list[ExpiringLease]:
        return self.within(60)

    @property
    def count_14_days(self) -> int:
        return self.count(14)

    @property
    def count_30_days(self) -> int:
        return self.count(30)

    @property
    def count_60_days(self) -> int:
        return self.count(60)


class MonitorRun(BaseModel):
    """In-process state of the monitor; nothing is persisted between runs."""
    status: MonitorState = MonitorState.IDLE
    scan_date: Optional[date] = None
