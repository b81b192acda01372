"""
Ultra BMS - Lease Account Schemas

LeaseAccount is the aggregate tracking one tenancy.
LeaseExtension is an immutable record of one renewal.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ultrabms.core.types import ZERO, DecimalValue, Money, MoneyAmount
from ultrabms.models.base import Aggregate
from ultrabms.models.events import LifecycleEvent


class LeaseStatus(str, Enum):
    """Lease account status. TERMINATED is absorbing."""
    ACTIVE = "ACTIVE"
    EXPIRING_SOON = "EXPIRING_SOON"
    TERMINATED = "TERMINATED"


class AdjustmentType(str, Enum):
    """Rent adjustment applied on renewal."""
    NONE = "NONE"
    PERCENTAGE = "PERCENTAGE"
    FLAT = "FLAT"
    CUSTOM = "CUSTOM"


class LeaseAccount(Aggregate):
    """One tenancy: links a tenant to a unit for a time period."""
    KIND: ClassVar[str] = "lease_account"

    unit_id: uuid.UUID
    tenant_id: uuid.UUID
    status: LeaseStatus = LeaseStatus.ACTIVE
    lease_start: date
    lease_end: date

    base_rent: MoneyAmount
    service_charge: MoneyAmount = ZERO
    security_deposit: MoneyAmount = ZERO
    parking_spots: int = 0
    parking_fee_per_spot: MoneyAmount = ZERO

    auto_renewal: bool = False
    early_termination_clause: bool = False
    terminated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "LeaseAccount":
        if self.lease_end <= self.lease_start:
            raise ValueError(
                f"lease_end ({self.lease_end}) must be after lease_start ({self.lease_start})"
            )
        return self

    @property
    def parking_fee(self) -> Decimal:
        return Money.multiply(self.parking_fee_per_spot, self.parking_spots)

    @property
    def total_monthly(self) -> Decimal:
        return Money.total([self.base_rent, self.service_charge, self.parking_fee])

    @property
    def is_terminated(self) -> bool:
        return self.status == LeaseStatus.TERMINATED


class LeaseExtension(Aggregate):
    """Immutable renewal record. Created once per successful extension."""
    KIND: ClassVar[str] = "lease_extension"
    model_config = ConfigDict(frozen=True)

    lease_account_id: uuid.UUID
    previous_end_date: date
    new_end_date: date
    previous_rent: MoneyAmount
    new_rent: MoneyAmount
    previous_total_monthly: MoneyAmount
    new_total_monthly: MoneyAmount
    adjustment_type: AdjustmentType
    adjustment_value: DecimalValue = Decimal("0")
    adjustment_percentage: Decimal = Decimal("0")
    extended_at: datetime
    extended_by: uuid.UUID


# =============================================================================
# REQUEST / RESULT MODELS
# =============================================================================

class ExtensionRequest(BaseModel):
    """Request to renew a lease."""
    new_end_date: date
    adjustment_type: AdjustmentType = AdjustmentType.NONE
    adjustment_value: DecimalValue = Decimal("0")
    extended_by: uuid.UUID
    auto_renewal: Optional[bool] = None


class ExtensionResult(BaseModel):
    """Outcome of a successful extension."""
    lease_account: LeaseAccount
    extension: LeaseExtension
    events: list[LifecycleEvent] = Field(default_factory=list)


class LeaseSummary(BaseModel):
    """Current lease read model."""
    lease_account_id: uuid.UUID
    status: LeaseStatus
    lease_start: date
    lease_end: date
    days_remaining: int
    base_rent: MoneyAmount
    service_charge: MoneyAmount
    parking_fee: MoneyAmount
    total_monthly: MoneyAmount
    security_deposit: MoneyAmount
    auto_renewal: bool
    extension_count: int = 0
