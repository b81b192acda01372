"""
Ultra BMS - Deposit Settlement Schemas

One DepositSettlement per completed checkout. It is a financial
record: mutated only as the approval workflow progresses, never deleted.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field

from ultrabms.core.config import settings
from ultrabms.core.types import ZERO, MoneyAmount
from ultrabms.models.base import Aggregate
from ultrabms.models.events import LifecycleEvent
from ultrabms.models.lease import LeaseAccount
from ultrabms.models.parking import ParkingSpot


class DeductionCategory(str, Enum):
    UNPAID_RENT = "UNPAID_RENT"
    UNPAID_UTILITIES = "UNPAID_UTILITIES"
    DAMAGE_REPAIRS = "DAMAGE_REPAIRS"
    CLEANING_FEE = "CLEANING_FEE"
    KEY_REPLACEMENT = "KEY_REPLACEMENT"
    EARLY_TERMINATION_PENALTY = "EARLY_TERMINATION_PENALTY"
    OTHER = "OTHER"


class RefundStatus(str, Enum):
    """
    CALCULATED -> PENDING_APPROVAL -> APPROVED -> PROCESSING -> COMPLETED
    ON_HOLD is reachable from (and returns to) any state before COMPLETED.
    """
    CALCULATED = "CALCULATED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"


class ItemCondition(str, Enum):
    GOOD = "GOOD"
    FAIR = "FAIR"
    DAMAGED = "DAMAGED"
    MISSING = "MISSING"


class RefundMethod(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    CASH = "CASH"


class CheckoutReason(str, Enum):
    LEASE_END = "LEASE_END"
    EARLY_TERMINATION = "EARLY_TERMINATION"
    EVICTION = "EVICTION"
    MUTUAL_AGREEMENT = "MUTUAL_AGREEMENT"
    OTHER = "OTHER"


class Deduction(BaseModel):
    """One deduction row, auto-populated or entered by a manager."""
    model_config = ConfigDict(frozen=True)

    category: DeductionCategory
    amount: MoneyAmount
    notes: Optional[str] = None
    auto_calculated: bool = False
    disputed: bool = False


class InspectionItem(BaseModel):
    """Move-out inspection checklist item."""
    section: str = "general"
    name: str
    condition: ItemCondition = ItemCondition.GOOD
    repair_cost: MoneyAmount = ZERO
    notes: Optional[str] = None

    @property
    def chargeable(self) -> bool:
        return self.condition in (ItemCondition.DAMAGED, ItemCondition.MISSING)


class DepositSettlement(Aggregate):
    """Deduction/refund calculation performed at tenant checkout."""
    KIND: ClassVar[str] = "deposit_settlement"

    lease_account_id: uuid.UUID
    original_deposit: MoneyAmount
    deductions: list[Deduction] = Field(default_factory=list)
    total_deductions: MoneyAmount = ZERO
    net_refund: MoneyAmount = ZERO
    amount_owed_by_tenant: bool = False
    refund_status: RefundStatus = RefundStatus.CALCULATED
    held_from: Optional[RefundStatus] = None
    hold_reason: Optional[str] = None

    calculated_at: Optional[datetime] = None
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    refund_method: Optional[RefundMethod] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def refund_amount(self) -> Decimal:
        """Amount paid back to the tenant (never negative)."""
        return max(self.net_refund, ZERO)

    @property
    def amount_owed(self) -> Decimal:
        """Amount the tenant still owes when deductions exceed the deposit."""
        return max(-self.net_refund, ZERO)


# =============================================================================
# REQUEST / RESULT MODELS
# =============================================================================

class CheckoutData(BaseModel):
    """Everything captured by the checkout wizard."""
    move_out_date: date
    reason: CheckoutReason = CheckoutReason.LEASE_END
    inspection_items: list[InspectionItem] = Field(default_factory=list)
    custom_deductions: list[Deduction] = Field(default_factory=list)
    completed_by: uuid.UUID
    notes: Optional[str] = None


class RefundPayout(BaseModel):
    """Payout details captured when a refund is processed."""
    method: RefundMethod
    processed_by: uuid.UUID
    bank_name: Optional[str] = None
    account_holder_name: Optional[str] = None
    iban: Optional[str] = None
    swift_code: Optional[str] = None
    cheque_number: Optional[str] = None
    cash_acknowledged: bool = False


class SettlementResult(BaseModel):
    """Outcome of a completed checkout."""
    lease_account: LeaseAccount
    settlement: DepositSettlement
    released_spots: list[ParkingSpot] = Field(default_factory=list)
    events: list[LifecycleEvent] = Field(default_factory=list)


class SettlementUpdate(BaseModel):
    """Outcome of an approval-workflow step."""
    settlement: DepositSettlement
    events: list[LifecycleEvent] = Field(default_factory=list)


class SettlementInputs(BaseModel):
    """Candidate deduction sources gathered at checkout."""
    outstanding_balances: list[MoneyAmount] = Field(default_factory=list)
    inspection_items: list[InspectionItem] = Field(default_factory=list)
    custom_deductions: list[Deduction] = Field(default_factory=list)

    # Early termination terms
    move_out_date: Optional[date] = None
    lease_end: Optional[date] = None
    base_rent: MoneyAmount = ZERO
    early_termination_clause: bool = False


class SettlementConfig(BaseModel):
    """Configuration for the deposit settlement calculator."""
    approval_threshold: MoneyAmount = settings.APPROVAL_THRESHOLD
    penalty_cap_months: int = settings.EARLY_TERMINATION_CAP_MONTHS
