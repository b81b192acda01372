"""
Ultra BMS - Lifecycle Domain Events

Events produced by lifecycle operations for the external notification
and audit collaborators. All events are immutable and are only
published after the transaction that produced them has committed.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ultrabms.core.types import MoneyAmount


class EventType(str, Enum):
    """Lifecycle event types."""
    EXTENSION_COMPLETED = "lease.extension.completed"
    LEASE_EXPIRING = "lease.expiration.notice"
    CHECKOUT_COMPLETED = "lease.checkout.completed"
    DEPOSIT_CALCULATED = "settlement.deposit.calculated"
    SETTLEMENT_APPROVED = "settlement.approved"
    REFUND_PROCESSING = "settlement.refund.processing"
    REFUND_COMPLETED = "settlement.refund.completed"
    SETTLEMENT_HELD = "settlement.held"
    SETTLEMENT_RELEASED = "settlement.released"
    QUOTATION_SENT = "quotation.sent"
    QUOTATION_ACCEPTED = "quotation.accepted"
    QUOTATION_REJECTED = "quotation.rejected"
    QUOTATION_EXPIRED = "quotation.expired"
    QUOTATION_CONVERTED = "quotation.converted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleEvent(BaseModel):
    """Base class for all lifecycle events."""
    model_config = ConfigDict(frozen=True)

    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    occurred_at: datetime = Field(default_factory=_utcnow)
    aggregate_id: uuid.UUID
    lease_account_id: Optional[uuid.UUID] = None
    actor_id: Optional[uuid.UUID] = None
    idempotency_key: Optional[str] = None


# ============================================
# Lease events
# ============================================

class ExtensionCompleted(LifecycleEvent):
    event_type: EventType = EventType.EXTENSION_COMPLETED

    previous_end_date: date
    new_end_date: date
    previous_rent: MoneyAmount
    new_rent: MoneyAmount
    adjustment_percentage: Decimal


class LeaseExpiring(LifecycleEvent):
    """Threshold-based notice; sent at most once per (lease, threshold)."""
    event_type: EventType = EventType.LEASE_EXPIRING

    threshold_days: int
    days_remaining: int
    lease_end: date


class CheckoutCompleted(LifecycleEvent):
    event_type: EventType = EventType.CHECKOUT_COMPLETED

    move_out_date: date
    released_spot_ids: list[uuid.UUID] = []


# ============================================
# Settlement events
# ============================================

class DepositCalculated(LifecycleEvent):
    event_type: EventType = EventType.DEPOSIT_CALCULATED

    original_deposit: MoneyAmount
    total_deductions: MoneyAmount
    net_refund: MoneyAmount
    amount_owed_by_tenant: bool
    refund_status: str


class SettlementApproved(LifecycleEvent):
    event_type: EventType = EventType.SETTLEMENT_APPROVED

    net_refund: MoneyAmount


class RefundProcessing(LifecycleEvent):
    event_type: EventType = EventType.REFUND_PROCESSING

    refund_amount: MoneyAmount
    refund_method: str


class RefundCompleted(LifecycleEvent):
    event_type: EventType = EventType.REFUND_COMPLETED

    refund_amount: MoneyAmount


class SettlementHeld(LifecycleEvent):
    event_type: EventType = EventType.SETTLEMENT_HELD

    held_from: str
    reason: Optional[str] = None


class SettlementReleased(LifecycleEvent):
    event_type: EventType = EventType.SETTLEMENT_RELEASED

    resumed_status: str


# ============================================
# Quotation events
# ============================================

class QuotationSent(LifecycleEvent):
    event_type: EventType = EventType.QUOTATION_SENT

    lead_id: uuid.UUID
    validity_date: date
    total_first_payment: MoneyAmount


class QuotationAccepted(LifecycleEvent):
    event_type: EventType = EventType.QUOTATION_ACCEPTED

    lead_id: uuid.UUID


class QuotationRejected(LifecycleEvent):
    event_type: EventType = EventType.QUOTATION_REJECTED

    lead_id: uuid.UUID
    reason: Optional[str] = None


class QuotationExpired(LifecycleEvent):
    event_type: EventType = EventType.QUOTATION_EXPIRED

    lead_id: uuid.UUID
    validity_date: date


class QuotationConverted(LifecycleEvent):
    event_type: EventType = EventType.QUOTATION_CONVERTED

    lead_id: uuid.UUID
