"""
Ultra BMS - Lead & Quotation Schemas

Pre-lease funnel: Lead -> Quotation -> LeaseAccount.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, Field

from ultrabms.core.types import ZERO, MoneyAmount
from ultrabms.models.base import Aggregate
from ultrabms.models.events import LifecycleEvent
from ultrabms.models.lease import LeaseAccount
from ultrabms.models.parking import ParkingSpot


class LeadStatus(str, Enum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    QUOTATION_SENT = "QUOTATION_SENT"
    ACCEPTED = "ACCEPTED"
    CONVERTED = "CONVERTED"
    LOST = "LOST"


class QuotationStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"


class Lead(Aggregate):
    """Prospective tenant."""
    KIND: ClassVar[str] = "lead"

    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: LeadStatus = LeadStatus.NEW
    lost_reason: Optional[str] = None


class QuotationAccount(Aggregate):
    """Rental offer made to a lead, valid until validity_date."""
    KIND: ClassVar[str] = "quotation"

    lead_id: uuid.UUID
    unit_id: uuid.UUID
    status: QuotationStatus = QuotationStatus.DRAFT
    issue_date: date
    validity_date: date

    base_rent: MoneyAmount
    service_charges: MoneyAmount = ZERO
    parking_spots: int = 0
    parking_fee: MoneyAmount = ZERO
    security_deposit: MoneyAmount = ZERO
    admin_fee: MoneyAmount = ZERO
    total_first_payment: MoneyAmount = ZERO

    sent_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    lease_account_id: Optional[uuid.UUID] = None


class FirstPaymentBreakdown(BaseModel):
    """Amounts due with the first payment of a quotation."""
    base_rent: MoneyAmount
    service_charges: MoneyAmount
    parking_total: MoneyAmount
    security_deposit: MoneyAmount
    admin_fee: MoneyAmount
    total_first_payment: MoneyAmount


# =============================================================================
# REQUEST / RESULT MODELS
# =============================================================================

class QuotationRequest(BaseModel):
    """Terms for a new quotation."""
    lead_id: uuid.UUID
    unit_id: uuid.UUID
    issue_date: date
    validity_date: date
    base_rent: MoneyAmount
    service_charges: MoneyAmount = ZERO
    parking_spots: int = 0
    parking_fee: MoneyAmount = ZERO
    security_deposit: MoneyAmount = ZERO
    admin_fee: MoneyAmount = ZERO


class ConversionRequest(BaseModel):
    """Turns an accepted quotation into a lease account."""
    tenant_id: uuid.UUID
    lease_start: date
    lease_end: date
    parking_spot_ids: list[uuid.UUID] = Field(default_factory=list)
    auto_renewal: bool = False
    early_termination_clause: bool = False
    converted_by: uuid.UUID


class QuotationUpdate(BaseModel):
    """Outcome of a quotation workflow step."""
    quotation: QuotationAccount
    lead: Optional[Lead] = None
    events: list[LifecycleEvent] = Field(default_factory=list)


class ConversionResult(BaseModel):
    quotation: QuotationAccount
    lead: Lead
    lease_account: LeaseAccount
    assigned_spots: list[ParkingSpot] = Field(default_factory=list)
    events: list[LifecycleEvent] = Field(default_factory=list)
