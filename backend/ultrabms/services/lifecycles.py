"""
Ultra BMS - Lifecycle Graphs

Declared edges and guards for every status enum in the engine:

    Lead:        NEW -> CONTACTED -> QUOTATION_SENT -> ACCEPTED -> CONVERTED
                 LOST from any non-terminal state
    Quotation:   DRAFT -> SENT -> {ACCEPTED -> CONVERTED, REJECTED, EXPIRED}
    Lease:       ACTIVE -> EXPIRING_SOON -> TERMINATED, ACTIVE -> TERMINATED
                 EXPIRING_SOON -> ACTIVE only through an extension
    ParkingSpot: AVAILABLE <-> UNDER_MAINTENANCE, AVAILABLE -> ASSIGNED,
                 ASSIGNED -> AVAILABLE only through checkout release
    Refund:      CALCULATED -> PENDING_APPROVAL -> APPROVED -> PROCESSING, CALCULATED -> PROCESSING
                 PROCESSING -> COMPLETED, ON_HOLD <-> any state before COMPLETED
    Monitor:     IDLE -> SCANNING -> DONE -> SCANNING
"""

from ultrabms.core.clock import days_remaining
from ultrabms.core.config import settings
from ultrabms.models.expiration import MonitorState
from ultrabms.models.lease import LeaseStatus
from ultrabms.models.parking import ParkingSpotStatus
from ultrabms.models.quotation import LeadStatus, QuotationStatus
from ultrabms.models.settlement import RefundStatus
from ultrabms.services.fsm import EntityStateMachine, Guard, Trigger


# =============================================================================
# LEAD
# =============================================================================

def build_lead_machine() -> EntityStateMachine:
    lost = LeadStatus.LOST
    return EntityStateMachine(
        name="Lead",
        states=LeadStatus,
        edges=[
            (LeadStatus.NEW, LeadStatus.CONTACTED),
            (LeadStatus.CONTACTED, LeadStatus.QUOTATION_SENT),
            (LeadStatus.QUOTATION_SENT, LeadStatus.ACCEPTED),
            (LeadStatus.ACCEPTED, LeadStatus.CONVERTED),
            (LeadStatus.NEW, lost),
            (LeadStatus.CONTACTED, lost),
            (LeadStatus.QUOTATION_SENT, lost),
            (LeadStatus.ACCEPTED, lost),
        ],
        terminal=[LeadStatus.CONVERTED, LeadStatus.LOST],
    )


# =============================================================================
# QUOTATION
# =============================================================================

_currently_sent = Guard(
    check=lambda quotation, ctx: quotation.status == QuotationStatus.SENT,
    reason="quotation must currently be SENT",
)

_within_validity = Guard(
    check=lambda quotation, ctx: ctx.today is None or ctx.today <= quotation.validity_date,
    reason="quotation validity date has passed",
)

_past_validity = Guard(
    check=lambda quotation, ctx: ctx.today is not None and ctx.today > quotation.validity_date,
    reason="quotation is still within its validity date",
)


def build_quotation_machine() -> EntityStateMachine:
    return EntityStateMachine(
        name="Quotation",
        states=QuotationStatus,
        edges=[
            (QuotationStatus.DRAFT, QuotationStatus.SENT),
            (QuotationStatus.SENT, QuotationStatus.ACCEPTED, [_currently_sent, _within_validity]),
            (QuotationStatus.SENT, QuotationStatus.REJECTED, [_currently_sent]),
            (QuotationStatus.SENT, QuotationStatus.EXPIRED, [_past_validity]),
            (QuotationStatus.ACCEPTED, QuotationStatus.CONVERTED),
        ],
        terminal=[QuotationStatus.CONVERTED, QuotationStatus.REJECTED, QuotationStatus.EXPIRED],
    )


# =============================================================================
# LEASE ACCOUNT
# =============================================================================

def build_lease_machine(expiring_soon_days: int = settings.EXPIRING_SOON_DAYS) -> EntityStateMachine:
    def _extension_clears_window(lease, ctx) -> bool:
        new_end = ctx.data.get("new_end_date")
        if ctx.trigger != Trigger.EXTENSION or new_end is None or ctx.today is None:
            return False
        return days_remaining(ctx.today, new_end) > expiring_soon_days

    return EntityStateMachine(
        name="LeaseAccount",
        states=LeaseStatus,
        edges=[
            (LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON),
            (LeaseStatus.ACTIVE, LeaseStatus.TERMINATED),
            (LeaseStatus.EXPIRING_SOON, LeaseStatus.TERMINATED),
            (
                LeaseStatus.EXPIRING_SOON,
                LeaseStatus.ACTIVE,
                [Guard(
                    check=_extension_clears_window,
                    reason=f"extension must push days remaining beyond {expiring_soon_days}",
                )],
            ),
        ],
        terminal=[LeaseStatus.TERMINATED],
    )


# =============================================================================
# PARKING SPOT
# =============================================================================

_spot_available = Guard(
    check=lambda spot, ctx: spot.status == ParkingSpotStatus.AVAILABLE,
    reason="spot must be AVAILABLE",
)

_checkout_release = Guard(
    check=lambda spot, ctx: ctx.trigger == Trigger.CHECKOUT_RELEASE,
    reason="assigned spots are only released by checkout",
)


def build_parking_machine() -> EntityStateMachine:
    return EntityStateMachine(
        name="ParkingSpot",
        states=ParkingSpotStatus,
        edges=[
            (ParkingSpotStatus.AVAILABLE, ParkingSpotStatus.UNDER_MAINTENANCE),
            (ParkingSpotStatus.UNDER_MAINTENANCE, ParkingSpotStatus.AVAILABLE),
            (ParkingSpotStatus.AVAILABLE, ParkingSpotStatus.ASSIGNED, [_spot_available]),
            (ParkingSpotStatus.ASSIGNED, ParkingSpotStatus.AVAILABLE, [_checkout_release]),
        ],
    )


# =============================================================================
# DEPOSIT REFUND
# =============================================================================

_PRE_COMPLETED = (
    RefundStatus.CALCULATED,
    RefundStatus.PENDING_APPROVAL,
    RefundStatus.APPROVED,
    RefundStatus.PROCESSING,
)

_has_approver = Guard(
    check=lambda settlement, ctx: ctx.actor_id is not None,
    reason="approval requires an approver",
)


_releasing = Guard(
    check=lambda settlement, ctx: ctx.trigger == Trigger.RELEASE_HOLD,
    reason="a held settlement only leaves ON_HOLD through a release",
)


def _resume_to(state: RefundStatus) -> Guard:
    return Guard(
        check=lambda settlement, ctx: settlement.held_from == state,
        reason=f"settlement was not held from {state.value}",
    )


def build_refund_machine() -> EntityStateMachine:
    edges = [
        (RefundStatus.CALCULATED, RefundStatus.PENDING_APPROVAL),
        (RefundStatus.PENDING_APPROVAL, RefundStatus.APPROVED, [_has_approver]),
        (RefundStatus.CALCULATED, RefundStatus.PROCESSING),
        (RefundStatus.APPROVED, RefundStatus.PROCESSING),
        (RefundStatus.PROCESSING, RefundStatus.COMPLETED),
    ]
    for state in _PRE_COMPLETED:
        edges.append((state, RefundStatus.ON_HOLD))
        edges.append((RefundStatus.ON_HOLD, state, [_releasing, _resume_to(state)]))

    return EntityStateMachine(
        name="DepositSettlement",
        states=RefundStatus,
        edges=edges,
        status_field="refund_status",
        terminal=[RefundStatus.COMPLETED],
    )


# =============================================================================
# EXPIRATION MONITOR
# =============================================================================

def build_monitor_machine() -> EntityStateMachine:
    return EntityStateMachine(
        name="ExpirationMonitor",
        states=MonitorState,
        edges=[
            (MonitorState.IDLE, MonitorState.SCANNING),
            (MonitorState.SCANNING, MonitorState.DONE),
            (MonitorState.DONE, MonitorState.SCANNING),
        ],
    )
