"""
Ultra BMS - Quotation Service
Lead -> Quotation -> LeaseAccount funnel.

FLOW:
1. create_quotation   DRAFT (first payment computed)
2. send_quotation     DRAFT -> SENT, lead advanced to QUOTATION_SENT
3. accept / reject    SENT -> ACCEPTED (lead ACCEPTED) | REJECTED (lead LOST)
4. expire_quotations  SENT past validity -> EXPIRED (daily scan)
5. convert_quotation  ACCEPTED -> CONVERTED, lead CONVERTED,
                      LeaseAccount created, parking spots assigned
"""

import logging
import uuid
from datetime import date
from typing import Optional

from ultrabms.core.errors import InvalidDate
from ultrabms.models.audit import TransitionRecord
from ultrabms.models.events import (
    LifecycleEvent,
    QuotationAccepted,
    QuotationConverted,
    QuotationExpired,
    QuotationRejected,
    QuotationSent,
)
from ultrabms.models.expiration import ScanFailure
from ultrabms.models.lease import LeaseAccount
from ultrabms.models.parking import ParkingSpot, ParkingSpotStatus
from ultrabms.models.quotation import (
    ConversionRequest,
    ConversionResult,
    Lead,
    LeadStatus,
    QuotationAccount,
    QuotationRequest,
    QuotationStatus,
    QuotationUpdate,
)
from ultrabms.services.base import LifecycleService
from ultrabms.services.fsm import TransitionContext, Trigger
from ultrabms.services.lifecycles import (
    build_lead_machine,
    build_parking_machine,
    build_quotation_machine,
)
from ultrabms.services.rent_adjustment import RentAdjustmentCalculator, rent_calculator

logger = logging.getLogger(__name__)


class QuotationService(LifecycleService):
    """Drives leads and quotations up to lease creation."""

    def __init__(self, *args, calculator: Optional[RentAdjustmentCalculator] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._calculator = calculator or rent_calculator
        self._leads = build_lead_machine()
        self._quotations = build_quotation_machine()
        self._spots = build_parking_machine()

    def _context(self, actor_id: Optional[uuid.UUID] = None, trigger: Trigger = Trigger.MANUAL) -> TransitionContext:
        return TransitionContext(today=self._clock.today(), actor_id=actor_id, trigger=trigger)

    # =========================================================================
    # LEADS
    # =========================================================================

    def create_lead(self, full_name: str, email: Optional[str] = None, phone: Optional[str] = None) -> Lead:
        with self._persistence.transaction() as uow:
            lead = uow.add(Lead(id=self._new_id(), full_name=full_name, email=email, phone=phone))
        return lead

    def mark_lead_contacted(self, lead_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> Lead:
        trail: list[TransitionRecord] = []
        with self._persistence.transaction() as uow:
            lead = uow.get(Lead, lead_id)
            lead = self._move(self._leads, lead, LeadStatus.CONTACTED, self._context(actor_id), trail)
            lead = uow.save(lead)
        self._after_commit([], trail)
        return lead

    def mark_lead_lost(self, lead_id: uuid.UUID, reason: Optional[str] = None, actor_id: Optional[uuid.UUID] = None) -> Lead:
        trail: list[TransitionRecord] = []
        with self._persistence.transaction() as uow:
            lead = uow.get(Lead, lead_id)
            lead = self._move(
                self._leads, lead, LeadStatus.LOST, self._context(actor_id), trail, lost_reason=reason
            )
            lead = uow.save(lead)
        self._after_commit([], trail)
        logger.info(f"Lead {lead_id} marked lost: {reason}")
        return lead

    def _advance_lead_to_sent(self, lead: Lead, context: TransitionContext, trail: list) -> Lead:
        if lead.status == LeadStatus.NEW:
            lead = self._move(self._leads, lead, LeadStatus.CONTACTED, context, trail)
        if lead.status == LeadStatus.CONTACTED:
            lead = self._move(self._leads, lead, LeadStatus.QUOTATION_SENT, context, trail)
        return lead

    # =========================================================================
    # QUOTATIONS
    # =========================================================================

    def create_quotation(self, request: QuotationRequest) -> QuotationAccount:
        """
        Create a DRAFT quotation with its first-payment total.

        Raises:
            InvalidDate: validity_date is not after issue_date
            NotFound: lead does not exist
            InvalidAmount: negative amounts
        """
        if request.validity_date <= request.issue_date:
            raise InvalidDate(
                f"Validity date {request.validity_date} must be after issue date {request.issue_date}"
            )

        breakdown = self._calculator.compute_first_payment(
            base_rent=request.base_rent,
            service_charges=request.service_charges,
            parking_spots=request.parking_spots,
            parking_fee=request.parking_fee,
            security_deposit=request.security_deposit,
            admin_fee=request.admin_fee,
        )

        with self._persistence.transaction() as uow:
            uow.get(Lead, request.lead_id)
            quotation = uow.add(QuotationAccount(
                id=self._new_id(),
                **request.model_dump(),
                total_first_payment=breakdown.total_first_payment,
            ))
        return quotation

    def send_quotation(self, quotation_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> QuotationUpdate:
        trail: list[TransitionRecord] = []
        context = self._context(actor_id)
        with self._persistence.transaction() as uow:
            quotation = uow.get(QuotationAccount, quotation_id)
            lead = uow.get(Lead, quotation.lead_id)

            quotation = self._move(
                self._quotations, quotation, QuotationStatus.SENT, context, trail,
                sent_at=self._clock.now(),
            )
            previous = lead.status
            lead = self._advance_lead_to_sent(lead, context, trail)

            quotation = uow.save(quotation)
            if lead.status != previous:
                lead = uow.save(lead)

        events = [QuotationSent(
            aggregate_id=quotation.id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            lead_id=lead.id,
            validity_date=quotation.validity_date,
            total_first_payment=quotation.total_first_payment,
        )]
        self._after_commit(events, trail)
        return QuotationUpdate(quotation=quotation, lead=lead, events=events)

    def accept_quotation(self, quotation_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> QuotationUpdate:
        trail: list[TransitionRecord] = []
        context = self._context(actor_id)
        with self._persistence.transaction() as uow:
            quotation = uow.get(QuotationAccount, quotation_id)
            lead = uow.get(Lead, quotation.lead_id)

            quotation = self._move(
                self._quotations, quotation, QuotationStatus.ACCEPTED, context, trail,
                responded_at=self._clock.now(),
            )
            if lead.status != LeadStatus.ACCEPTED:
                lead = self._advance_lead_to_sent(lead, context, trail)
                lead = self._move(self._leads, lead, LeadStatus.ACCEPTED, context, trail)
                lead = uow.save(lead)

            quotation = uow.save(quotation)

        events = [QuotationAccepted(
            aggregate_id=quotation.id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            lead_id=lead.id,
        )]
        self._after_commit(events, trail)
        logger.info(f"Quotation {quotation_id} accepted")
        return QuotationUpdate(quotation=quotation, lead=lead, events=events)

    def reject_quotation(
        self,
        quotation_id: uuid.UUID,
        reason: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> QuotationUpdate:
        trail: list[TransitionRecord] = []
        context = self._context(actor_id)
        with self._persistence.transaction() as uow:
            quotation = uow.get(QuotationAccount, quotation_id)
            lead = uow.get(Lead, quotation.lead_id)

            quotation = self._move(
                self._quotations, quotation, QuotationStatus.REJECTED, context, trail,
                responded_at=self._clock.now(),
                rejection_reason=reason,
            )
            if not self._leads.is_terminal(lead.status):
                lead = self._move(self._leads, lead, LeadStatus.LOST, context, trail, lost_reason=reason)
                lead = uow.save(lead)

            quotation = uow.save(quotation)

        events = [QuotationRejected(
            aggregate_id=quotation.id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            lead_id=lead.id,
            reason=reason,
        )]
        self._after_commit(events, trail)
        return QuotationUpdate(quotation=quotation, lead=lead, events=events)

    def expire_quotations(self, today: Optional[date] = None) -> tuple[list[QuotationAccount], list[ScanFailure], list[LifecycleEvent]]:
        """
        Expire every SENT quotation whose validity date has passed.

        Each quotation is its own transaction; failures are collected.
        """
        today = today or self._clock.today()
        with self._persistence.transaction() as uow:
            candidates = [
                q.id for q in uow.find(QuotationAccount, status_in=[QuotationStatus.SENT])
                if today > q.validity_date
            ]

        expired: list[QuotationAccount] = []
        failures: list[ScanFailure] = []
        events: list[LifecycleEvent] = []
        for quotation_id in candidates:
            trail: list[TransitionRecord] = []
            try:
                with self._persistence.transaction() as uow:
                    quotation = uow.get(QuotationAccount, quotation_id)
                    quotation = self._move(
                        self._quotations, quotation, QuotationStatus.EXPIRED,
                        TransitionContext(today=today, trigger=Trigger.DAILY_SCAN), trail,
                    )
                    quotation = uow.save(quotation)
            except Exception as e:
                logger.warning(f"Quotation {quotation_id} could not be expired: {e}")
                failures.append(ScanFailure(
                    entity_id=quotation_id,
                    kind=QuotationAccount.KIND,
                    error_type=type(e).__name__,
                    message=str(e),
                ))
                continue

            event = QuotationExpired(
                aggregate_id=quotation.id,
                occurred_at=self._clock.now(),
                lead_id=quotation.lead_id,
                validity_date=quotation.validity_date,
                idempotency_key=f"quotation:{quotation.id}:expired",
            )
            self._after_commit([event], trail)
            expired.append(quotation)
            events.append(event)

        return expired, failures, events

    def convert_quotation(self, quotation_id: uuid.UUID, request: ConversionRequest) -> ConversionResult:
        """
        Turn an ACCEPTED quotation into a lease account.

        Raises:
            InvalidTransition: quotation is not ACCEPTED
            InvalidDate: lease_end is not after lease_start
            GuardRejected: a requested parking spot is not AVAILABLE
        """
        if request.lease_end <= request.lease_start:
            raise InvalidDate(
                f"Lease end {request.lease_end} must be after lease start {request.lease_start}"
            )

        trail: list[TransitionRecord] = []
        context = self._context(request.converted_by, Trigger.CONVERSION)
        with self._persistence.transaction() as uow:
            quotation = uow.get(QuotationAccount, quotation_id)
            lead = uow.get(Lead, quotation.lead_id)
            lease_id = self._new_id()

            quotation = self._move(
                self._quotations, quotation, QuotationStatus.CONVERTED, context, trail,
                lease_account_id=lease_id,
            )
            lead = self._move(self._leads, lead, LeadStatus.CONVERTED, context, trail)

            spot_count = len(request.parking_spot_ids) or quotation.parking_spots
            lease = LeaseAccount(
                id=lease_id,
                unit_id=quotation.unit_id,
                tenant_id=request.tenant_id,
                lease_start=request.lease_start,
                lease_end=request.lease_end,
                base_rent=quotation.base_rent,
                service_charge=quotation.service_charges,
                security_deposit=quotation.security_deposit,
                parking_spots=spot_count,
                parking_fee_per_spot=quotation.parking_fee,
                auto_renewal=request.auto_renewal,
                early_termination_clause=request.early_termination_clause,
            )

            assigned: list[ParkingSpot] = []
            spot_context = TransitionContext(
                today=context.today, actor_id=request.converted_by, trigger=Trigger.ASSIGNMENT
            )
            for spot_id in request.parking_spot_ids:
                spot = uow.get(ParkingSpot, spot_id)
                spot = self._move(
                    self._spots, spot, ParkingSpotStatus.ASSIGNED, spot_context, trail,
                    lease_account_id=lease_id,
                )
                assigned.append(uow.save(spot))

            lease = uow.add(lease)
            quotation = uow.save(quotation)
            lead = uow.save(lead)

        events = [QuotationConverted(
            aggregate_id=quotation.id,
            lease_account_id=lease.id,
            actor_id=request.converted_by,
            occurred_at=self._clock.now(),
            lead_id=lead.id,
        )]
        self._after_commit(events, trail)
        logger.info(f"Quotation {quotation_id} converted to lease {lease.id}")
        return ConversionResult(
            quotation=quotation,
            lead=lead,
            lease_account=lease,
            assigned_spots=assigned,
            events=events,
        )
