"""
Ultra BMS - Lifecycle Orchestrator
Entry point for extension, checkout, approval and the daily scan.

Every operation:
1. Loads current state (NotFound if missing)
2. Runs the relevant calculator
3. Validates each transition against its state machine
4. Persists in one unit of work (validate-then-commit)
5. Publishes events only after the commit

Secondary effects (EXPIRING_SOON -> ACTIVE on extension, parking
release on checkout) are explicit transitions inside the same unit of work.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from ultrabms.bridges.ledger import InvoiceLedger
from ultrabms.bridges.notifications import NotificationGateway
from ultrabms.bridges.persistence import PersistenceGateway
from ultrabms.core.clock import Clock, IdFactory, days_remaining
from ultrabms.core.errors import AlreadyCheckedOut, AlreadyTerminated, InvalidDate
from ultrabms.models.audit import TransitionRecord
from ultrabms.models.events import CheckoutCompleted, DepositCalculated, ExtensionCompleted
from ultrabms.models.expiration import ExpirationConfig, ExpiringLeasesSummary, ScanReport
from ultrabms.models.lease import (
    ExtensionRequest,
    ExtensionResult,
    LeaseAccount,
    LeaseExtension,
    LeaseStatus,
    LeaseSummary,
)
from ultrabms.models.parking import ParkingSpot, ParkingSpotStatus
from ultrabms.models.settlement import (
    CheckoutData,
    DepositSettlement,
    RefundPayout,
    SettlementConfig,
    SettlementInputs,
    SettlementResult,
    SettlementUpdate,
)
from ultrabms.services.audit import AuditService
from ultrabms.services.base import LifecycleService
from ultrabms.services.deposit_settlement import DepositSettlementCalculator
from ultrabms.services.dispatcher import EventDispatcher
from ultrabms.services.expiration_monitor import ExpirationMonitor
from ultrabms.services.fsm import TransitionContext, Trigger
from ultrabms.services.lifecycles import build_lease_machine, build_parking_machine
from ultrabms.services.parking_service import ParkingService
from ultrabms.services.quotation_service import QuotationService
from ultrabms.services.rent_adjustment import RentAdjustmentCalculator
from ultrabms.services.settlement_workflow import SettlementWorkflow

logger = logging.getLogger(__name__)


class LifecycleOrchestrator(LifecycleService):
    """Composes calculators, state machines and the expiration monitor."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        ledger: InvoiceLedger,
        notifications: Optional[NotificationGateway] = None,
        clock: Optional[Clock] = None,
        audit: Optional[AuditService] = None,
        dispatcher: Optional[EventDispatcher] = None,
        id_factory: Optional[IdFactory] = None,
        expiration_config: Optional[ExpirationConfig] = None,
        settlement_config: Optional[SettlementConfig] = None,
    ) -> None:
        super().__init__(persistence, notifications, clock, audit, dispatcher, id_factory)
        self._ledger = ledger
        self._expiration_config = expiration_config or ExpirationConfig()
        self._rent = RentAdjustmentCalculator()
        self._settlement_calculator = DepositSettlementCalculator(settlement_config)
        self._leases = build_lease_machine(self._expiration_config.expiring_soon_days)
        self._spots = build_parking_machine()

        shared = {
            "clock": self._clock,
            "audit": self._audit,
            "dispatcher": self._dispatcher,
            "id_factory": self._new_id,
        }
        self.quotations = QuotationService(persistence, calculator=self._rent, **shared)
        self.parking = ParkingService(persistence, **shared)
        self.settlements = SettlementWorkflow(persistence, **shared)
        self.monitor = ExpirationMonitor(
            persistence, config=self._expiration_config, quotations=self.quotations, **shared
        )

    # =========================================================================
    # EXTENSION
    # =========================================================================

    def extend_lease(self, lease_id: uuid.UUID, request: ExtensionRequest) -> ExtensionResult:
        """
        Renew a lease.

        Raises:
            NotFound: lease missing
            AlreadyTerminated: lease is TERMINATED
            InvalidDate: new_end_date is not after the current lease_end
            InvalidAmount: the rent adjustment is invalid
        """
        trail: list[TransitionRecord] = []
        today = self._clock.today()
        now = self._clock.now()

        with self._persistence.transaction() as uow:
            lease = uow.get(LeaseAccount, lease_id)
            if lease.is_terminated:
                raise AlreadyTerminated(f"Lease {lease_id} is terminated and cannot be extended")
            if request.new_end_date <= lease.lease_end:
                raise InvalidDate(
                    f"New end date {request.new_end_date} must be after current end date {lease.lease_end}"
                )

            rent = self._rent.compute_extension(
                current_base_rent=lease.base_rent,
                service_charge=lease.service_charge,
                adjustment_type=request.adjustment_type,
                value=request.adjustment_value,
                parking_spots=lease.parking_spots,
                parking_fee_per_spot=lease.parking_fee_per_spot,
            )

            extension = LeaseExtension(
                id=self._new_id(),
                lease_account_id=lease.id,
                previous_end_date=lease.lease_end,
                new_end_date=request.new_end_date,
                previous_rent=rent.previous_base_rent,
                new_rent=rent.new_base_rent,
                previous_total_monthly=lease.total_monthly,
                new_total_monthly=rent.new_total_monthly,
                adjustment_type=request.adjustment_type,
                adjustment_value=request.adjustment_value,
                adjustment_percentage=rent.adjustment_percentage,
                extended_at=now,
                extended_by=request.extended_by,
            )

            changes = {"lease_end": request.new_end_date, "base_rent": rent.new_base_rent}
            if request.auto_renewal is not None:
                changes["auto_renewal"] = request.auto_renewal

            reactivates = (
                lease.status == LeaseStatus.EXPIRING_SOON
                and days_remaining(today, request.new_end_date) > self._expiration_config.expiring_soon_days
            )
            if reactivates:
                context = TransitionContext(
                    today=today,
                    actor_id=request.extended_by,
                    trigger=Trigger.EXTENSION,
                    data={"new_end_date": request.new_end_date},
                )
                lease = self._move(self._leases, lease, LeaseStatus.ACTIVE, context, trail, **changes)
            else:
                lease = lease.model_copy(update=changes)

            lease = uow.save(lease)
            extension = uow.add(extension)

        events = [ExtensionCompleted(
            aggregate_id=lease.id,
            lease_account_id=lease.id,
            actor_id=request.extended_by,
            occurred_at=now,
            idempotency_key=f"extension:{extension.id}",
            previous_end_date=extension.previous_end_date,
            new_end_date=extension.new_end_date,
            previous_rent=extension.previous_rent,
            new_rent=extension.new_rent,
            adjustment_percentage=extension.adjustment_percentage,
        )]
        self._after_commit(events, trail)
        logger.info(
            f"Lease {lease_id} extended to {request.new_end_date}: "
            f"rent {extension.previous_rent} -> {extension.new_rent} ({lease.status.value})"
        )
        return ExtensionResult(lease_account=lease, extension=extension, events=events)

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    def complete_checkout(self, lease_id: uuid.UUID, data: CheckoutData) -> SettlementResult:
        """
        Terminate a lease, settle its deposit and release its parking.

        Raises:
            NotFound: lease missing
            AlreadyCheckedOut: lease is already TERMINATED
            InvalidDeposit / InvalidDeduction: settlement inputs invalid
        """
        trail: list[TransitionRecord] = []
        today = self._clock.today()
        now = self._clock.now()

        with self._persistence.transaction() as uow:
            lease = uow.get(LeaseAccount, lease_id)
            if lease.is_terminated:
                raise AlreadyCheckedOut(f"Lease {lease_id} has already been checked out")

            inputs = SettlementInputs(
                outstanding_balances=self._ledger.outstanding_balances(lease.id),
                inspection_items=data.inspection_items,
                custom_deductions=data.custom_deductions,
                move_out_date=data.move_out_date,
                lease_end=lease.lease_end,
                base_rent=lease.base_rent,
                early_termination_clause=lease.early_termination_clause,
            )
            settlement = self._settlement_calculator.calculate(
                lease.security_deposit,
                inputs,
                lease_account_id=lease.id,
                calculated_at=now,
                settlement_id=self._new_id(),
            )

            checkout = TransitionContext(today=today, actor_id=data.completed_by, trigger=Trigger.CHECKOUT)
            lease = self._move(
                self._leases, lease, LeaseStatus.TERMINATED, checkout, trail, terminated_at=now
            )

            # Release every assigned spot; any failure aborts the whole checkout
            release = TransitionContext(
                today=today, actor_id=data.completed_by, trigger=Trigger.CHECKOUT_RELEASE
            )
            released: list[ParkingSpot] = []
            for spot in uow.find(ParkingSpot, status_in=[ParkingSpotStatus.ASSIGNED], lease_account_id=lease.id):
                spot = self._move(
                    self._spots, spot, ParkingSpotStatus.AVAILABLE, release, trail, lease_account_id=None
                )
                released.append(uow.save(spot))

            lease = uow.save(lease)
            settlement = uow.add(settlement)

        events = [
            CheckoutCompleted(
                aggregate_id=lease.id,
                lease_account_id=lease.id,
                actor_id=data.completed_by,
                occurred_at=now,
                idempotency_key=f"checkout:{lease.id}",
                move_out_date=data.move_out_date,
                released_spot_ids=[spot.id for spot in released],
            ),
            DepositCalculated(
                aggregate_id=settlement.id,
                lease_account_id=lease.id,
                actor_id=data.completed_by,
                occurred_at=now,
                idempotency_key=f"settlement:{settlement.id}:calculated",
                original_deposit=settlement.original_deposit,
                total_deductions=settlement.total_deductions,
                net_refund=settlement.net_refund,
                amount_owed_by_tenant=settlement.amount_owed_by_tenant,
                refund_status=settlement.refund_status.value,
            ),
        ]
        self._after_commit(events, trail)
        logger.info(
            f"Checkout completed for lease {lease_id}: net refund {settlement.net_refund} "
            f"({settlement.refund_status.value}), {len(released)} spot(s) released"
        )
        return SettlementResult(
            lease_account=lease,
            settlement=settlement,
            released_spots=released,
            events=events,
        )

    # =========================================================================
    # SETTLEMENT WORKFLOW
    # =========================================================================

    def approve_settlement(self, settlement_id: uuid.UUID, approver_id: uuid.UUID) -> DepositSettlement:
        return self.settlements.approve_settlement(settlement_id, approver_id)

    def process_refund(self, settlement_id: uuid.UUID, payout: RefundPayout) -> SettlementUpdate:
        return self.settlements.process_refund(settlement_id, payout)

    def complete_refund(self, settlement_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> SettlementUpdate:
        return self.settlements.complete_refund(settlement_id, actor_id)

    def hold_settlement(
        self,
        settlement_id: uuid.UUID,
        reason: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SettlementUpdate:
        return self.settlements.hold_settlement(settlement_id, reason, actor_id)

    def release_hold(self, settlement_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> SettlementUpdate:
        return self.settlements.release_hold(settlement_id, actor_id)

    # =========================================================================
    # DAILY SCAN
    # =========================================================================

    def run_daily_scan(self, today: Optional[date] = None) -> ScanReport:
        return self.monitor.run_daily_scan(today)

    # =========================================================================
    # READ MODELS
    # =========================================================================

    def get_lease(self, lease_id: uuid.UUID) -> LeaseAccount:
        with self._persistence.transaction() as uow:
            return uow.get(LeaseAccount, lease_id)

    def extension_history(self, lease_id: uuid.UUID) -> list[LeaseExtension]:
        """Extensions of a lease, oldest first."""
        with self._persistence.transaction() as uow:
            uow.get(LeaseAccount, lease_id)
            extensions = uow.find(LeaseExtension, lease_account_id=lease_id)
        return sorted(extensions, key=lambda e: (e.extended_at, e.new_end_date))

    def current_lease_summary(self, lease_id: uuid.UUID, today: Optional[date] = None) -> LeaseSummary:
        today = today or self._clock.today()
        with self._persistence.transaction() as uow:
            lease = uow.get(LeaseAccount, lease_id)
            extension_count = len(uow.find(LeaseExtension, lease_account_id=lease_id))

        return LeaseSummary(
            lease_account_id=lease.id,
            status=lease.status,
            lease_start=lease.lease_start,
            lease_end=lease.lease_end,
            days_remaining=days_remaining(today, lease.lease_end),
            base_rent=lease.base_rent,
            service_charge=lease.service_charge,
            parking_fee=lease.parking_fee,
            total_monthly=lease.total_monthly,
            security_deposit=lease.security_deposit,
            auto_renewal=lease.auto_renewal,
            extension_count=extension_count,
        )

    def expiring_leases_summary(self, today: Optional[date] = None) -> ExpiringLeasesSummary:
        return self.monitor.expiring_leases_summary(today)
