"""
Ultra BMS - Deposit Refund Workflow

CALCULATED -> PENDING_APPROVAL -> APPROVED -> PROCESSING -> COMPLETED
CALCULATED -> PROCESSING (below threshold, nothing disputed)
ON_HOLD <-> any state before COMPLETED

PAYOUT RULES:
- BANK_TRANSFER: bank name, account holder and a UAE IBAN
  (AE + 2 check digits + 19 alphanumerics)
- CASH: tenant acknowledgement required
- CHEQUE: no extra details
"""

import logging
import re
import uuid
from typing import Optional

from ultrabms.core.errors import InvalidRefundDetails, InvalidTransition
from ultrabms.models.audit import TransitionRecord
from ultrabms.models.events import (
    RefundCompleted,
    RefundProcessing,
    SettlementApproved,
    SettlementHeld,
    SettlementReleased,
)
from ultrabms.models.settlement import (
    DepositSettlement,
    RefundMethod,
    RefundPayout,
    RefundStatus,
    SettlementUpdate,
)
from ultrabms.services.base import LifecycleService
from ultrabms.services.fsm import TransitionContext, Trigger
from ultrabms.services.lifecycles import build_refund_machine

logger = logging.getLogger(__name__)

UAE_IBAN = re.compile(r"^AE\d{2}[A-Z0-9]{19}$")


def normalize_iban(iban: str) -> str:
    return iban.replace(" ", "").upper()


def validate_payout(payout: RefundPayout) -> None:
    """Raises InvalidRefundDetails when required payout details are missing."""
    if payout.method == RefundMethod.BANK_TRANSFER:
        missing = [
            name for name, value in (
                ("bank_name", payout.bank_name),
                ("account_holder_name", payout.account_holder_name),
                ("iban", payout.iban),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise InvalidRefundDetails(f"Bank transfer requires: {', '.join(missing)}")
        if not UAE_IBAN.match(normalize_iban(payout.iban)):
            raise InvalidRefundDetails(f"Invalid UAE IBAN: {payout.iban}")
    elif payout.method == RefundMethod.CASH:
        if not payout.cash_acknowledged:
            raise InvalidRefundDetails("Cash refund requires tenant acknowledgement")


class SettlementWorkflow(LifecycleService):
    """Moves a deposit settlement through approval and payout."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._refunds = build_refund_machine()

    def _context(self, actor_id: Optional[uuid.UUID], trigger: Trigger = Trigger.MANUAL) -> TransitionContext:
        return TransitionContext(today=self._clock.today(), actor_id=actor_id, trigger=trigger)

    def _reject_if_held(self, settlement: DepositSettlement, target: RefundStatus) -> None:
        if settlement.refund_status == RefundStatus.ON_HOLD:
            raise InvalidTransition(self._refunds.name, settlement.refund_status, target)

    def get_settlement(self, settlement_id: uuid.UUID) -> DepositSettlement:
        with self._persistence.transaction() as uow:
            return uow.get(DepositSettlement, settlement_id)

    def settlement_for_lease(self, lease_account_id: uuid.UUID) -> Optional[DepositSettlement]:
        with self._persistence.transaction() as uow:
            found = uow.find(DepositSettlement, lease_account_id=lease_account_id)
        return found[0] if found else None

    # =========================================================================
    # APPROVAL
    # =========================================================================

    def approve_settlement(self, settlement_id: uuid.UUID, approver_id: uuid.UUID) -> DepositSettlement:
        """
        PENDING_APPROVAL -> APPROVED.

        Raises:
            NotFound: settlement missing
            InvalidTransition: settlement is not PENDING_APPROVAL
            GuardRejected: no approver given
        """
        trail: list[TransitionRecord] = []
        now = self._clock.now()
        with self._persistence.transaction() as uow:
            settlement = uow.get(DepositSettlement, settlement_id)
            self._reject_if_held(settlement, RefundStatus.APPROVED)
            settlement = self._move(
                self._refunds, settlement, RefundStatus.APPROVED,
                self._context(approver_id, Trigger.APPROVAL), trail,
                approved_by=approver_id,
                approved_at=now,
            )
            settlement = uow.save(settlement)

        events = [SettlementApproved(
            aggregate_id=settlement.id,
            lease_account_id=settlement.lease_account_id,
            actor_id=approver_id,
            occurred_at=now,
            net_refund=settlement.net_refund,
        )]
        self._after_commit(events, trail)
        logger.info(f"Settlement {settlement_id} approved by {approver_id}")
        return settlement

    # =========================================================================
    # PAYOUT
    # =========================================================================

    def process_refund(self, settlement_id: uuid.UUID, payout: RefundPayout) -> SettlementUpdate:
        """
        CALCULATED / APPROVED -> PROCESSING.

        Raises:
            InvalidRefundDetails: payout details incomplete
            InvalidTransition: settlement still awaits approval, is held or done
        """
        validate_payout(payout)

        trail: list[TransitionRecord] = []
        now = self._clock.now()
        with self._persistence.transaction() as uow:
            settlement = uow.get(DepositSettlement, settlement_id)
            self._reject_if_held(settlement, RefundStatus.PROCESSING)
            settlement = self._move(
                self._refunds, settlement, RefundStatus.PROCESSING,
                self._context(payout.processed_by), trail,
                refund_method=payout.method,
                processed_at=now,
            )
            settlement = uow.save(settlement)

        events = [RefundProcessing(
            aggregate_id=settlement.id,
            lease_account_id=settlement.lease_account_id,
            actor_id=payout.processed_by,
            occurred_at=now,
            refund_amount=settlement.refund_amount,
            refund_method=payout.method.value,
        )]
        self._after_commit(events, trail)
        return SettlementUpdate(settlement=settlement, events=events)

    def complete_refund(self, settlement_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> SettlementUpdate:
        """PROCESSING -> COMPLETED."""
        trail: list[TransitionRecord] = []
        now = self._clock.now()
        with self._persistence.transaction() as uow:
            settlement = uow.get(DepositSettlement, settlement_id)
            self._reject_if_held(settlement, RefundStatus.COMPLETED)
            settlement = self._move(
                self._refunds, settlement, RefundStatus.COMPLETED,
                self._context(actor_id), trail,
                completed_at=now,
            )
            settlement = uow.save(settlement)

        events = [RefundCompleted(
            aggregate_id=settlement.id,
            lease_account_id=settlement.lease_account_id,
            actor_id=actor_id,
            occurred_at=now,
            refund_amount=settlement.refund_amount,
        )]
        self._after_commit(events, trail)
        logger.info(f"Refund completed for settlement {settlement_id}")
        return SettlementUpdate(settlement=settlement, events=events)

    # =========================================================================
    # HOLD
    # =========================================================================

    def hold_settlement(
        self,
        settlement_id: uuid.UUID,
        reason: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SettlementUpdate:
        """Any state before COMPLETED -> ON_HOLD, remembering where it came from."""
        trail: list[TransitionRecord] = []
        with self._persistence.transaction() as uow:
            settlement = uow.get(DepositSettlement, settlement_id)
            held_from = settlement.refund_status
            settlement = self._move(
                self._refunds, settlement, RefundStatus.ON_HOLD,
                self._context(actor_id), trail,
                held_from=held_from,
                hold_reason=reason,
            )
            settlement = uow.save(settlement)

        events = [SettlementHeld(
            aggregate_id=settlement.id,
            lease_account_id=settlement.lease_account_id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            held_from=held_from.value,
            reason=reason,
        )]
        self._after_commit(events, trail)
        logger.info(f"Settlement {settlement_id} put on hold from {held_from.value}: {reason}")
        return SettlementUpdate(settlement=settlement, events=events)

    def release_hold(self, settlement_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> SettlementUpdate:
        """ON_HOLD -> the state the settlement was held from."""
        trail: list[TransitionRecord] = []
        with self._persistence.transaction() as uow:
            settlement = uow.get(DepositSettlement, settlement_id)
            if settlement.refund_status != RefundStatus.ON_HOLD or settlement.held_from is None:
                raise InvalidTransition(self._refunds.name, settlement.refund_status, "released")
            resumed = settlement.held_from
            settlement = self._move(
                self._refunds, settlement, resumed,
                self._context(actor_id, Trigger.RELEASE_HOLD), trail,
                held_from=None,
                hold_reason=None,
            )
            settlement = uow.save(settlement)

        events = [SettlementReleased(
            aggregate_id=settlement.id,
            lease_account_id=settlement.lease_account_id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            resumed_status=resumed.value,
        )]
        self._after_commit(events, trail)
        return SettlementUpdate(settlement=settlement, events=events)
