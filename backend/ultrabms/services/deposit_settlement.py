"""
Ultra BMS - Deposit Settlement Calculator
Deductions, net refund and approval routing at tenant checkout.

LOGIC:
1. Auto-populate deduction rows
   - UNPAID_RENT: sum of outstanding invoice balances
   - DAMAGE_REPAIRS: sum of checklist items marked DAMAGED / MISSING
   - EARLY_TERMINATION_PENALTY: min(remaining months, cap) x base rent,
     only when moving out before lease end under a penalty clause
2. Append manager-entered rows (cleaning fee, key replacement, other)
3. total_deductions = exact sum of rows
4. net_refund = original_deposit - total_deductions
   (negative means the tenant owes; flagged, never an error)
5. Route: |net_refund| > threshold OR any disputed row -> PENDING_APPROVAL,
   otherwise CALCULATED

GUARDRAILS:
- original_deposit must be >= 0 (InvalidDeposit)
- no deduction row may be negative (InvalidDeduction)
"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from ultrabms.core.errors import InvalidDeduction, InvalidDeposit
from ultrabms.core.types import ZERO, Money
from ultrabms.models.settlement import (
    Deduction,
    DeductionCategory,
    DepositSettlement,
    RefundStatus,
    SettlementConfig,
    SettlementInputs,
)

logger = logging.getLogger(__name__)


def remaining_months(move_out_date: date, lease_end: date) -> int:
    """Calendar months left on the lease; a started month counts in full."""
    if move_out_date >= lease_end:
        return 0
    months = (lease_end.year - move_out_date.year) * 12 + (lease_end.month - move_out_date.month)
    if lease_end.day > move_out_date.day:
        months += 1
    return max(months, 1)


class DepositSettlementCalculator:
    """
    Computes deductions, net refund and approval routing.

    Produces a draft DepositSettlement (version 0); callers persist it.
    """

    def __init__(self, config: Optional[SettlementConfig] = None) -> None:
        self._config = config or SettlementConfig()

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def configure(self, config: SettlementConfig) -> None:
        self._config = config

    def get_config(self) -> SettlementConfig:
        return self._config

    # =========================================================================
    # AUTO-POPULATED ROWS
    # =========================================================================

    def _unpaid_rent(self, inputs: SettlementInputs) -> Optional[Deduction]:
        unpaid = Money.total(inputs.outstanding_balances)
        if unpaid <= 0:
            return None
        return Deduction(
            category=DeductionCategory.UNPAID_RENT,
            amount=unpaid,
            notes=f"{len(inputs.outstanding_balances)} outstanding invoice(s)",
            auto_calculated=True,
        )

    def _damage_repairs(self, inputs: SettlementInputs) -> Optional[Deduction]:
        for item in inputs.inspection_items:
            if item.repair_cost < 0:
                raise InvalidDeduction(
                    f"Repair cost for '{item.name}' cannot be negative: {item.repair_cost}"
                )

        chargeable = [item for item in inputs.inspection_items if item.chargeable]
        total = Money.total(item.repair_cost for item in chargeable)
        if total <= 0:
            return None
        return Deduction(
            category=DeductionCategory.DAMAGE_REPAIRS,
            amount=total,
            notes="Damage repairs from inspection: " + ", ".join(item.name for item in chargeable),
            auto_calculated=True,
        )

    def _early_termination_penalty(self, inputs: SettlementInputs) -> Optional[Deduction]:
        if not inputs.early_termination_clause:
            return None
        if inputs.move_out_date is None or inputs.lease_end is None:
            return None
        if inputs.move_out_date >= inputs.lease_end:
            return None

        months = min(remaining_months(inputs.move_out_date, inputs.lease_end), self._config.penalty_cap_months)
        if months <= 0:
            return None
        penalty = Money.multiply(inputs.base_rent, months)
        if penalty <= 0:
            return None
        return Deduction(
            category=DeductionCategory.EARLY_TERMINATION_PENALTY,
            amount=penalty,
            notes=f"{months} month(s) x base rent {Money.to_str(inputs.base_rent)}",
            auto_calculated=True,
        )

    # =========================================================================
    # CALCULATION
    # =========================================================================

    def build_deductions(self, inputs: SettlementInputs) -> list[Deduction]:
        """Auto rows first (unpaid rent, damage, penalty), then custom rows in entry order."""
        for row in inputs.custom_deductions:
            if row.amount < 0:
                raise InvalidDeduction(
                    f"Deduction {row.category.value} cannot be negative: {row.amount}"
                )

        auto_rows = [
            self._unpaid_rent(inputs),
            self._damage_repairs(inputs),
            self._early_termination_penalty(inputs),
        ]
        return [row for row in auto_rows if row is not None] + list(inputs.custom_deductions)

    def route(self, net_refund: Decimal, deductions: list[Deduction]) -> RefundStatus:
        """Approval routing on net refund magnitude and disputes."""
        if abs(net_refund) > self._config.approval_threshold:
            return RefundStatus.PENDING_APPROVAL
        if any(row.disputed for row in deductions):
            return RefundStatus.PENDING_APPROVAL
        return RefundStatus.CALCULATED

    def calculate(
        self,
        original_deposit: Decimal,
        inputs: SettlementInputs,
        lease_account_id: uuid.UUID,
        calculated_at: Optional[datetime] = None,
        settlement_id: Optional[uuid.UUID] = None,
    ) -> DepositSettlement:
        """
        Calculate a draft settlement.

        Raises:
            InvalidDeposit: original_deposit < 0
            InvalidDeduction: a deduction row or repair cost is negative
        """
        deposit = Money.of(original_deposit)
        if deposit < 0:
            raise InvalidDeposit(f"Original deposit cannot be negative: {deposit}")

        deductions = self.build_deductions(inputs)
        total = Money.total(row.amount for row in deductions)
        net_refund = Money.subtract(deposit, total)
        status = self.route(net_refund, deductions)

        if net_refund < ZERO:
            logger.info(
                f"Deductions {total} exceed deposit {deposit} for lease {lease_account_id}: "
                f"tenant owes {-net_refund}"
            )

        return DepositSettlement(
            id=settlement_id or uuid.uuid4(),
            lease_account_id=lease_account_id,
            original_deposit=deposit,
            deductions=deductions,
            total_deductions=total,
            net_refund=net_refund,
            amount_owed_by_tenant=net_refund < ZERO,
            refund_status=status,
            calculated_at=calculated_at,
        )


settlement_calculator = DepositSettlementCalculator()
