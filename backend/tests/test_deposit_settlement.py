"""
Ultra BMS - Deposit Settlement Calculator Tests
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest

from ultrabms.core.errors import InvalidDeduction, InvalidDeposit
from ultrabms.core.types import Money
from ultrabms.models.settlement import (
    Deduction,
    DeductionCategory,
    InspectionItem,
    ItemCondition,
    RefundStatus,
    SettlementConfig,
    SettlementInputs,
)
from ultrabms.services.deposit_settlement import DepositSettlementCalculator, remaining_months

LEASE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def calculator() -> DepositSettlementCalculator:
    return DepositSettlementCalculator(SettlementConfig(approval_threshold=Decimal("5000"), penalty_cap_months=2))


def _row(category: DeductionCategory, amount: str, **kwargs) -> Deduction:
    return Deduction(category=category, amount=Decimal(amount), **kwargs)


class TestTotals:

    def test_large_refund_routes_to_approval(self, calculator):
        """10000 deposit, 3000 damage + 500 cleaning -> 6500 refund, above threshold."""
        inputs = SettlementInputs(custom_deductions=[
            _row(DeductionCategory.DAMAGE_REPAIRS, "3000"),
            _row(DeductionCategory.CLEANING_FEE, "500"),
        ])
        settlement = calculator.calculate(Decimal("10000"), inputs, LEASE_ID)

        assert settlement.total_deductions == Decimal("3500.00")
        assert settlement.net_refund == Decimal("6500.00")
        assert settlement.refund_status == RefundStatus.PENDING_APPROVAL
        assert settlement.amount_owed_by_tenant is False

    def test_small_refund_is_calculated(self, calculator):
        inputs = SettlementInputs(custom_deductions=[_row(DeductionCategory.CLEANING_FEE, "500")])
        settlement = calculator.calculate(Decimal("5000"), inputs, LEASE_ID)
        assert settlement.net_refund == Decimal("4500.00")
        assert settlement.refund_status == RefundStatus.CALCULATED

    def test_threshold_is_exclusive(self, calculator):
        settlement = calculator.calculate(Decimal("5000"), SettlementInputs(), LEASE_ID)
        assert settlement.net_refund == Decimal("5000.00")
        assert settlement.refund_status == RefundStatus.CALCULATED

    def test_empty_deductions(self, calculator):
        settlement = calculator.calculate(Decimal("0"), SettlementInputs(), LEASE_ID)
        assert settlement.deductions == []
        assert settlement.total_deductions == Decimal("0.00")
        assert settlement.net_refund == Decimal("0.00")

    def test_total_equals_sum_of_rows(self, calculator):
        amounts = ["0.10", "0.20", "1234.56", "99.99", "0.01"]
        inputs = SettlementInputs(
            outstanding_balances=[Decimal("700.35"), Decimal("0.65")],
            custom_deductions=[_row(DeductionCategory.OTHER, a) for a in amounts],
        )
        settlement = calculator.calculate(Decimal("10000"), inputs, LEASE_ID)
        assert settlement.total_deductions == Money.total(d.amount for d in settlement.deductions)
        assert settlement.net_refund == settlement.original_deposit - settlement.total_deductions

    def test_tenant_owes_when_deductions_exceed_deposit(self, calculator):
        inputs = SettlementInputs(custom_deductions=[_row(DeductionCategory.DAMAGE_REPAIRS, "12000")])
        settlement = calculator.calculate(Decimal("10000"), inputs, LEASE_ID)
        assert settlement.net_refund == Decimal("-2000.00")
        assert settlement.amount_owed_by_tenant is True
        assert settlement.amount_owed == Decimal("2000.00")
        assert settlement.refund_amount == Decimal("0.00")
        assert settlement.refund_status == RefundStatus.CALCULATED

    def test_large_amount_owed_needs_approval(self, calculator):
        inputs = SettlementInputs(custom_deductions=[_row(DeductionCategory.DAMAGE_REPAIRS, "16000")])
        settlement = calculator.calculate(Decimal("10000"), inputs, LEASE_ID)
        assert settlement.net_refund == Decimal("-6000.00")
        assert settlement.refund_status == RefundStatus.PENDING_APPROVAL

    def test_disputed_row_needs_approval(self, calculator):
        inputs = SettlementInputs(custom_deductions=[
            _row(DeductionCategory.KEY_REPLACEMENT, "100", disputed=True),
        ])
        settlement = calculator.calculate(Decimal("1000"), inputs, LEASE_ID)
        assert settlement.refund_status == RefundStatus.PENDING_APPROVAL


class TestAutoRows:

    def test_auto_rows_precede_custom_rows(self, calculator):
        inputs = SettlementInputs(
            outstanding_balances=[Decimal("1000"), Decimal("250.50")],
            inspection_items=[
                InspectionItem(name="Kitchen cabinet", condition=ItemCondition.DAMAGED, repair_cost=Decimal("400")),
                InspectionItem(name="Access card", condition=ItemCondition.MISSING, repair_cost=Decimal("100")),
                InspectionItem(name="Walls", condition=ItemCondition.FAIR, repair_cost=Decimal("999")),
            ],
            custom_deductions=[_row(DeductionCategory.CLEANING_FEE, "300")],
        )
        settlement = calculator.calculate(Decimal("10000"), inputs, LEASE_ID)

        categories = [d.category for d in settlement.deductions]
        assert categories == [
            DeductionCategory.UNPAID_RENT,
            DeductionCategory.DAMAGE_REPAIRS,
            DeductionCategory.CLEANING_FEE,
        ]
        assert settlement.deductions[0].amount == Decimal("1250.50")
        assert settlement.deductions[0].auto_calculated
        assert settlement.deductions[1].amount == Decimal("500.00")
        assert settlement.total_deductions == Decimal("2050.50")

    def test_no_rows_for_zero_sources(self, calculator):
        inputs = SettlementInputs(
            outstanding_balances=[],
            inspection_items=[InspectionItem(name="Walls", condition=ItemCondition.GOOD)],
        )
        settlement = calculator.calculate(Decimal("1000"), inputs, LEASE_ID)
        assert settlement.deductions == []

    def test_early_termination_penalty_capped(self, calculator):
        inputs = SettlementInputs(
            move_out_date=date(2025, 3, 1),
            lease_end=date(2025, 12, 31),
            base_rent=Decimal("4000"),
            early_termination_clause=True,
        )
        settlement = calculator.calculate(Decimal("10000"), inputs, LEASE_ID)
        (penalty,) = settlement.deductions
        assert penalty.category == DeductionCategory.EARLY_TERMINATION_PENALTY
        assert penalty.amount == Decimal("8000.00")

    def test_partial_month_counts_as_whole(self, calculator):
        inputs = SettlementInputs(
            move_out_date=date(2025, 3, 1),
            lease_end=date(2025, 3, 20),
            base_rent=Decimal("4000"),
            early_termination_clause=True,
        )
        settlement = calculator.calculate(Decimal("10000"), inputs, LEASE_ID)
        assert settlement.deductions[0].amount == Decimal("4000.00")

    def test_no_penalty_without_clause(self, calculator):
        inputs = SettlementInputs(
            move_out_date=date(2025, 3, 1),
            lease_end=date(2025, 12, 31),
            base_rent=Decimal("4000"),
            early_termination_clause=False,
        )
        assert calculator.calculate(Decimal("10000"), inputs, LEASE_ID).deductions == []

    def test_no_penalty_at_lease_end(self, calculator):
        inputs = SettlementInputs(
            move_out_date=date(2025, 12, 31),
            lease_end=date(2025, 12, 31),
            base_rent=Decimal("4000"),
            early_termination_clause=True,
        )
        assert calculator.calculate(Decimal("10000"), inputs, LEASE_ID).deductions == []

    @pytest.mark.parametrize("move_out, lease_end, months", [
        (date(2025, 3, 1), date(2025, 3, 2), 1),
        (date(2025, 3, 1), date(2025, 4, 1), 1),
        (date(2025, 3, 1), date(2025, 4, 2), 2),
        (date(2025, 3, 15), date(2025, 5, 10), 2),
        (date(2025, 3, 1), date(2025, 3, 1), 0),
    ])
    def test_remaining_months(self, move_out, lease_end, months):
        assert remaining_months(move_out, lease_end) == months


class TestValidation:

    def test_negative_deposit(self, calculator):
        with pytest.raises(InvalidDeposit):
            calculator.calculate(Decimal("-1"), SettlementInputs(), LEASE_ID)

    def test_negative_custom_row(self, calculator):
        inputs = SettlementInputs(custom_deductions=[_row(DeductionCategory.OTHER, "-50")])
        with pytest.raises(InvalidDeduction):
            calculator.calculate(Decimal("1000"), inputs, LEASE_ID)

    def test_negative_repair_cost(self, calculator):
        inputs = SettlementInputs(inspection_items=[
            InspectionItem(name="Door", condition=ItemCondition.DAMAGED, repair_cost=Decimal("-5")),
        ])
        with pytest.raises(InvalidDeduction):
            calculator.calculate(Decimal("1000"), inputs, LEASE_ID)

    def test_float_deduction_rejected_by_model(self):
        with pytest.raises(ValueError):
            Deduction(category=DeductionCategory.OTHER, amount=12.5)
