"""
Ultra BMS - Rent Adjustment Calculator
New rent for lease extensions and first-payment totals for quotations.

LOGIC:
1. NONE        -> rent unchanged
2. PERCENTAGE  -> round(rent x (1 + value/100), 2, half-up)
3. FLAT        -> rent + value
4. CUSTOM      -> value (must be > 0)
5. Total monthly = base rent + service charge + parking spots x fee per spot

GUARDRAILS:
- Every persisted figure is rounded when produced, never deferred
- Pure functions: no persistence, no clock
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from ultrabms.core.errors import InvalidAmount
from ultrabms.core.types import ZERO, Money, MoneyAmount, to_decimal
from ultrabms.models.lease import AdjustmentType
from ultrabms.models.quotation import FirstPaymentBreakdown


class RentComputation(BaseModel):
    """Result of an extension rent computation."""
    previous_base_rent: MoneyAmount
    new_base_rent: MoneyAmount
    new_total_monthly: MoneyAmount
    adjustment_percentage: Decimal


class RentAdjustmentCalculator:
    """Stateless rent calculator shared by extensions and quotations."""

    def compute_extension(
        self,
        current_base_rent: Decimal,
        service_charge: Decimal,
        adjustment_type: AdjustmentType,
        value: Optional[Decimal] = None,
        parking_spots: int = 0,
        parking_fee_per_spot: Decimal = ZERO,
    ) -> RentComputation:
        """
        Compute the renewed rent.

        Args:
            current_base_rent: Base rent before the extension
            service_charge: Monthly service charge (unchanged by renewals)
            adjustment_type: NONE / PERCENTAGE / FLAT / CUSTOM
            value: Percentage, flat delta or custom rent (None means 0)
            parking_spots: Number of spots billed monthly
            parking_fee_per_spot: Fee per spot

        Raises:
            InvalidAmount: Negative inputs, CUSTOM value <= 0,
                or an adjustment that leaves no positive rent
        """
        current = Money.of(current_base_rent)
        service_charge = Money.of(service_charge)
        value = Decimal("0") if value is None else to_decimal(value)

        if current < 0:
            raise InvalidAmount(f"Current base rent cannot be negative: {current}")
        if service_charge < 0:
            raise InvalidAmount(f"Service charge cannot be negative: {service_charge}")
        if parking_spots < 0:
            raise InvalidAmount(f"Parking spots cannot be negative: {parking_spots}")

        if adjustment_type == AdjustmentType.NONE:
            new_base = current
        elif adjustment_type == AdjustmentType.PERCENTAGE:
            new_base = Money.multiply(current, Decimal("1") + value / Decimal("100"))
        elif adjustment_type == AdjustmentType.FLAT:
            new_base = Money.add(current, value)
        elif adjustment_type == AdjustmentType.CUSTOM:
            if value <= 0:
                raise InvalidAmount(f"Custom rent must be greater than 0, got: {value}")
            new_base = Money.of(value)
        else:
            raise InvalidAmount(f"Unknown adjustment type: {adjustment_type}")

        if new_base < 0 or (new_base == 0 and current > 0):
            raise InvalidAmount(
                f"{adjustment_type.value} adjustment of {value} leaves no rent (result {new_base})"
            )

        parking_total = Money.multiply(parking_fee_per_spot, parking_spots)
        new_total = Money.total([new_base, service_charge, parking_total])

        return RentComputation(
            previous_base_rent=current,
            new_base_rent=new_base,
            new_total_monthly=new_total,
            adjustment_percentage=Money.percent_change(current, new_base),
        )

    def compute_first_payment(
        self,
        base_rent: Decimal,
        service_charges: Decimal = ZERO,
        parking_spots: int = 0,
        parking_fee: Decimal = ZERO,
        security_deposit: Decimal = ZERO,
        admin_fee: Decimal = ZERO,
    ) -> FirstPaymentBreakdown:
        """
        Amount due with a quotation's first payment.

        First payment = rent + service charges + parking + deposit + admin fee.
        """
        amounts = {
            "base_rent": Money.of(base_rent),
            "service_charges": Money.of(service_charges),
            "parking_total": Money.multiply(parking_fee, parking_spots),
            "security_deposit": Money.of(security_deposit),
            "admin_fee": Money.of(admin_fee),
        }
        for name, amount in amounts.items():
            if amount < 0:
                raise InvalidAmount(f"{name} cannot be negative: {amount}")
        if parking_spots < 0:
            raise InvalidAmount(f"Parking spots cannot be negative: {parking_spots}")

        return FirstPaymentBreakdown(
            **amounts,
            total_first_payment=Money.total(amounts.values()),
        )


rent_calculator = RentAdjustmentCalculator()
