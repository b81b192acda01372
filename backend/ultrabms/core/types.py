"""
Ultra BMS - Canonical Money Type
================================

RULE: No floats allowed for money.

Money:  Decimal, fixed to 2 places, ROUND_HALF_UP
        - Every value that gets persisted is quantized when it is produced
        - Stored figures always match displayed figures
        - Serialized as string in JSON

This module is the SINGLE SOURCE OF TRUTH for currency arithmetic.
Calculators and models MUST import from here.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated, Any, Iterable

from pydantic import BeforeValidator, PlainSerializer, WithJsonSchema


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(v: Any) -> Decimal:
    if isinstance(v, float):
        raise ValueError(
            "Float not allowed for money. Use Decimal, int or a decimal string. "
            f"Got: {v}"
        )

    if isinstance(v, bool):
        raise ValueError(f"Invalid money type: {type(v)}")

    if isinstance(v, Decimal):
        dec = v
    elif isinstance(v, (int, str)):
        try:
            dec = Decimal(str(v).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid money string: {v}")
    else:
        raise ValueError(f"Invalid money type: {type(v)}")

    if not dec.is_finite():
        raise ValueError(f"Money must be finite, got: {v}")
    return dec


class Money:
    """
    Money utilities for 2-decimal fixed-point amounts.

    Usage:
        rent = Money.of("5000")                       # -> Decimal("5000.00")
        Money.multiply(rent, Decimal("1.05"))         # -> Decimal("5250.00")
        Money.total([Decimal("3000"), Decimal("500")]) # -> Decimal("3500.00")
    """

    @staticmethod
    def of(value: Decimal | int | str) -> Decimal:
        """Parse and quantize a money value. No floats allowed."""
        return Money.quantize(to_decimal(value))

    @staticmethod
    def quantize(value: Decimal) -> Decimal:
        """Round to 2 decimals, half-up."""
        return value.quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def add(a: Decimal, b: Decimal) -> Decimal:
        return Money.quantize(to_decimal(a) + to_decimal(b))

    @staticmethod
    def subtract(a: Decimal, b: Decimal) -> Decimal:
        return Money.quantize(to_decimal(a) - to_decimal(b))

    @staticmethod
    def multiply(amount: Decimal, factor: Decimal | int | str) -> Decimal:
        """Multiply money by a factor. Factor can be Decimal/str/int, NOT float."""
        return Money.quantize(to_decimal(amount) * to_decimal(factor))

    @staticmethod
    def total(amounts: Iterable[Decimal]) -> Decimal:
        """Exact sum of a sequence of amounts (empty sequence -> 0.00)."""
        result = ZERO
        for amount in amounts:
            result += to_decimal(amount)
        return Money.quantize(result)

    @staticmethod
    def percent_change(previous: Decimal, current: Decimal) -> Decimal:
        """Percentage change from previous to current, 2 decimals."""
        previous = to_decimal(previous)
        if previous == 0:
            return ZERO
        change = (to_decimal(current) - previous) / previous * 100
        return Money.quantize(change)

    @staticmethod
    def to_str(amount: Decimal) -> str:
        return str(Money.quantize(to_decimal(amount)))


def _validate_money(v: Any) -> Decimal:
    return Money.of(v)


# Money type: quantized Decimal, serialized as string
MoneyAmount = Annotated[
    Decimal,
    BeforeValidator(_validate_money),
    PlainSerializer(Money.to_str, return_type=str),
    WithJsonSchema({"type": "string", "description": "Money as 2-decimal string"}),
]


def _validate_rate(v: Any) -> Decimal:
    """Adjustment values keep their precision; only floats are rejected."""
    if v is None:
        return Decimal("0")
    return to_decimal(v)


# Raw decimal input (percentages, flat amounts) - not quantized on input
DecimalValue = Annotated[
    Decimal,
    BeforeValidator(_validate_rate),
    PlainSerializer(str, return_type=str),
    WithJsonSchema({"type": "string", "description": "Decimal value as string"}),
]


__all__ = [
    "CENT",
    "ZERO",
    "DecimalValue",
    "Money",
    "MoneyAmount",
    "to_decimal",
]
