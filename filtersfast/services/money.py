"""Money helpers shared by the pricing services."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(value: float | int | str | Decimal) -> Decimal:
    # str() first so binary float noise does not leak into the Decimal
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: float | int | str | Decimal) -> float:
    """Round to whole cents, half-up, and return a float."""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def quantize_money(value: float | int | str | Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
