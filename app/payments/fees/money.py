"""
Money rounding helpers.

Every derived amount is rounded as soon as it is computed so rounding
drift never accumulates across a chain of calculations.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a value to 2 decimal places, rounding half up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    """rate percent of amount, rounded to cents."""
    return money(amount * rate / HUNDRED)


def rate_between(part: Decimal, whole: Decimal) -> Decimal:
    """part as a percentage of whole, rounded to 2 decimals; 0 for an empty whole."""
    if whole <= 0:
        return Decimal("0.00")
    return money(part / whole * HUNDRED)
