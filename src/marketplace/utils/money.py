"""Money arithmetic helpers.

Amounts are persisted as floats (major units) but every computation goes
through ``Decimal`` rounded half-up to the cent, so sums and minor-unit
conversions never drift.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    if amount is None:
        return Decimal("0")
    return Decimal(str(amount))


def quantize(amount) -> Decimal:
    """Round to the cent, half-up."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Convert a major-unit amount (dollars) to integer minor units (cents)."""
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(minor: int) -> Decimal:
    return quantize(Decimal(minor) / 100)


def as_float(amount) -> float:
    return float(quantize(amount))
