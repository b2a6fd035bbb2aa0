"""Decimal <-> minor unit conversion.

Amounts are stored as integer minor units (cents) and exposed as decimals
with two fractional digits. Currencies are never converted into each other.
"""

from decimal import Decimal, InvalidOperation

MINOR_UNITS_PER_MAJOR = 100
TWO_PLACES = Decimal("0.01")
# Amount columns are BIGINT.
MAX_MINOR = 2**63 - 1


def to_minor(amount: Decimal) -> int:
    """Convert a decimal amount to minor units.

    Raises ValueError when the amount carries more than two fractional digits
    or is not a finite number.
    """
    try:
        quantized = amount.quantize(TWO_PLACES)
    except (InvalidOperation, AttributeError) as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if quantized != amount:
        raise ValueError(f"Amount has more than two decimal places: {amount}")
    return int(quantized * MINOR_UNITS_PER_MAJOR)


def from_minor(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR).quantize(TWO_PLACES)


MAX_AMOUNT = from_minor(MAX_MINOR)
