"""Currency rounding helpers."""

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float) -> int:
    """
    Round to the nearest whole currency unit, halves away from zero.

    Uses the shortest decimal representation of the float so that values
    round the way they print rather than the way they are stored in binary.

    Args:
        value: Amount to round

    Returns:
        Integer amount
    """
    return int(Decimal(repr(float(value))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
