"""Percentage helpers shared by capacity reporting."""

from decimal import ROUND_HALF_UP, Decimal


def percentage(part: int, whole: int) -> int:
    """``part / whole`` as a whole percentage, rounded half up; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    value = Decimal(part) * 100 / Decimal(whole)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def ratio_percent(part: int, whole: int) -> float:
    """Unrounded percentage, used where thresholds compare against exact values."""
    if whole <= 0:
        return 0.0
    return part * 100 / whole
