"""
Growth Calculation

One zero-division policy for every growth figure: going from nothing to
something is 100% growth, nothing to nothing is 0%.
"""

from decimal import Decimal
from typing import Union

Number = Union[int, float, Decimal]


def growth_rate(current: Number, previous: Number) -> float:
    """
    Percentage change from `previous` to `current`.

    Args:
        current: Metric value for the current period
        previous: Metric value for the comparison period

    Returns:
        float: Unrounded percentage change
    """
    current = float(current)
    previous = float(previous)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def rounded_growth(current: Number, previous: Number, digits: int = 2) -> float:
    """Growth rate rounded for display."""
    return round(growth_rate(current, previous), digits)


def percentage(part: Number, whole: Number) -> float:
    """Share of `whole` in percent, 0 when `whole` is 0."""
    whole = float(whole)
    if whole == 0:
        return 0.0
    return float(part) / whole * 100
