"""
Decimal helpers.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def safe_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Safely convert a value to Decimal.

    Returns default for None, booleans, NaN, Infinity, and invalid values.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        if value.is_nan() or value.is_infinite():
            return default
        return value
    try:
        result = Decimal(str(value).strip())
        if result.is_nan() or result.is_infinite():
            return default
        return result
    except Exception:
        return default


def non_negative(value: Decimal) -> Decimal:
    """Clamp negative metrics (bad upstream data) to zero."""
    return value if value > 0 else ZERO


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide, substituting 1 for a zero denominator."""
    return numerator / (denominator if denominator != 0 else ONE)


def pct_change(previous: Decimal, current: Decimal) -> Decimal | None:
    """
    Percentage change from previous to current.

    Returns None when previous is zero (no meaningful percentage).
    """
    if previous == 0:
        return None
    return (current - previous) / previous * HUNDRED
