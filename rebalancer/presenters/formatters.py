"""Accounting-style number formatting for allocation tables."""

from decimal import Decimal
from typing import Any


def amount(value: Any, decimals: int = 2) -> str:
    """
    Format as 1,234.00 or (1,234.00) for negatives.

    Examples:
        amount(Decimal("1234.5"))    -> 1,234.50
        amount(Decimal("-1234.5"))   -> (1,234.50)
        amount(None)                 -> -
    """
    if value is None:
        return "-"
    try:
        val = Decimal(str(value))
    except ArithmeticError:
        return str(value)

    formatted = f"{abs(val):,.{decimals}f}"
    return f"({formatted})" if val < 0 else formatted


def percent(value: Any, decimals: int = 1) -> str:
    """
    Format a 0..1 fraction as 12.5% or (12.5%) for negatives.

    Examples:
        percent(Decimal("0.125"))     -> 12.5%
        percent(Decimal("-0.125"))    -> (12.5%)
        percent(Decimal("0.12346"), 2) -> 12.35%
    """
    try:
        val = Decimal(str(value)) * 100
    except ArithmeticError:
        return str(value)

    formatted = f"{abs(val):.{decimals}f}%"
    return f"({formatted})" if val < 0 else formatted
