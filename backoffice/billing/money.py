"""
backoffice/billing/money.py

Decimal helpers shared by the engine.

IMPORTANT:
- Amounts stay at full Decimal precision while they are being computed.
- Rounding to cents (ROUND_HALF_UP) happens only when a value is rendered.
- Floats are converted through str() so 0.1 stays 0.1.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any, *, field: str = "value") -> Decimal:
    """
    Convert a numeric input (Decimal/int/float/str) to Decimal.

    Raises ValidationError for None, booleans, NaN/Infinity and unparsable strings.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required and must be numeric")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be numeric, got {value!r}") from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def money(value: Decimal) -> Decimal:
    """Round to cents for display."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Decimal) -> str:
    return f"{money(value):.2f}"


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole as a percentage; 0 when whole is 0."""
    if whole == ZERO:
        return ZERO
    return part / whole * HUNDRED


def safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == ZERO:
        return ZERO
    return numerator / denominator


def plain(value: Decimal) -> str:
    """Render a quantity without exponent or trailing zeros (e.g. 1.50 -> '1.5', 10 -> '10')."""
    return format(value.normalize(), "f")
