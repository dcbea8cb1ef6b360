"""Decimal helpers for monetary values.

Amounts are carried as ``Decimal`` end to end and only rounded at the edges,
half-up to the cent.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from app.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Coerce ``value`` to a finite Decimal or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() avoids binary float artifacts like 12.989999...
            result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    return result


def to_money(value: Any, field: str = "amount") -> Decimal:
    """Like ``to_decimal`` but also rejects negatives."""
    result = to_decimal(value, field)
    if result < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return result


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
