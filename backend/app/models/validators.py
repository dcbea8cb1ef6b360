"""ORM-level guards shared by the models.

Used with ``@validates`` so that a bad value is rejected at assignment time no
matter which service writes it.
"""

from decimal import Decimal


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def non_negative(key: str, value):
    """Validate that a numeric value is >= 0."""
    if value is not None and _as_decimal(value) < 0:
        raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def positive(key: str, value):
    """Validate that a numeric value is > 0."""
    if value is not None and _as_decimal(value) <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def validate_list_of_dicts(key: str, value):
    """Validate that a JSON column value is a list of dicts (or None)."""
    if value is not None:
        if not isinstance(value, list):
            raise ValueError(f"{key} must be a list, got {type(value).__name__}")
        for i, item in enumerate(value):
            if not isinstance(item, dict):
                raise ValueError(f"{key}[{i}] must be a dict, got {type(item).__name__}")
    return value
