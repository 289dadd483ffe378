"""Input guards run before any transaction opens."""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from inventory_ledger.exceptions import ValidationError


def _require_int(field: str, value: Any) -> int:
    # bool is an int subclass; True is not a quantity
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError.for_field(field, "must be an integer")
    return value


def require_positive_int(field: str, value: Any) -> int:
    value = _require_int(field, value)
    if value <= 0:
        raise ValidationError.for_field(field, "must be greater than zero")
    return value


def require_non_negative_int(field: str, value: Any) -> int:
    value = _require_int(field, value)
    if value < 0:
        raise ValidationError.for_field(field, "cannot be negative")
    return value


def require_non_negative_amount(field: str, value: Any) -> Optional[Decimal]:
    """Validate an optional money/percentage input; ``None`` means not provided."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError.for_field(field, "must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError.for_field(field, "must be a number")
    if not amount.is_finite():
        raise ValidationError.for_field(field, "must be a finite number")
    if amount < 0:
        raise ValidationError.for_field(field, "cannot be negative")
    return amount


def require_text(field: str, value: Any, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError.for_field(field, "is required")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError.for_field(field, f"must be at most {max_length} characters")
    return value
