# batch_core/services/decimals.py
"""
Coerce entered numbers to what a DecimalField column will store.

Values are rounded to the column's scale before anything is computed from
them, so a status derived now agrees with one re-derived from the stored row.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Optional

from batch_core.exceptions import ValidationError


def parse_decimal(value: Any, label: str, field: str = "value") -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{label} needs a numeric value", details={"field": field})
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(
            f"{label}: {value!r} is not a number",
            user_message="Enter a number.",
            details={"field": field},
        ) from exc
    if not number.is_finite():
        raise ValidationError(f"{label}: {value!r} is not a number", details={"field": field})
    return number


def fit_to_field(number: Decimal, model, field_name: str, label: Optional[str] = None, field: str = "value") -> Decimal:
    """
    Round ``number`` to the scale of ``model.field_name`` (half-even, as the
    database adapter does) and reject values the column cannot hold.
    """
    column = model._meta.get_field(field_name)
    label = label or field_name
    limit = Decimal(10) ** (column.max_digits - column.decimal_places)

    too_large = ValidationError(
        f"{label}: {number} does not fit {column.max_digits} digits "
        f"with {column.decimal_places} decimal places",
        user_message="This number is too large.",
        details={"field": field, "max_digits": column.max_digits, "decimal_places": column.decimal_places},
    )
    if number.copy_abs() >= limit:
        raise too_large

    try:
        fitted = number.quantize(Decimal(1).scaleb(-column.decimal_places), rounding=ROUND_HALF_EVEN)
    except InvalidOperation as exc:
        raise too_large from exc

    # rounding can carry into one more integer digit
    if fitted.copy_abs() >= limit:
        raise too_large
    return fitted
