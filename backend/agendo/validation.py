from __future__ import annotations

import math
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Type, TypeVar

from .time_utils import normalize_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

E = TypeVar("E", bound=Enum)


class ValidationError(ValueError):
    """400-level input problem (missing or invalid field)."""


class NotFoundError(ValidationError):
    """404-level: entity missing or outside the caller's tenant."""


class ConflictError(ValueError):
    """409-level business rule conflict (overlapping booking interval)."""

    def __init__(self, message: str, conflicting_id: int | None = None):
        super().__init__(message)
        self.conflicting_id = conflicting_id


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def json_object(data: Any) -> dict:
    """Request body as a dict; a missing body is empty, any other JSON type is rejected."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def coerce_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """
    Coerce a raw value into a member of a closed enum.

    Accepts the member itself or its value in any letter case.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        candidate = value.strip()
        for member in enum_cls:
            if member.value.lower() == candidate.lower():
                return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationError(f"{field} must be one of: {allowed}")


def parse_money_cents(value: Any, field: str, *, allow_zero: bool = True) -> int:
    """
    Parse a money amount into integer cents.

    Integers are taken as cents only when passed via an explicit *_cents field;
    here every input is a currency amount ("25", "25.5", 25.50) with at most
    two decimals.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        raise ValidationError(f"{field} must be a finite number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if amount.is_nan() or amount.is_infinite():
        raise ValidationError(f"{field} must be a finite number")
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} must have at most two decimals")

    cents = int(amount * 100)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed amount")
    return cents


def parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return value


def parse_datetime_field(value: Any, field: str):
    try:
        dt = normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    if dt is None:
        raise ValidationError(f"{field} is required")
    return dt


def parse_date_field(value: Any, field: str) -> date:
    if not value:
        raise ValidationError(f"{field} is required")
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be a date as YYYY-MM-DD")


def format_cents(cents: int | None) -> str | None:
    """Presentation-only rendering of cents as a 2-decimal amount."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"
