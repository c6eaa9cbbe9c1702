from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
import math
from workhub.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ServiceError


# Numeric(14, 2) ceiling
MAX_AMOUNT = Decimal("999999999999.99")
CENT = Decimal("0.01")


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""

    code = "validation_error"
    status_code = 400


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., duplicate document number)."""

    code = "conflict"
    status_code = 409


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for create
    - positive_amounts: Numeric fields that must be strictly > 0
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    positive_amounts: set[str] = None  # type: ignore


def parse_amount(value: Any, *, field: str = "amount", allow_zero: bool = True) -> Decimal:
    """
    Parse a monetary amount into a Decimal with two decimal places.

    Accepts Decimal, int, finite float and numeric strings. Rejects booleans,
    NaN/Infinity, negatives, values that would lose precision beyond cents,
    and values that do not fit Numeric(14, 2). allow_zero=False additionally
    rejects 0.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{field} must be a finite number")
        amount = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            amount = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if not allow_zero and amount == 0:
        raise ValidationError(f"{field} must be > 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")

    quantized = amount.quantize(CENT)
    if quantized != amount:
        raise ValidationError(f"{field} must have at most 2 decimal places")
    return quantized


def parse_int(value: Any, *, field: str) -> int:
    # Strict: reject bools, floats and scientific notation
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_optional_int(value: Any, *, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_int(value, field=field)


def parse_bool(value: Any, *, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    raise ValidationError(f"{field} must be a boolean")


def parse_optional_bool(value: Any, *, field: str) -> bool | None:
    if value is None or value == "":
        return None
    return parse_bool(value, field=field)


def parse_date(value: Any, *, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date")
        if parsed is None:
            raise ValidationError(f"{field} must be an ISO-8601 date")
        return parsed
    raise ValidationError(f"{field} must be a date")


def parse_optional_date(value: Any, *, field: str) -> date | None:
    if value is None or value == "":
        return None
    return parse_date(value, field=field)


def parse_pagination(page: Any, page_size: Any, *, default_size: int = 25, max_size: int = 100) -> tuple[int, int]:
    page_num = parse_optional_int(page, field="page") or 1
    size = parse_optional_int(page_size, field="page_size") or default_size
    if page_num < 1:
        raise ValidationError("page must be >= 1")
    if size < 1:
        raise ValidationError("page_size must be >= 1")
    return page_num, min(size, max_size)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return dict(mapper.columns.items())


def _coerce_value(key: str, col, value: Any, policy: ModelValidationPolicy):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, field=key)

    if isinstance(coltype, Numeric):
        positive = key in (policy.positive_amounts or set())
        return parse_amount(value, field=key, allow_zero=not positive)

    if isinstance(coltype, Boolean):
        return parse_bool(value, field=key)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{key} must be a datetime")

    if isinstance(coltype, Date):
        return parse_date(value, field=key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is (JSON columns)
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(k, col, raw, policy)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch
