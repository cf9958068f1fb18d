from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


# Maximum price: 99,999,999.99 (fits NUMERIC(10, 2))
MAX_PRICE = Decimal("99999999.99")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    # bool is a subclass of int
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{key} must be a number")
    try:
        return result.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError(f"{key} is out of range")


def coerce_date(key: str, value: Any) -> date:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date")
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 date")
    return parsed


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        return coerce_decimal(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        return coerce_date(col.key, value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

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

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def optional_int(key: str, value: Any) -> int | None:
    """Query-string style integer: missing or blank means no filter."""
    if value in (None, ""):
        return None
    return coerce_int(key, value)


def pick(data: dict, *keys: str, default: Any = None) -> Any:
    """First present key wins (accepts both wire names and English aliases)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def positive_quantity(key: str, value: Any) -> int:
    qty = coerce_int(key, value)
    if qty <= 0:
        raise ValidationError(f"{key} must be > 0")
    return qty


def validate_email(value: Any) -> str:
    if not isinstance(value, str) or not EMAIL_RE.match(value.strip()):
        raise ValidationError("Invalid email address")
    return value.strip().lower()


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("price") is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("price must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")

    if patch.get("quantity") is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 0")


def enforce_rules_supply(patch: dict) -> None:
    if "quantity" in patch:
        if patch["quantity"] is None or patch["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    if "unit_price" in patch:
        if patch["unit_price"] is None:
            raise ValidationError("unit_price is required")
        if patch["unit_price"] < 0:
            raise ValidationError("unit_price must be >= 0")
        if patch["unit_price"] > MAX_PRICE:
            raise ValidationError(f"unit_price cannot exceed {MAX_PRICE}")
