from __future__ import annotations
from datetime import datetime
import math
import re
from dukkan.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Float, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Upper bound for any single amount or quantity accepted from clients.
MAX_AMOUNT = 999_999_999.99

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate product code)."""


class NotFoundError(LookupError):
    """404-level missing resource."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - non_negative_fields: numeric fields that must be >= 0
    - choices: allowed values per enum-like string field
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    non_negative_fields: set[str] | None = None
    choices: dict[str, set[str]] | None = None


def snake_case(key: str) -> str:
    """Map a camelCase JSON key to its column name (``sellPrice1`` -> ``sell_price_1``)."""
    key = _CAMEL_BOUNDARY.sub("_", key).lower()
    return re.sub(r"(?<=[a-z])(\d+)$", r"_\1", key)


def normalize_keys(payload: dict) -> dict:
    return {snake_case(k): v for k, v in payload.items()}


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Amounts and quantities: numbers or numeric strings, finite and bounded
    if isinstance(coltype, (Float, Numeric)):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be a number")
            try:
                value = float(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be a number")
        if not isinstance(value, (int, float)):
            raise ValidationError(f"{col.key} must be a number")
        value = float(value)
        if math.isnan(value) or math.isinf(value):
            raise ValidationError(f"{col.key} must be a finite number")
        if abs(value) > MAX_AMOUNT:
            raise ValidationError(f"{col.key} cannot exceed {MAX_AMOUNT:,.2f}")
        return value

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
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

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
    Returns a cleaned patch dict with only writable fields, keyed by column name.

    Keys may arrive in camelCase (the wire format) or snake_case.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = normalize_keys(payload)

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
    non_negative = policy.non_negative_fields or set()
    choices = policy.choices or {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in non_negative and val < 0:
            raise ValidationError(f"{k} must be >= 0")

        if k in choices and val not in choices[k]:
            raise ValidationError(f"{k} must be one of: {', '.join(sorted(choices[k]))}")

        patch[k] = val

    return patch


def require_id(payload: dict, key: str, label: str | None = None) -> int:
    """Pull a required integer id out of a (snake_case) payload."""
    raw = payload.get(key)
    label = label or key
    if raw is None or raw == "":
        raise ValidationError(f"{label} is required")
    if isinstance(raw, bool):
        raise ValidationError(f"{label} must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer")
    if isinstance(raw, float) and raw != value:
        raise ValidationError(f"{label} must be an integer")
    return value


def require_number(payload: dict, key: str, *, minimum: float | None = None, strict: bool = False, default=None) -> float:
    """
    Pull a numeric value out of a (snake_case) payload.

    minimum + strict=False means value >= minimum; strict=True means value > minimum.
    """
    raw = payload.get(key, default)
    if raw is None or raw == "":
        raise ValidationError(f"{key} is required")
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{key} must be a finite number")
    if abs(value) > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT:,.2f}")
    if minimum is not None:
        if strict and value <= minimum:
            raise ValidationError(f"{key} must be > {minimum:g}")
        if not strict and value < minimum:
            raise ValidationError(f"{key} must be >= {minimum:g}")
    return value
