from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text

from .time_utils import parse_iso_datetime

# Maximum price: 9,999,999.99 in major units (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_STOCK_QUANTITY = 1_000_000
PRICE_FIELDS = ("price_cents", "original_price_cents", "sale_price_cents")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate category name)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Admin write policy for one model:
    - writable_fields: columns clients may set (security boundary)
    - required_on_create: columns required for POST
    - extra_fields: non-column keys the route handles itself (e.g. images)
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)
    extra_fields: frozenset[str] = field(default_factory=frozenset)


def _columns_by_key(model) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_integer(key: str, value: Any) -> int:
    # bool is a subclass of int and never a valid integer here
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer") from None
    raise ValidationError(f"{key} must be an integer")


def _coerce_boolean(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, str)):
        text = str(value).strip().lower()
        if text in {"1", "true", "yes"}:
            return True
        if text in {"0", "false", "no"}:
            return False
    raise ValidationError(f"{key} must be a boolean")


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime") from None
        if dt is not None:
            return dt
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _coerce_value(col, value: Any):
    coltype = col.type
    if isinstance(coltype, Integer):
        return _coerce_integer(col.key, value)
    if isinstance(coltype, Boolean):
        return _coerce_boolean(col.key, value)
    if isinstance(coltype, DateTime):
        return _coerce_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        return str(value).strip()
    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - the policy allowlist (writable_fields, extra_fields)
    - required_on_create (if partial=False)

    Returns a cleaned patch dict holding only column fields; extra_fields
    are left for the caller to read from the raw payload.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload:
        if k in policy.extra_fields:
            continue
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        if k in policy.extra_fields:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict, current: dict | None = None) -> None:
    """
    Product rules not captured by column metadata.

    `current` carries the stored values so a partial update is checked
    against the resulting row, not just the patch.
    """
    for key in PRICE_FIELDS:
        price = patch.get(key)
        if price is None:
            continue
        if price < 0:
            raise ValidationError(f"{key} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f})")

    if "stock_quantity" in patch:
        stock = patch["stock_quantity"]
        if stock is None or stock < 0:
            raise ValidationError("stock_quantity must be >= 0")
        if stock > MAX_STOCK_QUANTITY:
            raise ValidationError(f"stock_quantity cannot exceed {MAX_STOCK_QUANTITY}")

    merged = dict(current or {})
    merged.update(patch)
    if merged.get("is_on_sale"):
        sale_price = merged.get("sale_price_cents")
        if sale_price is None:
            raise ValidationError("sale_price_cents is required when is_on_sale is true")
        if merged.get("price_cents") is not None and sale_price > merged["price_cents"]:
            raise ValidationError("sale_price_cents cannot exceed price_cents")


def enforce_rules_category(patch: dict) -> None:
    if "sort_order" in patch and patch["sort_order"] is not None and patch["sort_order"] < 0:
        raise ValidationError("sort_order must be >= 0")
