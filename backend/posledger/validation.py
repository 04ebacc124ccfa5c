from __future__ import annotations
from datetime import datetime
from posledger.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


# =============================================================================
# ERROR TAXONOMY
# =============================================================================

class EngineError(Exception):
    """
    Base for every failure the engine reports to its callers.

    Each subclass carries a machine-readable ``kind`` and the HTTP status the
    route layer answers with. Services raise; routes translate.
    """
    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(EngineError, ValueError):
    """400-level input problem. Raised before any mutation."""
    kind = "validation"
    status_code = 400


class NotFoundError(EngineError, LookupError):
    """Unknown product / customer / shift / family / bundle id."""
    kind = "not_found"
    status_code = 404


class InsufficientStockError(EngineError):
    """Deduction exceeds available stock (product or family base units)."""
    kind = "insufficient_stock"
    status_code = 409


class ConflictError(EngineError):
    """409-level business rule conflict or a lost concurrent race."""
    kind = "conflict"
    status_code = 409


class ShiftAlreadyActiveError(ConflictError):
    kind = "shift_already_active"


class StorageError(EngineError):
    """Transaction / commit failure. The whole operation did not happen."""
    kind = "storage"
    status_code = 500


# =============================================================================
# PAYLOAD VALIDATION
# =============================================================================

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


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request values.

    Rejects bools, floats, decimals-in-strings and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
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


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

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
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
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


# =============================================================================
# BUSINESS RULES
# =============================================================================

def require_positive_quantity(quantity: Any, field: str = "quantity") -> int:
    qty = coerce_int(quantity, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    return qty


def require_non_negative_quantity(quantity: Any, field: str = "quantity") -> int:
    qty = coerce_int(quantity, field)
    if qty < 0:
        raise ValidationError(f"{field} must be >= 0")
    return qty


def require_reason(reason: Any, field: str = "reason") -> str:
    if reason is None or not isinstance(reason, str) or not reason.strip():
        raise ValidationError(f"{field} is required")
    return reason.strip()


def require_balance_cents(amount: Any, field: str) -> int:
    cents = coerce_int(amount, field)
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def enforce_rules_product(patch: dict) -> None:
    for key in ("price_cents", "cost_cents"):
        if key in patch and patch[key] is not None:
            value = patch[key]
            if value < 0:
                raise ValidationError(f"{key} must be >= 0")
            if value > MAX_PRICE_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")


def enforce_rules_bundle(patch: dict) -> None:
    if "minimum_quantity" in patch:
        if patch["minimum_quantity"] is None or patch["minimum_quantity"] <= 0:
            raise ValidationError("minimum_quantity must be > 0")
    if "bundle_price_cents" in patch:
        price = patch["bundle_price_cents"]
        if price is None or price < 0:
            raise ValidationError("bundle_price_cents must be >= 0")
    valid_from = patch.get("valid_from")
    valid_to = patch.get("valid_to")
    if valid_from and valid_to and valid_from > valid_to:
        raise ValidationError("valid_from must not be after valid_to")
