from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from stockledger.time_utils import parse_iso_datetime


# Upper bound for a single movement; keeps nonsense payloads out of the ledger
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for JSON bodies:
    - writable_fields: what clients are allowed to send (security boundary)
    - required: fields that must be present
    """
    writable_fields: set[str]
    required: set[str] = frozenset()  # type: ignore[assignment]


def validate_payload(payload: Any, policy: PayloadPolicy) -> dict:
    """
    Reject non-dict bodies, unknown fields, and missing required fields.
    Returns a shallow copy restricted to writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    missing = sorted(f for f in policy.required if f not in payload or payload[f] is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return dict(payload)


def coerce_int(name: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def require_positive_quantity(name: str, value: Any) -> int:
    qty = coerce_int(name, value)
    if qty <= 0:
        raise ValidationError(f"{name} must be > 0")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{name} cannot exceed {MAX_QUANTITY}")
    return qty


def require_nonzero_quantity(name: str, value: Any) -> int:
    qty = coerce_int(name, value)
    if qty == 0:
        raise ValidationError(f"{name} must be non-zero")
    if abs(qty) > MAX_QUANTITY:
        raise ValidationError(f"{name} cannot exceed {MAX_QUANTITY} in magnitude")
    return qty


def require_text(name: str, value: Any, *, max_length: int = 64) -> str:
    if value is None:
        raise ValidationError(f"{name} is required")
    s = str(value).strip()
    if not s:
        raise ValidationError(f"{name} cannot be blank")
    if len(s) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return s


def optional_text(name: str, value: Any, *, max_length: int | None = 64) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if max_length is not None and len(s) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return s


def require_choice(name: str, value: Any, choices) -> str:
    s = require_text(name, value)
    if s not in choices:
        raise ValidationError(f"{name} must be one of: {', '.join(sorted(choices))}")
    return s


def parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be a boolean")


def parse_datetime_arg(name: str, value: str | None):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def clamp_pagination(limit: Any, offset: Any, *, default_limit: int = 50, max_limit: int = 500) -> tuple[int, int]:
    limit_val = default_limit if limit in (None, "") else coerce_int("limit", limit)
    offset_val = 0 if offset in (None, "") else coerce_int("offset", offset)
    if offset_val < 0:
        raise ValidationError("offset must be >= 0")
    return max(1, min(limit_val, max_limit)), offset_val
