from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum single amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

MAX_PAGE_SIZE = 200


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion for JSON / query-string input.

    Accepts ints and plain digit strings (optional leading minus). Rejects
    bools, floats, decimals and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def get_int(
    payload: dict,
    key: str,
    *,
    required: bool = False,
    default: int | None = None,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default

    result = coerce_int(key, value)
    if minimum is not None and result < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={key: result})
    if maximum is not None and result > maximum:
        raise ValidationError(f"{key} must be <= {maximum}", details={key: result})
    return result


def get_str(payload: dict, key: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def get_pagination(args) -> tuple[int, int]:
    """page/limit from query args; limit is capped at MAX_PAGE_SIZE."""
    page = get_int(args, "page", default=1, minimum=1)
    limit = get_int(args, "limit", default=50, minimum=1, maximum=MAX_PAGE_SIZE)
    return page, limit


def get_datetime(args, key: str) -> datetime | None:
    """ISO-8601 query parameter -> UTC-naive datetime (None when absent)."""
    value = args.get(key)
    if value is None:
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def get_bool(args, key: str, default: bool = False) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
