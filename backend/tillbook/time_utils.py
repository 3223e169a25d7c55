# Overview: UTC time helpers; the store holds UTC-naive datetimes, the API speaks ISO-8601 with "Z".

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def as_utc_naive(dt: datetime) -> datetime:
    """Aware -> converted to UTC with tzinfo dropped. Naive is assumed UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return as_utc_naive(datetime.now(timezone.utc))


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2026-03-01", "2026-03-01T09:30", "2026-03-01T09:30:00Z" and
    "2026-03-01T10:30:00+01:00" all parse; blank input is None.
    Raises ValueError for anything else.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    return as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing Z; naive input is read as UTC."""
    if dt is None:
        return None
    return as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
