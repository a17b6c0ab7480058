"""
Domain time utilities (pure).

Centralized timestamp validation and validity-window helpers.

Behavior and error messages must remain consistent across the domain model.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the contract requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def end_of_day(value: datetime) -> datetime:
    """
    Extend a UTC timestamp to the last instant of its calendar day.

    A grant whose end date is "Jan 14" stays usable for all of Jan 14.
    """

    require_utc_timestamp("value", value)
    return datetime.combine(value.date(), time.max, tzinfo=timezone.utc)


def inclusive_window_end(start: datetime, days: int) -> datetime:
    """
    End timestamp of a window lasting `days` calendar days including the start day.

    A 14-day window starting Jan 1 ends on Jan 14 (13 days added).
    """

    require_utc_timestamp("start", start)
    if days < 1:
        raise ValueError("days must be >= 1")
    return start + timedelta(days=days - 1)


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a stored timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
