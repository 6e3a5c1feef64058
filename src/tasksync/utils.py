"""Provide utility helpers for timestamps."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    return _now().isoformat()


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        if not isinstance(value, str):
            value = str(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        # If a naive timestamp slips in, assume UTC to avoid crashes.
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        return None


def _next_stamp(previous: Optional[str]) -> str:
    """Return a UTC ISO timestamp strictly later than *previous*.

    Two mutations inside the same clock tick (or after a clock step back)
    still get increasing stamps: the new value is bumped one microsecond past
    the previous one.
    """
    now = _now()
    prev = _parse_iso(previous)
    if prev is not None and now <= prev:
        now = prev + timedelta(microseconds=1)
    return now.isoformat()
