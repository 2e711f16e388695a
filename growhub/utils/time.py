"""Clock helpers.

Two clocks are in play: record timestamps (``updated_at``, audit entries) are
aware UTC, while schedules (light window, pump start times) are wall-clock
times of day compared against ``local_now()``.
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_now(*, timespec: str = "auto") -> str:
    """Current UTC time as ISO-8601 with offset."""
    return utc_now().isoformat(timespec=timespec)


def local_now() -> datetime:
    """Current local wall-clock time (naive), the reference for schedules."""
    return datetime.now()


def parse_time_of_day(value: Any) -> time:
    """
    Parse "HH:MM" (or an existing time) into a datetime.time.

    Raises:
        ValueError: if the value is not a valid 24h time of day.
    """
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected 'HH:MM' string, got {value!r}")
    try:
        hour, minute = (int(part) for part in value.strip().split(":"))
        return time(hour, minute)
    except ValueError:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)") from None


def parse_stored_timestamp(value: str | None) -> datetime | None:
    """Read back a timestamp written by iso_now(); None if absent or unreadable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
