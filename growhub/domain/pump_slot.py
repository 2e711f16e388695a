"""
Pump Slot State Machine
=======================

One scheduled daily pump run. States: IDLE -> RUNNING -> IDLE.

A slot starts when a tick falls inside its start minute
(``start <= now < start + 1 minute``) and at most once per calendar day, so the
several ticks that land in the same minute do not restart it. A tick missed for
that whole minute skips the day's run. The slot stops at the first tick with
``now >= active_until``.

Slots never share state: two overlapping slots on the same relay each track
their own ``active_until``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any

_START_WINDOW = timedelta(minutes=1)


class SlotState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class PumpSchedule:
    """Daily start time of one pump run."""

    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid pump start time {self.hour:02d}:{self.minute:02d}")

    @property
    def time_of_day(self) -> time:
        return time(self.hour, self.minute)

    def start_on(self, day: date) -> datetime:
        return datetime.combine(day, self.time_of_day)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass
class PumpSlot:
    """Ephemeral run state for one pump schedule slot."""

    name: str
    relay_role: str
    schedule: PumpSchedule
    duration: timedelta
    active_until: datetime | None = None
    last_started_on: date | None = None

    @property
    def state(self) -> SlotState:
        return SlotState.RUNNING if self.active_until is not None else SlotState.IDLE

    @property
    def is_running(self) -> bool:
        return self.active_until is not None

    def in_start_window(self, now: datetime) -> bool:
        start = self.schedule.start_on(now.date())
        if now.tzinfo is not None:
            start = start.replace(tzinfo=now.tzinfo)
        return start <= now < start + _START_WINDOW

    def should_start(self, now: datetime) -> bool:
        return not self.is_running and self.last_started_on != now.date() and self.in_start_window(now)

    def should_stop(self, now: datetime) -> bool:
        return self.active_until is not None and now >= self.active_until

    def start(self, now: datetime) -> datetime:
        """IDLE -> RUNNING. Returns the new active_until."""
        self.active_until = now + self.duration
        self.last_started_on = now.date()
        return self.active_until

    def stop(self) -> None:
        """RUNNING -> IDLE."""
        self.active_until = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "relay_role": self.relay_role,
            "start": str(self.schedule),
            "duration_seconds": int(self.duration.total_seconds()),
            "state": self.state.value,
            "active_until": self.active_until.isoformat() if self.active_until else None,
            "last_started_on": self.last_started_on.isoformat() if self.last_started_on else None,
        }
