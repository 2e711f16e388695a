"""
Control System Domain Objects
==============================
Dataclasses for the decision controller: its options and run metrics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any

from growhub.domain.pump_slot import PumpSchedule


@dataclass
class ControllerOptions:
    """Configuration injected into the DecisionController."""

    # Light
    light_intensity_threshold: float = 500.0
    light_window_start: time = time(8, 0)
    light_window_stop: time = time(20, 0)
    light_role: str = "light"

    # Pump
    pump_role: str = "pump"
    pump_schedules: tuple[PumpSchedule, ...] = (PumpSchedule(9, 0), PumpSchedule(15, 0))
    pump_duration: timedelta = timedelta(minutes=10)

    # Loop
    tick_interval_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        if self.pump_duration <= timedelta(0):
            raise ValueError("pump_duration must be positive")
        self.pump_schedules = tuple(self.pump_schedules)

    def in_light_window(self, moment: time) -> bool:
        """Inclusive at both ends; a start after stop wraps past midnight."""
        start, stop = self.light_window_start, self.light_window_stop
        if start <= stop:
            return start <= moment <= stop
        return moment >= start or moment <= stop


@dataclass
class ControllerStats:
    """Counters for controller health reporting."""

    ticks_run: int = 0
    ticks_skipped: int = 0
    ticks_failed: int = 0
    commands_issued: int = 0
    publish_failures: int = 0
    last_tick_at: datetime | None = None
    last_error: str | None = None
    commands_by_topic: dict[str, int] = field(default_factory=dict)

    def record_command(self, topic: str) -> None:
        self.commands_issued += 1
        self.commands_by_topic[topic] = self.commands_by_topic.get(topic, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticks_run": self.ticks_run,
            "ticks_skipped": self.ticks_skipped,
            "ticks_failed": self.ticks_failed,
            "commands_issued": self.commands_issued,
            "publish_failures": self.publish_failures,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "last_error": self.last_error,
            "commands_by_topic": dict(self.commands_by_topic),
        }
