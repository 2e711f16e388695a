from __future__ import annotations

from enum import Enum


class RelayState(str, Enum):
    """Reported state of a remote relay channel."""

    ON = "on"
    OFF = "off"

    @classmethod
    def parse(cls, value: object) -> "RelayState | None":
        """Normalize a reported state ("ON", "Off", ...) or return None if unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class RelayCommand(str, Enum):
    """Actuation command published to a relay board."""

    ON = "on"
    OFF = "off"

    @property
    def target_state(self) -> RelayState:
        return RelayState(self.value)


class TopicKind(str, Enum):
    """Classification of bus topics by name."""

    STATE = "state"  # <device>/state
    COMMAND = "command"  # <device>/cmd/<channel>/<on|off>
    OTHER = "other"
