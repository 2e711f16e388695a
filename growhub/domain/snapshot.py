"""
Hub State Domain Objects
========================
The shared state record read by the controller and the normalized
device report merged into it by the state-sync path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from growhub.enums.device import RelayState

# Reading fields co-resident in the shared record (storage column names)
READING_FIELDS: tuple[str, ...] = (
    "light_intensity",
    "temperature",
    "humidity",
    "pressure",
    "gas_resistance",
    "water_level",
    "ph",
    "ec",
    "water_temperature",
)


@dataclass(frozen=True)
class HubSnapshot:
    """One consistent read of the shared state record."""

    light_intensity: float | None = None
    relay_states: dict[str, RelayState] = field(default_factory=dict)
    temperature: float | None = None
    humidity: float | None = None
    pressure: float | None = None
    gas_resistance: float | None = None
    water_level: float | None = None
    ph: float | None = None
    ec: float | None = None
    water_temperature: float | None = None
    updated_at: datetime | None = None

    def relay_state(self, role: str) -> RelayState | None:
        """Reported state of a relay role, or None if it never reported."""
        return self.relay_states.get(role)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: getattr(self, name) for name in READING_FIELDS}
        data["relay_states"] = {role: state.value for role, state in self.relay_states.items()}
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data


@dataclass
class DeviceReport:
    """Normalized content of one telemetry message."""

    source: str
    relay_states: dict[str, RelayState] = field(default_factory=dict)
    readings: dict[str, float] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.relay_states and not self.readings
