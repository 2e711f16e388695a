"""
Domain Package
==============
Value objects and small state machines for the hub: the shared state
snapshot, relay bindings, pump slots and controller options.
"""

from .control import ControllerOptions, ControllerStats
from .pump_slot import PumpSchedule, PumpSlot, SlotState
from .relays import RelayBinding, RelayMap
from .snapshot import DeviceReport, HubSnapshot

__all__ = [
    "ControllerOptions",
    "ControllerStats",
    "DeviceReport",
    "HubSnapshot",
    "PumpSchedule",
    "PumpSlot",
    "RelayBinding",
    "RelayMap",
    "SlotState",
]
