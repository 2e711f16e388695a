"""Locally attached sensors feeding telemetry onto the bus."""

from growhub.hardware.sensors.adapters import (
    Bme688Adapter,
    EnvironmentFrameAdapter,
    WaterLevelAdapter,
    extract_frame,
    water_level_percent,
)
from growhub.hardware.sensors.serial_source import SerialFrameSource, SerialLineSource, SerialSource

__all__ = [
    "Bme688Adapter",
    "EnvironmentFrameAdapter",
    "SerialFrameSource",
    "SerialLineSource",
    "SerialSource",
    "WaterLevelAdapter",
    "extract_frame",
    "water_level_percent",
]
