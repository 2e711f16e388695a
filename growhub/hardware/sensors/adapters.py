"""
Sensor ingestion adapters.

Each adapter turns readings from a locally attached sensor into a telemetry
publish on the bus. The bus's state-sync hook is the only path into the shared
state, so locally read sensors and remote boards are handled identically.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Mapping, Protocol

from growhub.domain.exceptions import PayloadDecodeFailure, PublishFailure
from growhub.domain.relays import state_topic
from growhub.workers.interval_timer import IntervalTimer

logger = logging.getLogger(__name__)

FRAME_START = "SENSOR_START"
FRAME_END = "SENSOR_END"

ENVIRONMENT_DEVICE = "arduinoEnvironment"
WATER_LEVEL_DEVICE = "waterLevelSensor"
BME688_DEVICE = "bme688"

# Ultrasonic distance (mm) at which the reservoir counts as empty
WATER_LEVEL_EMPTY_DISTANCE_MM = 250.0
ULTRASONIC_FRAME_HEADER = 0xFF
ULTRASONIC_FRAME_LENGTH = 4
# Fixed by the sensor
ULTRASONIC_BAUD_RATE = 9600


class TelemetryPublisher(Protocol):
    def publish(self, topic: str, payload: Any) -> None: ...


def water_level_percent(distance_mm: float, empty_distance_mm: float = WATER_LEVEL_EMPTY_DISTANCE_MM) -> float:
    """Convert a sensor-to-surface distance into a fill percentage (0-100)."""
    ratio = min(max(distance_mm, 0.0) / empty_distance_mm * 100, 100)
    return round(100 - ratio, 2)


def extract_frame(line: str) -> str | None:
    """Return the body between the frame markers, or None for non-frame lines."""
    start = line.find(FRAME_START)
    if start == -1:
        return None
    end = line.find(FRAME_END, start + len(FRAME_START))
    if end == -1:
        return None
    return line[start + len(FRAME_START) : end]


class EnvironmentFrameAdapter:
    """Publishes JSON frames from the environment board's serial stream."""

    def __init__(self, publisher: TelemetryPublisher, device: str = ENVIRONMENT_DEVICE) -> None:
        self.publisher = publisher
        self.topic = state_topic(device)
        self.frames_published = 0
        self.frames_dropped = 0

    def decode_frame(self, body: str) -> dict[str, Any]:
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise PayloadDecodeFailure("Environment frame is not valid JSON", detail={"frame": body}) from exc
        if not isinstance(data, dict):
            raise PayloadDecodeFailure("Environment frame must be a JSON object", detail={"frame": body})
        return data

    def handle_line(self, line: str) -> bool:
        """Feed one line from the serial port. Returns True when a frame was published."""
        body = extract_frame(line)
        if body is None:
            return False
        try:
            data = self.decode_frame(body)
        except PayloadDecodeFailure as e:
            self.frames_dropped += 1
            logger.warning("Error parsing environment frame: %s (%s)", e, e.detail)
            return False
        try:
            self.publisher.publish(self.topic, data)
        except PublishFailure as e:
            logger.error("Failed to publish environment frame: %s", e)
            return False
        self.frames_published += 1
        return True


class WaterLevelAdapter:
    """
    Publishes the reservoir fill level on a fixed interval.

    Distances arrive whenever the sensor produces them; the timer publishes the
    latest one only if it is fresh since the previous publish.
    """

    def __init__(
        self,
        publisher: TelemetryPublisher,
        interval_seconds: float = 1.0,
        *,
        device: str = WATER_LEVEL_DEVICE,
        empty_distance_mm: float = WATER_LEVEL_EMPTY_DISTANCE_MM,
    ) -> None:
        self.publisher = publisher
        self.topic = state_topic(device)
        self.interval_seconds = interval_seconds
        self.empty_distance_mm = empty_distance_mm
        self._lock = threading.Lock()
        self._latest_percent: float | None = None
        self._fresh = False
        self._timer: IntervalTimer | None = None

    def record_distance(self, distance_mm: float) -> float:
        percent = water_level_percent(distance_mm, self.empty_distance_mm)
        with self._lock:
            self._latest_percent = percent
            self._fresh = True
        return percent

    def handle_frame(self, frame: bytes) -> bool:
        """
        Accept one 4-byte ultrasonic frame: header 0xFF, distance high byte,
        distance low byte, checksum. Frames with another header are dropped.
        """
        if len(frame) < 3 or frame[0] != ULTRASONIC_FRAME_HEADER:
            logger.debug("Ignoring ultrasonic frame without header: %s", frame.hex())
            return False
        self.record_distance((frame[1] << 8) | frame[2])
        return True

    def publish_latest(self) -> bool:
        """Publish the latest reading if fresh. Called by the interval timer."""
        with self._lock:
            if not self._fresh or self._latest_percent is None:
                return False
            percent = self._latest_percent
            self._fresh = False
        try:
            self.publisher.publish(self.topic, {"waterLevel": percent})
        except PublishFailure as e:
            logger.error("Failed to publish water level: %s", e)
            return False
        return True

    def start(self) -> None:
        if self._timer is not None:
            return
        self._timer = IntervalTimer(self.interval_seconds, self.publish_latest, name="WaterLevelPublisher", max_workers=1)
        self._timer.start()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None


class Bme688Adapter:
    """
    Publishes BME688 readings under the camelCase telemetry keys.

    The sensor driver is external; it hands each reading to publish_reading().
    """

    FIELD_MAP = {
        "temperature": "temperature",
        "pressure": "pressure",
        "humidity": "humidity",
        "gas_resistance": "gasResistance",
    }

    def __init__(self, publisher: TelemetryPublisher, device: str = BME688_DEVICE) -> None:
        self.publisher = publisher
        self.topic = state_topic(device)

    def publish_reading(self, reading: Mapping[str, Any]) -> bool:
        payload = {}
        for source_key, telemetry_key in self.FIELD_MAP.items():
            # Accept either naming from the driver
            value = reading.get(source_key, reading.get(telemetry_key))
            if value is not None:
                payload[telemetry_key] = value
        if not payload:
            logger.debug("BME688 reading had no known fields: %s", dict(reading))
            return False
        try:
            self.publisher.publish(self.topic, payload)
        except PublishFailure as e:
            logger.error("Failed to publish BME688 reading: %s", e)
            return False
        return True
