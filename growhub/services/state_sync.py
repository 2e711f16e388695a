"""
State synchronisation: telemetry on the bus -> shared state record.

Registered as a MessageBus publish hook. Topics are classified by name only:

    <device>/state                      telemetry, decoded and merged
    <device>/cmd/<channel>/<on|off>     command, never merged (the hub's own
                                        commands are echoed through here too)
    anything else                       ignored

Relay boards report ``{"relay1": "ON", ...}``; channels bound in the relay map
become role states, everything else goes through SensorTelemetryPayload.
An invalid sensor field drops every reading of that message; its relay states
are merged regardless.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from growhub.domain.exceptions import PayloadDecodeFailure, StoreUnavailable
from growhub.domain.relays import RelayMap, classify_topic
from growhub.domain.snapshot import DeviceReport
from growhub.enums.device import RelayState, TopicKind
from growhub.hardware.mqtt.message_bus import BusClient, BusPacket, MessageBus
from growhub.schemas.telemetry import SensorTelemetryPayload
from infrastructure.database.repositories.hub_state import HubStateRepository

logger = logging.getLogger(__name__)


def decode_json_object(packet: BusPacket) -> dict[str, Any]:
    """
    Parse a packet payload as a JSON object.

    Raises:
        PayloadDecodeFailure: payload is not UTF-8 JSON or not an object.
    """
    try:
        payload = json.loads(packet.payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PayloadDecodeFailure(
            f"MQTT payload on {packet.topic} could not be parsed: {packet.payload_text()!r}"
        ) from exc
    if not isinstance(payload, dict):
        raise PayloadDecodeFailure(f"MQTT payload on {packet.topic} is not a JSON object: {payload!r}")
    return payload


class StateSyncService:
    """Turns telemetry publishes into merges on the hub state repository."""

    def __init__(self, repository: HubStateRepository, relay_map: RelayMap) -> None:
        self.repository = repository
        self.relay_map = relay_map
        self._bus: MessageBus | None = None
        self._unhook = None
        self.commands_observed = 0

    def attach(self, bus: MessageBus) -> None:
        self._bus = bus
        self._unhook = bus.add_publish_hook(self.on_publish)
        logger.info("State sync attached (relay devices: %s)", ", ".join(sorted(self.relay_map.devices)))

    def detach(self) -> None:
        if self._unhook is not None:
            self._unhook()
            self._unhook = None

    def on_publish(self, packet: BusPacket, client: BusClient | None) -> None:
        kind, device = classify_topic(packet.topic)
        if kind is TopicKind.COMMAND:
            self.commands_observed += 1
            logger.debug("Command observed on %s", packet.topic)
            return
        if kind is not TopicKind.STATE:
            return

        try:
            payload = decode_json_object(packet)
        except PayloadDecodeFailure as exc:
            self._record_decode_failure(exc)
            return

        relay_states, sensor_fields = self.split_payload(device, payload)
        try:
            readings = self.validate_readings(device, sensor_fields)
        except PayloadDecodeFailure as exc:
            # Relay states in the same message are still good
            self._record_decode_failure(exc)
            readings = {}

        report = DeviceReport(source=device, relay_states=relay_states, readings=readings)
        if report.is_empty:
            logger.debug("Telemetry on %s carried nothing to merge", packet.topic)
            return
        try:
            self.repository.apply_relay_update(report)
        except StoreUnavailable as exc:
            logger.error("Dropping telemetry from %s: %s", device, exc)

    def _record_decode_failure(self, exc: PayloadDecodeFailure) -> None:
        if self._bus is not None:
            self._bus.health_status.record_decode_failure()
        logger.warning("PARSING_ERROR: %s", exc)

    def split_payload(self, device: str, payload: dict[str, Any]) -> tuple[dict[str, RelayState], dict[str, Any]]:
        """Separate bound relay channels (as role states) from everything else."""
        relay_states: dict[str, RelayState] = {}
        sensor_fields: dict[str, Any] = {}
        for key, value in payload.items():
            role = self.relay_map.role_for(device, key)
            if role is None:
                sensor_fields[key] = value
                continue
            state = RelayState.parse(value)
            if state is None:
                logger.warning("Ignoring unrecognised state %r for %s/%s", value, device, key)
                continue
            relay_states[role] = state
        return relay_states, sensor_fields

    def validate_readings(self, device: str, sensor_fields: dict[str, Any]) -> dict[str, float]:
        """
        Validate sensor fields as a whole; one bad field rejects all readings.

        Raises:
            PayloadDecodeFailure: sensor fields present but invalid.
        """
        try:
            return SensorTelemetryPayload.model_validate(sensor_fields).readings()
        except ValidationError as exc:
            raise PayloadDecodeFailure(
                f"Invalid sensor fields from {device}: {exc.error_count()} error(s)",
                detail={"errors": exc.errors(include_url=False)},
            ) from exc
