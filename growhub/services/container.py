from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

from growhub.config import AppConfig
from growhub.control_loops.decision_controller import DecisionController
from growhub.domain.relays import RelayMap
from growhub.hardware.mqtt.broker_bridge import LoopbackTransport, PahoBrokerTransport
from growhub.hardware.mqtt.message_bus import BusClient, MessageBus
from growhub.hardware.sensors.adapters import (
    ULTRASONIC_BAUD_RATE,
    ULTRASONIC_FRAME_HEADER,
    ULTRASONIC_FRAME_LENGTH,
    Bme688Adapter,
    EnvironmentFrameAdapter,
    WaterLevelAdapter,
)
from growhub.hardware.sensors.serial_source import SerialFrameSource, SerialLineSource, SerialSource
from growhub.services.state_sync import StateSyncService
from infrastructure.database.repositories.hub_state import HubStateRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class HubContainer:
    """Build and own the hub's long-lived components."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    repository: HubStateRepository
    relay_map: RelayMap
    bus: MessageBus
    state_sync: StateSyncService
    controller: DecisionController
    audit_logger: AuditLogger
    environment_adapter: EnvironmentFrameAdapter
    water_level_adapter: WaterLevelAdapter
    bme688_adapter: Bme688Adapter
    serial_sources: list[SerialSource] = field(default_factory=list)
    sensor_clients: list[BusClient] = field(default_factory=list)
    started: bool = False
    _shutdown_complete: bool = False

    @classmethod
    def build(cls, config: AppConfig, *, offline: bool = False, enable_serial: bool | None = None) -> "HubContainer":
        """
        Wire every component from configuration. Nothing is started yet.

        Args:
            config: Loaded configuration
            offline: Use the loopback transport instead of an external broker
            enable_serial: Override config.enable_serial
        """
        relay_map = config.relay_map()
        options = config.controller_options()

        database = SQLiteDatabaseHandler(config.database_path)
        database.init_db()
        repository = HubStateRepository(database)
        audit_logger = AuditLogger(config.audit_log_path)

        if offline or not config.enable_mqtt:
            transport: Any = LoopbackTransport()
            logger.info("Message bus running offline (loopback transport)")
        else:
            transport = PahoBrokerTransport(
                config.mqtt_broker_host,
                config.mqtt_broker_port,
                client_id=config.mqtt_client_id,
                username=config.bus_username,
                password=config.bus_password,
                publish_timeout=config.publish_timeout_seconds,
            )
        bus = MessageBus(config.bus_username, config.bus_password, transport)

        state_sync = StateSyncService(repository, relay_map)
        state_sync.attach(bus)

        controller = DecisionController(repository, bus, relay_map, options, audit_logger=audit_logger)

        container = cls(
            config=config,
            database=database,
            repository=repository,
            relay_map=relay_map,
            bus=bus,
            state_sync=state_sync,
            controller=controller,
            audit_logger=audit_logger,
            # Publishers are swapped for authenticated sessions in start()
            environment_adapter=EnvironmentFrameAdapter(bus),
            water_level_adapter=WaterLevelAdapter(bus, config.water_level_interval_seconds),
            bme688_adapter=Bme688Adapter(bus),
        )

        serial_enabled = config.enable_serial if enable_serial is None else enable_serial
        if serial_enabled:
            container.serial_sources.append(
                SerialLineSource(
                    config.serial_port,
                    config.serial_baud_rate,
                    container.environment_adapter.handle_line,
                    name="EnvironmentSerial",
                )
            )
            if config.water_level_serial_port:
                container.serial_sources.append(
                    SerialFrameSource(
                        config.water_level_serial_port,
                        ULTRASONIC_BAUD_RATE,
                        container.water_level_adapter.handle_frame,
                        frame_length=ULTRASONIC_FRAME_LENGTH,
                        header=bytes([ULTRASONIC_FRAME_HEADER]),
                        name="WaterLevelSerial",
                    )
                )

        logger.info("HubContainer built successfully.")
        return container

    def _sensor_session(self, client_id: str) -> BusClient:
        encoded = base64.b64encode(self.config.bus_password.encode("utf-8")).decode("ascii")
        client = self.bus.connect(client_id, self.config.bus_username, encoded)
        self.sensor_clients.append(client)
        return client

    def start(self) -> None:
        """
        Start the bus, sensor adapters and the controller.

        Raises:
            BrokerUnavailable: when the external broker cannot be reached.
        """
        if self.started:
            return
        self.bus.start()

        self.environment_adapter.publisher = self._sensor_session("arduinoEnvironment")
        self.water_level_adapter.publisher = self._sensor_session("waterLevelSensor")
        self.bme688_adapter.publisher = self._sensor_session("bme688")

        for source in self.serial_sources:
            source.start()
        self.water_level_adapter.start()
        self.controller.start()
        self.started = True
        logger.info("GrowHub started")

    def status(self) -> dict[str, Any]:
        return {
            "snapshot": self.repository.read_snapshot().to_dict(),
            "bus": self.bus.health_status.to_dict(),
            "controller": self.controller.status(),
            "relays": self.relay_map.to_dict(),
            "commands_observed": self.state_sync.commands_observed,
        }

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        if self._shutdown_complete:
            return
        self._shutdown_complete = True

        self.controller.stop()
        self.water_level_adapter.stop()
        for source in self.serial_sources:
            source.stop()
        for client in self.sensor_clients:
            client.disconnect()
        self.sensor_clients.clear()

        self.state_sync.detach()
        try:
            self.bus.stop()
        except Exception as e:
            logger.warning("Failed to stop message bus cleanly: %s", e)

        self.database.close_db()
        self.audit_logger.close()
        self.started = False
        logger.info("HubContainer shutdown complete.")
