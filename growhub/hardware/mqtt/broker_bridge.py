"""
Bus transports.

LoopbackTransport keeps everything in-process. PahoBrokerTransport connects
the hub to an external MQTT broker (mosquitto on the Pi): publishes are sent
to the broker and every message the broker routes, the hub's own included,
comes back through one subscription and is handed to MessageBus.on_publish.
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING

import paho.mqtt.client as mqtt

from growhub.domain.exceptions import BrokerUnavailable, PublishFailure
from growhub.hardware.mqtt.client_factory import create_mqtt_client

if TYPE_CHECKING:
    from growhub.hardware.mqtt.message_bus import BusClient, BusPacket, MessageBus

logger = logging.getLogger(__name__)


class LoopbackTransport:
    """Delivers every publish straight back into the bus, synchronously."""

    def __init__(self) -> None:
        self._bus: MessageBus | None = None

    def start(self, bus: "MessageBus") -> None:
        self._bus = bus
        bus.health_status.mark_connected()

    def send(self, packet: "BusPacket", client: "BusClient | None") -> None:
        if self._bus is None:
            raise PublishFailure("Loopback transport is not started")
        self._bus.on_publish(packet, client)

    def stop(self) -> None:
        self._bus = None


class PahoBrokerTransport:
    """
    Forwards bus traffic to an external MQTT broker using paho-mqtt.
    """

    def __init__(
        self,
        broker: str,
        port: int,
        *,
        client_id: str = "growhub",
        username: str | None = None,
        password: str | None = None,
        publish_timeout: float = 5.0,
        subscription: str = "#",
    ) -> None:
        """
        Args:
            broker (str): The MQTT broker address.
            port (int): The MQTT broker port.
            client_id (str): Client id the hub connects with.
            username (str, optional): Bus username.
            password (str, optional): Plain-text bus password, sent base64-encoded
                like the relay boards send it.
            publish_timeout (float): Seconds to wait for the broker to accept a publish.
            subscription (str): Topic filter the hub listens on.
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.publish_timeout = publish_timeout
        self.subscription = subscription
        self.client = create_mqtt_client(client_id=client_id)
        if username:
            encoded = base64.b64encode(password.encode("utf-8")).decode("ascii") if password else None
            self.client.username_pw_set(username, encoded)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self._bus: MessageBus | None = None
        self.connected = False

    def start(self, bus: "MessageBus") -> None:
        """
        Connect to the broker and start the network loop thread.

        Raises:
            BrokerUnavailable: when the broker cannot be reached.
        """
        self._bus = bus
        try:
            self.client.connect(self.broker, self.port, 60)
        except (OSError, ValueError) as e:
            bus.health_status.record_error(e)
            logger.error("Error connecting to MQTT broker %s:%s: %s", self.broker, self.port, e)
            raise BrokerUnavailable(f"Cannot reach MQTT broker at {self.broker}:{self.port}: {e}") from e
        self.client.loop_start()  # Start the MQTT loop in a separate thread
        logger.info("Connecting to MQTT broker %s:%s", self.broker, self.port)

    def stop(self) -> None:
        try:
            self.client.disconnect()
            self.client.loop_stop()
        except (OSError, RuntimeError) as e:
            logger.error("Error disconnecting from MQTT broker: %s", e)
        self.connected = False
        logger.info("Disconnected from MQTT broker.")

    def send(self, packet: "BusPacket", client: "BusClient | None") -> None:
        """Publish and wait until paho reports the message as sent."""
        msg_info = self.client.publish(packet.topic, packet.payload)
        if msg_info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishFailure(
                f"Broker rejected publish to {packet.topic}: {mqtt.error_string(msg_info.rc)}",
                detail={"rc": msg_info.rc},
            )
        try:
            msg_info.wait_for_publish(timeout=self.publish_timeout)
        except (RuntimeError, ValueError) as e:
            raise PublishFailure(f"Publish to {packet.topic} failed: {e}") from e
        if not msg_info.is_published():
            raise PublishFailure(f"Publish to {packet.topic} not accepted within {self.publish_timeout}s")

    # --- paho callbacks (network loop thread) --------------------------------
    def _on_connect(self, client, userdata, flags, rc) -> None:
        if rc != 0:
            logger.error("MQTT broker refused connection: %s", mqtt.connack_string(rc))
            if self._bus is not None:
                self._bus.health_status.record_error(f"connack {rc}")
            return
        self.connected = True
        result, _mid = client.subscribe(self.subscription)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Failed to subscribe to %s: result code %s", self.subscription, result)
        if self._bus is not None:
            self._bus.health_status.mark_connected()
        logger.info("Connected to MQTT broker %s:%s, listening on %s", self.broker, self.port, self.subscription)

    def _on_disconnect(self, client, userdata, rc) -> None:
        self.connected = False
        if self._bus is not None:
            self._bus.health_status.mark_disconnected()
        if rc != 0:
            logger.warning("Unexpected disconnect from MQTT broker (rc=%s), paho will reconnect", rc)

    def _on_message(self, client, userdata, msg) -> None:
        if self._bus is None:
            return
        from growhub.hardware.mqtt.message_bus import BusPacket

        self._bus.on_publish(BusPacket(topic=msg.topic, payload=bytes(msg.payload)))
