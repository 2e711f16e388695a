"""MQTT message bus, its transports and the paho client factory."""

from growhub.hardware.mqtt.broker_bridge import LoopbackTransport, PahoBrokerTransport
from growhub.hardware.mqtt.message_bus import BusClient, BusHealthStatus, BusPacket, MessageBus

__all__ = [
    "BusClient",
    "BusHealthStatus",
    "BusPacket",
    "LoopbackTransport",
    "MessageBus",
    "PahoBrokerTransport",
]
