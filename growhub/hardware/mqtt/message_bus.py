"""
    In-process message bus for the hub.

    Authenticates clients against the single shared credential, accepts
    publishes through a pluggable transport, and fires the ``on_publish``
    hooks for every accepted message (the hub's own commands included), which
    is where the state-sync path attaches.

Transports (see broker_bridge.py):
    LoopbackTransport   - delivers straight back into on_publish (offline, tests)
    PahoBrokerTransport - forwards to an external broker, which echoes every
                          message back through its subscription
"""

import base64
import binascii
import hmac
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Callable, Protocol

import paho.mqtt.client as mqtt

from growhub.domain.exceptions import AuthFailure, PublishFailure
from growhub.utils.time import utc_now

# Rotating log for bus traffic, kept out of the root log
_bus_logger = logging.getLogger("growhub.mqtt")
if not _bus_logger.handlers:
    os.makedirs("logs", exist_ok=True)
    _bus_handler = RotatingFileHandler(
        "logs/hub_mqtt.log",
        maxBytes=10 * 1024 * 1024,  # 10MB max per file
        backupCount=3,
        encoding="utf-8",
        delay=True,
    )
    _bus_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    _bus_logger.addHandler(_bus_handler)
    _bus_logger.setLevel(logging.INFO)
    _bus_logger.propagate = False

_LOG_BUS_DISPATCH = os.getenv("GROWHUB_LOG_BUS_DISPATCH", "").lower() in {"1", "true", "t", "yes", "on"}


@dataclass(frozen=True)
class BusPacket:
    """One accepted publish."""

    topic: str
    payload: bytes
    client_id: str | None = None
    received_at: datetime = field(default_factory=utc_now, compare=False)

    def payload_text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


PublishHook = Callable[[BusPacket, "BusClient | None"], None]
MessageCallback = Callable[[BusPacket], None]


class BusTransport(Protocol):
    """Carries packets between the bus and the outside world."""

    def start(self, bus: "MessageBus") -> None: ...

    def send(self, packet: BusPacket, client: "BusClient | None") -> None: ...

    def stop(self) -> None: ...


def encode_payload(payload: Any) -> bytes:
    """Serialize a publish payload: bytes pass through, str is UTF-8, anything else JSON."""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload).encode("utf-8")


@dataclass
class BusHealthStatus:
    """
    Tracks the health of the bus and its transport.
    """

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    successful_publishes: int = 0
    failed_publishes: int = 0
    rejected_authentications: int = 0
    decode_failures: int = 0
    active_clients: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def success_rate(self) -> float:
        """Calculate publish success rate percentage"""
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def mark_connected(self) -> None:
        with self._lock:
            self.is_connected = True
            self.last_error = None
            self.last_error_time = None

    def mark_disconnected(self) -> None:
        with self._lock:
            self.is_connected = False

    def record_error(self, error: Exception | str) -> None:
        with self._lock:
            self.last_error = str(error)
            self.last_error_time = utc_now()

    def record_publish_success(self) -> None:
        with self._lock:
            self.successful_publishes += 1

    def record_publish_failure(self) -> None:
        with self._lock:
            self.failed_publishes += 1

    def record_rejected_auth(self) -> None:
        with self._lock:
            self.rejected_authentications += 1

    def record_decode_failure(self) -> None:
        with self._lock:
            self.decode_failures += 1

    def set_active_clients(self, count: int) -> None:
        with self._lock:
            self.active_clients = count

    def to_dict(self) -> dict[str, Any]:
        """Return health status as a dictionary."""
        with self._lock:
            return {
                "is_connected": self.is_connected,
                "last_error": self.last_error,
                "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
                "successful_publishes": self.successful_publishes,
                "failed_publishes": self.failed_publishes,
                "rejected_authentications": self.rejected_authentications,
                "decode_failures": self.decode_failures,
                "active_clients": self.active_clients,
                "publish_success_rate": round(self.success_rate, 2),
            }


class BusClient:
    """
    An authenticated session on the bus.

    Only obtainable through MessageBus.connect(), so a rejected connection
    leaves the caller with nothing to publish or subscribe through.
    """

    def __init__(self, bus: "MessageBus", client_id: str, username: str) -> None:
        self._bus = bus
        self.client_id = client_id
        self.username = username
        self.connected = True

    def publish(self, topic: str, payload: Any) -> None:
        self._ensure_connected()
        self._bus.publish(topic, payload, client=self)

    def subscribe(self, pattern: str, callback: MessageCallback) -> None:
        self._ensure_connected()
        self._bus._register_subscription(self, pattern, callback)

    def disconnect(self) -> None:
        if self.connected:
            self.connected = False
            self._bus._drop_client(self)

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise PublishFailure(f"Client {self.client_id!r} is disconnected")

    def __repr__(self) -> str:
        return f"BusClient(client_id={self.client_id!r}, connected={self.connected})"


class MessageBus:
    """
    Authenticating publish/subscribe hub with on_publish hooks.
    """

    def __init__(self, username: str, password: str, transport: BusTransport | None = None) -> None:
        """
        Args:
            username (str): The single accepted username.
            password (str): The plain-text password; clients send it base64-encoded.
            transport (BusTransport, optional): Defaults to a LoopbackTransport.
        """
        self._username = username
        self._password = password.encode("utf-8")
        self._hook_lock = threading.Lock()
        self._hooks: list[PublishHook] = []
        self._client_lock = threading.Lock()
        self._clients: dict[str, BusClient] = {}
        self._subscriptions: list[tuple[BusClient, str, MessageCallback]] = []
        self.health_status = BusHealthStatus()
        if transport is None:
            from growhub.hardware.mqtt.broker_bridge import LoopbackTransport

            transport = LoopbackTransport()
        self.transport = transport
        self._started = False

    # --- Lifecycle ------------------------------------------------------------
    def start(self) -> None:
        """Start the transport. Broker failures propagate (BrokerUnavailable)."""
        if self._started:
            return
        self.transport.start(self)
        self._started = True
        _bus_logger.info("Message bus started with %s", type(self.transport).__name__)

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        try:
            self.transport.stop()
        finally:
            with self._client_lock:
                for client in self._clients.values():
                    client.connected = False
                self._clients.clear()
                self._subscriptions.clear()
            self.health_status.set_active_clients(0)
            self.health_status.mark_disconnected()
            _bus_logger.info("Message bus stopped")

    # --- Authentication -------------------------------------------------------
    def authenticate(self, client_id: str, username: object, password: object) -> bool:
        """
        Check credentials against the configured pair.

        The password arrives base64-encoded and is decoded before comparison.
        Credentials of any other type (numbers, lists from a JSON body) are
        rejected like wrong ones.

        Raises:
            AuthFailure: for any missing, undecodable or mismatching credential.
        """
        if isinstance(username, str) and isinstance(password, (str, bytes)) and username and password:
            try:
                decoded = base64.b64decode(password, validate=True)
            except (binascii.Error, ValueError, TypeError):
                decoded = None
            if (
                decoded is not None
                and hmac.compare_digest(username.encode("utf-8"), self._username.encode("utf-8"))
                and hmac.compare_digest(decoded, self._password)
            ):
                return True

        self.health_status.record_rejected_auth()
        _bus_logger.warning("Authentication failed for client %r (username=%r)", client_id, username)
        raise AuthFailure(
            "Authentication Failed! Please enter valid credentials.",
            detail={"client_id": client_id},
        )

    def connect(self, client_id: str, username: str | None, password: str | bytes | None) -> BusClient:
        """Authenticate and open a session. Raises AuthFailure when rejected."""
        self.authenticate(client_id, username, password)
        client = BusClient(self, client_id, username or "")
        with self._client_lock:
            previous = self._clients.pop(client_id, None)
            if previous is not None:
                # Same client id reconnecting takes over the session
                previous.connected = False
                self._subscriptions = [s for s in self._subscriptions if s[0] is not previous]
            self._clients[client_id] = client
            count = len(self._clients)
        self.health_status.set_active_clients(count)
        _bus_logger.info("Client %s connected", client_id)
        return client

    def _drop_client(self, client: BusClient) -> None:
        with self._client_lock:
            if self._clients.get(client.client_id) is client:
                del self._clients[client.client_id]
            self._subscriptions = [s for s in self._subscriptions if s[0] is not client]
            count = len(self._clients)
        self.health_status.set_active_clients(count)
        _bus_logger.info("Client %s disconnected", client.client_id)

    # --- Publish path ---------------------------------------------------------
    def add_publish_hook(self, hook: PublishHook) -> Callable[[], None]:
        """Register a hook fired for every accepted publish. Returns an unregister callable."""
        with self._hook_lock:
            self._hooks.append(hook)

        def remove() -> None:
            with self._hook_lock:
                try:
                    self._hooks.remove(hook)
                except ValueError:
                    return

        return remove

    def publish(self, topic: str, payload: Any, *, client: BusClient | None = None) -> None:
        """
        Publish a message and block until the transport accepts it.

        Safe to call from several threads at once; each call owns its packet.

        Raises:
            PublishFailure: if the transport refused or failed to deliver.
        """
        packet = BusPacket(
            topic=topic,
            payload=encode_payload(payload),
            client_id=client.client_id if client else None,
        )
        try:
            self.transport.send(packet, client)
        except PublishFailure as exc:
            self.health_status.record_publish_failure()
            self.health_status.record_error(exc)
            _bus_logger.error("Failed to publish to %s: %s", topic, exc)
            raise
        except Exception as exc:
            self.health_status.record_publish_failure()
            self.health_status.record_error(exc)
            _bus_logger.error("Error publishing to %s: %s", topic, exc)
            raise PublishFailure(f"Failed to publish to {topic}: {exc}") from exc
        self.health_status.record_publish_success()
        _bus_logger.debug("Published to %s: %s", topic, packet.payload_text())

    def on_publish(self, packet: BusPacket, client: BusClient | None = None) -> None:
        """
        Fire hooks and subscriptions for an accepted publish.

        A failing hook or subscriber is logged and does not stop the others.
        """
        _bus_logger.info(
            "MESSAGE_PUBLISHED: client %s published %r on %s",
            packet.client_id or "HUB",
            packet.payload_text(),
            packet.topic,
        )

        with self._hook_lock:
            hooks = list(self._hooks)
        for hook in hooks:
            try:
                hook(packet, client)
            except Exception as e:
                _bus_logger.error("Error in publish hook for topic %s: %s", packet.topic, e, exc_info=True)

        with self._client_lock:
            subscriptions = list(self._subscriptions)
        for subscriber, pattern, callback in subscriptions:
            try:
                if mqtt.topic_matches_sub(pattern, packet.topic):
                    if _LOG_BUS_DISPATCH:
                        _bus_logger.debug("   Matched subscription '%s' of %s", pattern, subscriber.client_id)
                    callback(packet)
            except Exception as e:
                _bus_logger.error("Error in subscriber callback for %s: %s", pattern, e, exc_info=True)

    def _register_subscription(self, client: BusClient, pattern: str, callback: MessageCallback) -> None:
        with self._client_lock:
            self._subscriptions.append((client, pattern, callback))
        _bus_logger.info("Client %s subscribed to %s", client.client_id, pattern)
