"""
Shared test fixtures for the GrowHub test suite.

Provides:
- In-memory SQLite database with the hub state tables created
- HubStateRepository wired to the test database
- The default relay map (esp32lr20: relay1 = light, relay2 = pump)
- A controllable clock, a recording bus and a fake store for the controller
- A started MessageBus on the loopback transport

Usage:
    def test_example(fake_store, recording_bus, make_controller):
        controller = make_controller()
        fake_store.set(light_intensity=300, light="off")
        controller.tick(datetime(2024, 5, 1, 12, 0))
        assert recording_bus.topics == ["esp32lr20/cmd/relay1/on"]
"""

from __future__ import annotations

import base64
import logging
import sys
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from growhub.control_loops.decision_controller import DecisionController
from growhub.domain.control import ControllerOptions
from growhub.domain.exceptions import PublishFailure
from growhub.domain.relays import RelayBinding, RelayMap
from growhub.domain.snapshot import HubSnapshot
from growhub.enums.device import RelayState
from growhub.hardware.mqtt.message_bus import MessageBus
from infrastructure.database.repositories.hub_state import HubStateRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# Keep test output clean
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("growhub.mqtt").setLevel(logging.WARNING)

BUS_USERNAME = "admin"
BUS_PASSWORD = "root"


@pytest.fixture()
def bus_credentials():
    """(username, base64 password) as a relay board sends them."""
    return BUS_USERNAME, base64.b64encode(BUS_PASSWORD.encode("utf-8")).decode("ascii")


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database, no cross-test contamination.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler
    handler.close_db()


@pytest.fixture()
def hub_repo(db_handler):
    """HubStateRepository backed by the in-memory DB."""
    return HubStateRepository(db_handler)


# ========================== Domain Fixtures ================================


@pytest.fixture()
def relay_map():
    return RelayMap(
        [
            RelayBinding(role="light", device="esp32lr20", channel="relay1"),
            RelayBinding(role="pump", device="esp32lr20", channel="relay2"),
        ],
        required_roles=("light", "pump"),
    )


class FakeClock:
    """Wall clock the test moves by hand."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def fake_clock():
    return FakeClock(datetime(2024, 5, 1, 8, 59, 55))


class RecordingBus:
    """Bus double recording every publish; can be told to fail some of them."""

    def __init__(self) -> None:
        self.published: list[tuple[str, Any]] = []
        self.fail_topics: set[str] = set()
        self._lock = threading.Lock()

    def publish(self, topic: str, payload: Any) -> None:
        if topic in self.fail_topics:
            raise PublishFailure(f"simulated failure on {topic}")
        with self._lock:
            self.published.append((topic, payload))

    @property
    def topics(self) -> list[str]:
        return [topic for topic, _payload in self.published]

    def clear(self) -> None:
        with self._lock:
            self.published.clear()


@pytest.fixture()
def recording_bus():
    return RecordingBus()


class FakeStore:
    """Snapshot source the test sets directly."""

    def __init__(self) -> None:
        self.snapshot = HubSnapshot()
        self.reads = 0
        self.error: Exception | None = None

    def set(self, light_intensity: float | None = None, **relays: str) -> None:
        self.snapshot = HubSnapshot(
            light_intensity=light_intensity,
            relay_states={role: RelayState(state) for role, state in relays.items()},
        )

    def read_snapshot(self) -> HubSnapshot:
        self.reads += 1
        if self.error is not None:
            raise self.error
        return self.snapshot


@pytest.fixture()
def fake_store():
    return FakeStore()


@pytest.fixture()
def make_controller(fake_store, recording_bus, relay_map, fake_clock):
    """Factory building a DecisionController over the doubles."""

    def _make(options: ControllerOptions | None = None, **kwargs: Any) -> DecisionController:
        kwargs.setdefault("clock", fake_clock)
        return DecisionController(fake_store, recording_bus, relay_map, options, **kwargs)

    return _make


# ========================== Bus Fixtures ===================================


@pytest.fixture()
def loopback_bus():
    """Started MessageBus on the in-process loopback transport."""
    bus = MessageBus(BUS_USERNAME, BUS_PASSWORD)
    bus.start()
    yield bus
    bus.stop()
