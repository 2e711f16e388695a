"""
Configuration for the GrowHub automation hub
============================================
Runtime settings loaded from ``GROWHUB_*`` environment variables, plus the
conversion into the validated objects the hub is wired with (controller
options and the relay map). Setups the logging configuration as well.
"""

import logging
import os
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import timedelta
from logging.handlers import RotatingFileHandler
from typing import Any

from growhub.domain.control import ControllerOptions
from growhub.domain.exceptions import ConfigurationError
from growhub.domain.pump_slot import PumpSchedule
from growhub.domain.relays import RelayBinding, RelayMap
from growhub.utils.time import parse_time_of_day

DEFAULT_BUS_PASSWORD = "root"
REQUIRED_RELAY_ROLES = ("light", "pump")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("GROWHUB_ENV", "development"))
    DEBUG: bool = field(default_factory=lambda: _env_bool("GROWHUB_DEBUG", False))
    database_path: str = field(default_factory=lambda: os.getenv("GROWHUB_DATABASE_PATH", "database/growhub.db"))
    audit_log_path: str = field(default_factory=lambda: os.getenv("GROWHUB_AUDIT_LOG_PATH", "logs/audit.log"))

    # HTTP (broker auth webhook + status)
    http_host: str = field(default_factory=lambda: os.getenv("GROWHUB_HOST", "0.0.0.0"))
    http_port: int = field(default_factory=lambda: _env_int("GROWHUB_PORT", 3000))

    # MQTT broker connection used by the hub itself
    enable_mqtt: bool = field(default_factory=lambda: _env_bool("GROWHUB_ENABLE_MQTT", True))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("GROWHUB_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("GROWHUB_MQTT_PORT", 1883))
    mqtt_client_id: str = field(default_factory=lambda: os.getenv("GROWHUB_MQTT_CLIENT_ID", "growhub"))
    publish_timeout_seconds: float = field(default_factory=lambda: _env_float("GROWHUB_PUBLISH_TIMEOUT", 5.0))

    # Single shared bus credential (password travels base64-encoded)
    bus_username: str = field(default_factory=lambda: os.getenv("GROWHUB_BUS_USERNAME", "admin"))
    bus_password: str = field(default_factory=lambda: os.getenv("GROWHUB_BUS_PASSWORD", DEFAULT_BUS_PASSWORD))

    # Relay board wiring
    relay_device: str = field(default_factory=lambda: os.getenv("GROWHUB_RELAY_DEVICE", "esp32lr20"))
    light_relay_channel: str = field(default_factory=lambda: os.getenv("GROWHUB_LIGHT_RELAY", "relay1"))
    pump_relay_channel: str = field(default_factory=lambda: os.getenv("GROWHUB_PUMP_RELAY", "relay2"))

    # Light policy
    light_intensity_threshold: float = field(
        default_factory=lambda: _env_float("GROWHUB_LIGHT_THRESHOLD", 500.0)
    )
    light_window_start: str = field(default_factory=lambda: os.getenv("GROWHUB_LIGHT_START", "08:00"))
    light_window_stop: str = field(default_factory=lambda: os.getenv("GROWHUB_LIGHT_STOP", "20:00"))

    # Pump policy
    pump_start_times: str = field(default_factory=lambda: os.getenv("GROWHUB_PUMP_TIMES", "09:00,15:00"))
    pump_duration_minutes: float = field(default_factory=lambda: _env_float("GROWHUB_PUMP_DURATION_MINUTES", 10.0))

    tick_interval_seconds: float = field(default_factory=lambda: _env_float("GROWHUB_TICK_INTERVAL", 5.0))

    # Serial sensors
    enable_serial: bool = field(default_factory=lambda: _env_bool("GROWHUB_ENABLE_SERIAL", True))
    serial_port: str = field(default_factory=lambda: os.getenv("GROWHUB_SERIAL_PORT", "/dev/ttyACM0"))
    serial_baud_rate: int = field(default_factory=lambda: _env_int("GROWHUB_SERIAL_BAUD_RATE", 9600))
    # Empty disables the ultrasonic water level reader
    water_level_serial_port: str = field(default_factory=lambda: os.getenv("GROWHUB_WATER_LEVEL_PORT", ""))
    water_level_interval_seconds: float = field(
        default_factory=lambda: _env_float("GROWHUB_WATER_LEVEL_INTERVAL", 1.0)
    )

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.environment == "production" and self.bus_password == DEFAULT_BUS_PASSWORD:
            raise ConfigurationError(
                "SECURITY ERROR: Cannot use the default bus password in production!\n"
                "Set GROWHUB_BUS_PASSWORD to the credential flashed into the relay boards."
            )
        if not self.bus_username:
            raise ConfigurationError("GROWHUB_BUS_USERNAME must not be empty")

    def relay_map(self) -> RelayMap:
        """Build the validated role -> relay board channel mapping."""
        return RelayMap(
            [
                RelayBinding(role="light", device=self.relay_device, channel=self.light_relay_channel),
                RelayBinding(role="pump", device=self.relay_device, channel=self.pump_relay_channel),
            ],
            required_roles=REQUIRED_RELAY_ROLES,
        )

    def pump_schedules(self) -> tuple[PumpSchedule, ...]:
        entries = [entry for entry in self.pump_start_times.split(",") if entry.strip()]
        if len(entries) != 2:
            raise ConfigurationError(
                f"GROWHUB_PUMP_TIMES must list exactly two HH:MM start times, got {self.pump_start_times!r}"
            )
        try:
            times = [parse_time_of_day(entry) for entry in entries]
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None
        return tuple(PumpSchedule(t.hour, t.minute) for t in times)

    def controller_options(self) -> ControllerOptions:
        try:
            return ControllerOptions(
                light_intensity_threshold=self.light_intensity_threshold,
                light_window_start=parse_time_of_day(self.light_window_start),
                light_window_stop=parse_time_of_day(self.light_window_stop),
                pump_schedules=self.pump_schedules(),
                pump_duration=timedelta(minutes=self.pump_duration_minutes),
                tick_interval_seconds=self.tick_interval_seconds,
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid controller configuration: {exc}") from None

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for the Flask application."""
        return {
            "ENV": self.environment,
            "DEBUG": self.DEBUG,
            "DATABASE_PATH": self.database_path,
            "MQTT_BROKER_HOST": self.mqtt_broker_host,
            "MQTT_BROKER_PORT": self.mqtt_broker_port,
        }


_CONSOLE_HANDLER = "growhub_console"
_FILE_HANDLER = "growhub_file"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _named_handler(root: logging.Logger, name: str) -> logging.Handler | None:
    return next((h for h in root.handlers if h.get_name() == name), None)


def setup_logging(debug: bool = False, log_dir: str = "logs") -> None:
    """
    Route hub logs to stdout and ``<log_dir>/growhub.log``.

    Safe to call more than once: the named handlers are reused and only their
    level follows ``debug``.
    """
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    created = False
    if _named_handler(root, _CONSOLE_HANDLER) is None:
        with suppress(AttributeError, ValueError):
            # Windows consoles default to a legacy code page
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        console = logging.StreamHandler(sys.stdout)
        console.set_name(_CONSOLE_HANDLER)
        console.setFormatter(formatter)
        root.addHandler(console)
        created = True

    if _named_handler(root, _FILE_HANDLER) is None:
        os.makedirs(log_dir, exist_ok=True)
        logfile = RotatingFileHandler(
            os.path.join(log_dir, "growhub.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        logfile.set_name(_FILE_HANDLER)
        logfile.setFormatter(formatter)
        root.addHandler(logfile)
        created = True

    for name in (_CONSOLE_HANDLER, _FILE_HANDLER):
        _named_handler(root, name).setLevel(level)

    if created:
        root.info("Logging initialized at level: %s", logging.getLevelName(level))

    # Flask's request log is noise next to the bus traffic
    if _env_bool("GROWHUB_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    config = AppConfig()
    # Surface relay/schedule mistakes at startup, not at the first tick
    config.relay_map()
    config.controller_options()
    return config
