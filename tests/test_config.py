import logging
from datetime import time, timedelta

import pytest

from growhub.config import AppConfig, load_config, setup_logging
from growhub.domain.control import ControllerOptions
from growhub.domain.exceptions import ConfigurationError
from growhub.domain.pump_slot import PumpSchedule


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "GROWHUB_ENV",
        "GROWHUB_BUS_PASSWORD",
        "GROWHUB_PUMP_TIMES",
        "GROWHUB_PORT",
        "GROWHUB_LIGHT_RELAY",
        "GROWHUB_PUMP_RELAY",
        "GROWHUB_LIGHT_START",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_match_controller_defaults():
    config = AppConfig()

    assert config.controller_options() == ControllerOptions()
    assert config.relay_map().binding("light").channel == "relay1"
    assert config.http_port == 3000


def test_pump_times_from_environment(monkeypatch):
    monkeypatch.setenv("GROWHUB_PUMP_TIMES", "07:30, 18:45")
    monkeypatch.setenv("GROWHUB_PUMP_DURATION_MINUTES", "2.5")

    options = AppConfig().controller_options()

    assert options.pump_schedules == (PumpSchedule(7, 30), PumpSchedule(18, 45))
    assert options.pump_duration == timedelta(minutes=2.5)


@pytest.mark.parametrize("value", ["09:00", "09:00,15:00,21:00", "9am,3pm", "25:00,15:00"])
def test_invalid_pump_times_rejected(monkeypatch, value):
    monkeypatch.setenv("GROWHUB_PUMP_TIMES", value)

    with pytest.raises(ConfigurationError):
        AppConfig().controller_options()


def test_light_window_from_environment(monkeypatch):
    monkeypatch.setenv("GROWHUB_LIGHT_START", "06:30")

    assert AppConfig().controller_options().light_window_start == time(6, 30)


def test_production_refuses_default_password(monkeypatch):
    monkeypatch.setenv("GROWHUB_ENV", "production")

    with pytest.raises(ConfigurationError, match="default bus password"):
        AppConfig()

    monkeypatch.setenv("GROWHUB_BUS_PASSWORD", "s3cret")
    assert AppConfig().bus_password == "s3cret"


def test_non_numeric_port_rejected(monkeypatch):
    monkeypatch.setenv("GROWHUB_PORT", "web")

    with pytest.raises(ConfigurationError):
        AppConfig()


def test_load_config_rejects_shared_relay_channel(monkeypatch):
    monkeypatch.setenv("GROWHUB_LIGHT_RELAY", "relay2")

    with pytest.raises(ConfigurationError):
        load_config()


def test_setup_logging_does_not_duplicate_handlers(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging(debug=True)
        setup_logging(debug=True)

        names = [getattr(h, "name", "") for h in root.handlers]
        assert names.count("growhub_console") == 1
        assert names.count("growhub_file") == 1
        assert (tmp_path / "logs" / "growhub.log").exists()
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
