from unittest.mock import patch

import paho.mqtt.client as mqtt

from growhub.hardware.mqtt.client_factory import create_mqtt_client


def test_create_mqtt_client_handles_available_version_flags():
    client = create_mqtt_client("factory-test")

    assert getattr(client, "_client_id", b"").decode() == "factory-test"
    assert getattr(client, "_protocol", None) in (4, getattr(mqtt, "MQTTv311", 4))
    assert hasattr(client, "connect")


def test_create_mqtt_client_retries_without_callback_version():
    calls = []

    def fake_client(**kwargs):
        calls.append(kwargs)
        if "callback_api_version" in kwargs:
            raise TypeError("unexpected keyword argument 'callback_api_version'")
        return "client"

    with patch("growhub.hardware.mqtt.client_factory.mqtt.Client", side_effect=fake_client):
        assert create_mqtt_client("legacy") == "client"

    assert calls[-1]["client_id"] == "legacy"
    assert "callback_api_version" not in calls[-1]
