import base64
from unittest.mock import patch

import pytest

from growhub import create_app
from growhub.config import AppConfig
from growhub.domain.exceptions import StoreUnavailable
from growhub.services.container import HubContainer


@pytest.fixture()
def hub_config(tmp_path):
    return AppConfig(
        environment="testing",
        database_path=str(tmp_path / "growhub.db"),
        audit_log_path=str(tmp_path / "logs" / "audit.log"),
        enable_mqtt=False,
        enable_serial=False,
    )


@pytest.fixture()
def container(hub_config):
    container = HubContainer.build(hub_config, offline=True)
    yield container
    container.shutdown()


@pytest.fixture()
def client(container):
    app = create_app(container)
    app.config["TESTING"] = True
    return app.test_client()


def encoded(password):
    return base64.b64encode(password.encode("utf-8")).decode("ascii")


def test_broker_auth_accepts_valid_json_credentials(client):
    response = client.post(
        "/mqtt/auth/user",
        json={"clientid": "esp32lr20", "username": "admin", "password": encoded("root")},
    )

    assert response.status_code == 200
    assert response.get_json()["ok"] is True
    assert response.get_json()["data"] == {"client_id": "esp32lr20"}


def test_broker_auth_accepts_form_credentials(client):
    response = client.post(
        "/mqtt/auth/user",
        data={"clientid": "hydroponic_kit", "username": "admin", "password": encoded("root")},
    )

    assert response.status_code == 200


def test_broker_auth_rejects_wrong_password(client, container):
    response = client.post(
        "/mqtt/auth/user",
        data={"clientid": "esp32lr20", "username": "admin", "password": encoded("hunter2")},
    )

    assert response.status_code == 403
    assert response.get_json()["ok"] is False
    assert container.bus.health_status.rejected_authentications == 1


def test_broker_auth_rejects_missing_fields(client):
    response = client.post("/mqtt/auth/user", data={})

    assert response.status_code == 403


@pytest.mark.parametrize(
    "body",
    [
        {"clientid": "esp32lr20", "username": 1, "password": "cm9vdA=="},
        {"clientid": "esp32lr20", "username": "admin", "password": 42},
        {"clientid": "esp32lr20", "username": ["admin"], "password": {"p": "cm9vdA=="}},
    ],
)
def test_broker_auth_rejects_non_string_credentials(client, container, body):
    response = client.post("/mqtt/auth/user", json=body)

    assert response.status_code == 403
    assert response.get_json()["ok"] is False
    assert container.bus.health_status.rejected_authentications == 1


def test_status_reports_snapshot_bus_and_controller(client, container):
    container.bus.start()
    container.bus.publish("esp32lr20/state", {"relay1": "on", "relay2": "off"})

    response = client.get("/status")

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["snapshot"]["relay_states"] == {"light": "on", "pump": "off"}
    assert data["bus"]["is_connected"] is True
    assert data["controller"]["stats"]["ticks_run"] == 0
    assert [slot["start"] for slot in data["controller"]["pump_slots"]] == ["09:00", "15:00"]
    assert data["relays"]["light"] == {"device": "esp32lr20", "channel": "relay1"}


def test_status_slots(client):
    response = client.get("/status/slots")

    assert response.status_code == 200
    assert len(response.get_json()["data"]) == 2


def test_status_store_unavailable_returns_503(client, container):
    with patch.object(container.repository, "read_snapshot", side_effect=StoreUnavailable("locked")):
        response = client.get("/status")

    assert response.status_code == 503
    assert response.get_json()["ok"] is False


def test_unknown_route_returns_json_404(client):
    response = client.get("/nope")

    assert response.status_code == 404
    assert response.get_json()["ok"] is False
