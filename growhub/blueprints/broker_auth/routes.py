"""
HTTP authentication hook for an external MQTT broker.

Brokers with an HTTP auth plugin (e.g. mosquitto-go-auth) POST the connecting
client's credentials here; 200 admits the client, 403 rejects it.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, request

from growhub.domain.exceptions import AuthFailure
from growhub.utils.http import error_response, success_response

logger = logging.getLogger(__name__)

broker_auth_bp = Blueprint("broker_auth", __name__)


def _credentials() -> tuple[str, str | None, str | None]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form
    client_id = data.get("clientid") or data.get("client_id") or ""
    return str(client_id), data.get("username"), data.get("password")


@broker_auth_bp.post("/user")
def authenticate_user():
    container = current_app.config["CONTAINER"]
    client_id, username, password = _credentials()
    try:
        container.bus.authenticate(client_id, username, password)
    except AuthFailure as e:
        return error_response(str(e), 403)
    logger.info("Broker admitted client %s", client_id or "<anonymous>")
    return success_response({"client_id": client_id})


@broker_auth_bp.post("/acl")
def check_acl():
    """Every authenticated client may publish and subscribe to every topic."""
    return success_response()
