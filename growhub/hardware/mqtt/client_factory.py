"""
paho-mqtt client construction for the broker transport.

paho 2.x requires choosing a callback API version; the transport is written
against the v1 callback signatures, so that version is requested whenever the
installed paho knows about it.
"""

from __future__ import annotations

from typing import Any

import paho.mqtt.client as mqtt


def _v1_callback_api() -> Any | None:
    versions = getattr(mqtt, "CallbackAPIVersion", None)
    if versions is None:
        return None
    for name in ("VERSION1", "V1"):
        if hasattr(versions, name):
            return getattr(versions, name)
    return None


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """
    Build a paho client speaking MQTT 3.1.1 (what the relay boards use).

    Args:
        client_id: Client identifier presented to the broker.
        kwargs: Extra keyword arguments for ``mqtt.Client``.
    """
    options: dict[str, Any] = {"client_id": client_id or "", "protocol": mqtt.MQTTv311}
    options.update(kwargs)

    callback_api = _v1_callback_api()
    if callback_api is None:
        return mqtt.Client(**options)
    try:
        return mqtt.Client(callback_api_version=callback_api, **options)
    except TypeError:
        # Builds that expose the enum but not the keyword
        return mqtt.Client(**options)
