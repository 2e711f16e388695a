from __future__ import annotations

from flask import Blueprint, current_app

from growhub.utils.http import safe_route, success_response

status_bp = Blueprint("status", __name__)


@status_bp.get("")
@safe_route("Failed to read hub status")
def status():
    container = current_app.config["CONTAINER"]
    return success_response(container.status())


@status_bp.get("/slots")
@safe_route("Failed to read pump slots")
def pump_slots():
    container = current_app.config["CONTAINER"]
    return success_response(container.controller.slot_status())
