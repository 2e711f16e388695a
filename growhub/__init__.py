from __future__ import annotations

from typing import TYPE_CHECKING

from flask import Flask
from werkzeug.exceptions import HTTPException

if TYPE_CHECKING:
    from growhub.services.container import HubContainer

__version__ = "1.0.0"


def create_app(container: "HubContainer") -> Flask:
    """Build the Flask app serving the broker auth hook and hub status."""
    from growhub.blueprints.broker_auth import broker_auth_bp
    from growhub.blueprints.status import status_bp
    from growhub.utils.http import error_response, safe_error

    flask_app = Flask(__name__)
    flask_app.config.update(container.config.as_flask_config())
    flask_app.config["CONTAINER"] = container

    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)
        return safe_error(exc, 500, context="unhandled")

    flask_app.register_blueprint(broker_auth_bp, url_prefix="/mqtt/auth")
    flask_app.register_blueprint(status_bp, url_prefix="/status")
    return flask_app
