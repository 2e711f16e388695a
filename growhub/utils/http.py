"""JSON envelopes for the hub's HTTP endpoints.

Every response is ``{"ok": bool, "data": ..., "error": ...}``; error bodies
never carry exception text for 5xx statuses.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import Response, jsonify

from growhub.utils.time import iso_now

logger = logging.getLogger(__name__)

_SERVER_ERROR_MESSAGES = {
    502: "Broker did not accept the message",
    503: "Hub state temporarily unavailable",
}


def _envelope(ok: bool, status: int, data: Any = None, error: dict[str, Any] | None = None) -> Response:
    response = jsonify({"ok": ok, "data": data, "error": error})
    response.status_code = status
    return response


def success_response(data: Any = None, status: int = 200) -> Response:
    return _envelope(True, status, data=data)


def error_response(message: str, status: int = 400, **details: Any) -> Response:
    error: dict[str, Any] = {"message": message, "status": status, "timestamp": iso_now(timespec="seconds")}
    if details:
        error["details"] = details
    return _envelope(False, status, error=error)


def safe_error(exc: BaseException, status: int = 500, *, context: str = "") -> Response:
    """Log ``exc`` with its traceback and answer with a generic message."""
    logger.error("Request failed [%s] %s: %s", status, context, exc, exc_info=exc)
    return error_response(_SERVER_ERROR_MESSAGES.get(status, "An internal error occurred"), status)


def safe_route(context: str) -> Callable:
    """Turn GrowHubError into its ``http_status``; anything else becomes a logged 500."""
    from growhub.domain.exceptions import GrowHubError

    def decorator(view: Callable) -> Callable:
        @functools.wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return view(*args, **kwargs)
            except GrowHubError as exc:
                if exc.http_status >= 500:
                    return safe_error(exc, exc.http_status, context=context)
                return error_response(str(exc) or context, exc.http_status)
            except Exception as exc:
                return safe_error(exc, 500, context=context)

        return wrapper

    return decorator
