"""Centralized exception hierarchy for GrowHub.

All hub exceptions inherit from :class:`GrowHubError` so that the tick's
failure boundary can catch a single base class, yet still match on specific
subclasses where narrower handling is appropriate.

Hierarchy
---------
::

    GrowHubError (base)
    ├── AuthFailure             (bad broker credentials, connection rejected)
    ├── PayloadDecodeFailure    (malformed telemetry or command payload)
    ├── PublishFailure          (transport did not accept a publish)
    ├── StoreUnavailable        (shared state read/merge failed)
    ├── ConfigurationError      (missing / invalid config, fatal at startup)
    └── BrokerUnavailable       (broker unreachable at startup, fatal)
"""

from __future__ import annotations


class GrowHubError(Exception):
    """Base exception for all GrowHub errors.

    Parameters
    ----------
    message:
        Human-readable description, logged server-side.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class AuthFailure(GrowHubError):
    """Client supplied credentials that do not match the configured pair."""

    http_status = 403


class PayloadDecodeFailure(GrowHubError):
    """A telemetry or command payload could not be decoded."""

    http_status = 400


class PublishFailure(GrowHubError):
    """The broker did not accept a message for delivery."""

    http_status = 502


class StoreUnavailable(GrowHubError):
    """The shared state record could not be read or merged."""

    http_status = 503


class ConfigurationError(GrowHubError):
    """Missing or invalid hub configuration."""


class BrokerUnavailable(GrowHubError):
    """The MQTT broker could not be reached at startup."""
