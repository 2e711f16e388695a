"""Repository facades exposing typed accessors over low-level mixins."""

from infrastructure.database.repositories.hub_state import HubStateRepository

__all__ = [
    "HubStateRepository",
]
