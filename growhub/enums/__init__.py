"""
Enums Module
============

Enumeration types shared across the hub.
"""

from growhub.enums.device import RelayCommand, RelayState, TopicKind

__all__ = [
    "RelayCommand",
    "RelayState",
    "TopicKind",
]
