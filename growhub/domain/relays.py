"""
Relay Map
=========
Explicit mapping from a logical relay role ("light", "pump") to the physical
relay board channel that drives it, plus the topic conventions derived from it:

    telemetry:  <device>/state
    command:    <device>/cmd/<channel>/<on|off>
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from growhub.domain.exceptions import ConfigurationError
from growhub.enums.device import RelayCommand, TopicKind

logger = logging.getLogger(__name__)

STATE_SUFFIX = "state"
COMMAND_SEGMENT = "cmd"
_FORBIDDEN_CHARS = frozenset("/+#")


def _validate_segment(kind: str, value: str) -> None:
    if not value or not value.strip():
        raise ConfigurationError(f"Relay {kind} must not be empty")
    bad = _FORBIDDEN_CHARS.intersection(value)
    if bad:
        raise ConfigurationError(
            f"Relay {kind} {value!r} contains reserved topic characters: {''.join(sorted(bad))}"
        )


def state_topic(device: str) -> str:
    return f"{device}/{STATE_SUFFIX}"


def command_topic(device: str, channel: str, command: RelayCommand) -> str:
    return f"{device}/{COMMAND_SEGMENT}/{channel}/{command.value}"


def classify_topic(topic: str) -> tuple[TopicKind, str | None]:
    """
    Classify a topic by name only, never by payload shape.

    Returns:
        (kind, device_prefix) where device_prefix is None for OTHER topics.
    """
    parts = topic.split("/")
    if len(parts) == 2 and parts[0] and parts[1] == STATE_SUFFIX:
        return TopicKind.STATE, parts[0]
    if len(parts) == 4 and parts[0] and parts[1] == COMMAND_SEGMENT and parts[3] in {c.value for c in RelayCommand}:
        return TopicKind.COMMAND, parts[0]
    return TopicKind.OTHER, None


@dataclass(frozen=True)
class RelayBinding:
    """A logical relay role bound to one channel of a relay board."""

    role: str
    device: str
    channel: str

    def __post_init__(self) -> None:
        _validate_segment("role", self.role)
        _validate_segment("device prefix", self.device)
        _validate_segment("channel", self.channel)

    @property
    def state_topic(self) -> str:
        return state_topic(self.device)

    def command_topic(self, command: RelayCommand) -> str:
        return command_topic(self.device, self.channel, command)


class RelayMap:
    """Validated, immutable set of relay bindings."""

    def __init__(self, bindings: Iterable[RelayBinding], *, required_roles: Iterable[str] = ()) -> None:
        by_role: dict[str, RelayBinding] = {}
        by_channel: dict[tuple[str, str], RelayBinding] = {}
        for binding in bindings:
            if binding.role in by_role:
                raise ConfigurationError(f"Duplicate relay role: {binding.role!r}")
            key = (binding.device, binding.channel)
            if key in by_channel:
                raise ConfigurationError(
                    f"Relay roles {by_channel[key].role!r} and {binding.role!r} "
                    f"both bound to {binding.device}/{binding.channel}"
                )
            by_role[binding.role] = binding
            by_channel[key] = binding

        missing = [role for role in required_roles if role not in by_role]
        if missing:
            raise ConfigurationError(f"Relay map is missing required roles: {', '.join(missing)}")

        self._by_role = by_role
        self._by_channel = by_channel

    def __iter__(self) -> Iterator[RelayBinding]:
        return iter(self._by_role.values())

    def __len__(self) -> int:
        return len(self._by_role)

    def __contains__(self, role: object) -> bool:
        return role in self._by_role

    def binding(self, role: str) -> RelayBinding:
        try:
            return self._by_role[role]
        except KeyError:
            raise ConfigurationError(f"Unknown relay role: {role!r}") from None

    def role_for(self, device: str, channel: str) -> str | None:
        binding = self._by_channel.get((device, channel))
        return binding.role if binding else None

    @property
    def devices(self) -> frozenset[str]:
        return frozenset(device for device, _channel in self._by_channel)

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {b.role: {"device": b.device, "channel": b.channel} for b in self}
