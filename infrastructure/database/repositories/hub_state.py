from __future__ import annotations

import logging
import sqlite3

from growhub.domain.exceptions import StoreUnavailable
from growhub.domain.snapshot import READING_FIELDS, DeviceReport, HubSnapshot
from growhub.enums.device import RelayState
from growhub.utils.time import parse_stored_timestamp, iso_now
from infrastructure.database.ops.hub_state import HubStateOperations

logger = logging.getLogger(__name__)


class HubStateRepository:
    """Facade giving the controller a snapshot read and the state-sync path a merge."""

    def __init__(self, backend: HubStateOperations) -> None:
        self._backend = backend

    def read_snapshot(self) -> HubSnapshot:
        try:
            row, relays = self._backend.load_hub_state()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Failed to read hub state: {exc}") from exc

        relay_states: dict[str, RelayState] = {}
        for relay in relays:
            state = RelayState.parse(relay["state"])
            if state is not None:
                relay_states[relay["role"]] = state

        return HubSnapshot(
            relay_states=relay_states,
            updated_at=parse_stored_timestamp(row.get("updated_at")),
            **{name: row.get(name) for name in READING_FIELDS},
        )

    def apply_relay_update(self, report: DeviceReport) -> bool:
        """
        Merge a decoded device report into the shared record.

        Unknown reading fields are ignored. Returns False if nothing in the
        report was applicable.
        """
        readings = {name: value for name, value in report.readings.items() if name in READING_FIELDS}
        ignored = set(report.readings) - set(readings)
        if ignored:
            logger.debug("Ignoring unknown fields from %s: %s", report.source, sorted(ignored))

        relay_states = {role: RelayState(state).value for role, state in report.relay_states.items()}
        if not readings and not relay_states:
            return False

        try:
            self._backend.merge_hub_state(readings, relay_states, iso_now())
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Failed to merge report from {report.source}: {exc}") from exc
        logger.debug("Merged report from %s (readings=%s relays=%s)", report.source, readings, relay_states)
        return True
