from __future__ import annotations

import logging
import sqlite3
from typing import Any, Mapping

from growhub.domain.snapshot import READING_FIELDS

logger = logging.getLogger(__name__)


class HubStateOperations:
    """Single-row hub state CRUD helpers mixed into the database handler."""

    def _ensure_hub_state_row(self, db: sqlite3.Connection) -> None:
        # First boot: lazily create the default record
        cursor = db.execute("INSERT OR IGNORE INTO HubState (id) VALUES (1)")
        if cursor.rowcount:
            logger.info("Created default hub state record")

    def load_hub_state(self) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """Return (state row, relay rows) read in one transaction."""
        with self.connection() as db:
            self._ensure_hub_state_row(db)
            row = db.execute("SELECT * FROM HubState WHERE id = 1").fetchone()
            relays = db.execute("SELECT role, state, updated_at FROM RelayStates").fetchall()
        return dict(row), [dict(r) for r in relays]

    def merge_hub_state(
        self,
        readings: Mapping[str, float],
        relay_states: Mapping[str, str],
        updated_at: str,
    ) -> None:
        """Last-write-wins merge of readings and relay states."""
        columns = [name for name in readings if name in READING_FIELDS]
        with self.connection() as db:
            self._ensure_hub_state_row(db)
            if columns:
                assignments = ", ".join(f"{name} = ?" for name in columns)
                db.execute(
                    f"UPDATE HubState SET {assignments}, updated_at = ? WHERE id = 1",
                    (*[readings[name] for name in columns], updated_at),
                )
            for role, state in relay_states.items():
                db.execute(
                    """
                    INSERT INTO RelayStates (role, state, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(role) DO UPDATE SET state = excluded.state, updated_at = excluded.updated_at
                    """,
                    (role, state, updated_at),
                )
            if relay_states and not columns:
                db.execute("UPDATE HubState SET updated_at = ? WHERE id = 1", (updated_at,))
