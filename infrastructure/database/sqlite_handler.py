import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from infrastructure.database.ops.hub_state import HubStateOperations

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS HubState (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        light_intensity REAL,
        temperature REAL,
        humidity REAL,
        pressure REAL,
        gas_resistance REAL,
        water_level REAL,
        ph REAL,
        ec REAL,
        water_temperature REAL,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS RelayStates (
        role TEXT PRIMARY KEY,
        state TEXT NOT NULL CHECK (state IN ('on', 'off')),
        updated_at TEXT NOT NULL
    )
    """,
)


class SQLiteDatabaseHandler(HubStateOperations):
    """
    Owner of the hub's single SQLite connection.

    The bus dispatch thread merges telemetry while controller ticks read
    snapshots. Each of those runs as one ``connection()`` block, which holds
    the handler lock and commits (or rolls back) at the end, so a reader never
    sees half of a merge. The lock is never held across a whole tick.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None

        if database_path != MEMORY_DATABASE:
            parent = Path(database_path).parent
            if not parent.exists():
                parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    def init_db(self) -> None:
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        with self._lock:
            if self._connection is None:
                self._connection = self._open_connection()
            return self._connection

    def _open_connection(self) -> sqlite3.Connection:
        # Shared between the bus thread, timer workers and Flask
        connection = sqlite3.connect(self._database_path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        try:
            if self._database_path != MEMORY_DATABASE:
                connection.execute("PRAGMA journal_mode=WAL")
            # SD-card friendly: fewer fsyncs, temp tables in RAM
            connection.execute("PRAGMA synchronous=NORMAL")
            connection.execute("PRAGMA temp_store=MEMORY")
        except sqlite3.Error:
            connection.close()
            raise
        return connection

    def close_db(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Run a statement group atomically under the handler lock."""
        with self._lock:
            conn = self.get_db()
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    def create_tables(self) -> None:
        with self.connection() as db:
            for statement in _SCHEMA:
                db.execute(statement)
        logger.info("Database tables ready (%s)", self._database_path)
