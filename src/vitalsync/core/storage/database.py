"""SQLite database management for the VitalSync metric store.

Handles schema creation and a bounded pool of connections shared by all
concurrent requests. Blocking SQLite calls run in worker threads; the pool
guarantees a connection is returned only after its worker has finished.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Current schema version
SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- Raw device payload archive (encrypted JSON)
CREATE TABLE IF NOT EXISTS device_data (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT,
    device_name TEXT NOT NULL,
    endpoint    TEXT NOT NULL,
    data_enc    TEXT,
    day_label   TEXT,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS activity_data (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id          TEXT,
    device_name      TEXT NOT NULL,
    steps            INTEGER,
    calories         INTEGER,
    distance         REAL,
    exercise_minutes INTEGER,
    created_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS heart_data (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id            TEXT,
    device_name        TEXT NOT NULL,
    current_heart_rate REAL,
    resting_heart_rate REAL,
    hrv                REAL,
    created_at         TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sleep_data (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT,
    device_name TEXT NOT NULL,
    total_sleep REAL,
    deep_sleep  REAL,
    rem_sleep   REAL,
    sleep_hours REAL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS body_data (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT,
    device_name TEXT NOT NULL,
    weight      REAL,
    bmi         REAL,
    body_fat    REAL,
    lean_mass   REAL,
    vo2_max     REAL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS vitals_data (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id      TEXT,
    device_name  TEXT NOT NULL,
    bp_systolic  REAL,
    bp_diastolic REAL,
    spo2         REAL,
    temperature  REAL,
    created_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS health_data (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT,
    device_name TEXT NOT NULL,
    condition   TEXT,
    allergies   TEXT,
    medications TEXT,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS health_history_data (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         TEXT,
    device_name     TEXT NOT NULL,
    past_conditions TEXT,
    surgeries       TEXT,
    family_history  TEXT,
    history         TEXT,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Window queries filter by user and recency
CREATE INDEX IF NOT EXISTS idx_activity_user_ts ON activity_data(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_heart_user_ts    ON heart_data(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_sleep_user_ts    ON sleep_data(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_body_user_ts     ON body_data(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_vitals_user_ts   ON vitals_data(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_device_endpoint  ON device_data(device_name, endpoint);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class MetricDatabase:
    """SQLite database manager with a bounded connection pool.

    Supports both file-based and in-memory (`:memory:`) databases. In-memory
    mode uses a private shared-cache URI so every pooled connection sees the
    same database; it is used for testing.

    Usage::

        db = MetricDatabase(":memory:", pool_size=4)
        db.initialize()
        rows = await db.run(lambda conn: conn.execute("SELECT 1").fetchall())
        db.close()
    """

    def __init__(self, db_path: str = ":memory:", pool_size: int = 10) -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
            pool_size: Number of pooled connections shared by requests.
        """
        if pool_size < 1:
            raise DatabaseError("pool_size must be at least 1")
        self._db_path = db_path
        self._pool_size = pool_size
        self._conn: sqlite3.Connection | None = None
        self._idle: deque[sqlite3.Connection] = deque()
        self._pooled: list[sqlite3.Connection] = []
        self._slots = asyncio.Semaphore(pool_size)

    @property
    def pool_size(self) -> int:
        return self._pool_size

    @property
    def idle_connections(self) -> int:
        """Number of pooled connections not currently checked out."""
        return len(self._idle)

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the primary connection (schema management, synchronous use).

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the primary connection, ensure the schema, and fill the pool.

        For file-based databases, creates parent directories if needed.
        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return  # Already initialized

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            target, uri = str(db_file), False
        else:
            target, uri = f"file:vitalsync-{uuid.uuid4().hex}?mode=memory&cache=shared", True

        self._conn = self._connect(target, uri)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._ensure_schema()

        for _ in range(self._pool_size):
            conn = self._connect(target, uri)
            self._pooled.append(conn)
            self._idle.append(conn)

        logger.info(
            "Metric database initialized: %s (pool_size=%d)", self._db_path, self._pool_size
        )

    @staticmethod
    def _connect(target: str, uri: bool) -> sqlite3.Connection:
        # Pooled connections are handed to whichever worker thread runs the query
        conn = sqlite3.connect(target, uri=uri, check_same_thread=False, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and record the schema version."""
        conn = self.connection
        conn.executescript(_SCHEMA_V1)

        current_version = self.get_schema_version()
        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    # ------------------------------------------------------------------
    # Pool
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[sqlite3.Connection]:
        """Check a pooled connection out for the duration of the block.

        Waits while all ``pool_size`` connections are in use.

        Raises:
            DatabaseError: If the database is not initialized or was closed.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        async with self._slots:
            if not self._idle:
                raise DatabaseError("Connection pool is closed")
            conn = self._idle.popleft()
            try:
                yield conn
            finally:
                if conn in self._pooled:
                    self._idle.append(conn)

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run ``fn(conn, *args)`` on a pooled connection in a worker thread.

        If the awaiting task is cancelled (e.g. a request timeout), the running
        statement is interrupted and the connection is released only after the
        worker thread has returned.
        """
        async with self.acquire() as conn:
            task = asyncio.ensure_future(asyncio.to_thread(fn, conn, *args))
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                conn.interrupt()
                await asyncio.wait({task})
                if not task.cancelled():
                    # The interrupted statement's error is superseded by the cancellation
                    task.exception()
                raise

    def close(self) -> None:
        """Close the pool and the primary connection."""
        for conn in self._pooled:
            conn.close()
        self._pooled.clear()
        self._idle.clear()
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Metric database closed")

    def __enter__(self) -> MetricDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
