"""Metric repository: the query contract between the store and the insights engine.

Writes (device ingestion) insert one typed row per pushed snapshot and archive
the raw payload encrypted. Reads return immutable snapshots, newest first, or
day-bucketed averages. Every call runs on a pooled connection.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from datetime import datetime, timezone
from typing import Any

from vitalsync.core.storage.database import DatabaseError, MetricDatabase
from vitalsync.core.storage.encryption import EncryptionError, FieldEncryptor
from vitalsync.core.storage.models import (
    CATEGORY_COLUMNS,
    CATEGORY_TABLES,
    NUMERIC_CATEGORIES,
    DailyAverage,
    MetricSnapshot,
    RawPayload,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


def _to_iso(value: datetime | str | None) -> str:
    """Normalize a timestamp to a fixed-width UTC ISO 8601 string.

    Fixed width keeps lexicographic order equal to chronological order.
    """
    if value is None:
        value = datetime.now(timezone.utc)
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            value = datetime.fromisoformat(text)
        except ValueError as exc:
            raise RepositoryError(f"Invalid timestamp: {value!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _num(val: Any) -> float | int | None:
    """Coerce a device value to a number, or None when absent/non-numeric.

    NaN and infinities are stored as NULL.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, int):
        # SQLite integers are 64-bit
        return val if -(2**63) <= val < 2**63 else None
    try:
        number = float(val)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _finite(val: Any) -> Any:
    """Stored value as read back; a non-finite REAL reads as missing."""
    if isinstance(val, float) and not math.isfinite(val):
        return None
    return val


def _text(val: Any) -> str | None:
    if val is None:
        return None
    if isinstance(val, str):
        return val
    return json.dumps(val, separators=(",", ":"))


class MetricRepository:
    """Read/write access to per-category metric tables.

    Usage::

        db = MetricDatabase(":memory:")
        db.initialize()
        repo = MetricRepository(db, FieldEncryptor(key))

        await repo.save_snapshot("42", "heart", {"restingHeartRate": 62})
        rows = await repo.fetch_window("42", "heart", since)
    """

    def __init__(
        self, database: MetricDatabase, encryptor: FieldEncryptor | None = None
    ) -> None:
        self._db = database
        self._enc = encryptor

    @property
    def archives_raw_payloads(self) -> bool:
        return self._enc is not None

    @staticmethod
    def _columns(category: str) -> list[str]:
        if category not in CATEGORY_COLUMNS:
            raise RepositoryError(
                f"Unknown category: {category!r}. Valid: {sorted(CATEGORY_COLUMNS)}"
            )
        return list(CATEGORY_COLUMNS[category].values())

    async def _execute(self, fn, *args):
        try:
            return await self._db.run(fn, *args)
        except (sqlite3.Error, DatabaseError) as exc:
            raise RepositoryError(f"Metric store query failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def save_snapshot(
        self,
        user_id: str | None,
        category: str,
        data: dict[str, Any],
        *,
        device_name: str = "UnknownDevice",
        day_label: str | None = None,
        timestamp: datetime | str | None = None,
    ) -> int:
        """Persist one pushed snapshot.

        Args:
            user_id: Opaque user identifier.
            category: One of the seven stored categories.
            data: Device payload keyed by device field names
                (e.g. ``restingHeartRate``). Missing fields are stored as NULL.
            device_name: Label of the pushing device.
            day_label: Optional day label sent by the device.
            timestamp: Snapshot time; defaults to now (UTC).

        Returns:
            The row id of the typed snapshot.
        """
        columns = self._columns(category)
        created_at = _to_iso(timestamp)
        coerce = _num if category in NUMERIC_CATEGORIES else _text
        values = [coerce(data.get(key)) for key in CATEGORY_COLUMNS[category]]
        raw_enc = self._enc.encrypt(data) if self._enc is not None else None

        def _insert(conn: sqlite3.Connection) -> int:
            try:
                if raw_enc is not None:
                    conn.execute(
                        """INSERT INTO device_data
                           (user_id, device_name, endpoint, data_enc, day_label, created_at)
                           VALUES (?, ?, ?, ?, ?, ?)""",
                        (user_id, device_name, category, raw_enc, day_label, created_at),
                    )
                placeholders = ", ".join("?" for _ in range(len(columns) + 3))
                # Table and column names come from the fixed catalog
                cursor = conn.execute(
                    f"INSERT INTO {CATEGORY_TABLES[category]} "
                    f"(user_id, device_name, {', '.join(columns)}, created_at) "
                    f"VALUES ({placeholders})",
                    (user_id, device_name, *values, created_at),
                )
                conn.commit()
            except sqlite3.Error:
                # Archive row and typed row are written together or not at all
                conn.rollback()
                raise
            return cursor.lastrowid

        row_id = await self._execute(_insert)
        logger.info(
            "Stored %s snapshot %d (device=%s)", category, row_id, device_name
        )
        return row_id

    # ------------------------------------------------------------------
    # Window queries
    # ------------------------------------------------------------------

    async def fetch_window(
        self,
        user_id: str,
        category: str,
        since: datetime | str | None = None,
        *,
        limit: int | None = None,
    ) -> list[MetricSnapshot]:
        """Snapshots of one category for a user, newest first.

        Args:
            user_id: Opaque user identifier.
            category: Category name.
            since: Inclusive lower bound on the snapshot time; None = unbounded.
            limit: Optional cap on the number of rows.

        Returns:
            Possibly empty list of snapshots (an unknown user is not an error).
        """
        columns = self._columns(category)
        query = (
            f"SELECT id, user_id, device_name, {', '.join(columns)}, created_at "
            f"FROM {CATEGORY_TABLES[category]} WHERE user_id = ?"
        )
        params: list[Any] = [user_id]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(_to_iso(since))
        query += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(query, params).fetchall()

        rows = await self._execute(_select)
        logger.debug("Fetched %d %s rows for user %s", len(rows), category, user_id)
        return [
            MetricSnapshot(
                id=row["id"],
                user_id=row["user_id"],
                device_name=row["device_name"],
                category=category,
                timestamp=row["created_at"],
                values={col: _finite(row[col]) for col in columns},
            )
            for row in rows
        ]

    async def fetch_daily_averages(
        self,
        user_id: str,
        category: str,
        since: datetime | str | None = None,
    ) -> list[DailyAverage]:
        """Per-calendar-day averages of a numeric category, oldest day first."""
        if category not in NUMERIC_CATEGORIES:
            raise RepositoryError(f"Category {category!r} has no numeric columns")
        columns = self._columns(category)
        averages = ", ".join(f"AVG({col}) AS {col}" for col in columns)
        query = (
            f"SELECT substr(created_at, 1, 10) AS day, COUNT(*) AS samples, {averages} "
            f"FROM {CATEGORY_TABLES[category]} WHERE user_id = ?"
        )
        params: list[Any] = [user_id]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(_to_iso(since))
        query += " GROUP BY day ORDER BY day ASC"

        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(query, params).fetchall()

        rows = await self._execute(_select)
        return [
            DailyAverage(
                day=row["day"],
                samples=row["samples"],
                averages={col: _finite(row[col]) for col in columns},
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Raw payload archive
    # ------------------------------------------------------------------

    async def get_raw_payloads(
        self, endpoint: str, device_name: str, *, limit: int = 50
    ) -> list[RawPayload]:
        """Archived payloads a device pushed to an endpoint, newest first.

        Rows that cannot be decrypted (e.g. archived under a rotated key) are
        logged and skipped.
        """
        if self._enc is None:
            return []

        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                """SELECT id, user_id, device_name, endpoint, data_enc, day_label, created_at
                   FROM device_data WHERE device_name = ? AND endpoint = ?
                   ORDER BY created_at DESC, id DESC LIMIT ?""",
                (device_name, endpoint, limit),
            ).fetchall()

        rows = await self._execute(_select)
        payloads: list[RawPayload] = []
        for row in rows:
            try:
                data = self._enc.decrypt(row["data_enc"])
            except EncryptionError as exc:
                logger.warning("Skipping raw payload %d: %s", row["id"], exc)
                continue
            payloads.append(
                RawPayload(
                    id=row["id"],
                    user_id=row["user_id"],
                    device_name=row["device_name"],
                    endpoint=row["endpoint"],
                    data=data,
                    day_label=row["day_label"],
                    created_at=row["created_at"],
                )
            )
        return payloads

    def count_snapshots(self) -> int:
        """Total number of typed snapshots across the numeric categories."""
        conn = self._db.connection
        return sum(
            conn.execute(f"SELECT COUNT(*) FROM {CATEGORY_TABLES[name]}").fetchone()[0]
            for name in NUMERIC_CATEGORIES
        )
