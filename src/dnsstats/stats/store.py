"""SQLite persistence for closed hourly statistics buckets."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from typing import Iterable, List

from .errors import StatsStorageError
from .unit import DEFAULT_TOP_N, TimeBucket

logger = logging.getLogger(__name__)


class StatsSQLiteStore:
    """SQLite-backed persistent store of hourly buckets.

    Inputs (constructor):
        db_path: Filesystem path to the SQLite database file.
        top_n: Capacity of top-N trackers for buckets rebuilt on load.

    Outputs:
        StatsSQLiteStore instance holding one ``units`` row per hour, keyed by
        unit id, with the bucket serialized as JSON text.

    Writes happen from the rotation thread and on close only; the hot
    ``update`` path never touches the database.

    Example:
        >>> store = StatsSQLiteStore("./var/stats.db")  # doctest: +SKIP
        >>> store.save_units([bucket])  # doctest: +SKIP
        >>> [b.unit_id for b in store.load_units(0)]  # doctest: +SKIP
        [481234]
    """

    def __init__(self, db_path: str, top_n: int = DEFAULT_TOP_N) -> None:
        self._db_path = db_path
        self._top_n = top_n
        self._lock = threading.RLock()
        self._conn = self._init_connection()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _init_connection(self) -> sqlite3.Connection:
        """Create SQLite connection and ensure schema exists.

        Raises:
            StatsStorageError: when the file cannot be opened as a database.
        """
        dir_path = os.path.dirname(self._db_path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)

        try:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StatsStorageError(
                f"cannot open statistics database {self._db_path}: {exc}"
            ) from exc

        try:
            try:
                conn.execute("PRAGMA journal_mode=WAL")
            except sqlite3.DatabaseError:
                logger.debug("StatsSQLiteStore: WAL journal mode unavailable")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS units (
                    unit_id INTEGER PRIMARY KEY,
                    data    TEXT NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.close()
            raise StatsStorageError(
                f"cannot open statistics database {self._db_path}: {exc}"
            ) from exc
        return conn

    def save_units(self, buckets: Iterable[TimeBucket]) -> int:
        """Insert or replace buckets in a single transaction.

        Inputs:
            buckets: TimeBuckets to persist.

        Outputs:
            Number of rows written.

        Raises:
            StatsStorageError: on SQLite failure.
        """
        rows = [(b.unit_id, json.dumps(b.to_dict(), separators=(",", ":"))) for b in buckets]
        if not rows:
            return 0
        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    "INSERT INTO units (unit_id, data) VALUES (?, ?) "
                    "ON CONFLICT(unit_id) DO UPDATE SET data = excluded.data",
                    rows,
                )
        except sqlite3.Error as exc:
            raise StatsStorageError(f"cannot write statistics units: {exc}") from exc
        return len(rows)

    def load_units(self, min_unit_id: int) -> List[TimeBucket]:
        """Load persisted buckets with ``unit_id >= min_unit_id``, oldest first.

        Raises:
            StatsStorageError: when the table cannot be read or a row does not
            decode into a bucket.
        """
        buckets: List[TimeBucket] = []
        try:
            with self._lock:
                cur = self._conn.execute(
                    "SELECT unit_id, data FROM units WHERE unit_id >= ? ORDER BY unit_id",
                    (int(min_unit_id),),
                )
                rows = cur.fetchall()
        except sqlite3.Error as exc:
            raise StatsStorageError(f"cannot read statistics units: {exc}") from exc

        for unit_id, data in rows:
            try:
                payload = json.loads(data)
            except (TypeError, ValueError) as exc:
                raise StatsStorageError(
                    f"statistics unit {unit_id} is not valid JSON: {exc}"
                ) from exc
            if not isinstance(payload, dict):
                raise StatsStorageError(f"statistics unit {unit_id} is not an object")
            buckets.append(TimeBucket.from_dict(payload, top_n=self._top_n))
        return buckets

    def delete_before(self, unit_id: int) -> None:
        """Delete buckets older than ``unit_id``."""
        try:
            with self._lock, self._conn:
                self._conn.execute("DELETE FROM units WHERE unit_id < ?", (int(unit_id),))
        except sqlite3.Error as exc:
            raise StatsStorageError(f"cannot delete statistics units: {exc}") from exc

    def clear(self) -> None:
        """Drop the database file and start over with an empty schema.

        Also recovers from a database file that no longer opens or reads.
        """
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:  # pragma: no cover
                logger.debug("StatsSQLiteStore: close before clear failed", exc_info=True)
            remove_database_files(self._db_path)
            self._conn = self._init_connection()

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:  # pragma: no cover
                logger.exception("Error while closing StatsSQLiteStore connection")


def remove_database_files(db_path: str) -> None:
    """Remove a SQLite database file and its WAL/SHM companions if present.

    Raises:
        StatsStorageError: when a file exists but cannot be removed.
    """
    for path in (db_path, db_path + "-wal", db_path + "-shm"):
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise StatsStorageError(f"cannot remove {path}: {exc}") from exc
