"""
CampShare — SQLite key/value storage.

Durable local persistence: one row per logical key, each holding a whole
serialized collection. Implements StoragePort. Several processes may point
at the same file; the last full write of a key wins.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from src.ports.storage_port import StorageError

logger = logging.getLogger(__name__)


class SQLiteStorage:
    """SQLite-backed implementation of StoragePort."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.STORAGE_PATH

        self._db_path = db_path
        self._memory_conn: sqlite3.Connection | None = None
        if db_path == ":memory:":
            # a fresh connection would open a fresh empty database
            self._memory_conn = sqlite3.connect(db_path)
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        return sqlite3.connect(self._db_path)

    def _init_db(self) -> None:
        """Create the kv table if it doesn't exist, and migrate schema."""
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key        TEXT PRIMARY KEY,
                        value      TEXT NOT NULL
                    )
                """)
                existing_cols = {
                    row[1] for row in conn.execute("PRAGMA table_info(kv_store)").fetchall()
                }
                if "updated_at" not in existing_cols:
                    conn.execute("ALTER TABLE kv_store ADD COLUMN updated_at TEXT")
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open storage at {self._db_path}: {exc}") from exc
        logger.debug("Key/value table initialized at %s", self._db_path)

    def get(self, key: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Read of {key!r} failed: {exc}") from exc
        if row is None:
            return None
        return row[0]

    def set(self, key: str, value: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, datetime.now().isoformat()),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Write of {key!r} failed: {exc}") from exc
        logger.debug("Stored %s (%d bytes)", key, len(value))

    def remove(self, key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StorageError(f"Delete of {key!r} failed: {exc}") from exc
        logger.debug("Removed %s", key)
