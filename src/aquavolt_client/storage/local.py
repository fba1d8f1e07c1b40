# src/aquavolt_client/storage/local.py

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, Optional


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS local_kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class LocalStorageError(Exception):
    """The device-local key-value store could not be read or written."""


class InMemoryLocalStorage:
    """Dict-backed local storage (tests, previews)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.items: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.items.get(key)

    async def set(self, key: str, value: str) -> None:
        self.items[key] = value

    async def remove(self, key: str) -> None:
        self.items.pop(key, None)


class SqliteLocalStorage:
    """
    Very simple SQLite-backed key-value store, one row per key.

    - get(key) -> str | None
    - set(key, value)
    - remove(key)
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._ensure_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self) -> None:
        conn = self._conn()
        try:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()

    # --- Public API ---------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        try:
            conn = self._conn()
            try:
                row = conn.execute("SELECT value FROM local_kv WHERE key = ?", (key,)).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as ex:
            raise LocalStorageError(f"read failed for {key!r}: {ex}") from ex
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        try:
            conn = self._conn()
            try:
                conn.execute(
                    """
                    INSERT INTO local_kv (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as ex:
            raise LocalStorageError(f"write failed for {key!r}: {ex}") from ex

    async def remove(self, key: str) -> None:
        try:
            conn = self._conn()
            try:
                conn.execute("DELETE FROM local_kv WHERE key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as ex:
            raise LocalStorageError(f"delete failed for {key!r}: {ex}") from ex
