"""SQLite-backed key/value index store."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from scanpilot.exceptions import StorageFailure

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS kv (
    key             TEXT PRIMARY KEY,
    value           TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""


class SqliteIndexStore:
    """Whole-value JSON documents stored in a single SQLite table."""

    def __init__(self, db_path: str | Path) -> None:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(str(db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageFailure(f"Could not open {db_path}: {exc}") from exc
        logger.info("Index database ready at %s.", db_path)

    def read(self, key: str) -> dict[str, Any] | None:
        try:
            cur = self._conn.execute("SELECT value FROM kv WHERE key=?", (key,))
            row = cur.fetchone()
        except sqlite3.Error as exc:
            raise StorageFailure(f"Could not read key {key!r}: {exc}") from exc
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as exc:
            raise StorageFailure(f"Corrupt value under key {key!r}: {exc}") from exc

    def write(self, key: str, value: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            self._conn.execute(
                "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
                "updated_at=excluded.updated_at",
                (key, json.dumps(value), now),
            )
            self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StorageFailure(f"Could not write key {key!r}: {exc}") from exc

    def close(self) -> None:
        self._conn.close()
