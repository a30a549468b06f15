from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .base import KeyValueStore, PersistenceError


class SQLiteStore(KeyValueStore):
    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)

    def init_db(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as connection:
                connection.execute(
                    """
                    CREATE TABLE IF NOT EXISTS state (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                connection.commit()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"failed to initialize {self.db_path}: {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._connect() as connection:
                row = connection.execute(
                    "SELECT value FROM state WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to read {key}: {exc}") from exc

        if row is None:
            return default

        try:
            return json.loads(row["value"])
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"stored value for {key} is not valid JSON: {exc}") from exc

    def update(self, key: str, value: Any) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"value for {key} is not JSON serializable: {exc}") from exc

        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO state (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, encoded, now),
                )
                connection.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to write {key}: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        return connection
