from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from kalendarus.backends.base import Backend
from kalendarus.errors import BackendError, NotEnabledError, NotFoundError
from kalendarus.models import SqliteConfig


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteBackend(Backend):
    """Key/value blobs in a single SQLite table."""

    name = "sqlite"

    def __init__(self, config: SqliteConfig) -> None:
        self.config = config
        self.db_path = Path(config.path)
        self._lock = threading.RLock()
        self._initialized = False

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        if self._initialized:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        schema_sql = """
        CREATE TABLE IF NOT EXISTS state_blobs (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
        with self._connect() as conn:
            conn.executescript(schema_sql)
        self._initialized = True

    def load(self, key: str) -> Any:
        if not self.enabled:
            raise NotEnabledError(self.name)
        try:
            with self._lock:
                self._init_schema()
                with self._connect() as conn:
                    row = conn.execute(
                        """
                        SELECT value
                        FROM state_blobs
                        WHERE key = ?
                        """,
                        (str(key),),
                    ).fetchone()
        except (OSError, sqlite3.Error) as exc:
            raise BackendError(f"could not load {key}: {exc}") from exc
        if row is None:
            raise NotFoundError(f"no state saved under {key}")
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as exc:
            raise BackendError(f"could not decode {key}: {exc}") from exc

    def save(self, key: str, value: Any) -> None:
        if not self.enabled:
            raise NotEnabledError(self.name)
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise BackendError(f"could not encode {key}: {exc}") from exc
        try:
            with self._lock:
                self._init_schema()
                with self._connect() as conn:
                    conn.execute(
                        """
                        INSERT INTO state_blobs(key, value, updated_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                        """,
                        (str(key), payload, _utc_now()),
                    )
                    conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise BackendError(f"could not save {key}: {exc}") from exc
