from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Sequence


class DatabaseEnvironment:
    """SQLite environment holding one serialized brain per guild."""

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        # The periodic flusher and CLI threads share the connection.
        self._lock = threading.RLock()
        self._bootstrap_schema()

    # ------------------------------------------------------------------ #
    # Schema management
    # ------------------------------------------------------------------ #
    def _bootstrap_schema(self) -> None:
        cur = self._conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS tbl_metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS tbl_brains (
                guild_id      TEXT PRIMARY KEY,
                payload       TEXT NOT NULL,
                trained_spans INTEGER NOT NULL DEFAULT 0,
                updated_at    TEXT DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        cur.close()

    # ------------------------------------------------------------------ #
    # Basic query helpers
    # ------------------------------------------------------------------ #
    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def execute(self, sql: str, params: Sequence | None = None) -> None:
        with self._lock:
            self._conn.execute(sql, params or [])
            self._conn.commit()

    def query(self, sql: str, params: Sequence | None = None):
        with self._lock:
            cur = self._conn.execute(sql, params or [])
            rows = cur.fetchall()
            cur.close()
            return rows

    def scalar(self, sql: str, params: Sequence | None = None, default=None):
        rows = self.query(sql, params)
        if not rows:
            return default
        value = rows[0][0]
        return default if value is None else value

    # ------------------------------------------------------------------ #
    # Metadata helpers
    # ------------------------------------------------------------------ #
    def get_metadata(self, key: str) -> str | None:
        return self.scalar("SELECT value FROM tbl_metadata WHERE key = ?", (key,))

    def set_metadata(self, key: str, value: str) -> None:
        self.execute(
            """
            INSERT INTO tbl_metadata(key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
