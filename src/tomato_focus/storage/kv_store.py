# src/tomato_focus/storage/kv_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SqliteKeyValueStore:
    """
    SQLite key-value store for JSON blobs.

    One table (kv: key -> JSON text). Values are opaque to the store: whatever
    json.dumps accepts goes in, json.loads comes back out.

    Thread-safety:
    - each call opens its own SQLite connection
    - async methods run the blocking SQLite work in a worker thread
    """

    def __init__(self, db_path: str | Path = "state.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("KeyValueStore ready db=%s", self._db_path)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def get_sync(self, keys: Iterable[str]) -> dict[str, Any]:
        wanted = [str(k) for k in keys]
        if not wanted:
            return {}

        conn = self._get_conn()
        try:
            placeholders = ",".join("?" for _ in wanted)
            rows = conn.execute(
                f"SELECT key, value FROM kv WHERE key IN ({placeholders})",
                wanted,
            ).fetchall()
        finally:
            conn.close()

        out: dict[str, Any] = {}
        for row in rows:
            try:
                out[row["key"]] = json.loads(row["value"])
            except ValueError:
                logger.warning("Corrupt JSON in kv store for key=%s; ignoring", row["key"])
        return out

    def set_sync(self, entries: dict[str, Any]) -> None:
        if not entries:
            return

        now = time.time()
        payload = [(str(k), json.dumps(v, ensure_ascii=False), now) for k, v in entries.items()]

        conn = self._get_conn()
        try:
            conn.executemany(
                """
                INSERT INTO kv(key, value, updated_at) VALUES(?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                payload,
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("kv set keys=%s", [k for k, _, _ in payload])

    # ---- public async API (KeyValueStore port) ----

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        return await asyncio.to_thread(self.get_sync, list(keys))

    async def set(self, entries: dict[str, Any]) -> None:
        await asyncio.to_thread(self.set_sync, dict(entries))
