"""Durable key/value state shared by every running instance."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Protocol

from .config import DB_PATH, ensure_dirs

logger = logging.getLogger(__name__)

# Keys
ENABLED_KEY = "auto-accept-enabled-global"
BACKGROUND_MODE_KEY = "auto-accept-background-mode"
BANNED_COMMANDS_KEY = "auto-accept-banned-commands"
FREQ_KEY = "auto-accept-frequency"
PRO_KEY = "auto-accept-isPro"
PLAN_KEY = "auto-accept-plan"
TRIAL_START_KEY = "auto-accept-trial-start"
TRIAL_NOTIFIED_KEY = "auto-accept-trial-notified"
USER_ID_KEY = "auto-accept-userId"


def lease_key(ide: str) -> str:
    return f"{ide.strip().lower() or 'code'}-instance-lock"


class DurableKV(Protocol):
    """Process-wide persistent map. Last writer wins, no transactions."""

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS kv_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SQLiteKV:
    """DurableKV backed by a single SQLite table of JSON values.

    Several processes may open the same file; SQLite serializes the writes
    and the last one wins.
    """

    def __init__(self, db_path: str | None = None) -> None:
        ensure_dirs()
        self._db_path = db_path or str(DB_PATH)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_CREATE_TABLE)

    def get_sync(self, key: str, default: Any = None) -> Any:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv_state WHERE key = ?", (key,)).fetchone()
        if not row:
            return default
        try:
            return json.loads(row["value"])
        except ValueError:
            logger.warning("Discarding unreadable value for %s", key)
            return default

    def set_sync(self, key: str, value: Any) -> None:
        now = datetime.now(timezone.utc).isoformat()
        payload = json.dumps(value)
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO kv_state (key, value, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                (key, payload, now),
            )

    def keys(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT key FROM kv_state ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    async def get(self, key: str, default: Any = None) -> Any:
        return await asyncio.to_thread(self.get_sync, key, default)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self.set_sync, key, value)
