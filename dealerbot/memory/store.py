"""Key-value store abstractions with SQLite and in-memory implementations."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from dealerbot.core.db import prepare_database, sqlite_connection
from dealerbot.core.errors import StoreError


class KeyValueStore(ABC):
    """Asynchronous JSON key-value store with per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or ``None`` when missing or expired."""

    @abstractmethod
    async def put(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous value and expiry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """List live keys starting with ``prefix``."""


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed store. Blocking calls run in a worker thread."""

    def __init__(self, db_path: Path, clock: Callable[[], float] = time.time) -> None:
        self.db_path = prepare_database(db_path)
        self._clock = clock
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                );

                CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv (expires_at);
                """
            )

    async def get(self, key: str) -> Any | None:
        return await self._run(self._get, key)

    async def put(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self._run(self._put, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._run(self._delete, key)

    async def keys(self, prefix: str) -> list[str]:
        return await self._run(self._keys, prefix)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except (sqlite3.Error, ValueError) as exc:
            raise StoreError(f"{func.__name__.strip('_')} failed: {exc}") from exc

    def _get(self, key: str) -> Any | None:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute("SELECT value, expires_at FROM kv WHERE key = ?", (key,)).fetchone()
            if row is None:
                return None
            if row["expires_at"] is not None and row["expires_at"] <= self._clock():
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                return None
            return json.loads(row["value"])

    def _put(self, key: str, value: Any, ttl_seconds: int | None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        payload = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, expires_at=excluded.expires_at
                """,
                (key, payload, expires_at),
            )

    def _delete(self, key: str) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def _keys(self, prefix: str) -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT key FROM kv
                WHERE key LIKE ? ESCAPE '\\' AND (expires_at IS NULL OR expires_at > ?)
                ORDER BY key
                """,
                (escaped + "%", self._clock()),
            ).fetchall()
        return [row["key"] for row in rows]


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store used by tests and single-worker development runs."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._data.pop(key, None)
            return None
        return json.loads(payload)

    async def put(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (json.dumps(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        now = self._clock()
        return sorted(
            key
            for key, (_, expires_at) in self._data.items()
            if key.startswith(prefix) and (expires_at is None or expires_at > now)
        )
