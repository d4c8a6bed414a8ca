# src/runtime/delivery_store.py — v1
"""Persistent response stores backing the delivery cache.

``SqliteDeliveryStore`` keeps responses across sessions (stdlib sqlite3);
``MemoryDeliveryStore`` is process-local.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class CachedResponse(BaseModel):
    """A stored image response keyed by request URL."""

    url: str
    status: int = 200
    content_type: str = "application/octet-stream"
    body: bytes = b""
    stored_at: float = 0.0
    fallback: bool = False

    @property
    def size(self) -> int:
        return len(self.body)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class StoreEntryInfo(BaseModel):
    url: str
    size: int
    stored_at: float


class BaseDeliveryStore(ABC):
    """URL-addressed response storage."""

    @abstractmethod
    async def get(self, url: str) -> CachedResponse | None:
        """Stored response for ``url``, or None."""

    @abstractmethod
    async def put(self, response: CachedResponse) -> None:
        """Insert or replace the response for ``response.url``."""

    @abstractmethod
    async def delete(self, url: str) -> None:
        """Remove one entry (no error if absent)."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    async def list_entries(self) -> list[StoreEntryInfo]:
        """Size and age of every entry."""

    async def total_bytes(self) -> int:
        return sum(e.size for e in await self.list_entries())

    def close(self) -> None:
        """Release resources."""


class MemoryDeliveryStore(BaseDeliveryStore):
    def __init__(self) -> None:
        self._entries: dict[str, CachedResponse] = {}

    async def get(self, url: str) -> CachedResponse | None:
        return self._entries.get(url)

    async def put(self, response: CachedResponse) -> None:
        self._entries[response.url] = response

    async def delete(self, url: str) -> None:
        self._entries.pop(url, None)

    async def clear(self) -> None:
        self._entries.clear()

    async def list_entries(self) -> list[StoreEntryInfo]:
        return [
            StoreEntryInfo(url=r.url, size=r.size, stored_at=r.stored_at)
            for r in self._entries.values()
        ]


_SCHEMA = """
CREATE TABLE IF NOT EXISTS responses (
    url TEXT PRIMARY KEY,
    status INTEGER NOT NULL,
    content_type TEXT NOT NULL,
    body BLOB NOT NULL,
    size INTEGER NOT NULL,
    stored_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_stored_at ON responses(stored_at);
"""


class SqliteDeliveryStore(BaseDeliveryStore):
    """SQLite-backed store that survives process restarts."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    @property
    def path(self) -> Path:
        return self._db_path

    async def get(self, url: str) -> CachedResponse | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT status, content_type, body, stored_at FROM responses WHERE url = ?",
                (url,),
            ).fetchone()
        if row is None:
            return None
        return CachedResponse(
            url=url,
            status=row[0],
            content_type=row[1],
            body=bytes(row[2]),
            stored_at=row[3],
        )

    async def put(self, response: CachedResponse) -> None:
        with self._lock:
            self._conn.execute(
                """INSERT OR REPLACE INTO responses
                   (url, status, content_type, body, size, stored_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    response.url,
                    response.status,
                    response.content_type,
                    sqlite3.Binary(response.body),
                    response.size,
                    response.stored_at,
                ),
            )
            self._conn.commit()

    async def delete(self, url: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM responses WHERE url = ?", (url,))
            self._conn.commit()

    async def clear(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM responses")
            self._conn.commit()
        logger.info("Delivery cache cleared: %s", self._db_path)

    async def list_entries(self) -> list[StoreEntryInfo]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT url, size, stored_at FROM responses ORDER BY stored_at"
            ).fetchall()
        return [StoreEntryInfo(url=r[0], size=r[1], stored_at=r[2]) for r in rows]

    async def total_bytes(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COALESCE(SUM(size), 0) FROM responses"
            ).fetchone()
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            self._conn.close()
