# src/cache/json_store.py — v2
"""JSON file-backed optimization cache (the default backend).

The file is read fully once by ``load()`` and replaced atomically by
``flush()``; readers never observe a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from adaptimg.cache.base_cache_store import BaseOptimizationCache
from adaptimg.cache.models import ArtifactStats, CacheEntry, CacheFile, RunStats

logger = logging.getLogger(__name__)


class JsonOptimizationCache(BaseOptimizationCache):
    """Process-local ledger persisted as a single JSON document."""

    def __init__(self, cache_file: Path | str) -> None:
        self._path = Path(cache_file).expanduser()
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._last_stats = RunStats()
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def last_stats(self) -> RunStats:
        """Stats persisted by the previous run (or the last flush)."""
        return self._last_stats

    def load(self) -> None:
        """Load persisted hashes. A missing or corrupt file starts fresh."""
        with self._lock:
            self._entries = {}
            self._loaded = True
            if not self._path.exists():
                logger.info("Starting fresh optimization (no cache found)")
                return
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
                data = CacheFile.model_validate(raw)
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.warning("Ignoring unreadable cache file %s: %s", self._path, e)
                return

            loaded_at = data.last_run or datetime.now(timezone.utc)
            for content_hash in data.processed_hashes:
                self._entries[content_hash] = data.entries.get(
                    content_hash,
                    CacheEntry(content_hash=content_hash, processed_at=loaded_at),
                )
            self._last_stats = data.stats
            logger.info(
                "Loaded cache with %d processed images", len(self._entries)
            )

    def has(self, content_hash: str) -> bool:
        with self._lock:
            return content_hash in self._entries

    def record(
        self, content_hash: str, output_stats: ArtifactStats | None = None
    ) -> None:
        with self._lock:
            if content_hash in self._entries:
                return
            self._entries[content_hash] = CacheEntry(
                content_hash=content_hash,
                processed_at=datetime.now(timezone.utc),
                output_stats=output_stats or ArtifactStats(),
            )

    def flush(self, stats: RunStats | None = None) -> None:
        """Write the whole ledger via temp file + os.replace."""
        with self._lock:
            if stats is not None:
                self._last_stats = stats
            payload = CacheFile(
                processed_hashes=list(self._entries),
                last_run=datetime.now(timezone.utc),
                stats=self._last_stats,
                entries=dict(self._entries),
            )
            text = payload.model_dump_json(by_alias=True, indent=2)
            atomic_write_text(self._path, text)
        logger.info("Cache saved (%d hashes) to %s", len(self._entries), self._path)

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
            self._last_stats = RunStats()
            if self._path.exists():
                self._path.unlink()
                logger.info("Cache cleared: %s", self._path)
            else:
                logger.info("No cache to clear")

    def list_entries(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` atomically (same-directory temp file)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
