# src/cache/base_cache_store.py — v2
"""Abstract optimization cache interface.

Implementations must be safe under concurrent ``has``/``record`` calls
from several in-flight image pipelines.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from adaptimg.cache.models import ArtifactStats, CacheEntry, RunStats


class BaseOptimizationCache(ABC):
    """Append-only ledger of content hashes that were fully processed."""

    @abstractmethod
    def load(self) -> None:
        """Read persisted state once, before the build starts."""

    @abstractmethod
    def has(self, content_hash: str) -> bool:
        """Return True if this content hash was already processed."""

    @abstractmethod
    def record(
        self, content_hash: str, output_stats: ArtifactStats | None = None
    ) -> None:
        """Record a processed hash. Existing entries are never rewritten."""

    @abstractmethod
    def flush(self, stats: RunStats | None = None) -> None:
        """Persist the full ledger once, at the end of a run."""

    @abstractmethod
    def clear(self) -> None:
        """Drop all entries, in memory and on disk."""

    @abstractmethod
    def list_entries(self) -> list[CacheEntry]:
        """List all recorded entries."""

    def __contains__(self, content_hash: object) -> bool:
        return isinstance(content_hash, str) and self.has(content_hash)
