# src/cache/models.py — v2
"""Cache domain models: SourceFingerprint, CacheEntry, RunStats, CacheFile."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SourceFingerprint(BaseModel):
    """Stable identity of a source image: content + size + modification time."""

    model_config = ConfigDict(frozen=True)

    path: str
    content_hash: str
    size_bytes: int
    mtime_ms: int


class ArtifactStats(BaseModel):
    """Output statistics recorded for a processed source image."""

    artifacts: int = 0
    original_size: int = 0
    output_bytes: int = 0
    saved_bytes: int = 0


class CacheEntry(BaseModel):
    """Single ledger entry: a content hash that has been fully processed."""

    content_hash: str
    processed_at: datetime
    output_stats: ArtifactStats = Field(default_factory=ArtifactStats)


class RunStats(BaseModel):
    """Build counters persisted alongside the processed hashes."""

    model_config = ConfigDict(populate_by_name=True)

    processed: int = 0
    skipped: int = 0
    errors: int = 0
    total_saved: int = Field(default=0, alias="totalSaved")


class CacheFile(BaseModel):
    """On-disk layout of the optimization cache (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    processed_hashes: list[str] = Field(default_factory=list, alias="processedHashes")
    last_run: datetime | None = Field(default=None, alias="lastRun")
    stats: RunStats = Field(default_factory=RunStats)
    entries: dict[str, CacheEntry] = Field(default_factory=dict)
