# src/manifest/store.py — v2
"""Manifest store: build time writes it, runtime resolves against it.

The file is read fully on load and replaced atomically on save. Saving
is skipped when nothing changed since load, so an unchanged rebuild
performs zero manifest writes.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from adaptimg.cache.json_store import atomic_write_text
from adaptimg.manifest.models import (
    FormatVariant,
    ManifestArtifact,
    ManifestData,
    ManifestEntry,
)

logger = logging.getLogger(__name__)

_ADAPTER: TypeAdapter[ManifestData] = TypeAdapter(ManifestData)


class Manifest:
    """Mapping of (source, placement, viewport) to optimized artifacts."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._data: ManifestData = {}
        self._saved: ManifestData = {}
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Path | str) -> Manifest:
        """Read a manifest file. Missing or unreadable files load empty."""
        manifest = cls(path)
        p = Path(path)
        if not p.exists():
            return manifest
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
            manifest._data = _ADAPTER.validate_python(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", p, e)
            manifest._data = {}
        manifest._saved = copy.deepcopy(manifest._data)
        logger.debug("Loaded manifest with %d sources", len(manifest._data))
        return manifest

    @property
    def path(self) -> Path | None:
        return self._path

    # --- Build side ---

    def write(self, entry: ManifestEntry) -> None:
        """Insert or replace the artifact for one (source, placement, viewport, format)."""
        variant = FormatVariant(
            path=entry.output_path, size=entry.byte_size, quality=entry.quality_used
        )
        with self._lock:
            viewports = self._data.setdefault(entry.source_path, {}).setdefault(
                entry.placement_id, {}
            )
            current = viewports.get(entry.viewport)
            formats = dict(current.formats) if current is not None else {}
            formats[entry.format] = variant
            primary = next(iter(formats.values()))
            viewports[entry.viewport] = ManifestArtifact(
                path=primary.path,
                width=entry.width,
                height=entry.height,
                size=primary.size,
                quality=primary.quality,
                formats=formats,
                blurhash=entry.blurhash,
                dominant_color=entry.dominant_color,
            )

    def remove_source(self, source_path: str) -> bool:
        """Forget every artifact of a source. Returns True if any were recorded."""
        with self._lock:
            return self._data.pop(source_path, None) is not None

    @property
    def is_dirty(self) -> bool:
        with self._lock:
            return self._data != self._saved

    def save(self, path: Path | str | None = None) -> bool:
        """Atomically write the manifest if it changed. Returns True if written."""
        target = Path(path) if path is not None else self._path
        if target is None:
            raise ValueError("Manifest has no path to save to")
        with self._lock:
            if self._data == self._saved and target.exists():
                logger.debug("Manifest unchanged, not writing %s", target)
                return False
            payload = _ADAPTER.dump_python(
                self._data, mode="json", by_alias=True, exclude_none=True
            )
            atomic_write_text(target, json.dumps(payload, indent=2))
            self._saved = copy.deepcopy(self._data)
        logger.info("Manifest saved to %s", target)
        return True

    # --- Runtime side ---

    def lookup(
        self, source_path: str, placement_id: str, viewport: str
    ) -> ManifestArtifact | None:
        with self._lock:
            return self._data.get(source_path, {}).get(placement_id, {}).get(viewport)

    def resolve(
        self,
        source_path: str,
        placement_id: str,
        viewport: str,
        fmt: str | None = None,
    ) -> str:
        """Artifact path for the key, or ``source_path`` itself on a miss."""
        artifact = self.lookup(source_path, placement_id, viewport)
        if artifact is None:
            logger.debug(
                "Manifest miss for %s [%s/%s], serving original",
                source_path,
                placement_id,
                viewport,
            )
            return source_path
        variant = artifact.variant(fmt)
        return variant.path if variant is not None else source_path

    def placements(self, source_path: str) -> dict[str, dict[str, ManifestArtifact]]:
        with self._lock:
            return copy.deepcopy(self._data.get(source_path, {}))

    @property
    def sources(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def artifact_count(self) -> int:
        """Number of encoded files referenced by the manifest."""
        with self._lock:
            return sum(
                max(len(artifact.formats), 1)
                for placements in self._data.values()
                for viewports in placements.values()
                for artifact in viewports.values()
            )
