# src/pipeline/build.py — v2
"""Build runner: scan -> hash gate -> transcode -> manifest -> cache.

Independent source images run in parallel on a bounded thread pool. The
cache and manifest are read once before the run and written once at the
end. Per-image failures are counted and never abort the run.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from adaptimg.cache.base_cache_store import BaseOptimizationCache
from adaptimg.cache.cache_factory import create_optimization_cache
from adaptimg.cache.fingerprint import compute_fingerprint
from adaptimg.cache.models import ArtifactStats, RunStats
from adaptimg.cache.seen_paths import SeenPathSet
from adaptimg.config.settings import Settings
from adaptimg.core.errors import SourceImageError
from adaptimg.logging.context import clear_context, set_run_context, set_source_context
from adaptimg.manifest.models import ManifestEntry
from adaptimg.manifest.store import Manifest
from adaptimg.pipeline.scanner import SourceEntry, SourceScanner
from adaptimg.registry.locations import LocationRegistry, load_registry
from adaptimg.runtime.placeholder import PlaceholderEncoder
from adaptimg.transcode.codecs import ImageCodec, PillowCodec
from adaptimg.transcode.compression import (
    CompressionFallbackChain,
    create_compression_chain,
)
from adaptimg.transcode.models import TranscodeResult
from adaptimg.transcode.transcoder import Transcoder

logger = logging.getLogger(__name__)

TOP_SAVINGS = 5


class BuildOptions(BaseModel):
    """Per-run switches (CLI flags)."""

    input_dir: Path
    output_dir: Path
    use_compression: bool = True
    include_sizes: bool = True
    include_webp: bool = True
    quality: int | None = Field(default=None, ge=1, le=100)
    clear_cache: bool = False
    force: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: object) -> BuildOptions:
        values: dict[str, object] = {
            "input_dir": settings.input_dir,
            "output_dir": settings.output_dir,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


class ImageOutcome(BaseModel):
    source: str
    status: Literal["processed", "skipped", "error"]
    reason: str = ""
    artifacts: int = 0
    artifact_errors: int = 0
    original_size: int = 0
    output_bytes: int = 0
    saved_bytes: int = 0
    mean_reduction: float = 0.0
    placements: list[str] = Field(default_factory=list)
    # Placements whose outputs were already on disk and reused as-is.
    reused_placements: list[str] = Field(default_factory=list)
    # Viewports wider than the source, left out to avoid upscaling.
    upscale_skips: int = 0
    # Artifacts on disk per placement after this image was handled.
    variants: dict[str, int] = Field(default_factory=dict)


class BuildResult(BaseModel):
    """Summary of a build run."""

    run_id: str
    stats: RunStats = Field(default_factory=RunStats)
    total_found: int = 0
    outcomes: list[ImageOutcome] = Field(default_factory=list)
    placement_coverage: dict[str, int] = Field(default_factory=dict)
    manifest_written: bool = False
    duration_seconds: float = 0.0

    @property
    def average_reduction(self) -> float:
        """Mean size reduction (%) over processed images."""
        processed = [o for o in self.outcomes if o.status == "processed"]
        if not processed:
            return 0.0
        mean = sum(o.mean_reduction for o in processed) / len(processed)
        return round(mean * 100, 1)

    def top_savings(self, n: int = TOP_SAVINGS) -> list[ImageOutcome]:
        processed = [o for o in self.outcomes if o.status == "processed"]
        return sorted(processed, key=lambda o: o.saved_bytes, reverse=True)[:n]

    def summary_lines(self) -> list[str]:
        s = self.stats
        lines = [
            "Optimization complete",
            f"  Processed: {s.processed}",
            f"  Skipped:   {s.skipped}",
            f"  Errors:    {s.errors}",
            f"  Saved:     {format_bytes(s.total_saved)}",
            f"  Average reduction: {self.average_reduction:.1f}%",
            f"  Duration:  {self.duration_seconds:.2f}s",
        ]
        upscale = sum(o.upscale_skips for o in self.outcomes)
        if upscale:
            lines.append(f"  Viewports too wide for source: {upscale}")
        reused = sum(len(o.reused_placements) for o in self.outcomes)
        if reused:
            lines.append(f"  Placements reused from disk: {reused}")
        top = self.top_savings()
        if top:
            lines.append("  Top savings:")
            lines.extend(
                f"    {Path(o.source).name}: {format_bytes(o.saved_bytes)}" for o in top
            )
        if self.placement_coverage:
            lines.append("  Variants per placement:")
            lines.extend(
                f"    {pid}: {count}"
                for pid, count in sorted(self.placement_coverage.items())
            )
        return lines


def format_bytes(size: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if abs(size) < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


class BuildRunner:
    """Runs the optimization build for one input directory.

    Collaborators are injected so tests can build isolated instances;
    anything omitted is created from settings.
    """

    def __init__(
        self,
        settings: Settings,
        options: BuildOptions,
        *,
        registry: LocationRegistry | None = None,
        cache: BaseOptimizationCache | None = None,
        codec: ImageCodec | None = None,
        compression: CompressionFallbackChain | None = None,
        manifest: Manifest | None = None,
        placeholder_encoder: PlaceholderEncoder | None = None,
        seen: SeenPathSet | None = None,
    ) -> None:
        self._settings = settings
        self._options = options
        self._registry = registry or load_registry(settings.registry_file)
        self._cache = cache or create_optimization_cache(settings)
        self._manifest_path = options.output_dir / settings.manifest_filename
        self._manifest = (
            manifest if manifest is not None else Manifest(self._manifest_path)
        )
        self._load_manifest = manifest is None
        self._seen = seen or SeenPathSet()
        self._encoder = placeholder_encoder or PlaceholderEncoder(
            size=settings.placeholder_size,
            components_x=settings.placeholder_components_x,
            components_y=settings.placeholder_components_y,
            fallback_color=settings.placeholder_fallback_color,
        )
        self._transcoder = Transcoder(
            codec or PillowCodec(),
            compression
            or create_compression_chain(settings, enabled=options.use_compression),
            options.output_dir,
            default_quality=options.quality or settings.default_quality,
            include_sizes=options.include_sizes,
            include_webp=options.include_webp,
        )

    @property
    def manifest(self) -> Manifest:
        return self._manifest

    @property
    def cache(self) -> BaseOptimizationCache:
        return self._cache

    async def run(self) -> BuildResult:
        """Execute the build. Never raises for per-image failures."""
        t0 = time.perf_counter()
        run_id = uuid.uuid4().hex[:12]
        set_run_context(run_id)
        result = BuildResult(run_id=run_id)
        opts = self._options
        self._seen.clear()

        if opts.clear_cache:
            self._cache.clear()
        self._cache.load()
        if self._load_manifest:
            self._manifest = Manifest.load(self._manifest_path)

        scanner = SourceScanner(
            self._settings.source_extensions_list, exclude=[opts.output_dir]
        )
        try:
            entries = scanner.scan(opts.input_dir)
        except ValueError as e:
            logger.error("%s", e)
            result.stats.errors += 1
            entries = []
        result.total_found = len(entries)

        if entries:
            loop = asyncio.get_running_loop()
            with ThreadPoolExecutor(
                max_workers=self._settings.build_workers,
                thread_name_prefix="adaptimg-build",
            ) as pool:
                futures = [
                    loop.run_in_executor(
                        pool,
                        contextvars.copy_context().run,
                        self._process_safely,
                        entry,
                    )
                    for entry in entries
                ]
                result.outcomes = list(await asyncio.gather(*futures))

        self._tally(result)
        result.manifest_written = self._manifest.save(self._manifest_path)
        self._cache.flush(result.stats)
        result.duration_seconds = round(time.perf_counter() - t0, 2)
        logger.info(
            "Build finished: %d processed, %d skipped, %d errors",
            result.stats.processed,
            result.stats.skipped,
            result.stats.errors,
            extra={"data": result.stats.model_dump()},
        )
        clear_context()
        return result

    def _tally(self, result: BuildResult) -> None:
        stats = result.stats
        for outcome in result.outcomes:
            if outcome.status == "processed":
                stats.processed += 1
                stats.total_saved += outcome.saved_bytes
            elif outcome.status == "skipped":
                stats.skipped += 1
            elif not outcome.artifact_errors:
                stats.errors += 1
            stats.errors += outcome.artifact_errors
            for pid, count in outcome.variants.items():
                result.placement_coverage[pid] = (
                    result.placement_coverage.get(pid, 0) + count
                )

    def _process_safely(self, entry: SourceEntry) -> ImageOutcome:
        try:
            return self.process_one(entry)
        except Exception as e:
            logger.exception("Unexpected failure processing %s", entry.filename)
            return ImageOutcome(source=entry.key, status="error", reason=str(e))

    def process_one(self, entry: SourceEntry) -> ImageOutcome:
        """Run one source image through the pipeline (worker thread)."""
        set_source_context(entry.key)
        path = entry.file_path

        if not self._seen.claim(path):
            logger.debug("Skipping %s: already handled in this run", entry.key)
            return ImageOutcome(source=entry.key, status="skipped", reason="duplicate")

        try:
            fingerprint = compute_fingerprint(path)
        except OSError as e:
            logger.error("Cannot read %s: %s", entry.key, e)
            return ImageOutcome(source=entry.key, status="error", reason=str(e))

        if not self._options.force and self._cache.has(fingerprint.content_hash):
            logger.debug("Skipping %s: unchanged since last run", entry.key)
            return ImageOutcome(source=entry.key, status="skipped", reason="cached")

        placements = self._registry.placements_for(entry.key)
        try:
            transcoded = self._transcoder.transcode(
                path, placements, force=self._options.force
            )
        except SourceImageError as e:
            logger.error("%s", e)
            return ImageOutcome(source=entry.key, status="error", reason=e.reason)

        # Entries of the previous version of this source must not survive.
        if self._manifest.remove_source(entry.key):
            logger.debug("Dropped previous manifest entries for %s", entry.key)
        written = transcoded.artifacts + transcoded.existing
        if written:
            info = self._encoder.encode(path)
            for a in written:
                self._manifest.write(
                    ManifestEntry(
                        source_path=entry.key,
                        placement_id=a.placement_id,
                        viewport=a.viewport,
                        format=a.format,
                        output_path=a.output_path,
                        width=a.width,
                        height=a.height,
                        byte_size=a.byte_size,
                        quality_used=a.quality,
                        blurhash=info.blurhash,
                        dominant_color=info.dominant_color,
                    )
                )

        outcome = ImageOutcome(
            source=entry.key,
            status="processed" if transcoded.artifacts else "skipped",
            reason=_skip_reason(transcoded),
            artifacts=len(transcoded.artifacts),
            artifact_errors=transcoded.errors,
            original_size=transcoded.original_size,
            output_bytes=transcoded.output_bytes,
            saved_bytes=transcoded.saved_bytes,
            mean_reduction=transcoded.mean_reduction,
            placements=[p.id for p in placements],
            reused_placements=list(transcoded.skipped_placements),
            upscale_skips=transcoded.upscale_skips,
        )
        for a in written:
            outcome.variants[a.placement_id] = (
                outcome.variants.get(a.placement_id, 0) + 1
            )
        if transcoded.errors == 0:
            self._cache.record(
                fingerprint.content_hash,
                ArtifactStats(
                    artifacts=len(written),
                    original_size=transcoded.original_size,
                    output_bytes=transcoded.output_bytes,
                    saved_bytes=transcoded.saved_bytes,
                ),
            )
        elif not transcoded.artifacts:
            outcome.status = "error"
            outcome.reason = "all artifacts failed"
        logger.info(
            "%s: %d artifacts, %d errors",
            entry.filename,
            outcome.artifacts,
            outcome.artifact_errors,
        )
        return outcome


def _skip_reason(transcoded: TranscodeResult) -> str:
    if transcoded.artifacts:
        return ""
    if transcoded.existing:
        return "outputs exist"
    return "no applicable outputs"
