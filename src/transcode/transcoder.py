# src/transcode/transcoder.py — v1
"""Resize -> compress -> format-convert pipeline for one source image.

For every (placement, viewport) the source is resized once to a lossless
temporary raster, passed once through the compression chain, then
encoded into each delivery format. Failures are isolated per artifact.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterable
from pathlib import Path

from adaptimg.core.errors import TranscodeError
from adaptimg.logging.context import set_artifact_context
from adaptimg.registry.locations import (
    ORIGINAL_PLACEMENT_ID,
    ORIGINAL_VIEWPORT,
    RESPONSIVE_PLACEMENT_ID,
)
from adaptimg.registry.models import UNIVERSAL_FORMAT, PlacementSpec
from adaptimg.transcode.codecs import FORMAT_EXTENSIONS, ImageCodec
from adaptimg.transcode.compression import CompressionFallbackChain
from adaptimg.transcode.models import ArtifactPlan, ArtifactResult, TranscodeResult

logger = logging.getLogger(__name__)


def target_size(
    source_width: int, source_height: int, target_width: int
) -> tuple[int, int] | None:
    """Output size for ``target_width`` keeping the source aspect ratio.

    Returns None when the target is wider than the source (never upscale).
    """
    if target_width > source_width:
        return None
    aspect_ratio = source_width / source_height
    return target_width, max(1, round(target_width / aspect_ratio))


class Transcoder:
    """Produces one output file per (viewport, format) of each placement."""

    def __init__(
        self,
        codec: ImageCodec,
        compression: CompressionFallbackChain,
        output_dir: Path,
        *,
        default_quality: int = 85,
        include_sizes: bool = True,
        include_webp: bool = True,
        include_original: bool = True,
    ) -> None:
        self._codec = codec
        self._compression = compression
        self._output_dir = Path(output_dir)
        self._default_quality = default_quality
        self._include_sizes = include_sizes
        self._include_webp = include_webp
        self._include_original = include_original and include_webp
        self._warned_formats: set[str] = set()

    @property
    def codec(self) -> ImageCodec:
        return self._codec

    # --- Planning ---

    def formats_for(self, spec: PlacementSpec) -> list[str]:
        """Formats to encode for a placement, in preference order."""
        formats = list(spec.preferred_formats)
        if not self._include_webp:
            formats = [f for f in formats if f != "webp"] or [UNIVERSAL_FORMAT]
        usable: list[str] = []
        for fmt in formats:
            if self._codec.supports(fmt):
                usable.append(fmt)
            elif fmt not in self._warned_formats:
                self._warned_formats.add(fmt)
                logger.warning("Codec cannot encode %s, skipping that format", fmt)
        return usable

    def artifact_path(
        self, source: Path, placement_id: str, viewport: str, fmt: str
    ) -> Path:
        ext = FORMAT_EXTENSIONS[fmt]
        if placement_id == ORIGINAL_PLACEMENT_ID:
            return self._output_dir / f"{source.stem}.{ext}"
        return (
            self._output_dir
            / placement_id
            / f"{source.stem}-{placement_id}-{viewport}.{ext}"
        )

    def quality_for(self, spec: PlacementSpec) -> int:
        if spec.id == RESPONSIVE_PLACEMENT_ID:
            return self._default_quality
        return spec.quality

    def plan(
        self, source: Path, spec: PlacementSpec, source_size: tuple[int, int]
    ) -> list[ArtifactPlan]:
        """Expected artifacts for one placement; upscaling viewports are dropped."""
        src_w, src_h = source_size
        formats = self.formats_for(spec)
        quality = self.quality_for(spec)
        plans: list[ArtifactPlan] = []
        for viewport, box in spec.dimensions.items():
            size = target_size(src_w, src_h, box.width)
            if size is None:
                continue
            for fmt in formats:
                plans.append(
                    ArtifactPlan(
                        placement_id=spec.id,
                        viewport=viewport,
                        format=fmt,
                        width=size[0],
                        height=size[1],
                        quality=quality,
                        output_path=str(
                            self.artifact_path(source, spec.id, viewport, fmt)
                        ),
                    )
                )
        return plans

    def plan_original(
        self, source: Path, source_size: tuple[int, int]
    ) -> list[ArtifactPlan]:
        if not self._include_original or not self._codec.supports("webp"):
            return []
        return [
            ArtifactPlan(
                placement_id=ORIGINAL_PLACEMENT_ID,
                viewport=ORIGINAL_VIEWPORT,
                format="webp",
                width=source_size[0],
                height=source_size[1],
                quality=self._default_quality,
                output_path=str(
                    self.artifact_path(
                        source, ORIGINAL_PLACEMENT_ID, ORIGINAL_VIEWPORT, "webp"
                    )
                ),
            )
        ]

    def plan_all(
        self, source: Path, placements: Iterable[PlacementSpec]
    ) -> list[ArtifactPlan]:
        """Every artifact a full run would write for ``source``."""
        size = self._codec.probe(source)
        plans = self.plan_original(source, size)
        if self._include_sizes:
            for spec in placements:
                plans.extend(self.plan(source, spec, size))
        return plans

    @staticmethod
    def is_complete(plans: list[ArtifactPlan], source_mtime: float = 0.0) -> bool:
        """True when every planned file exists and is not older than the source."""
        if not plans:
            return False
        for p in plans:
            out = Path(p.output_path)
            if not out.exists() or out.stat().st_mtime < source_mtime:
                return False
        return True

    # --- Execution ---

    def transcode(
        self,
        source: Path,
        placements: Iterable[PlacementSpec],
        *,
        force: bool = False,
    ) -> TranscodeResult:
        """Run the pipeline for one source image.

        Raises:
            SourceImageError: If the source cannot be read (fatal to this image).
        """
        source = Path(source)
        src_w, src_h = self._codec.probe(source)
        stat = source.stat()
        result = TranscodeResult(
            source_path=str(source),
            source_width=src_w,
            source_height=src_h,
            original_size=stat.st_size,
        )

        groups: list[tuple[str, list[ArtifactPlan]]] = []
        original = self.plan_original(source, (src_w, src_h))
        if original:
            groups.append((ORIGINAL_PLACEMENT_ID, original))
        if self._include_sizes:
            for spec in placements:
                plans = self.plan(source, spec, (src_w, src_h))
                result.upscale_skips += sum(
                    1 for box in spec.dimensions.values() if box.width > src_w
                )
                groups.append((spec.id, plans))

        with tempfile.TemporaryDirectory(prefix="adaptimg-") as tmp:
            tmp_dir = Path(tmp)
            for placement_id, plans in groups:
                if not plans:
                    logger.debug(
                        "No artifacts for %s under %s (source too small)",
                        source.name,
                        placement_id,
                    )
                    continue
                if not force and self.is_complete(plans, stat.st_mtime):
                    logger.debug(
                        "Skipping %s/%s: all outputs exist", source.name, placement_id
                    )
                    result.skipped_placements.append(placement_id)
                    result.existing.extend(_existing_artifacts(plans))
                    continue
                self._run_placement(source, plans, tmp_dir, result)
        return result

    def _run_placement(
        self,
        source: Path,
        plans: list[ArtifactPlan],
        tmp_dir: Path,
        result: TranscodeResult,
    ) -> None:
        by_viewport: dict[str, list[ArtifactPlan]] = {}
        for p in plans:
            by_viewport.setdefault(p.viewport, []).append(p)

        for viewport, vplans in by_viewport.items():
            first = vplans[0]
            set_artifact_context(first.placement_id, viewport)
            raster = tmp_dir / f"{first.placement_id}-{viewport}.png"
            try:
                self._codec.resize(source, first.width, first.height, raster)
            except TranscodeError as e:
                result.errors += len(vplans)
                logger.error("Resize failed, skipping viewport: %s", e)
                continue

            try:
                with self._compression.compressed(raster) as encode_from:
                    for p in vplans:
                        self._encode_one(encode_from, p, result)
            finally:
                raster.unlink(missing_ok=True)

    def _encode_one(
        self, raster: Path, plan: ArtifactPlan, result: TranscodeResult
    ) -> None:
        dest = Path(plan.output_path)
        try:
            size = self._codec.encode(raster, plan.format, plan.quality, dest)
        except TranscodeError as e:
            result.errors += 1
            logger.error("Encode failed: %s", e)
            return
        result.artifacts.append(
            ArtifactResult(
                placement_id=plan.placement_id,
                viewport=plan.viewport,
                format=plan.format,
                output_path=plan.output_path,
                width=plan.width,
                height=plan.height,
                byte_size=size,
                quality=plan.quality,
            )
        )
        logger.info(
            "%s %s/%s %dx%d -> %d bytes",
            dest.name,
            plan.viewport,
            plan.format,
            plan.width,
            plan.height,
            size,
        )


def _existing_artifacts(plans: list[ArtifactPlan]) -> list[ArtifactResult]:
    return [
        ArtifactResult(
            placement_id=p.placement_id,
            viewport=p.viewport,
            format=p.format,
            output_path=p.output_path,
            width=p.width,
            height=p.height,
            byte_size=Path(p.output_path).stat().st_size,
            quality=p.quality,
        )
        for p in plans
    ]
