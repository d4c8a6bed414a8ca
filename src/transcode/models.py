# src/transcode/models.py — v1
"""Transcode result models: ArtifactPlan, ArtifactResult, TranscodeResult."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ArtifactPlan(BaseModel):
    """One expected output file for a (placement, viewport, format)."""

    placement_id: str
    viewport: str
    format: str
    width: int
    height: int
    quality: int
    output_path: str


class ArtifactResult(BaseModel):
    """An output file that was written successfully."""

    placement_id: str
    viewport: str
    format: str
    output_path: str
    width: int
    height: int
    byte_size: int
    quality: int


class TranscodeResult(BaseModel):
    """Outcome of running one source image through the pipeline."""

    source_path: str
    source_width: int
    source_height: int
    original_size: int
    artifacts: list[ArtifactResult] = Field(default_factory=list)
    errors: int = 0
    skipped_placements: list[str] = Field(default_factory=list)
    # Artifacts of skipped placements, already on disk from an earlier run.
    existing: list[ArtifactResult] = Field(default_factory=list)
    upscale_skips: int = 0

    @property
    def output_bytes(self) -> int:
        return sum(a.byte_size for a in self.artifacts)

    @property
    def saved_bytes(self) -> int:
        """Bytes saved by the smallest variant per viewport vs the original."""
        best: dict[tuple[str, str], int] = {}
        for a in self.artifacts:
            key = (a.placement_id, a.viewport)
            best[key] = min(best.get(key, a.byte_size), a.byte_size)
        return sum(max(self.original_size - size, 0) for size in best.values())

    @property
    def mean_reduction(self) -> float:
        """Average of (original - artifact) / original over written artifacts."""
        if not self.artifacts or not self.original_size:
            return 0.0
        ratios = [
            (self.original_size - a.byte_size) / self.original_size
            for a in self.artifacts
        ]
        return sum(ratios) / len(ratios)
