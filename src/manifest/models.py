# src/manifest/models.py — v1
"""Manifest data models: one artifact set per (source, placement, viewport)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ManifestEntry(BaseModel):
    """One written artifact, as reported by the transcoder."""

    source_path: str
    placement_id: str
    viewport: str
    format: str
    output_path: str
    width: int
    height: int
    byte_size: int
    quality_used: int
    blurhash: str | None = None
    dominant_color: str | None = None


class FormatVariant(BaseModel):
    path: str
    size: int
    quality: int


class ManifestArtifact(BaseModel):
    """Manifest value for one viewport.

    ``path``/``size``/``quality`` describe the primary variant (the first
    format written, i.e. the placement's most preferred one). Every
    encoded format is listed under ``formats``.
    """

    model_config = ConfigDict(populate_by_name=True)

    path: str
    width: int
    height: int
    size: int
    quality: int
    formats: dict[str, FormatVariant] = Field(default_factory=dict)
    blurhash: str | None = None
    dominant_color: str | None = Field(default=None, alias="dominantColor")

    def variant(self, fmt: str | None) -> FormatVariant | None:
        if fmt is None:
            return FormatVariant(path=self.path, size=self.size, quality=self.quality)
        return self.formats.get(fmt)


# source path -> placement id -> viewport -> artifact
ManifestData = dict[str, dict[str, dict[str, ManifestArtifact]]]
