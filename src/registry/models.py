# src/registry/models.py — v1
"""Placement configuration models: PlacementSpec, AdaptiveQuality, ImageMapping.

All models are frozen: the registry is loaded once and never mutated.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ImageFormat = Literal["avif", "webp", "jxl", "jpg", "png"]
EffectiveType = Literal["slow-2g", "2g", "3g", "4g"]
PlaceholderStrategy = Literal["blurhash", "dominant-color", "lqip", "sqip"]
PreloadStrategy = Literal["eager", "intersection", "hover", "route-based"]
ContentType = Literal["photo", "graphic", "text", "mixed"]
CompressionStrategy = Literal["size-first", "quality-first", "balanced"]

UNIVERSAL_FORMAT: ImageFormat = "jpg"
DEFAULT_FORMATS: tuple[ImageFormat, ...] = ("avif", "webp", "jpg")
DEFAULT_QUALITY = 85


class ViewportSize(BaseModel):
    """Target box for one viewport."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class AdaptiveQuality(BaseModel):
    """Quality per connection effective type."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    slow_2g: int = Field(alias="slow2g", ge=1, le=100)
    g2: int = Field(alias="2g", ge=1, le=100)
    g3: int = Field(alias="3g", ge=1, le=100)
    g4: int = Field(alias="4g", ge=1, le=100)

    def for_effective_type(self, effective_type: str | None) -> int | None:
        """Direct table lookup; None for unknown connection types."""
        return {
            "slow-2g": self.slow_2g,
            "slow2g": self.slow_2g,
            "2g": self.g2,
            "3g": self.g3,
            "4g": self.g4,
        }.get(effective_type or "")

    def lowest(self) -> int:
        return min(self.slow_2g, self.g2, self.g3, self.g4)


class PlacementSpec(BaseModel):
    """A named usage context for an image and its delivery policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    description: str = ""
    dimensions: dict[str, ViewportSize]
    quality: int = Field(default=DEFAULT_QUALITY, ge=1, le=100)
    priority: bool = False
    aspect_ratio: str | None = Field(default=None, alias="aspectRatio")
    lcp_candidate: bool = Field(default=False, alias="lcpCandidate")
    preferred_formats: tuple[ImageFormat, ...] = Field(
        default=DEFAULT_FORMATS, alias="preferredFormats"
    )
    adaptive_quality: AdaptiveQuality | None = Field(
        default=None, alias="adaptiveQuality"
    )
    placeholder_strategy: PlaceholderStrategy = Field(
        default="dominant-color", alias="placeholderStrategy"
    )
    preload_strategy: PreloadStrategy | None = Field(
        default=None, alias="preloadStrategy"
    )
    content_type: ContentType = Field(default="photo", alias="contentType")
    compression_strategy: CompressionStrategy = Field(
        default="balanced", alias="compressionStrategy"
    )

    @field_validator("dimensions")
    @classmethod
    def validate_dimensions(  # noqa: N805
        cls, v: dict[str, ViewportSize]
    ) -> dict[str, ViewportSize]:
        if not v:
            raise ValueError("placement needs at least one viewport")
        return v

    @field_validator("preferred_formats")
    @classmethod
    def validate_formats(  # noqa: N805
        cls, v: tuple[ImageFormat, ...]
    ) -> tuple[ImageFormat, ...]:
        if not v:
            raise ValueError("preferred_formats must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("preferred_formats must not contain duplicates")
        return v

    @property
    def viewports(self) -> list[str]:
        return list(self.dimensions)

    @property
    def is_high_priority(self) -> bool:
        """High-priority placements are fetched eagerly (no lazy reveal)."""
        return self.priority or self.preload_strategy == "eager"


class ImageMapping(BaseModel):
    """Binds one source image to the placements it is used in."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source_path: str = Field(alias="sourcePath")
    placements: tuple[str, ...] = Field(alias="locations")

    @model_validator(mode="after")
    def validate_placements(self) -> ImageMapping:
        if not self.placements:
            raise ValueError(f"mapping for {self.source_path} has no placements")
        return self


class RegistryAnalysis(BaseModel):
    """Summary of a registry's placements and mappings."""

    total_locations: int = 0
    total_mappings: int = 0
    variants_needed: int = 0
    estimated_output_bytes: int = 0
    unused_locations: list[str] = Field(default_factory=list)
    lcp_candidates: list[str] = Field(default_factory=list)
    blurhash_placements: int = 0
    adaptive_quality_placements: int = 0
    format_preferences: dict[str, int] = Field(default_factory=dict)
    compression_strategies: dict[str, int] = Field(default_factory=dict)
