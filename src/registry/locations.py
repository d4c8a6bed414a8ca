# src/registry/locations.py — v1
"""Built-in placement definitions and image mappings.

``LocationRegistry`` validates the declarative data into frozen models.
Keys use the camelCase spelling accepted by registry JSON files.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any

from adaptimg.core.errors import UnknownPlacementError
from adaptimg.registry.models import (
    ImageMapping,
    PlaceholderStrategy,
    PlacementSpec,
    RegistryAnalysis,
)

logger = logging.getLogger(__name__)

# Placement used for scanned sources that have no explicit mapping.
RESPONSIVE_PLACEMENT_ID = "responsive"

# Manifest placement id for the full-size conversion of each source.
ORIGINAL_PLACEMENT_ID = "original"
ORIGINAL_VIEWPORT = "full"

_PHOTO_FORMATS = ["avif", "webp", "jpg"]

BUILTIN_LOCATIONS: dict[str, dict[str, Any]] = {
    # --- Hero / banner (LCP candidates) ---
    "hero-main": {
        "description": "Main hero banner on homepage",
        "dimensions": {
            "mobile": {"width": 420, "height": 280},
            "tablet": {"width": 768, "height": 432},
            "desktop": {"width": 1920, "height": 1080},
        },
        "quality": 90,
        "priority": True,
        "aspectRatio": "16:9",
        "lcpCandidate": True,
        "preferredFormats": _PHOTO_FORMATS,
        "adaptiveQuality": {"slow2g": 30, "2g": 40, "3g": 70, "4g": 90},
        "placeholderStrategy": "blurhash",
        "preloadStrategy": "eager",
        "contentType": "photo",
        "compressionStrategy": "balanced",
    },
    "hero-slide": {
        "description": "Hero slider images",
        "dimensions": {
            "mobile": {"width": 420, "height": 320},
            "tablet": {"width": 768, "height": 512},
            "desktop": {"width": 1440, "height": 960},
        },
        "quality": 85,
        "priority": True,
        "aspectRatio": "3:2",
        "lcpCandidate": True,
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "blurhash",
        "preloadStrategy": "intersection",
        "contentType": "photo",
        "compressionStrategy": "size-first",
    },
    # --- About ---
    "about-hero": {
        "description": "About page hero image",
        "dimensions": {
            "mobile": {"width": 420, "height": 420},
            "desktop": {"width": 1200, "height": 600},
        },
        "quality": 85,
        "aspectRatio": "2:1",
        "lcpCandidate": True,
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "dominant-color",
        "contentType": "photo",
    },
    "about-team": {
        "description": "Team member photos",
        "dimensions": {
            "mobile": {"width": 150, "height": 150},
            "desktop": {"width": 300, "height": 300},
        },
        "quality": 90,
        "aspectRatio": "1:1",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "blurhash",
        "preloadStrategy": "intersection",
        "contentType": "photo",
        "compressionStrategy": "quality-first",
    },
    # --- Services ---
    "service-card": {
        "description": "Service card thumbnails",
        "dimensions": {
            "mobile": {"width": 320, "height": 200},
            "desktop": {"width": 400, "height": 250},
        },
        "quality": 85,
        "aspectRatio": "8:5",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "dominant-color",
        "preloadStrategy": "intersection",
        "contentType": "mixed",
    },
    "service-detail": {
        "description": "Service detail page images",
        "dimensions": {
            "mobile": {"width": 420, "height": 280},
            "tablet": {"width": 768, "height": 512},
            "desktop": {"width": 1200, "height": 800},
        },
        "quality": 90,
        "aspectRatio": "3:2",
    },
    # --- Industry ---
    "industry-icon": {
        "description": "Industry category icons",
        "dimensions": {
            "mobile": {"width": 64, "height": 64},
            "desktop": {"width": 128, "height": 128},
        },
        "quality": 100,
        "aspectRatio": "1:1",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "dominant-color",
        "contentType": "graphic",
        "compressionStrategy": "quality-first",
        "adaptiveQuality": {"slow2g": 90, "2g": 95, "3g": 100, "4g": 100},
    },
    "industry-showcase": {
        "description": "Industry showcase images",
        "dimensions": {
            "mobile": {"width": 380, "height": 250},
            "desktop": {"width": 600, "height": 400},
        },
        "quality": 85,
        "aspectRatio": "3:2",
    },
    # --- Logos ---
    "client-logo": {
        "description": "Client and partner logos",
        "dimensions": {
            "mobile": {"width": 120, "height": 60},
            "desktop": {"width": 200, "height": 100},
        },
        "quality": 95,
        "aspectRatio": "2:1",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "dominant-color",
        "contentType": "graphic",
        "compressionStrategy": "quality-first",
        "adaptiveQuality": {"slow2g": 85, "2g": 90, "3g": 95, "4g": 95},
    },
    "footer-logo": {
        "description": "Footer logo",
        "dimensions": {
            "mobile": {"width": 150, "height": 50},
            "desktop": {"width": 200, "height": 67},
        },
        "quality": 95,
        "aspectRatio": "3:1",
        "contentType": "graphic",
    },
    # --- Articles ---
    "article-thumbnail": {
        "description": "Article list thumbnails",
        "dimensions": {
            "mobile": {"width": 320, "height": 180},
            "desktop": {"width": 400, "height": 225},
        },
        "quality": 80,
        "aspectRatio": "16:9",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "blurhash",
        "preloadStrategy": "intersection",
        "contentType": "mixed",
        "compressionStrategy": "size-first",
    },
    "article-featured": {
        "description": "Featured article image",
        "dimensions": {
            "mobile": {"width": 420, "height": 236},
            "tablet": {"width": 768, "height": 432},
            "desktop": {"width": 1200, "height": 675},
        },
        "quality": 85,
        "priority": True,
        "aspectRatio": "16:9",
        "lcpCandidate": True,
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "blurhash",
        "preloadStrategy": "eager",
        "contentType": "photo",
    },
    "article-content": {
        "description": "Images within article content",
        "dimensions": {
            "mobile": {"width": 380, "height": 285},
            "desktop": {"width": 800, "height": 600},
        },
        "quality": 85,
        "aspectRatio": "4:3",
    },
    # --- CTA / contact ---
    "cta-background": {
        "description": "Call to action background image",
        "dimensions": {
            "mobile": {"width": 420, "height": 300},
            "tablet": {"width": 768, "height": 400},
            "desktop": {"width": 1920, "height": 600},
        },
        "quality": 75,
        "aspectRatio": "16:5",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "dominant-color",
        "preloadStrategy": "intersection",
        "contentType": "photo",
        "compressionStrategy": "size-first",
        "adaptiveQuality": {"slow2g": 25, "2g": 35, "3g": 60, "4g": 75},
    },
    "contact-map": {
        "description": "Contact page map placeholder",
        "dimensions": {
            "mobile": {"width": 420, "height": 300},
            "desktop": {"width": 800, "height": 450},
        },
        "quality": 80,
        "aspectRatio": "16:9",
    },
    "achievement-icon": {
        "description": "Achievement/stat icons",
        "dimensions": {
            "mobile": {"width": 48, "height": 48},
            "desktop": {"width": 80, "height": 80},
        },
        "quality": 100,
        "aspectRatio": "1:1",
        "contentType": "graphic",
    },
    # --- Gallery ---
    "gallery-thumbnail": {
        "description": "Gallery grid thumbnails",
        "dimensions": {
            "mobile": {"width": 320, "height": 320},
            "tablet": {"width": 350, "height": 350},
            "desktop": {"width": 400, "height": 400},
        },
        "quality": 85,
        "aspectRatio": "1:1",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "blurhash",
        "preloadStrategy": "intersection",
        "contentType": "photo",
        "compressionStrategy": "balanced",
    },
    "gallery-lightbox": {
        "description": "Gallery lightbox full images",
        "dimensions": {
            "mobile": {"width": 420, "height": 560},
            "desktop": {"width": 1600, "height": 1200},
        },
        "quality": 90,
        "aspectRatio": "4:3",
        "preferredFormats": _PHOTO_FORMATS,
        "placeholderStrategy": "blurhash",
        "preloadStrategy": "hover",
        "contentType": "photo",
        "compressionStrategy": "quality-first",
    },
    # --- Social previews ---
    "og-image": {
        "description": "Open Graph preview image",
        "dimensions": {
            "mobile": {"width": 1200, "height": 630},
            "desktop": {"width": 1200, "height": 630},
        },
        "quality": 85,
        "aspectRatio": "1.91:1",
        "preferredFormats": ["jpg"],
        "placeholderStrategy": "dominant-color",
        "contentType": "mixed",
        "compressionStrategy": "balanced",
    },
    "twitter-image": {
        "description": "Twitter card image",
        "dimensions": {
            "mobile": {"width": 1200, "height": 675},
            "desktop": {"width": 1200, "height": 675},
        },
        "quality": 85,
        "aspectRatio": "16:9",
        "preferredFormats": ["jpg"],
    },
    # --- Generic responsive size set for unmapped sources ---
    RESPONSIVE_PLACEMENT_ID: {
        "description": "Generic responsive sizes for unmapped sources",
        "dimensions": {
            "thumbnail": {"width": 150, "height": 150},
            "small": {"width": 320, "height": 240},
            "medium": {"width": 768, "height": 576},
            "large": {"width": 1200, "height": 900},
            "hero": {"width": 1920, "height": 1080},
            "mobile": {"width": 420, "height": 280},
        },
        "quality": 85,
        "preferredFormats": ["webp"],
    },
}

# Source images bound to placements. Paths are relative to the project root.
BUILTIN_MAPPINGS: list[dict[str, Any]] = [
    {"sourcePath": "public/assets/hero-main.png", "locations": ["hero-main", "og-image"]},
]


class LocationRegistry:
    """Read-only lookup of placements and source mappings.

    Built from ``BUILTIN_LOCATIONS`` by default, or from a JSON file with
    ``{"locations": {...}, "mappings": [...]}`` in the same camelCase shape.
    """

    # Rough per-variant output size used by ``analyze``.
    ESTIMATED_VARIANT_BYTES = 150 * 1024

    def __init__(
        self,
        locations: dict[str, dict[str, Any]] | None = None,
        mappings: list[dict[str, Any]] | None = None,
    ) -> None:
        raw_locations = BUILTIN_LOCATIONS if locations is None else locations
        raw_mappings = BUILTIN_MAPPINGS if mappings is None else mappings

        self._placements: dict[str, PlacementSpec] = {
            pid: PlacementSpec.model_validate({"id": pid, **data})
            for pid, data in raw_locations.items()
        }
        self._mappings: list[ImageMapping] = [
            ImageMapping.model_validate(m) for m in raw_mappings
        ]
        for mapping in self._mappings:
            for pid in mapping.placements:
                if pid not in self._placements:
                    raise UnknownPlacementError(pid)

        self._by_source: dict[str, ImageMapping] = {
            _normalize(m.source_path): m for m in self._mappings
        }
        logger.debug(
            "Registry loaded: %d placements, %d mappings",
            len(self._placements),
            len(self._mappings),
        )

    @classmethod
    def from_file(cls, path: Path) -> LocationRegistry:
        """Load a registry from JSON. Missing sections fall back to built-ins."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls(locations=data.get("locations"), mappings=data.get("mappings"))

    # --- Lookup ---

    def get(self, placement_id: str) -> PlacementSpec:
        try:
            return self._placements[placement_id]
        except KeyError:
            raise UnknownPlacementError(placement_id) from None

    def __contains__(self, placement_id: object) -> bool:
        return placement_id in self._placements

    def __len__(self) -> int:
        return len(self._placements)

    @property
    def ids(self) -> list[str]:
        return list(self._placements)

    @property
    def mappings(self) -> list[ImageMapping]:
        return list(self._mappings)

    def placements_for(self, source_path: str | Path) -> list[PlacementSpec]:
        """Placements a source is used in.

        Matches the mapping on the full relative path first, then on the
        file name alone. Unmapped sources get the generic responsive set.
        """
        key = _normalize(str(source_path))
        mapping = self._by_source.get(key)
        if mapping is None:
            name = PurePosixPath(key).name
            mapping = next(
                (
                    m
                    for k, m in self._by_source.items()
                    if PurePosixPath(k).name == name
                ),
                None,
            )
        if mapping is None:
            if RESPONSIVE_PLACEMENT_ID in self._placements:
                return [self._placements[RESPONSIVE_PLACEMENT_ID]]
            return []
        return [self.get(pid) for pid in mapping.placements]

    # --- Delivery hints ---

    def should_preload(self, placement_id: str) -> bool:
        spec = self.get(placement_id)
        return spec.preload_strategy == "eager" or spec.lcp_candidate or spec.priority

    def placeholder_strategy(self, placement_id: str) -> PlaceholderStrategy:
        if placement_id not in self._placements:
            return "dominant-color"
        return self._placements[placement_id].placeholder_strategy

    # --- Analysis ---

    def analyze(self) -> RegistryAnalysis:
        """Compute variant counts and policy breakdowns for the registry."""
        result = RegistryAnalysis(
            total_locations=len(self._placements),
            total_mappings=len(self._mappings),
        )

        used: set[str] = set()
        for mapping in self._mappings:
            for pid in mapping.placements:
                used.add(pid)
                spec = self._placements[pid]
                result.variants_needed += len(spec.dimensions) * len(
                    spec.preferred_formats
                )
        result.estimated_output_bytes = (
            result.variants_needed * self.ESTIMATED_VARIANT_BYTES
        )

        for pid, spec in self._placements.items():
            if pid not in used and pid != RESPONSIVE_PLACEMENT_ID:
                result.unused_locations.append(pid)
            if spec.lcp_candidate:
                result.lcp_candidates.append(pid)
            if spec.placeholder_strategy == "blurhash":
                result.blurhash_placements += 1
            if spec.adaptive_quality is not None:
                result.adaptive_quality_placements += 1
            first = spec.preferred_formats[0]
            result.format_preferences[first] = (
                result.format_preferences.get(first, 0) + 1
            )
            result.compression_strategies[spec.compression_strategy] = (
                result.compression_strategies.get(spec.compression_strategy, 0)
                + 1
            )
        return result


def _normalize(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def load_registry(registry_file: Path | None = None) -> LocationRegistry:
    """Built-in registry, or the one described by ``registry_file``."""
    if registry_file is None:
        return LocationRegistry()
    logger.info("Loading location registry from %s", registry_file)
    return LocationRegistry.from_file(registry_file)
