# tests/unit/registry/test_unit_locations.py — v1
"""Tests for registry/locations.py — built-in registry, lookup and analysis."""

from __future__ import annotations

import json

import pytest

from adaptimg.core.errors import UnknownPlacementError
from adaptimg.registry.locations import (
    BUILTIN_LOCATIONS,
    RESPONSIVE_PLACEMENT_ID,
    LocationRegistry,
    load_registry,
)

_CARD = {"dimensions": {"mobile": {"width": 320, "height": 200}}}


class TestBuiltinRegistry:
    def setup_method(self):
        self.registry = LocationRegistry()

    def test_all_builtins_valid(self):
        assert len(self.registry) == len(BUILTIN_LOCATIONS)
        assert "hero-main" in self.registry
        assert RESPONSIVE_PLACEMENT_ID in self.registry

    def test_hero_main(self):
        spec = self.registry.get("hero-main")
        assert spec.dimensions["desktop"].width == 1920
        assert spec.dimensions["desktop"].height == 1080
        assert spec.quality == 90
        assert spec.lcp_candidate
        assert spec.adaptive_quality is not None
        assert spec.adaptive_quality.g2 == 40

    def test_unknown_placement(self):
        with pytest.raises(UnknownPlacementError, match="nope"):
            self.registry.get("nope")

    def test_unknown_placement_is_key_error(self):
        with pytest.raises(KeyError):
            self.registry.get("nope")

    def test_placements_for_full_path(self):
        ids = [p.id for p in self.registry.placements_for("public/assets/hero-main.png")]
        assert ids == ["hero-main", "og-image"]

    def test_placements_for_normalizes_path(self):
        ids = [p.id for p in self.registry.placements_for(".\\public\\assets\\hero-main.png")]
        assert ids == ["hero-main", "og-image"]

    def test_placements_for_filename_fallback(self):
        ids = [p.id for p in self.registry.placements_for("/srv/site/assets/hero-main.png")]
        assert ids == ["hero-main", "og-image"]

    def test_unmapped_source_gets_responsive(self):
        ids = [p.id for p in self.registry.placements_for("assets/random.jpg")]
        assert ids == [RESPONSIVE_PLACEMENT_ID]

    def test_should_preload(self):
        assert self.registry.should_preload("hero-main")
        assert not self.registry.should_preload("service-card")

    def test_placeholder_strategy(self):
        assert self.registry.placeholder_strategy("hero-main") == "blurhash"
        assert self.registry.placeholder_strategy("missing") == "dominant-color"


class TestCustomRegistry:
    def test_mapping_to_unknown_placement_fails(self):
        with pytest.raises(UnknownPlacementError):
            LocationRegistry(
                locations={"card": _CARD},
                mappings=[{"sourcePath": "a.png", "locations": ["ghost"]}],
            )

    def test_unmapped_without_responsive(self):
        reg = LocationRegistry(locations={"card": _CARD}, mappings=[])
        assert reg.placements_for("a.png") == []

    def test_from_file(self, tmp_path):
        f = tmp_path / "registry.json"
        f.write_text(
            json.dumps(
                {
                    "locations": {"card": _CARD},
                    "mappings": [{"sourcePath": "img/a.png", "locations": ["card"]}],
                }
            ),
            encoding="utf-8",
        )
        reg = load_registry(f)
        assert reg.ids == ["card"]
        assert [p.id for p in reg.placements_for("img/a.png")] == ["card"]

    def test_from_file_missing_sections_use_builtins(self, tmp_path):
        f = tmp_path / "registry.json"
        f.write_text("{}", encoding="utf-8")
        reg = LocationRegistry.from_file(f)
        assert len(reg) == len(BUILTIN_LOCATIONS)

    def test_load_registry_default(self):
        assert "og-image" in load_registry()


class TestAnalyze:
    def test_counts(self):
        reg = LocationRegistry(
            locations={
                "hero": {
                    "dimensions": {
                        "mobile": {"width": 420, "height": 280},
                        "desktop": {"width": 1920, "height": 1080},
                    },
                    "lcpCandidate": True,
                    "placeholderStrategy": "blurhash",
                },
                "logo": {**_CARD, "preferredFormats": ["webp"]},
            },
            mappings=[{"sourcePath": "a.png", "locations": ["hero"]}],
        )
        report = reg.analyze()
        assert report.total_locations == 2
        assert report.total_mappings == 1
        assert report.variants_needed == 6
        assert report.estimated_output_bytes == 6 * 150 * 1024
        assert report.unused_locations == ["logo"]
        assert report.lcp_candidates == ["hero"]
        assert report.blurhash_placements == 1
        assert report.format_preferences == {"avif": 1, "webp": 1}
        assert report.compression_strategies == {"balanced": 2}
