# tests/unit/config/test_unit_settings.py — v2
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

from pathlib import Path

import pytest

from adaptimg.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_paths(self):
        s = Settings(_env_file=None)
        assert s.input_dir == Path("public/assets")
        assert s.output_dir == Path("public/optimized")
        assert s.cache_file == Path(".image-optimization-cache.json")
        assert s.manifest_path == Path("public/optimized/image-manifest.json")

    def test_default_quality(self):
        assert Settings(_env_file=None).default_quality == 85

    def test_compression_disabled_without_key(self):
        s = Settings(_env_file=None, tinypng_api_key="")
        assert s.compression_enabled is False

    def test_compression_enabled_with_key(self):
        s = Settings(_env_file=None, tinypng_api_key="secret")
        assert s.compression_enabled is True

    def test_whitespace_key_is_not_a_key(self):
        s = Settings(_env_file=None, tinypng_api_key="   ")
        assert s.compression_enabled is False

    def test_default_runtime_delivery(self):
        s = Settings(_env_file=None)
        assert s.lazy_root_margin_px == 50
        assert s.delivery_cache_max_bytes == 100 * 1024 * 1024
        assert s.delivery_cache_max_age_s == 86400


class TestSettingsHelpers:
    def test_source_extensions_list(self):
        s = Settings(_env_file=None, source_extensions=" JPG, .png ,gif,")
        assert s.source_extensions_list == ["jpg", "png", "gif"]


class TestSettingsValidation:
    def test_quality_out_of_range(self):
        with pytest.raises(ValueError, match="default_quality"):
            Settings(_env_file=None, default_quality=0)

    def test_workers_must_be_positive(self):
        with pytest.raises(ConfigurationError, match="BUILD_WORKERS"):
            Settings(_env_file=None, build_workers=0)

    def test_negative_root_margin(self):
        with pytest.raises(ConfigurationError, match="LAZY_ROOT_MARGIN_PX"):
            Settings(_env_file=None, lazy_root_margin_px=-1)

    def test_components_range(self):
        with pytest.raises(ConfigurationError, match="COMPONENTS"):
            Settings(_env_file=None, placeholder_components_x=10)

    def test_multiple_errors_joined(self):
        with pytest.raises(ConfigurationError, match="BUILD_WORKERS.*PLACEHOLDER_SIZE"):
            Settings(_env_file=None, build_workers=0, placeholder_size=0)


class TestLoadSettings:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DEFAULT_QUALITY", "70")
        monkeypatch.setenv("TINYPNG_API_KEY", "k")
        s = load_settings()
        assert s.default_quality == 70
        assert s.compression_enabled

    def test_env_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("OUTPUT_DIR", raising=False)
        (tmp_path / ".env").write_text("OUTPUT_DIR=dist/img\n", encoding="utf-8")
        s = load_settings()
        assert s.output_dir == Path("dist/img")

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        s = load_settings(build_workers=8)
        assert s.build_workers == 8
