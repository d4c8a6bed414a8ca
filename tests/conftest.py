# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a Pillow image factory, isolated Settings, and a deterministic
in-memory codec. No network access: HTTP is mocked with httpx.MockTransport.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from adaptimg.config.settings import Settings
from adaptimg.core.errors import SourceImageError, TranscodeError
from adaptimg.transcode.codecs import ImageCodec


class FakeCodec(ImageCodec):
    """Deterministic codec: real probe, fake raster and encoded bytes.

    ``resize`` writes "<w>x<h>" into the raster; ``encode`` writes a payload
    whose size depends on format and quality so savings are predictable.
    """

    FORMAT_FACTOR = {"avif": 1, "webp": 2, "jpg": 3, "png": 4, "jxl": 1}

    def __init__(self, supported: set[str] | None = None) -> None:
        self.supported = supported or {"avif", "webp", "jpg", "png"}
        self.fail_formats: set[str] = set()
        self.fail_resize = False
        self.resize_calls: list[tuple[int, int]] = []
        self.encode_calls: list[tuple[str, int, str]] = []

    def probe(self, source: Path) -> tuple[int, int]:
        try:
            with Image.open(source) as im:
                return im.size
        except OSError as e:
            raise SourceImageError(str(source), str(e)) from e

    def resize(self, source: Path, width: int, height: int, dest: Path) -> None:
        if self.fail_resize:
            raise TranscodeError(str(dest), "resize failed")
        self.resize_calls.append((width, height))
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(f"{width}x{height}")

    def encode(self, raster: Path, fmt: str, quality: int, dest: Path) -> int:
        if fmt in self.fail_formats:
            raise TranscodeError(str(dest), f"{fmt} encoder crashed")
        self.encode_calls.append((fmt, quality, raster.name))
        width = int(raster.read_text().split("x")[0])
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"\0" * (width * self.FORMAT_FACTOR[fmt] + quality))
        return dest.stat().st_size

    def supports(self, fmt: str) -> bool:
        return fmt in self.supported


# === FIXTURES: Images ===


@pytest.fixture
def make_image(tmp_path: Path):
    """Factory writing a real image file: make_image(name, size, color, fmt)."""

    def _make(
        name: str = "photo.png",
        size: tuple[int, int] = (800, 600),
        color: tuple[int, ...] = (200, 40, 40),
        directory: Path | None = None,
        mode: str = "RGB",
    ) -> Path:
        target_dir = directory or tmp_path / "assets"
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        img = Image.new(mode, size, color)
        img.save(path)
        return path

    return _make


@pytest.fixture
def tmp_assets(tmp_path: Path) -> Path:
    d = tmp_path / "assets"
    d.mkdir()
    return d


@pytest.fixture
def tmp_output(tmp_path: Path) -> Path:
    return tmp_path / "optimized"


# === FIXTURES: Configuration ===


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any .env file and the real working tree."""
    return Settings(
        _env_file=None,
        input_dir=tmp_path / "assets",
        output_dir=tmp_path / "optimized",
        cache_file=tmp_path / ".image-optimization-cache.json",
        delivery_cache_path=tmp_path / "delivery-cache.db",
        build_workers=2,
        tinypng_api_key="",
    )


# === FIXTURES: Codecs ===


@pytest.fixture
def fake_codec() -> FakeCodec:
    return FakeCodec()
