# tests/unit/transcode/test_unit_codecs.py — v1
"""Tests for transcode/codecs.py — Pillow probe, resize and encode."""

from __future__ import annotations

import pytest
from PIL import Image

from adaptimg.core.errors import SourceImageError, TranscodeError
from adaptimg.transcode.codecs import PillowCodec


class TestPillowCodecProbe:
    def test_probe_size(self, make_image):
        src = make_image("a.png", size=(640, 480))
        assert PillowCodec().probe(src) == (640, 480)

    def test_probe_exif_rotation(self, tmp_path):
        src = tmp_path / "rotated.jpg"
        img = Image.new("RGB", (600, 400), (1, 2, 3))
        exif = img.getexif()
        exif[0x0112] = 6
        img.save(src, exif=exif)
        assert PillowCodec().probe(src) == (400, 600)

    def test_probe_corrupt_file(self, tmp_path):
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"not an image at all")
        with pytest.raises(SourceImageError) as exc:
            PillowCodec().probe(bad)
        assert exc.value.path == str(bad)

    def test_probe_missing_file(self, tmp_path):
        with pytest.raises(SourceImageError):
            PillowCodec().probe(tmp_path / "missing.png")


class TestPillowCodecResizeEncode:
    def test_resize_writes_exact_size(self, make_image, tmp_path):
        src = make_image("a.png", size=(800, 600))
        raster = tmp_path / "tmp" / "r.png"
        PillowCodec().resize(src, 400, 300, raster)
        with Image.open(raster) as im:
            assert im.size == (400, 300)

    def test_encode_jpg_flattens_alpha(self, make_image, tmp_path):
        src = make_image("a.png", size=(64, 64), color=(0, 0, 0, 0), mode="RGBA")
        dest = tmp_path / "out" / "a.jpg"
        size = PillowCodec().encode(src, "jpg", 80, dest)
        assert size == dest.stat().st_size
        with Image.open(dest) as im:
            assert im.format == "JPEG"
            assert im.mode == "RGB"
            assert im.getpixel((0, 0)) == pytest.approx((255, 255, 255), abs=3)

    def test_encode_webp(self, make_image, tmp_path):
        codec = PillowCodec()
        if not codec.supports("webp"):
            pytest.skip("Pillow built without WebP")
        src = make_image("a.png", size=(64, 48))
        dest = tmp_path / "a.webp"
        codec.encode(src, "webp", 75, dest)
        with Image.open(dest) as im:
            assert im.format == "WEBP"
            assert im.size == (64, 48)

    def test_encode_unsupported_format(self, make_image, tmp_path):
        src = make_image("a.png", size=(10, 10))
        with pytest.raises(TranscodeError, match="not supported"):
            PillowCodec().encode(src, "jxl", 80, tmp_path / "a.jxl")

    def test_supports(self):
        codec = PillowCodec()
        assert codec.supports("jpg")
        assert codec.supports("png")
        assert not codec.supports("jxl")
