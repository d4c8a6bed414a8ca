# tests/unit/runtime/test_unit_placeholder.py — v1
"""Tests for runtime/placeholder.py — BlurHash encode/decode and flat fallback."""

from __future__ import annotations

import pytest
from PIL import Image

from adaptimg.core.errors import PlaceholderDecodeError
from adaptimg.runtime.placeholder import PlaceholderDecoder, PlaceholderEncoder

_VALID_HASH = "LEHV6nWB2yk8pyo0adR*.7kCMdnj"


class TestPlaceholderEncoder:
    def test_encode_solid_image(self, make_image):
        src = make_image("solid.png", size=(120, 80), color=(30, 60, 90))
        info = PlaceholderEncoder().encode(src)
        assert info.dominant_color == "rgb(30, 60, 90)"
        assert info.blurhash
        decoded = PlaceholderDecoder(size=8).decode_strict(info.blurhash)
        r, g, b = decoded.getpixel((4, 4))
        assert abs(r - 30) <= 6 and abs(g - 60) <= 6 and abs(b - 90) <= 6

    def test_components_change_length(self, make_image):
        src = make_image("solid.png", size=(64, 64))
        short = PlaceholderEncoder(components_x=1, components_y=1).encode(src)
        long = PlaceholderEncoder(components_x=4, components_y=3).encode(src)
        assert len(short.blurhash) < len(long.blurhash)

    def test_unreadable_source_uses_fallback(self, tmp_path):
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"nope")
        info = PlaceholderEncoder(fallback_color="#112233").encode(bad)
        assert info.blurhash is None
        assert info.dominant_color == "#112233"


class TestPlaceholderDecoder:
    def test_decode_valid_hash(self):
        placeholder = PlaceholderDecoder(size=16).decode(_VALID_HASH)
        assert placeholder.from_hash
        assert placeholder.image.size == (16, 16)

    @pytest.mark.parametrize("bad", ["", "abc", "!!!!!!!!!!!!!!!!", "L" * 3])
    def test_invalid_hash_falls_back_to_colour(self, bad):
        placeholder = PlaceholderDecoder(size=4).decode(bad, "rgb(10, 20, 30)")
        assert not placeholder.from_hash
        assert placeholder.image.getpixel((0, 0)) == (10, 20, 30)

    def test_strict_raises(self):
        with pytest.raises(PlaceholderDecodeError):
            PlaceholderDecoder().decode_strict("abc")

    def test_bad_colour_uses_fallback(self):
        placeholder = PlaceholderDecoder(size=2, fallback_color="#ff0000").decode(
            None, "not-a-colour"
        )
        assert placeholder.image.getpixel((0, 0)) == (255, 0, 0)

    def test_default_fallback(self):
        image = PlaceholderDecoder(size=2).solid(None)
        assert isinstance(image, Image.Image)
        assert image.getpixel((1, 1)) == (243, 244, 246)
