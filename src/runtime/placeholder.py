# src/runtime/placeholder.py — v1
"""BlurHash placeholders: encoded at build time, decoded at render time.

Decoding never fails from the caller's point of view: an invalid hash
yields a flat fill of the dominant colour (or the configured fallback).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import blurhash
from PIL import Image, ImageColor

from adaptimg.core.errors import PlaceholderDecodeError

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_COLOR = "#f3f4f6"


@dataclass(frozen=True)
class PlaceholderInfo:
    """Per-source placeholder metadata stored in the manifest."""

    blurhash: str | None
    dominant_color: str


@dataclass(frozen=True)
class Placeholder:
    image: Image.Image
    from_hash: bool


class PlaceholderEncoder:
    """Computes BlurHash and dominant colour for a source image."""

    def __init__(
        self,
        size: int = 32,
        components_x: int = 4,
        components_y: int = 3,
        fallback_color: str = DEFAULT_FALLBACK_COLOR,
    ) -> None:
        self._size = size
        self._components = (components_x, components_y)
        self._fallback = fallback_color

    def encode(self, source: Path) -> PlaceholderInfo:
        try:
            with Image.open(source) as im:
                rgb = im.convert("RGB")
        except OSError as e:
            logger.warning("Cannot build placeholder for %s: %s", source, e)
            return PlaceholderInfo(blurhash=None, dominant_color=self._fallback)
        return PlaceholderInfo(
            blurhash=self.blurhash_for(rgb),
            dominant_color=self.dominant_color_for(rgb),
        )

    def blurhash_for(self, image: Image.Image) -> str | None:
        thumb = image.convert("RGB")
        thumb.thumbnail((self._size, self._size))
        width, height = thumb.size
        px = thumb.load()
        rows = [[list(px[x, y]) for x in range(width)] for y in range(height)]
        try:
            return blurhash.encode(
                rows, components_x=self._components[0], components_y=self._components[1]
            )
        except ValueError as e:
            logger.warning("BlurHash encoding failed: %s", e)
            return None

    def dominant_color_for(self, image: Image.Image) -> str:
        try:
            pixel = image.convert("RGB").resize((1, 1), Image.Resampling.LANCZOS)
            r, g, b = pixel.getpixel((0, 0))
        except (OSError, ValueError) as e:
            logger.warning("Dominant colour extraction failed: %s", e)
            return self._fallback
        return f"rgb({r}, {g}, {b})"


class PlaceholderDecoder:
    """Turns a BlurHash into a small raster, or a flat colour on failure."""

    def __init__(
        self, size: int = 32, fallback_color: str = DEFAULT_FALLBACK_COLOR
    ) -> None:
        self._size = size
        self._fallback = fallback_color

    @property
    def size(self) -> int:
        return self._size

    def decode_strict(self, hash_string: str) -> Image.Image:
        """Decode or raise PlaceholderDecodeError."""
        try:
            rows = blurhash.decode(hash_string, self._size, self._size)
        except (ValueError, IndexError, TypeError) as e:
            raise PlaceholderDecodeError(f"Invalid BlurHash {hash_string!r}: {e}") from e
        image = Image.new("RGB", (self._size, self._size))
        image.putdata(
            [
                tuple(max(0, min(255, int(round(c)))) for c in pixel[:3])
                for row in rows
                for pixel in row
            ]
        )
        return image

    def decode(
        self, hash_string: str | None, dominant_color: str | None = None
    ) -> Placeholder:
        if hash_string:
            try:
                return Placeholder(self.decode_strict(hash_string), from_hash=True)
            except PlaceholderDecodeError as e:
                logger.debug("%s, using flat colour", e)
        return Placeholder(self.solid(dominant_color), from_hash=False)

    def solid(self, color: str | None) -> Image.Image:
        return Image.new("RGB", (self._size, self._size), self._parse_color(color))

    def _parse_color(self, color: str | None) -> tuple[int, int, int]:
        for candidate in (color, self._fallback, DEFAULT_FALLBACK_COLOR):
            if not candidate:
                continue
            try:
                rgb = ImageColor.getrgb(candidate)
            except ValueError:
                continue
            return rgb[0], rgb[1], rgb[2]
        return 243, 244, 246
