# src/transcode/codecs.py — v1
"""Image codec strategies: probe, resize and encode.

The transcoder only depends on ``ImageCodec``; ``PillowCodec`` is the
default implementation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from adaptimg.core.errors import SourceImageError, TranscodeError

logger = logging.getLogger(__name__)

# File extension per delivery format.
FORMAT_EXTENSIONS: dict[str, str] = {
    "avif": "avif",
    "webp": "webp",
    "jxl": "jxl",
    "jpg": "jpg",
    "png": "png",
}

# Pillow plugin name per delivery format.
_PIL_FORMATS: dict[str, str] = {
    "avif": "AVIF",
    "webp": "WEBP",
    "jpg": "JPEG",
    "png": "PNG",
}


class ImageCodec(ABC):
    """Pluggable raster backend used by the transcoder."""

    @abstractmethod
    def probe(self, source: Path) -> tuple[int, int]:
        """Return (width, height) of a source image.

        Raises:
            SourceImageError: If the file cannot be read or decoded.
        """

    @abstractmethod
    def resize(self, source: Path, width: int, height: int, dest: Path) -> None:
        """Write a lossless resized raster of ``source`` to ``dest``."""

    @abstractmethod
    def encode(self, raster: Path, fmt: str, quality: int, dest: Path) -> int:
        """Encode ``raster`` into ``fmt`` at ``dest``. Returns bytes written.

        Raises:
            TranscodeError: If encoding fails.
        """

    @abstractmethod
    def supports(self, fmt: str) -> bool:
        """True if this codec can encode ``fmt``."""


class PillowCodec(ImageCodec):
    """Pillow-backed codec (AVIF needs Pillow built with libavif)."""

    def __init__(self, jpeg_background: tuple[int, int, int] = (255, 255, 255)) -> None:
        self._background = jpeg_background
        self._supported: dict[str, bool] = {}

    def probe(self, source: Path) -> tuple[int, int]:
        from PIL import Image, UnidentifiedImageError

        try:
            with Image.open(source) as im:
                im.verify()
            with Image.open(source) as im:
                return _oriented_size(im)
        except (OSError, UnidentifiedImageError, SyntaxError) as e:
            raise SourceImageError(str(source), str(e)) from e

    def resize(self, source: Path, width: int, height: int, dest: Path) -> None:
        from PIL import Image, ImageOps

        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            with Image.open(source) as im:
                im = ImageOps.exif_transpose(im)
                if im.mode not in ("RGB", "RGBA"):
                    im = im.convert("RGBA" if _has_alpha(im) else "RGB")
                resized = im.resize((width, height), Image.Resampling.LANCZOS)
                resized.save(dest, format="PNG")
        except OSError as e:
            raise TranscodeError(str(dest), f"resize failed: {e}") from e

    def encode(self, raster: Path, fmt: str, quality: int, dest: Path) -> int:
        from PIL import Image

        pil_format = _PIL_FORMATS.get(fmt)
        if pil_format is None or not self.supports(fmt):
            raise TranscodeError(str(dest), f"format {fmt!r} not supported by Pillow")

        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            with Image.open(raster) as im:
                im.load()
                if fmt == "jpg":
                    im = self._flatten(im)
                    im.save(
                        dest,
                        format=pil_format,
                        quality=quality,
                        optimize=True,
                        progressive=True,
                    )
                elif fmt == "webp":
                    im.save(dest, format=pil_format, quality=quality, method=6)
                elif fmt == "avif":
                    im.save(dest, format=pil_format, quality=quality)
                else:
                    im.save(dest, format=pil_format, optimize=True)
        except (OSError, ValueError, KeyError) as e:
            dest.unlink(missing_ok=True)
            raise TranscodeError(str(dest), str(e)) from e
        return dest.stat().st_size

    def supports(self, fmt: str) -> bool:
        if fmt not in self._supported:
            self._supported[fmt] = _pillow_can_encode(fmt)
        return self._supported[fmt]

    def _flatten(self, im):  # type: ignore[no-untyped-def]
        """Composite alpha onto a flat background (JPEG has no alpha)."""
        from PIL import Image

        if im.mode == "RGB":
            return im
        rgba = im.convert("RGBA")
        background = Image.new("RGB", rgba.size, self._background)
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background


def _pillow_can_encode(fmt: str) -> bool:
    from PIL import features

    if fmt in ("jpg", "png"):
        return True
    if fmt == "webp":
        return bool(features.check("webp"))
    if fmt == "avif":
        return bool(features.check("avif"))
    return False


def _has_alpha(im) -> bool:  # type: ignore[no-untyped-def]
    return "A" in im.getbands() or "transparency" in im.info


def _oriented_size(im) -> tuple[int, int]:  # type: ignore[no-untyped-def]
    """Image size after applying EXIF orientation."""
    orientation = im.getexif().get(0x0112, 1)
    w, h = im.size
    if orientation in (5, 6, 7, 8):
        return h, w
    return w, h
