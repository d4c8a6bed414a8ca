# src/runtime/formats.py — v1
"""Client format negotiation with decode-failure fallback.

Support for a format is established by decoding a tiny embedded sample
image. At fetch time a decode failure steps down through
``FALLBACK_TABLE`` until the universal format, then the original asset.
"""

from __future__ import annotations

import base64
import io
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Generic, TypeVar

from adaptimg.core.errors import FormatDecodeError
from adaptimg.registry.models import UNIVERSAL_FORMAT
from adaptimg.runtime.capabilities import NetworkSample

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Next format to try after a decode failure. The universal format is terminal.
FALLBACK_TABLE: dict[str, str] = {
    "avif": "webp",
    "webp": UNIVERSAL_FORMAT,
    "jxl": "webp",
}

# Minimal test images used for capability probing.
PROBE_SAMPLES: dict[str, str] = {
    "avif": (
        "AAAAIGZ0eXBhdmlmAAAAAGF2aWZtaWYxbWlhZk1BMUIAAADybWV0YQAAAAAAAAAoaGRscgAA"
        "AAAAAAAAcGljdAAAAAAAAAAAAAAAAGxpYmF2aWYAAAAADnBpdG0AAAAAAAEAAAAeaWxvYwAA"
        "AABEAAABAAEAAAABAAABGgAAAB0AAAAoaWluZgAAAAAAAQAAABppbmZlAgAAAAABAABhdjAx"
        "Q29sb3IAAAAAamlwcnAAAABLaXBjbwAAABRpc3BlAAAAAAAAAAIAAAACAAAAEHBpeGkAAAAA"
        "AwgICAAAAAxhdjFDgQ0MAAAAABNjb2xybmNseAACAAIAAYAAAAAXaXBtYQAAAAAAAAABAAEE"
        "AQKDBAAAACVtZGF0EgAKCBgABogQEAwgMg8f8D///8WfhwB8+ErK42A="
    ),
    "webp": (
        "UklGRjoAAABXRUJQVlA4IC4AAACyAgCdASoCAAIALmk0mk0iIiIiIgBoSygABc6WWgAA/veff/"
        "0PP8bA//LwYAAA"
    ),
    "jxl": "/woIAAAMABKIAgC4",
    "jpg": (
        "/9j/4AAQSkZJRgABAQEASABIAAD/2wBDAP//////////////////////////////////////"
        "////////////////////////////////////////////////wgALCAABAAEBAREA/8QAFBAB"
        "AAAAAAAAAAAAAAAAAAAAAP/aAAgBAQABPxA="
    ),
}


class DecodeProbe(ABC):
    """Answers whether the client can decode a format."""

    @abstractmethod
    def can_decode(self, fmt: str) -> bool: ...

    def supported(self, formats: Iterable[str]) -> set[str]:
        return {f for f in formats if self.can_decode(f)}


class PillowDecodeProbe(DecodeProbe):
    """Probe by decoding the embedded samples with Pillow."""

    def __init__(self, samples: dict[str, bytes] | None = None) -> None:
        self._samples = samples or {
            fmt: base64.b64decode(data) for fmt, data in PROBE_SAMPLES.items()
        }
        self._results: dict[str, bool] = {}

    def can_decode(self, fmt: str) -> bool:
        if fmt not in self._results:
            self._results[fmt] = self._probe(fmt)
        return self._results[fmt]

    def _probe(self, fmt: str) -> bool:
        from PIL import Image

        sample = self._samples.get(fmt)
        if sample is None:
            return False
        try:
            with Image.open(io.BytesIO(sample)) as im:
                im.load()
                ok = im.width >= 1
        except Exception as e:  # noqa: BLE001
            logger.debug("Decode probe failed for %s: %s", fmt, e)
            return False
        logger.debug("Decode probe for %s: %s", fmt, ok)
        return ok


class StaticDecodeProbe(DecodeProbe):
    """Fixed capability set."""

    def __init__(self, formats: Iterable[str]) -> None:
        self._formats = set(formats)

    def can_decode(self, fmt: str) -> bool:
        return fmt in self._formats


def select_format(
    preferred: Sequence[str],
    supported: Iterable[str],
    sample: NetworkSample | None = None,
) -> str:
    """First supported format in preference order, else the universal one.

    On save-data or 2G-class connections WebP is preferred when offered,
    since it decodes faster than AVIF on constrained devices.
    """
    available = set(supported)
    if sample is not None and sample.is_slow:
        if "webp" in preferred and "webp" in available:
            return "webp"
    for fmt in preferred:
        if fmt in available:
            return fmt
    return UNIVERSAL_FORMAT


def fallback_chain(fmt: str) -> list[str]:
    """``fmt`` followed by each fallback step, ending at the universal format."""
    chain = [fmt]
    while chain[-1] in FALLBACK_TABLE and FALLBACK_TABLE[chain[-1]] not in chain:
        chain.append(FALLBACK_TABLE[chain[-1]])
    if chain[-1] != UNIVERSAL_FORMAT and UNIVERSAL_FORMAT not in chain:
        chain.append(UNIVERSAL_FORMAT)
    return chain


class FetchOutcome(Generic[T]):
    """Result of a fetch that may have stepped down formats."""

    def __init__(
        self, fmt: str | None, url: str, content: T | None, attempts: list[str]
    ) -> None:
        self.format = fmt
        self.url = url
        self.content = content
        self.attempts = attempts

    @property
    def used_fallback(self) -> bool:
        return len(self.attempts) > 1

    @property
    def is_original(self) -> bool:
        return self.format is None


class FormatNegotiator:
    """Selects a delivery format per client and recovers from decode failures."""

    def __init__(self, probe: DecodeProbe | None = None) -> None:
        self._probe = probe or PillowDecodeProbe()

    def supported(self, formats: Iterable[str]) -> set[str]:
        return self._probe.supported(formats)

    def select_format(
        self, preferred: Sequence[str], sample: NetworkSample | None = None
    ) -> str:
        return select_format(preferred, self.supported(preferred), sample)

    async def fetch_with_fallback(
        self,
        fmt: str,
        url_for: Callable[[str], str],
        load: Callable[[str, str], Awaitable[T]],
        original_url: str,
    ) -> FetchOutcome[T]:
        """Load ``url_for(fmt)``, stepping down on ``FormatDecodeError``.

        ``load(url, fmt)`` raises FormatDecodeError when the response does
        not decode. After the universal format fails the original asset is
        loaded; if that fails too the outcome carries no content.
        """
        attempts: list[str] = []
        for candidate in fallback_chain(fmt):
            url = url_for(candidate)
            attempts.append(candidate)
            try:
                return FetchOutcome(candidate, url, await load(url, candidate), attempts)
            except FormatDecodeError as e:
                logger.warning("%s, trying next format", e)

        attempts.append("original")
        try:
            content = await load(original_url, "original")
        except FormatDecodeError as e:
            logger.warning("Original asset failed to decode: %s", e)
            content = None
        return FetchOutcome(None, original_url, content, attempts)
