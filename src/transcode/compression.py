# src/transcode/compression.py — v2
"""Optional external compression with silent fallback.

``CompressionFallbackChain.compressed()`` yields the path the encoder
should read: the externally compressed raster when the service worked,
otherwise the resized raster unchanged. Intermediate files the chain
creates are removed on exit in both cases.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path

import httpx

from adaptimg.config.settings import Settings
from adaptimg.core.errors import CompressionError

logger = logging.getLogger(__name__)


class BaseCompressor(ABC):
    """External compression step operating on a resized raster."""

    name: str = "base"

    @abstractmethod
    def compress(self, raster: Path, dest: Path) -> Path:
        """Write a compressed copy of ``raster`` to ``dest`` and return it.

        Raises:
            CompressionError: On any service or I/O failure.
        """


class TinyPngCompressor(BaseCompressor):
    """TinyPNG / Tinify REST API client (``POST /shrink`` then download)."""

    name = "tinypng"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.tinify.com/shrink",
        timeout_s: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("TinyPNG API key is required")
        self._api_key = api_key
        self._api_url = api_url
        self._timeout = timeout_s
        self._client = client

    def compress(self, raster: Path, dest: Path) -> Path:
        try:
            payload = raster.read_bytes()
        except OSError as e:
            raise CompressionError(f"cannot read {raster}: {e}") from e

        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            response = client.post(
                self._api_url, content=payload, auth=("api", self._api_key)
            )
            if response.status_code != 201:
                raise CompressionError(
                    f"TinyPNG returned HTTP {response.status_code}: "
                    f"{_error_message(response)}"
                )
            output_url = _output_url(response)
            download = client.get(output_url, auth=("api", self._api_key))
            download.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise CompressionError(f"TinyPNG request failed: {e}") from e
        finally:
            if self._client is None:
                client.close()

        try:
            dest.write_bytes(download.content)
        except OSError as e:
            raise CompressionError(f"cannot write {dest}: {e}") from e
        logger.debug(
            "TinyPNG: %s %d -> %d bytes",
            raster.name,
            len(payload),
            len(download.content),
        )
        return dest


def _output_url(response: httpx.Response) -> str:
    try:
        url = response.json()["output"]["url"]
    except (ValueError, KeyError, TypeError):
        url = response.headers.get("location")
    if not url:
        raise CompressionError("TinyPNG response has no output URL")
    return str(url)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        return str(body.get("message") or body.get("error") or body)
    except ValueError:
        return response.text[:200]


class CompressionFallbackChain:
    """Wraps an optional compressor; never lets its failures escape."""

    def __init__(self, compressor: BaseCompressor | None = None) -> None:
        self._compressor = compressor
        self._lock = threading.Lock()
        self.attempts = 0
        self.failures = 0

    @property
    def enabled(self) -> bool:
        return self._compressor is not None

    @contextlib.contextmanager
    def compressed(self, raster: Path) -> Iterator[Path]:
        """Yield the path to encode from; cleans up the intermediate file."""
        if self._compressor is None:
            yield raster
            return

        dest = raster.with_name(f"{raster.stem}.compressed{raster.suffix}")
        with self._lock:
            self.attempts += 1
        try:
            try:
                result = self._compressor.compress(raster, dest)
            except CompressionError as e:
                with self._lock:
                    self.failures += 1
                logger.warning(
                    "%s compression failed for %s, using uncompressed raster: %s",
                    self._compressor.name,
                    raster.name,
                    e,
                )
                result = raster
            yield result
        finally:
            dest.unlink(missing_ok=True)


def create_compression_chain(
    settings: Settings, enabled: bool = True
) -> CompressionFallbackChain:
    """Chain with TinyPNG when enabled and a key is configured."""
    if not enabled:
        logger.info("External compression disabled")
        return CompressionFallbackChain()
    if not settings.compression_enabled:
        logger.info("TINYPNG_API_KEY not set, skipping external compression")
        return CompressionFallbackChain()
    return CompressionFallbackChain(
        TinyPngCompressor(
            api_key=settings.tinypng_api_key,
            api_url=settings.tinypng_api_url,
            timeout_s=settings.tinypng_timeout_s,
        )
    )
