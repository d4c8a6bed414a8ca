# src/runtime/resolver.py — v2
"""Runtime facade: manifest lookup plus format, quality and placeholder choice.

Decisions are finalized in ``resolve()`` before any fetch is issued.
Every failure degrades to something renderable: another format, the
original asset, or the placeholder.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Callable

from pydantic import BaseModel

from adaptimg.config.settings import Settings
from adaptimg.core.errors import FormatDecodeError
from adaptimg.manifest.models import ManifestArtifact
from adaptimg.manifest.store import Manifest
from adaptimg.registry.locations import LocationRegistry, load_registry
from adaptimg.registry.models import DEFAULT_QUALITY, PlaceholderStrategy
from adaptimg.runtime.capabilities import NetworkSample, VisibilityObserver
from adaptimg.runtime.delivery_cache import DeliveryCache
from adaptimg.runtime.delivery_store import CachedResponse
from adaptimg.runtime.formats import FetchOutcome, FormatNegotiator
from adaptimg.runtime.lazy import DEFAULT_ROOT_MARGIN_PX, LazyRevealController
from adaptimg.runtime.network import NetworkQualitySelector
from adaptimg.runtime.placeholder import Placeholder, PlaceholderDecoder

logger = logging.getLogger(__name__)


class ResolvedImage(BaseModel):
    """Runtime decision for one image slot.

    Artifact quality is fixed at build time; ``quality`` is the
    network-selected hint for optimizers that re-encode on the fly.
    """

    source_path: str
    placement_id: str
    viewport: str
    url: str
    format: str | None = None
    quality: int = DEFAULT_QUALITY
    width: int | None = None
    height: int | None = None
    is_original: bool = False
    preload: bool = False
    placeholder_strategy: PlaceholderStrategy = "dominant-color"
    blurhash: str | None = None
    dominant_color: str | None = None
    # Encoded format -> URL, used for decode-failure fallback.
    format_urls: dict[str, str] = {}


class ImageResolver:
    """Turns (source, placement, viewport) into a concrete, fetchable image."""

    def __init__(
        self,
        manifest: Manifest,
        registry: LocationRegistry,
        negotiator: FormatNegotiator,
        quality: NetworkQualitySelector | None = None,
        url_for_path: Callable[[str], str] | None = None,
        root_margin_px: float = DEFAULT_ROOT_MARGIN_PX,
    ) -> None:
        self._manifest = manifest
        self._registry = registry
        self._negotiator = negotiator
        self._quality = quality
        self._url_for_path = url_for_path or (lambda p: p)
        self._root_margin_px = root_margin_px

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        negotiator: FormatNegotiator,
        *,
        manifest: Manifest | None = None,
        registry: LocationRegistry | None = None,
        quality: NetworkQualitySelector | None = None,
        url_for_path: Callable[[str], str] | None = None,
    ) -> ImageResolver:
        """Resolver over the built manifest and configured registry."""
        return cls(
            manifest if manifest is not None else Manifest.load(settings.manifest_path),
            registry or load_registry(settings.registry_file),
            negotiator,
            quality=quality,
            url_for_path=url_for_path,
            root_margin_px=settings.lazy_root_margin_px,
        )

    def resolve(
        self, source_path: str, placement_id: str, viewport: str
    ) -> ResolvedImage:
        spec = self._registry.get(placement_id) if placement_id in self._registry else None
        preload = self._registry.should_preload(placement_id) if spec else False
        strategy = self._registry.placeholder_strategy(placement_id)
        quality = (
            self._quality.quality_for(spec)
            if spec is not None and self._quality is not None
            else (spec.quality if spec is not None else DEFAULT_QUALITY)
        )

        artifact = self._manifest.lookup(source_path, placement_id, viewport)
        if artifact is None:
            return ResolvedImage(
                source_path=source_path,
                placement_id=placement_id,
                viewport=viewport,
                url=self._url_for_path(source_path),
                quality=quality,
                is_original=True,
                preload=preload,
                placeholder_strategy=strategy,
            )

        preferred = [
            f
            for f in (spec.preferred_formats if spec is not None else ())
            if f in artifact.formats
        ] or list(artifact.formats)
        fmt = self._negotiator.select_format(preferred, self._sample())
        if fmt not in artifact.formats:
            fmt = next(iter(artifact.formats), fmt)
        url = self._url_for(artifact, fmt)
        return ResolvedImage(
            source_path=source_path,
            placement_id=placement_id,
            viewport=viewport,
            url=url,
            format=fmt if fmt in artifact.formats else None,
            quality=quality,
            width=artifact.width,
            height=artifact.height,
            preload=preload,
            placeholder_strategy=strategy,
            blurhash=artifact.blurhash,
            dominant_color=artifact.dominant_color,
            format_urls={
                f: self._url_for_path(v.path) for f, v in artifact.formats.items()
            },
        )

    def _url_for(self, artifact: ManifestArtifact, fmt: str) -> str:
        variant = artifact.formats.get(fmt)
        return self._url_for_path(variant.path if variant else artifact.path)

    def _sample(self) -> NetworkSample | None:
        return self._quality.sample if self._quality is not None else None

    async def load(
        self, image: ResolvedImage, cache: DeliveryCache
    ) -> FetchOutcome[CachedResponse]:
        """Fetch through the delivery cache, stepping down formats on decode failure."""
        original_url = self._url_for_path(image.source_path)
        if image.is_original or image.format is None:
            response = await cache.get(image.url)
            return FetchOutcome(None, image.url, response, ["original"])

        def url_for(fmt: str) -> str:
            return image.format_urls.get(fmt) or image.url

        async def load_one(url: str, fmt: str) -> CachedResponse:
            if fmt != "original" and fmt not in image.format_urls:
                raise FormatDecodeError(fmt, url)
            response = await cache.get(url)
            if response.fallback or not _decodes(response.body):
                raise FormatDecodeError(fmt, url)
            return response

        return await self._negotiator.fetch_with_fallback(
            image.format, url_for, load_one, original_url
        )

    @staticmethod
    def placeholder(image: ResolvedImage, decoder: PlaceholderDecoder) -> Placeholder:
        hash_string = image.blurhash if image.placeholder_strategy == "blurhash" else None
        return decoder.decode(hash_string, image.dominant_color)

    def lazy_controller(
        self,
        element_id: str,
        image: ResolvedImage,
        observer: VisibilityObserver,
        on_reveal: Callable[[], None],
        root_margin_px: float | None = None,
    ) -> LazyRevealController:
        """Lazy reveal for ``image``; the margin defaults to the resolver's."""
        high_priority = False
        if image.placement_id in self._registry:
            high_priority = self._registry.get(image.placement_id).is_high_priority
        return LazyRevealController(
            element_id,
            on_reveal,
            observer,
            high_priority=high_priority,
            root_margin_px=(
                self._root_margin_px if root_margin_px is None else root_margin_px
            ),
        )


def _decodes(body: bytes) -> bool:
    from PIL import Image

    try:
        with Image.open(io.BytesIO(body)) as im:
            im.load()
    except Exception:  # noqa: BLE001
        return False
    return True
