# tests/integration/runtime/test_int_delivery.py — v1
"""Runtime delivery against a built site: resolve, fetch, cache, fall back."""

from __future__ import annotations

import pytest
import pytest_asyncio

from adaptimg.manifest.store import Manifest
from adaptimg.pipeline.build import BuildOptions, BuildRunner
from adaptimg.registry.locations import LocationRegistry
from adaptimg.runtime.capabilities import (
    ManualPerformanceSource,
    ManualVisibilityObserver,
    NetworkSample,
    PerformanceEntry,
    StaticNetworkInfo,
)
from adaptimg.runtime.delivery_cache import DeliveryCache
from adaptimg.runtime.formats import FormatNegotiator, StaticDecodeProbe
from adaptimg.runtime.network import NetworkQualitySelector
from adaptimg.runtime.performance import PerformanceMonitor
from adaptimg.runtime.placeholder import PlaceholderDecoder
from adaptimg.runtime.resolver import ImageResolver
from adaptimg.transcode.codecs import PillowCodec


@pytest_asyncio.fixture
async def built_site(site_settings, make_image):
    make_image(
        "hero-main.png",
        size=(2400, 1350),
        color=(20, 90, 160),
        directory=site_settings.input_dir,
    )
    options = BuildOptions.from_settings(site_settings)
    await BuildRunner(site_settings, options, codec=PillowCodec()).run()
    manifest = Manifest.load(site_settings.manifest_path)
    return manifest, manifest.sources[0]


def _resolver(manifest, origin, network):
    return ImageResolver(
        manifest,
        LocationRegistry(),
        FormatNegotiator(StaticDecodeProbe({"webp", "jpg"})),
        quality=NetworkQualitySelector(network),
        url_for_path=origin.url_for,
    )


class TestDelivery:
    @pytest.mark.asyncio
    async def test_resolve_fetch_and_cache(self, built_site, disk_origin, site_settings):
        manifest, source = built_site
        network = StaticNetworkInfo(NetworkSample(effective_type="4g"))
        resolver = _resolver(manifest, disk_origin, network)
        client = disk_origin.client()
        cache = DeliveryCache.from_settings(site_settings, client=client, network=network)
        try:
            image = resolver.resolve(source, "hero-main", "desktop")
            assert image.format == "webp"
            assert image.quality == 90

            outcome = await resolver.load(image, cache)
            assert outcome.format == "webp"
            assert not outcome.used_fallback

            again = await resolver.load(image, cache)
            assert again.content.body == outcome.content.body
            assert len(disk_origin.requests) == 1
            stats = await cache.stats()
            assert (stats.hits, stats.misses) == (1, 1)
        finally:
            await cache.aclose()
            await client.aclose()

    @pytest.mark.asyncio
    async def test_cache_survives_restart_offline(
        self, built_site, disk_origin, site_settings
    ):
        manifest, source = built_site
        network = StaticNetworkInfo(NetworkSample(effective_type="4g"))
        resolver = _resolver(manifest, disk_origin, network)
        image = resolver.resolve(source, "og-image", "mobile")

        client = disk_origin.client()
        first = DeliveryCache.from_settings(site_settings, client=client)
        await first.get(image.url)
        await first.aclose()

        disk_origin.root = site_settings.output_dir / "missing"
        second = DeliveryCache.from_settings(site_settings, client=client)
        try:
            served = await second.get(image.url)
            assert not served.fallback
            assert served.content_type == "image/jpeg"
        finally:
            await second.aclose()
            await client.aclose()

    @pytest.mark.asyncio
    async def test_deleted_artifact_falls_back(self, built_site, disk_origin, site_settings):
        manifest, source = built_site
        network = StaticNetworkInfo(NetworkSample(effective_type="4g"))
        resolver = _resolver(manifest, disk_origin, network)
        image = resolver.resolve(source, "hero-main", "tablet")
        rel = image.format_urls["webp"].split("cdn.test/", 1)[1]
        (disk_origin.root / rel).unlink()

        client = disk_origin.client()
        cache = DeliveryCache.from_settings(site_settings, client=client)
        try:
            outcome = await resolver.load(image, cache)
            assert outcome.format == "jpg"
            assert outcome.attempts == ["webp", "jpg"]
        finally:
            await cache.aclose()
            await client.aclose()

    @pytest.mark.asyncio
    async def test_slow_network_and_lazy_reveal(self, built_site, disk_origin):
        manifest, source = built_site
        network = StaticNetworkInfo(NetworkSample(effective_type="4g"))
        selector = NetworkQualitySelector(network)
        selector.start()
        resolver = ImageResolver(
            manifest,
            LocationRegistry(),
            FormatNegotiator(StaticDecodeProbe({"avif", "webp", "jpg"})),
            quality=selector,
            url_for_path=disk_origin.url_for,
        )
        qualities = []
        sub = selector.watch(LocationRegistry().get("hero-main"), qualities.append)
        network.update(NetworkSample(effective_type="2g"))
        sub.unsubscribe()
        selector.stop()
        assert qualities == [90, 40]

        image = resolver.resolve(source, "hero-main", "desktop")
        assert image.quality == 40

        placeholder = resolver.placeholder(image, PlaceholderDecoder(size=8))
        assert placeholder.from_hash

        observer = ManualVisibilityObserver()
        revealed = []
        ctrl = resolver.lazy_controller("hero", image, observer, lambda: revealed.append(1))
        ctrl.mount()
        assert revealed == [1]


class TestPerformanceReport:
    def test_report_with_cache_stats(self):
        source = ManualPerformanceSource()
        monitor = PerformanceMonitor(
            source, StaticNetworkInfo(NetworkSample(effective_type="2g"))
        )
        monitor.start()
        source.record(PerformanceEntry(entry_type="largest-contentful-paint", start_time=4500))
        source.record(PerformanceEntry(entry_type="layout-shift", value=0.3))
        report = monitor.report()
        monitor.stop()
        assert report.score == 45
        assert report.rating == "poor"
        assert any(i.startswith("Slow network") for i in report.insights)
