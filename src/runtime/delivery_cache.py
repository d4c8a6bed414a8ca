# src/runtime/delivery_cache.py — v2
"""URL-addressed image delivery cache with hit/miss accounting.

Serves stored responses without network access, fetches and stores on a
miss, refreshes stale entries in the background and answers the cache
message protocol (PREFETCH_IMAGES, PRELOAD_CRITICAL, CLEAR_IMAGE_CACHE,
GET_CACHE_STATS).
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

import httpx
from pydantic import BaseModel

from adaptimg.config.settings import Settings
from adaptimg.runtime.capabilities import NetworkInfoSource, NetworkSample
from adaptimg.runtime.delivery_store import (
    BaseDeliveryStore,
    CachedResponse,
    MemoryDeliveryStore,
    SqliteDeliveryStore,
)

logger = logging.getLogger(__name__)

# 1x1 transparent GIF served when an image cannot be fetched.
FALLBACK_GIF = base64.b64decode(
    "R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7"
)

# Share of entries (oldest first) evicted when the size limit is exceeded.
EVICTION_FRACTION = 0.25

PREFETCH_PAUSE_S = 0.1


class CacheStats(BaseModel):
    """Approximate counters reported by GET_CACHE_STATS."""

    hits: int = 0
    misses: int = 0
    efficiency: float = 0.0
    image_count: int = 0
    total_size: int = 0
    max_size: int = 0
    utilization: float = 0.0


class DeliveryCache:
    """Cache-first image fetcher."""

    def __init__(
        self,
        store: BaseDeliveryStore | None = None,
        client: httpx.AsyncClient | None = None,
        *,
        network: NetworkInfoSource | None = None,
        max_bytes: int = 100 * 1024 * 1024,
        max_age_s: float = 24 * 60 * 60,
        fetch_timeout_s: float = 10.0,
        prefetch_timeout_s: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store or MemoryDeliveryStore()
        self._client = client
        self._owns_client = client is None
        self._network = network
        self._max_bytes = max_bytes
        self._max_age = max_age_s
        self._fetch_timeout = fetch_timeout_s
        self._prefetch_timeout = prefetch_timeout_s
        self._clock = clock
        self._hits = 0
        self._misses = 0
        # Refreshes and message-triggered warm-ups still in flight.
        self._background: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        network: NetworkInfoSource | None = None,
    ) -> DeliveryCache:
        return cls(
            store=SqliteDeliveryStore(settings.delivery_cache_path),
            client=client,
            network=network,
            max_bytes=settings.delivery_cache_max_bytes,
            max_age_s=settings.delivery_cache_max_age_s,
            fetch_timeout_s=settings.delivery_fetch_timeout_s,
            prefetch_timeout_s=settings.prefetch_timeout_s,
        )

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    # --- Fetch path ---

    async def get(self, url: str) -> CachedResponse:
        """Serve ``url`` from cache, or fetch, store and serve it.

        Never raises for network failures: a transparent placeholder
        response flagged ``fallback=True`` is returned instead.
        """
        cached = await self._store.get(url)
        if cached is not None:
            self._hits += 1
            if self._is_stale(cached):
                self._schedule_refresh(url)
            return cached

        self._misses += 1
        try:
            response = await self._fetch(url, self._fetch_timeout)
        except httpx.HTTPError as e:
            logger.warning("Image fetch failed for %s: %s", url, e)
            return self._fallback_response(url)

        if not response.ok:
            logger.warning("Image fetch for %s returned HTTP %d", url, response.status)
            return self._fallback_response(url)

        await self._store.put(response)
        await self._enforce_size_limit()
        return response

    async def peek(self, url: str) -> CachedResponse | None:
        """Stored response without touching counters or the network."""
        return await self._store.get(url)

    async def _fetch(self, url: str, timeout: float) -> CachedResponse:
        client = self._get_client()
        r = await client.get(url, timeout=timeout)
        return CachedResponse(
            url=url,
            status=r.status_code,
            content_type=r.headers.get("content-type", "application/octet-stream"),
            body=r.content,
            stored_at=self._clock(),
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    def _is_stale(self, response: CachedResponse) -> bool:
        return self._clock() - response.stored_at > self._max_age

    def _schedule_refresh(self, url: str) -> None:
        self._spawn(self._refresh(url), f"refresh {url}")

    def _spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)

        def done(t: asyncio.Task[Any]) -> None:
            self._background.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("Background %s failed: %s", label, t.exception())

        task.add_done_callback(done)

    async def _refresh(self, url: str) -> None:
        try:
            response = await self._fetch(url, self._fetch_timeout)
        except httpx.HTTPError as e:
            logger.debug("Background refresh failed for %s: %s", url, e)
            return
        if response.ok:
            await self._store.put(response)
            await self._enforce_size_limit()

    async def wait_for_background(self) -> None:
        """Wait for pending refreshes and message-triggered warm-ups."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _fallback_response(self, url: str) -> CachedResponse:
        return CachedResponse(
            url=url,
            status=200,
            content_type="image/gif",
            body=FALLBACK_GIF,
            stored_at=self._clock(),
            fallback=True,
        )

    async def _enforce_size_limit(self) -> None:
        entries = await self._store.list_entries()
        total = sum(e.size for e in entries)
        if total <= self._max_bytes:
            return
        entries.sort(key=lambda e: e.stored_at)
        to_remove = max(1, int(len(entries) * EVICTION_FRACTION))
        for entry in entries[:to_remove]:
            await self._store.delete(entry.url)
        logger.info(
            "Delivery cache over limit (%d > %d bytes), evicted %d entries",
            total,
            self._max_bytes,
            to_remove,
        )

    # --- Warm-up ---

    async def prefetch(self, urls: list[str], priority: str = "low") -> int:
        """Warm the cache in batches. Returns the number of entries stored."""
        sample = self._network_sample()
        if sample.effective_type == "2g" and priority != "high":
            logger.debug("Skipping prefetch of %d images on 2g", len(urls))
            return 0

        fast = sample.effective_type == "4g"
        batch_size = 5 if fast else 2
        stored = 0
        for i in range(0, len(urls), batch_size):
            batch = urls[i : i + batch_size]
            results = await asyncio.gather(
                *(self._warm(url, self._prefetch_timeout) for url in batch)
            )
            stored += sum(results)
            if not fast:
                await asyncio.sleep(PREFETCH_PAUSE_S)
        return stored

    async def preload_critical(self, urls: list[str]) -> int:
        """Fetch critical images immediately, all at once."""
        results = await asyncio.gather(
            *(self._warm(url, self._fetch_timeout) for url in urls)
        )
        return sum(results)

    async def _warm(self, url: str, timeout: float) -> bool:
        if await self._store.get(url) is not None:
            return False
        try:
            response = await self._fetch(url, timeout)
        except httpx.HTTPError as e:
            logger.warning("Prefetch failed for %s: %s", url, e)
            return False
        if not response.ok:
            return False
        await self._store.put(response)
        await self._enforce_size_limit()
        return True

    def _network_sample(self) -> NetworkSample:
        sample = self._network.current() if self._network is not None else None
        return sample or NetworkSample(effective_type="4g")

    # --- Management ---

    async def clear(self) -> None:
        await self._store.clear()

    async def stats(self) -> CacheStats:
        entries = await self._store.list_entries()
        total_size = sum(e.size for e in entries)
        requests = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            efficiency=round(self._hits / requests * 100, 1) if requests else 0.0,
            image_count=len(entries),
            total_size=total_size,
            max_size=self._max_bytes,
            utilization=round(total_size / self._max_bytes * 100, 2),
        )

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Dispatch one protocol message. Only GET_CACHE_STATS replies.

        Warm-up messages return at once; their fetches run in the background.
        """
        kind = message.get("type")
        data = message.get("data") or {}
        if kind == "PREFETCH_IMAGES":
            urls = message.get("urls", data.get("urls")) or []
            priority = message.get("priority", data.get("priority", "low"))
            self._spawn(self.prefetch(list(urls), priority=priority), "prefetch")
            return None
        if kind == "PRELOAD_CRITICAL":
            images = message.get("images", data.get("images")) or []
            critical = [i["url"] if isinstance(i, dict) else str(i) for i in images]
            self._spawn(self.preload_critical(critical), "preload")
            return None
        if kind == "CLEAR_IMAGE_CACHE":
            await self.clear()
            return None
        if kind == "GET_CACHE_STATS":
            stats = await self.stats()
            return {"type": "CACHE_STATS", "data": stats.model_dump()}
        logger.debug("Ignoring unknown cache message type %r", kind)
        return None

    async def aclose(self) -> None:
        await self.wait_for_background()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
        self._store.close()
