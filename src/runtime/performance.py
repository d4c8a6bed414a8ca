# src/runtime/performance.py — v1
"""Passive performance monitor: composite score and recommendations.

``compute_score`` and ``recommend`` are pure functions of a metrics
snapshot. ``PerformanceMonitor`` subscribes to performance entries and
keeps the snapshot current. Its output is advisory only.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from adaptimg.runtime.capabilities import (
    NetworkInfoSource,
    PerformanceEntry,
    PerformanceEntrySource,
    Subscription,
)
from adaptimg.runtime.delivery_cache import CacheStats

logger = logging.getLogger(__name__)

Rating = Literal["good", "needs-improvement", "poor"]

# (poor threshold, poor penalty, needs-improvement threshold, penalty)
SCORE_PENALTIES: dict[str, tuple[float, int, float, int]] = {
    "lcp": (4000, 30, 2500, 15),
    "fid": (300, 25, 100, 10),
    "cls": (0.25, 25, 0.1, 10),
    "inp": (500, 20, 200, 10),
}

LARGE_IMAGE_BYTES = 500 * 1024
LOW_CACHE_EFFICIENCY = 80.0


class PerformanceMetrics(BaseModel):
    """Latest value per timing category (None until observed)."""

    lcp: float | None = None
    fid: float | None = None
    cls: float | None = None
    inp: float | None = None
    fcp: float | None = None
    ttfb: float | None = None


class ImageTiming(BaseModel):
    url: str
    load_time_ms: float
    size_bytes: int = 0
    failed: bool = False


class PerformanceReport(BaseModel):
    metrics: PerformanceMetrics
    score: int
    rating: Rating
    recommendations: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    image_count: int = 0
    average_image_bytes: float = 0.0


def compute_score(metrics: PerformanceMetrics) -> int:
    """100 minus a fixed penalty per metric past its threshold, floored at 0."""
    score = 100
    for name, (poor, poor_penalty, fair, fair_penalty) in SCORE_PENALTIES.items():
        value = getattr(metrics, name)
        if value is None:
            continue
        if value > poor:
            score -= poor_penalty
        elif value > fair:
            score -= fair_penalty
    return max(0, score)


def rating_for(score: int) -> Rating:
    if score >= 90:
        return "good"
    if score >= 70:
        return "needs-improvement"
    return "poor"


def recommend(metrics: PerformanceMetrics) -> list[str]:
    """Advice for every metric past its needs-improvement threshold."""
    recs: list[str] = []
    if metrics.lcp is not None and metrics.lcp > 2500:
        recs.append('Optimize LCP: Preload critical images, use fetchpriority="high"')
    if metrics.cls is not None and metrics.cls > 0.1:
        recs.append("Reduce CLS: Set explicit image dimensions, use aspect-ratio CSS")
    if metrics.fcp is not None and metrics.fcp > 1800:
        recs.append("Improve FCP: Inline critical CSS, preload key resources")
    if metrics.inp is not None and metrics.inp > 200:
        recs.append(
            "Optimize INP: Reduce JavaScript execution time, debounce interactions"
        )
    if metrics.ttfb is not None and metrics.ttfb > 800:
        recs.append("Improve TTFB: Optimize server response time, use CDN")
    return recs


def image_insights(
    images: list[ImageTiming],
    cache_stats: CacheStats | None = None,
    effective_type: str | None = None,
    save_data: bool = False,
) -> list[str]:
    insights: list[str] = []
    failed = [i for i in images if i.failed]
    if failed:
        insights.append(f"{len(failed)} images failed to load")
    loaded = [i for i in images if not i.failed]
    if loaded:
        average = sum(i.size_bytes for i in loaded) / len(loaded)
        if average > LARGE_IMAGE_BYTES:
            insights.append(
                f"Average image size is {average / 1024:.0f}KB, consider smaller variants"
            )
    if cache_stats is not None and cache_stats.hits + cache_stats.misses > 0:
        if cache_stats.efficiency < LOW_CACHE_EFFICIENCY:
            insights.append(
                f"Cache efficiency is {cache_stats.efficiency:.0f}%, "
                "consider prefetching critical images"
            )
    if effective_type in ("slow-2g", "2g"):
        insights.append("Slow network detected, serving reduced quality images")
    if save_data:
        insights.append("Data saver mode active, using maximum compression")
    return insights


class PerformanceMonitor:
    """Collects performance entries into a metrics snapshot."""

    ENTRY_TYPES = (
        "largest-contentful-paint",
        "first-input",
        "layout-shift",
        "event",
        "paint",
        "navigation",
        "resource",
    )

    def __init__(
        self,
        source: PerformanceEntrySource,
        network: NetworkInfoSource | None = None,
    ) -> None:
        self._source = source
        self._network = network
        self._metrics = PerformanceMetrics()
        self._cls_total = 0.0
        self._images: list[ImageTiming] = []
        self._cache_stats: CacheStats | None = None
        self._subscriptions: list[Subscription] = []

    @property
    def metrics(self) -> PerformanceMetrics:
        return self._metrics.model_copy()

    @property
    def images(self) -> list[ImageTiming]:
        return list(self._images)

    def start(self) -> None:
        if self._subscriptions:
            return
        for entry_type in self.ENTRY_TYPES:
            self._subscriptions.append(
                self._source.subscribe(entry_type, self._on_entry)
            )

    def stop(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()

    def update_cache_stats(self, stats: CacheStats) -> None:
        self._cache_stats = stats

    def _on_entry(self, entry: PerformanceEntry) -> None:
        kind = entry.entry_type
        m = self._metrics
        if kind == "largest-contentful-paint":
            m.lcp = entry.start_time
        elif kind == "first-input":
            if m.fid is None and entry.processing_start is not None:
                m.fid = entry.processing_start - entry.start_time
        elif kind == "layout-shift":
            if not entry.had_recent_input:
                self._cls_total += entry.value
                m.cls = self._cls_total
        elif kind == "event":
            m.inp = max(m.inp or 0.0, entry.duration)
        elif kind == "paint":
            if entry.name == "first-contentful-paint":
                m.fcp = entry.start_time
        elif kind == "navigation":
            if entry.response_start is not None and entry.request_start is not None:
                m.ttfb = entry.response_start - entry.request_start
        elif kind == "resource" and entry.initiator_type == "img":
            self._images.append(
                ImageTiming(
                    url=entry.name,
                    load_time_ms=entry.duration,
                    size_bytes=entry.transfer_size,
                    failed=entry.failed,
                )
            )

    def report(self) -> PerformanceReport:
        metrics = self.metrics
        score = compute_score(metrics)
        sample = self._network.current() if self._network is not None else None
        loaded = [i for i in self._images if not i.failed]
        return PerformanceReport(
            metrics=metrics,
            score=score,
            rating=rating_for(score),
            recommendations=recommend(metrics),
            insights=image_insights(
                self._images,
                self._cache_stats,
                effective_type=sample.effective_type if sample else None,
                save_data=sample.save_data if sample else False,
            ),
            image_count=len(self._images),
            average_image_bytes=(
                sum(i.size_bytes for i in loaded) / len(loaded) if loaded else 0.0
            ),
        )

    def log_report(self) -> PerformanceReport:
        report = self.report()
        logger.info(
            "Performance score %d (%s)",
            report.score,
            report.rating,
            extra={"data": report.model_dump()},
        )
        for rec in report.recommendations:
            logger.info("Recommendation: %s", rec)
        return report
