# src/runtime/network.py — v1
"""Network-aware quality selection.

``select_quality`` is the pure decision. ``NetworkQualitySelector`` keeps
the latest connection sample and re-evaluates watched placements on
every connection-change event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from adaptimg.registry.models import PlacementSpec
from adaptimg.runtime.capabilities import NetworkInfoSource, NetworkSample, Subscription

logger = logging.getLogger(__name__)


def select_quality(placement: PlacementSpec, sample: NetworkSample | None) -> int:
    """Quality for ``placement`` on the connection described by ``sample``.

    Save-data picks the lowest adaptive tier; otherwise the effective type
    is looked up directly. Without a table, a sample or a matching tier,
    the placement's static quality applies.
    """
    table = placement.adaptive_quality
    if table is None or sample is None:
        return placement.quality
    if sample.save_data:
        return table.lowest()
    quality = table.for_effective_type(sample.effective_type)
    return quality if quality is not None else placement.quality


class NetworkQualitySelector:
    """Tracks the connection and pushes quality decisions to watchers."""

    def __init__(self, source: NetworkInfoSource) -> None:
        self._source = source
        self._sample: NetworkSample | None = source.current()
        self._watchers: dict[int, tuple[PlacementSpec, Callable[[int], None]]] = {}
        self._next = 0
        self._subscription: Subscription | None = None

    @property
    def sample(self) -> NetworkSample | None:
        return self._sample

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self._source.subscribe(self._on_change)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._watchers.clear()

    def quality_for(self, placement: PlacementSpec) -> int:
        """Decision for the next fetch; static default until a sample arrives."""
        return select_quality(placement, self._sample)

    def watch(
        self, placement: PlacementSpec, callback: Callable[[int], None]
    ) -> Subscription:
        """Call ``callback`` now and after every connection change."""
        token = self._next
        self._next += 1
        self._watchers[token] = (placement, callback)
        callback(self.quality_for(placement))
        return Subscription(lambda: self._watchers.pop(token, None))

    def _on_change(self, sample: NetworkSample) -> None:
        self._sample = sample
        logger.debug(
            "Connection changed: %s (save_data=%s)",
            sample.effective_type,
            sample.save_data,
        )
        for placement, callback in list(self._watchers.values()):
            callback(select_quality(placement, sample))
