# src/runtime/capabilities.py — v1
"""Capability interfaces for the client environment, with in-memory doubles.

Connection info, viewport visibility, performance entries and the
delivery-cache message channel are owned by the host environment. Each
is reached through a small interface; every listener registration
returns a ``Subscription`` that must be released on teardown.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Awaitable

from pydantic import BaseModel, ConfigDict

from adaptimg.registry.models import EffectiveType

logger = logging.getLogger(__name__)


class Subscription:
    """Handle for a registered listener. ``unsubscribe()`` is idempotent."""

    def __init__(self, release: Callable[[], None] | None = None) -> None:
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._release is not None:
            self._release()
            self._release = None

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.unsubscribe()


class _ListenerSet:
    """Thread-safe callback registry shared by the in-memory doubles."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[int, Callable[..., None]] = {}
        self._next = 0

    def add(self, callback: Callable[..., None]) -> Subscription:
        with self._lock:
            token = self._next
            self._next += 1
            self._listeners[token] = callback

        def release() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return Subscription(release)

    def emit(self, *args: Any) -> None:
        with self._lock:
            callbacks = list(self._listeners.values())
        for cb in callbacks:
            cb(*args)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


# ---------------------------------------------------------------------------
# Network information
# ---------------------------------------------------------------------------


class NetworkSample(BaseModel):
    """Snapshot of the client's connection, refreshed on change events."""

    model_config = ConfigDict(frozen=True)

    effective_type: EffectiveType | None = None
    save_data: bool = False
    downlink_mbps: float | None = None

    @property
    def is_slow(self) -> bool:
        return self.save_data or self.effective_type in ("slow-2g", "2g")


class NetworkInfoSource(ABC):
    """Reports the current connection and notifies on changes."""

    @abstractmethod
    def current(self) -> NetworkSample | None:
        """Latest sample, or None if not yet known."""

    @abstractmethod
    def subscribe(self, callback: Callable[[NetworkSample], None]) -> Subscription:
        """Call ``callback`` on every connection change."""


class StaticNetworkInfo(NetworkInfoSource):
    """Settable network source; ``update()`` fires change events."""

    def __init__(self, sample: NetworkSample | None = None) -> None:
        self._sample = sample
        self._listeners = _ListenerSet()

    def current(self) -> NetworkSample | None:
        return self._sample

    def subscribe(self, callback: Callable[[NetworkSample], None]) -> Subscription:
        return self._listeners.add(callback)

    def update(self, sample: NetworkSample) -> None:
        self._sample = sample
        self._listeners.emit(sample)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


# ---------------------------------------------------------------------------
# Viewport visibility
# ---------------------------------------------------------------------------


class IntersectionEvent(BaseModel):
    """Distance of an element's box from the viewport (0 when inside)."""

    model_config = ConfigDict(frozen=True)

    element_id: str
    distance_px: float

    def within(self, margin_px: float) -> bool:
        return self.distance_px <= margin_px


class VisibilityObserver(ABC):
    """Watches elements approaching the viewport."""

    @abstractmethod
    def observe(
        self, element_id: str, callback: Callable[[IntersectionEvent], None]
    ) -> Subscription:
        """Report intersection changes for ``element_id`` until unsubscribed."""


class ManualVisibilityObserver(VisibilityObserver):
    """Visibility observer driven explicitly through ``scroll_to()``."""

    def __init__(self) -> None:
        self._by_element: dict[str, _ListenerSet] = {}
        self._lock = threading.Lock()

    def observe(
        self, element_id: str, callback: Callable[[IntersectionEvent], None]
    ) -> Subscription:
        with self._lock:
            listeners = self._by_element.setdefault(element_id, _ListenerSet())
        return listeners.add(callback)

    def scroll_to(self, element_id: str, distance_px: float) -> None:
        with self._lock:
            listeners = self._by_element.get(element_id)
        if listeners is not None:
            listeners.emit(
                IntersectionEvent(element_id=element_id, distance_px=distance_px)
            )

    def observed_count(self, element_id: str | None = None) -> int:
        with self._lock:
            if element_id is not None:
                ls = self._by_element.get(element_id)
                return len(ls) if ls is not None else 0
            return sum(len(ls) for ls in self._by_element.values())


# ---------------------------------------------------------------------------
# Performance entries
# ---------------------------------------------------------------------------


class PerformanceEntry(BaseModel):
    """One timing observation.

    ``entry_type`` is one of ``largest-contentful-paint``, ``first-input``,
    ``layout-shift``, ``event``, ``paint``, ``navigation`` or ``resource``.
    """

    entry_type: str
    name: str = ""
    start_time: float = 0.0
    duration: float = 0.0
    value: float = 0.0
    processing_start: float | None = None
    response_start: float | None = None
    request_start: float | None = None
    had_recent_input: bool = False
    transfer_size: int = 0
    initiator_type: str = ""
    failed: bool = False


class PerformanceEntrySource(ABC):
    @abstractmethod
    def subscribe(
        self, entry_type: str, callback: Callable[[PerformanceEntry], None]
    ) -> Subscription:
        """Deliver entries of ``entry_type`` as they are recorded."""


class ManualPerformanceSource(PerformanceEntrySource):
    """Performance source fed through ``record()``."""

    def __init__(self) -> None:
        self._by_type: dict[str, _ListenerSet] = {}
        self._lock = threading.Lock()

    def subscribe(
        self, entry_type: str, callback: Callable[[PerformanceEntry], None]
    ) -> Subscription:
        with self._lock:
            listeners = self._by_type.setdefault(entry_type, _ListenerSet())
        return listeners.add(callback)

    def record(self, entry: PerformanceEntry) -> None:
        with self._lock:
            listeners = self._by_type.get(entry.entry_type)
        if listeners is not None:
            listeners.emit(entry)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return sum(len(ls) for ls in self._by_type.values())


# ---------------------------------------------------------------------------
# Delivery cache channel
# ---------------------------------------------------------------------------


class DeliveryCacheChannel(ABC):
    """Message channel to the background delivery cache."""

    @abstractmethod
    async def post(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Send a message; returns the reply for query messages, else None."""


class InProcessCacheChannel(DeliveryCacheChannel):
    """Channel that hands messages straight to a handler coroutine."""

    def __init__(
        self, handler: Callable[[dict[str, Any]], Awaitable[dict[str, Any] | None]]
    ) -> None:
        self._handler = handler
        self.sent: list[dict[str, Any]] = []

    async def post(self, message: dict[str, Any]) -> dict[str, Any] | None:
        self.sent.append(message)
        return await self._handler(message)
