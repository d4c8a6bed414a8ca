# src/runtime/lazy.py — v1
"""Deferred image fetch: Pending until near the viewport, then Visible.

The transition happens at most once. Tearing a controller down releases
its observer registration, and no fetch is issued afterwards.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable

from adaptimg.runtime.capabilities import (
    IntersectionEvent,
    Subscription,
    VisibilityObserver,
)

logger = logging.getLogger(__name__)

DEFAULT_ROOT_MARGIN_PX = 50


class RevealState(str, enum.Enum):
    PENDING = "pending"
    VISIBLE = "visible"


class LazyRevealController:
    """Tracks one image element and triggers its fetch exactly once."""

    def __init__(
        self,
        element_id: str,
        on_reveal: Callable[[], None],
        observer: VisibilityObserver,
        *,
        high_priority: bool = False,
        root_margin_px: float = DEFAULT_ROOT_MARGIN_PX,
    ) -> None:
        self._element_id = element_id
        self._on_reveal = on_reveal
        self._observer = observer
        self._high_priority = high_priority
        self._margin = root_margin_px
        self._state = RevealState.PENDING
        self._subscription: Subscription | None = None
        self._torn_down = False
        self.fetch_count = 0

    @property
    def element_id(self) -> str:
        return self._element_id

    @property
    def state(self) -> RevealState:
        return self._state

    @property
    def is_observing(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def mount(self) -> None:
        """Start: high-priority elements reveal immediately, others observe."""
        if self._torn_down or self._state is RevealState.VISIBLE:
            return
        if self._high_priority:
            self._reveal()
            return
        if self._subscription is None:
            self._subscription = self._observer.observe(
                self._element_id, self._on_intersection
            )

    def teardown(self) -> None:
        """Element removed: release the observer, never fetch afterwards."""
        self._torn_down = True
        self._release()

    def _on_intersection(self, event: IntersectionEvent) -> None:
        if self._torn_down or self._state is RevealState.VISIBLE:
            return
        if event.within(self._margin):
            self._reveal()

    def _reveal(self) -> None:
        self._state = RevealState.VISIBLE
        self._release()
        self.fetch_count += 1
        logger.debug("Revealing %s", self._element_id)
        self._on_reveal()

    def _release(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
