# src/logging/context.py — v2
"""Contextual logging support: attach run_id, source, placement, viewport to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per image pipeline.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_source: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "source", default=None
)
_placement: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "placement", default=None
)
_viewport: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "viewport", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    source: str | None = None
    placement: str | None = None
    viewport: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        source=_source.get(),
        placement=_placement.get(),
        viewport=_viewport.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per build run)."""
    _run_id.set(run_id)


def set_source_context(source: str) -> None:
    """Set image-level context (called per source image)."""
    _source.set(source)
    _placement.set(None)
    _viewport.set(None)


def set_artifact_context(placement: str, viewport: str | None = None) -> None:
    """Set artifact-level context (called per placement/viewport)."""
    _placement.set(placement)
    _viewport.set(viewport)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _source.set(None)
    _placement.set(None)
    _viewport.set(None)
