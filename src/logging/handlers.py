# src/logging/handlers.py — v3
"""File handler for build logs and a filter exposing the image context.

Build logs rotate by size. Every record passing through the handler is
stamped with the current run/source/placement/viewport so plain
``%(source)s``-style format strings work as well as the JSON formatter.
"""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

from adaptimg.logging.context import get_context

_SIZE_RE = re.compile(r"^(\d+)\s*([KMG]?)B?$", re.IGNORECASE)
_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}


def parse_size(value: str | int) -> int:
    """Convert '10MB', '512K' or a plain byte count into bytes."""
    if isinstance(value, int):
        return value
    match = _SIZE_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid log rotation size: {value!r} (e.g. '10MB')")
    return int(match.group(1)) * _UNITS[match.group(2).upper()]


class ImageContextFilter(logging.Filter):
    """Copy the logging context onto the record; never drops records."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_context()
        record.run_id = ctx.run_id or "-"
        record.source = ctx.source or "-"
        record.placement = ctx.placement or "-"
        record.viewport = ctx.viewport or "-"
        return True


def create_rotating_handler(
    log_file: Path | str,
    rotation: str | int = "10MB",
    retention: int = 30,
) -> RotatingFileHandler:
    """Rotating handler for ``log_file``; the file is opened on first write."""
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        path,
        maxBytes=parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
        delay=True,
    )
    handler.addFilter(ImageContextFilter())
    return handler
