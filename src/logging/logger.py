# src/logging/logger.py — v3
"""Formatters and logger configuration for the CLI.

Logs go to stderr so the build summary on stdout stays clean. Records
emitted from build worker threads carry the thread name.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import IO, TYPE_CHECKING, Any

from adaptimg.logging.context import LogContext, get_context

if TYPE_CHECKING:
    from adaptimg.config.settings import Settings

ROOT_LOGGER = "adaptimg"
_QUIET_LIBRARIES = ("httpx", "httpcore", "PIL")


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def _context_label(ctx: LogContext) -> str:
    """'photo.png hero-main/mobile' style label; empty without a source."""
    label = ctx.source.rsplit("/", 1)[-1] if ctx.source else ""
    if ctx.placement:
        target = ctx.placement
        if ctx.viewport:
            target = f"{target}/{ctx.viewport}"
        label = f"{label} {target}".strip()
    return label


class JsonFormatter(logging.Formatter):
    """One JSON object per line with context and ``extra={"data": ...}``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName and record.threadName != threading.main_thread().name:
            entry["thread"] = record.threadName
        context = get_context().as_dict()
        if context:
            entry["context"] = context
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Terminal format: ``time LEVEL logger [label] message``."""

    def format(self, record: logging.LogRecord) -> str:
        head = (
            f"{_timestamp(record):%H:%M:%S} {record.levelname:<7} "
            f"{record.name.removeprefix(ROOT_LOGGER + '.')}"
        )
        label = _context_label(get_context())
        if label:
            head = f"{head} [{label}]"
        text = f"{head}: {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def get_logger(name: str) -> logging.Logger:
    """Logger below the package root, e.g. ``get_logger("build")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """(Re)configure the package root logger and return it.

    Existing handlers are replaced, so repeated calls never duplicate output.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter: logging.Formatter = (
        JsonFormatter() if log_format == "json" else TextFormatter()
    )
    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        from adaptimg.logging.handlers import create_rotating_handler

        file_handler = create_rotating_handler(
            log_file, rotation=rotation, retention=retention
        )
        # Files are always machine-readable.
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root


def setup_logging_from_settings(
    settings: Settings, verbose: bool = False
) -> logging.Logger:
    """Apply the LOG_* settings; ``verbose`` forces DEBUG."""
    return setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
