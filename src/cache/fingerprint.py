# src/cache/fingerprint.py — v3
"""Content hashing for source images.

The hash covers raw bytes, byte size and modification time, so a
touch-only change still yields a new identity and triggers reprocessing.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from adaptimg.cache.models import SourceFingerprint

_READ_CHUNK = 1024 * 1024


def compute_content_hash(path: Path | str) -> str:
    """Return the hex ContentHash of a source image.

    Raises:
        OSError: If the file cannot be read.
    """
    return compute_fingerprint(path).content_hash


def compute_fingerprint(path: Path | str) -> SourceFingerprint:
    """Compute the full fingerprint (hash + size + mtime) of a file.

    Args:
        path: Source image path.

    Returns:
        SourceFingerprint whose ``content_hash`` is
        md5(bytes || "<size>-<mtime_ms>").
    """
    p = Path(path)
    stat = p.stat()
    mtime_ms = stat.st_mtime_ns // 1_000_000

    digest = hashlib.md5()  # noqa: S324
    with p.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_READ_CHUNK), b""):
            digest.update(chunk)
    digest.update(f"{stat.st_size}-{mtime_ms}".encode("utf-8"))

    return SourceFingerprint(
        path=str(p),
        content_hash=digest.hexdigest(),
        size_bytes=stat.st_size,
        mtime_ms=mtime_ms,
    )
