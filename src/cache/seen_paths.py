# src/cache/seen_paths.py — v2
"""In-run duplicate-path detection.

Complements the hash ledger: a path (after symlink resolution) is claimed
at most once per run, which covers duplicate listings and symlinks.
"""

from __future__ import annotations

import threading
from pathlib import Path


class SeenPathSet:
    """Thread-safe set of resolved source paths claimed in this run."""

    def __init__(self) -> None:
        self._paths: set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: Path | str) -> str:
        return str(Path(path).resolve())

    def claim(self, path: Path | str) -> bool:
        """Atomically mark ``path`` as seen. Returns False if already claimed."""
        key = self._key(path)
        with self._lock:
            if key in self._paths:
                return False
            self._paths.add(key)
            return True

    def clear(self) -> None:
        """Forget all claims; called at the start of every run."""
        with self._lock:
            self._paths.clear()

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        key = self._key(path)
        with self._lock:
            return key in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)
