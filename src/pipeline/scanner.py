# src/pipeline/scanner.py — v1
"""Source scanner: discovers optimizable images under the input directory."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = ("jpg", "jpeg", "png", "gif")


class SourceEntry(BaseModel):
    """A source image found during a scan."""

    path: str
    key: str
    filename: str
    size_bytes: int

    @property
    def file_path(self) -> Path:
        return Path(self.path)


class SourceScanner:
    """List source images, skipping hidden files and excluded directories."""

    def __init__(
        self,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        exclude: Iterable[Path] = (),
    ) -> None:
        self._extensions = {e.lower().lstrip(".") for e in extensions}
        self._exclude = [Path(p).resolve() for p in exclude]

    def scan(self, scan_root: Path, recursive: bool = True) -> list[SourceEntry]:
        """Discover source images.

        Args:
            scan_root: Input directory.
            recursive: Descend into subdirectories.

        Returns:
            Entries sorted by path. ``key`` is the POSIX form of the path as
            given (``scan_root`` joined with the relative path), which is
            also the manifest key.

        Raises:
            ValueError: If ``scan_root`` is not a directory.
        """
        if not scan_root.is_dir():
            msg = f"Input directory not found: {scan_root}"
            raise ValueError(msg)

        root_key = PurePosixPath(scan_root.as_posix())
        pattern_fn = scan_root.rglob if recursive else scan_root.glob
        entries: list[SourceEntry] = []
        for path in sorted(pattern_fn("*")):
            if not path.is_file():
                continue
            rel = path.relative_to(scan_root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if path.suffix.lower().lstrip(".") not in self._extensions:
                continue
            if self._is_excluded(path):
                continue
            entries.append(
                SourceEntry(
                    path=str(path),
                    key=str(root_key / PurePosixPath(rel.as_posix())),
                    filename=path.name,
                    size_bytes=path.stat().st_size,
                )
            )

        logger.info(
            "Scanned %s: found %d source images (recursive=%s)",
            scan_root,
            len(entries),
            recursive,
        )
        return entries

    def _is_excluded(self, path: Path) -> bool:
        resolved = path.resolve()
        return any(resolved.is_relative_to(ex) for ex in self._exclude)
