# src/core/errors.py — v1
"""Domain exceptions shared across the build pipeline and runtime layer."""

from __future__ import annotations


class AdaptimgError(Exception):
    """Base class for all adaptimg errors."""


class SourceImageError(AdaptimgError):
    """Source image could not be read or decoded. Fatal to that image only."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read source image {path}: {reason}")


class TranscodeError(AdaptimgError):
    """A single (viewport, format) artifact failed to encode."""

    def __init__(self, artifact: str, reason: str) -> None:
        self.artifact = artifact
        self.reason = reason
        super().__init__(f"Transcode failed for {artifact}: {reason}")


class CompressionError(AdaptimgError):
    """External compression service call failed."""


class UnknownPlacementError(AdaptimgError, KeyError):
    """Placement id is not defined in the location registry."""

    def __init__(self, placement_id: str) -> None:
        self.placement_id = placement_id
        super().__init__(f"Unknown placement: {placement_id!r}")

    def __str__(self) -> str:
        return f"Unknown placement: {self.placement_id!r}"


class FormatDecodeError(AdaptimgError):
    """Client failed to decode an artifact in the negotiated format."""

    def __init__(self, fmt: str, url: str) -> None:
        self.fmt = fmt
        self.url = url
        super().__init__(f"Failed to decode {fmt} artifact: {url}")


class PlaceholderDecodeError(AdaptimgError):
    """Placeholder hash string could not be decoded."""
