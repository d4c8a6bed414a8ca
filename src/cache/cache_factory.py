# src/cache/cache_factory.py — v3
"""Factory for optimization cache instantiation."""

from __future__ import annotations

from adaptimg.cache.base_cache_store import BaseOptimizationCache
from adaptimg.config.settings import Settings


def create_optimization_cache(
    settings: Settings | None = None,
) -> BaseOptimizationCache:
    """Instantiate the optimization cache configured in settings.

    Args:
        settings: Application settings. Defaults to the JSON file in the
            current directory.

    Returns:
        An unloaded BaseOptimizationCache; call ``load()`` before use.
    """
    from adaptimg.cache.json_store import JsonOptimizationCache

    cache_file = (
        ".image-optimization-cache.json" if settings is None else settings.cache_file
    )
    return JsonOptimizationCache(cache_file=cache_file)
