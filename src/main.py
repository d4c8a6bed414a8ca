# src/main.py — v2
"""CLI entry point — build, analyze, stats commands.

Usage:
    adaptimg build [--input DIR] [--output DIR] [--quality N] [options]
    adaptimg analyze [--registry FILE]
    adaptimg stats [--cache-file FILE]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from adaptimg.version import __version__

if TYPE_CHECKING:
    from adaptimg.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from adaptimg.config.settings import ConfigurationError, load_settings

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="adaptimg",
        description=f"adaptimg v{__version__} — Responsive image build and delivery",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- build ---
    p_build = subparsers.add_parser(
        "build", help="Optimize source images and write the manifest",
    )
    p_build.add_argument(
        "--input", type=Path, default=None,
        help="Source directory (default: public/assets)",
    )
    p_build.add_argument(
        "--output", type=Path, default=None,
        help="Output directory (default: public/optimized)",
    )
    p_build.add_argument(
        "--no-tinypng", action="store_true",
        help="Disable external TinyPNG compression",
    )
    p_build.add_argument(
        "--no-sizes", action="store_true",
        help="Skip resized placement variants",
    )
    p_build.add_argument(
        "--no-webp", action="store_true",
        help="Skip WebP output",
    )
    p_build.add_argument(
        "--quality", type=int, default=None,
        help="Default compression quality, 1-100 (default: 85)",
    )
    p_build.add_argument(
        "--clear-cache", action="store_true",
        help="Delete the optimization cache before running",
    )
    p_build.add_argument(
        "--force", action="store_true",
        help="Reprocess everything, ignoring the cache and existing outputs",
    )
    p_build.add_argument(
        "--registry", type=Path, default=None,
        help="JSON placement registry (default: built-in placements)",
    )
    p_build.set_defaults(func=_cmd_build)

    # --- analyze ---
    p_analyze = subparsers.add_parser(
        "analyze", help="Analyze the placement registry",
    )
    p_analyze.add_argument(
        "--registry", type=Path, default=None,
        help="JSON placement registry (default: built-in placements)",
    )
    p_analyze.add_argument(
        "--json", action="store_true", help="Print the analysis as JSON",
    )
    p_analyze.set_defaults(func=_cmd_analyze)

    # --- stats ---
    p_stats = subparsers.add_parser(
        "stats", help="Show statistics from the optimization cache",
    )
    p_stats.add_argument(
        "--cache-file", type=Path, default=None,
        help="Cache file to inspect (default: .image-optimization-cache.json)",
    )
    p_stats.set_defaults(func=_cmd_stats)

    return parser


async def _cmd_build(args: argparse.Namespace, settings: Settings) -> int:
    """Execute the optimization build."""
    from adaptimg.pipeline.build import BuildOptions, BuildRunner
    from adaptimg.registry.locations import load_registry

    if args.quality is not None and not 1 <= args.quality <= 100:
        logger.error("--quality must be within 1..100, got %d", args.quality)
        return 2

    options = BuildOptions.from_settings(
        settings,
        input_dir=args.input,
        output_dir=args.output,
        use_compression=not args.no_tinypng,
        include_sizes=not args.no_sizes,
        include_webp=not args.no_webp,
        quality=args.quality,
        clear_cache=args.clear_cache,
        force=args.force,
    )
    registry_file = args.registry or settings.registry_file
    runner = BuildRunner(
        settings,
        options,
        registry=load_registry(registry_file),
    )

    logger.info("Optimizing images from %s", options.input_dir)
    result = await runner.run()

    print()
    for line in result.summary_lines():
        print(line)
    return 0


async def _cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    """Print the registry analysis."""
    from adaptimg.pipeline.build import format_bytes
    from adaptimg.registry.locations import load_registry

    registry = load_registry(
        args.registry or settings.registry_file
    )
    analysis = registry.analyze()
    if args.json:
        print(json.dumps(analysis.model_dump(), indent=2))
        return 0

    print("\nRegistry analysis:")
    print(f"  Locations:        {analysis.total_locations}")
    print(f"  Mappings:         {analysis.total_mappings}")
    print(f"  Variants needed:  {analysis.variants_needed}")
    print(f"  Estimated output: {format_bytes(analysis.estimated_output_bytes)}")
    print(f"  LCP candidates:   {', '.join(analysis.lcp_candidates) or '-'}")
    print(f"  BlurHash:         {analysis.blurhash_placements}")
    print(f"  Adaptive quality: {analysis.adaptive_quality_placements}")
    print("  Preferred formats:")
    for fmt, count in sorted(analysis.format_preferences.items()):
        print(f"    {fmt}: {count}")
    print("  Compression strategies:")
    for strategy, count in sorted(analysis.compression_strategies.items()):
        print(f"    {strategy}: {count}")
    if analysis.unused_locations:
        print(f"  Unused locations: {', '.join(analysis.unused_locations)}")
    return 0


async def _cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    """Display statistics persisted by the last build."""
    from adaptimg.cache.json_store import JsonOptimizationCache
    from adaptimg.pipeline.build import format_bytes

    cache_file: Path = args.cache_file or settings.cache_file
    if not cache_file.exists():
        logger.error("Cache file not found: %s", cache_file)
        return 1

    cache = JsonOptimizationCache(cache_file)
    cache.load()
    stats = cache.last_stats
    entries = cache.list_entries()
    last = max((e.processed_at for e in entries), default=None)

    print(f"\nStatistics for {cache_file}:")
    print(f"  Cached images: {len(entries)}")
    print(f"  Last processed: {last.isoformat() if last else '-'}")
    print(f"  Processed:  {stats.processed}")
    print(f"  Skipped:    {stats.skipped}")
    print(f"  Errors:     {stats.errors}")
    print(f"  Saved:      {format_bytes(stats.total_saved)}")
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from adaptimg.logging.logger import setup_logging_from_settings

    setup_logging_from_settings(settings, verbose)


if __name__ == "__main__":
    sys.exit(main())
