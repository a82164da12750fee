#!/usr/bin/env python3
"""
Music Catalog - Command Line Interface

Organizes a flat collection of audio files into an Artist/Album/Title
library, deduplicates by content and maintains a searchable catalog.
"""

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from .. import __version__
from ..core.catalog import CatalogError, Track
from ..core.config_manager import LOG_LEVELS, PROGRESS_MODES, TRANSFER_MODES, LibraryConfig, get_config_manager
from ..core.constants import EXIT_FAILURE, EXIT_INTERRUPTED, EXIT_SUCCESS
from ..core.orchestrator import LibraryOrchestrator
from ..core.preflight import PreconditionError
from ..modules.cue_sheet import CueSheetError, CueSheetParser, format_command
from ..utils.error_handler import handle_user_error
from ..utils.reporter import RunReporter, format_bytes

MODES = ["organize", "search", "export", "cache", "cue"]

SIZE_PATTERN = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([KMGT]?)i?B?\s*$', re.IGNORECASE)
SIZE_UNITS = {'': 1, 'K': 1024, 'M': 1024 ** 2, 'G': 1024 ** 3, 'T': 1024 ** 4}

console = Console()


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper())

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def parse_size(value: str) -> int:
    """Parse sizes like "30G", "512M" or "1048576" into bytes"""
    match = SIZE_PATTERN.match(value)
    if not match:
        raise argparse.ArgumentTypeError(f"Invalid size: {value!r} (use e.g. 30G, 512M)")
    number, unit = match.groups()
    return int(float(number) * SIZE_UNITS[unit.upper()])


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="music-catalog",
        description="Organize an audio collection into a deduplicated, searchable library",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Music Catalog v{__version__}"
    )

    # Input/Output arguments
    parser.add_argument(
        "source",
        nargs="?",
        help="Source folder to organize (cue mode: the cut sheet file)"
    )

    parser.add_argument(
        "-o", "--output",
        type=str,
        help="Library root for organized files (cue mode: output folder of the split plan)"
    )

    # Configuration
    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Configuration file path (JSON format)"
    )

    parser.add_argument(
        "--workspace",
        type=str,
        help="Workspace directory for the catalog, ledger and indexes"
    )

    parser.add_argument(
        "--catalog",
        type=str,
        help="Catalog database path (default: <workspace>/library.db)"
    )

    # Operation modes
    parser.add_argument(
        "--mode",
        choices=MODES,
        default="organize",
        help="Operation mode (default: organize)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan placements without writing files or the catalog"
    )

    parser.add_argument(
        "--transfer",
        choices=list(TRANSFER_MODES),
        help="copy files into the library or link to the source (default: copy)"
    )

    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Do not ask for confirmation before a link-mode run"
    )

    # Processing options
    parser.add_argument(
        "--max-workers",
        type=int,
        help="Maximum number of worker threads"
    )

    parser.add_argument(
        "--min-size",
        type=int,
        help="Skip audio files smaller than this many bytes"
    )

    # Cache tiers
    parser.add_argument(
        "--cache-dir",
        type=str,
        help="Root of the hot/recent cache tiers (disabled when unset)"
    )

    parser.add_argument(
        "--cache-budget",
        type=parse_size,
        help="Byte budget of the cache tiers, e.g. 30G"
    )

    # Search
    parser.add_argument(
        "--query",
        type=str,
        help="Search text (search mode)"
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of search results (default: 50)"
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        help="Logging level (default: ui.log_level from the settings, else INFO)"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        help="Log file path"
    )

    # Output options
    parser.add_argument(
        "--report",
        type=str,
        help="Path of the JSON run statistics (default: <workspace>/indexes/run_statistics.json)"
    )

    parser.add_argument(
        "--progress",
        choices=list(PROGRESS_MODES),
        help="Progress display mode (default: simple)"
    )

    return parser


def validate_arguments(args: argparse.Namespace) -> bool:
    """Validate command line arguments."""
    if args.config and not Path(args.config).exists():
        print(f"Error: Configuration file does not exist: {args.config}", file=sys.stderr)
        return False

    if args.mode == "organize":
        if not args.source:
            print("Error: A source folder is required for organize mode", file=sys.stderr)
            return False
        if not args.output:
            print("Error: A library directory (-o) is required for organize mode", file=sys.stderr)
            return False

    if args.mode == "search" and not args.query:
        print("Error: --query is required for search mode", file=sys.stderr)
        return False

    if args.mode == "cache" and not args.output:
        print("Error: The library directory (-o) is required for cache mode", file=sys.stderr)
        return False

    if args.mode == "cue" and not args.source:
        print("Error: A cut sheet file is required for cue mode", file=sys.stderr)
        return False

    if args.limit is not None and args.limit < 1:
        print("Error: --limit must be at least 1", file=sys.stderr)
        return False

    return True


def _build_cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Only options given on the command line override the config files"""
    overrides: Dict[str, Any] = {'dry_run': args.dry_run}
    if args.source and args.mode == "organize":
        overrides['source_directory'] = args.source
    if args.output:
        overrides['library_directory'] = args.output
    if args.workspace:
        overrides['workspace_directory'] = args.workspace
    if args.catalog:
        overrides['catalog_path'] = args.catalog

    sections = {
        'transfer': {'mode': args.transfer},
        'processing': {'max_workers': args.max_workers, 'min_file_size': args.min_size},
        'cache': {'cache_directory': args.cache_dir, 'budget_bytes': args.cache_budget},
        'ui': {'log_level': args.log_level, 'progress_mode': args.progress},
    }
    for section, values in sections.items():
        given = {key: value for key, value in values.items() if value is not None}
        if given:
            overrides[section] = given
    return overrides


def _load_and_validate_config(args: argparse.Namespace) -> Optional[LibraryConfig]:
    """Load and validate configuration from CLI arguments."""
    config_manager = get_config_manager()
    config = config_manager.load_config(
        project_config=args.config,
        cli_overrides=_build_cli_overrides(args),
    )

    config_issues = config_manager.validate_config(config)
    if config_issues:
        for issue in config_issues:
            print(f"⚠️  Configuration issue: {issue}", file=sys.stderr)
        return None

    logging.getLogger().setLevel(config.ui.log_level.upper())
    return config


def _confirm_link_mode(config: LibraryConfig, args: argparse.Namespace) -> bool:
    """Link mode makes the library depend on the source staying in place"""
    if config.transfer.mode != "link" or config.dry_run:
        return True
    console.print("[yellow]⚠️  Link mode: the library will contain symbolic links to the source. "
                  "Moving or deleting the source breaks the library.[/yellow]")
    if args.yes or not config.transfer.confirm_link_mode:
        return True
    return Confirm.ask("Continue in link mode?", default=False)


def _display_operation_summary(config: LibraryConfig) -> None:
    print(f"📁 Source folder: {config.source_directory}")
    print(f"📂 Library directory: {config.library_directory}")
    print(f"🗄️  Catalog: {config.catalog_file}")
    print(f"🔧 Transfer mode: {config.transfer.mode}, workers: {config.processing.max_workers}")
    if config.cache.enabled:
        print(f"⚡ Cache: {config.cache.cache_directory} ({format_bytes(config.cache.budget_bytes)})")
    if config.dry_run:
        print("⚠️  DRY RUN MODE - No changes will be made")


def run_organize_mode(args: argparse.Namespace) -> int:
    """Run organize mode - place files and update the catalog."""
    print("🎵 Organize Mode - Processing music collection...")
    logger = logging.getLogger(__name__)
    verbose = args.log_level == "DEBUG"

    try:
        config = _load_and_validate_config(args)
        if not config:
            return EXIT_FAILURE
        verbose = verbose or config.ui.verbose_errors or config.ui.log_level.upper() == "DEBUG"

        if not _confirm_link_mode(config, args):
            print("⚠️  Organization cancelled by user")
            return EXIT_INTERRUPTED

        _display_operation_summary(config)

        reporter = RunReporter(console)
        orchestrator = LibraryOrchestrator(config, reporter)
        stats = orchestrator.run_organization_pipeline(report_path=args.report)

        reporter.render(stats)
        print("\n✅ Dry-run completed" if config.dry_run else "\n✅ Organization completed")
        return EXIT_SUCCESS

    except KeyboardInterrupt:
        print("\n⚠️  Organization cancelled by user; run again to resume")
        return EXIT_INTERRUPTED
    except (PreconditionError, CatalogError) as e:
        print(handle_user_error(e, verbose=verbose), file=sys.stderr)
        return EXIT_FAILURE
    except Exception as e:
        logger.exception("Organization failed")
        print(handle_user_error(e, verbose=verbose), file=sys.stderr)
        return EXIT_FAILURE


def _tracks_table(tracks: List[Track], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("Artist", style="cyan")
    table.add_column("Album", style="magenta")
    table.add_column("Title", style="yellow")
    table.add_column("Format")
    table.add_column("Size", justify="right")
    for track in tracks:
        table.add_row(track.artist, track.album_bucket, track.title,
                      track.extension, format_bytes(track.size_bytes))
    return table


def run_search_mode(args: argparse.Namespace) -> int:
    """Run search mode - full-text search over the catalog."""
    logger = logging.getLogger(__name__)

    try:
        config = _load_and_validate_config(args)
        if not config:
            return EXIT_FAILURE

        tracks = LibraryOrchestrator(config).search(args.query, limit=args.limit)
        if not tracks:
            print(f"🔍 No tracks match '{args.query}'")
            return EXIT_SUCCESS

        console.print(_tracks_table(tracks, f"🔍 {len(tracks)} results for '{args.query}'"))
        return EXIT_SUCCESS

    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Search failed")
        print(handle_user_error(e), file=sys.stderr)
        return EXIT_FAILURE


def run_export_mode(args: argparse.Namespace) -> int:
    """Run export mode - write the plain-text indexes."""
    logger = logging.getLogger(__name__)

    try:
        config = _load_and_validate_config(args)
        if not config:
            return EXIT_FAILURE

        counts = LibraryOrchestrator(config).export_indexes()
        if counts is None:
            print("❌ Index export failed, see the log for details", file=sys.stderr)
            return EXIT_FAILURE

        print(f"✅ Indexes written to {config.index_path}:")
        for filename, count in counts.items():
            print(f"  📄 {filename}: {count:,} lines")
        return EXIT_SUCCESS

    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Export failed")
        print(handle_user_error(e), file=sys.stderr)
        return EXIT_FAILURE


def run_cache_mode(args: argparse.Namespace) -> int:
    """Run cache mode - refresh the hot/recent tiers."""
    logger = logging.getLogger(__name__)

    try:
        config = _load_and_validate_config(args)
        if not config:
            return EXIT_FAILURE
        if not config.cache.enabled:
            print("Error: No cache directory configured (use --cache-dir)", file=sys.stderr)
            return EXIT_FAILURE

        result = LibraryOrchestrator(config).refresh_cache()

        print(f"⚡ Cache refreshed: {config.cache.cache_directory}")
        print(f"  ➕ Added: {result.added:,}")
        print(f"  🗑️  Evicted: {result.evicted:,}")
        print(f"  🧹 Stale removed: {result.stale_removed:,}")
        print(f"  💾 Usage: {format_bytes(result.total_bytes)} / {format_bytes(result.budget_bytes)}"
              f" in {result.entries:,} files")
        return EXIT_SUCCESS

    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Cache refresh failed")
        print(handle_user_error(e), file=sys.stderr)
        return EXIT_FAILURE


def run_cue_mode(args: argparse.Namespace) -> int:
    """Run cue mode - print the split plan of a cut sheet."""
    logger = logging.getLogger(__name__)
    cue_path = Path(args.source)

    try:
        sheet = CueSheetParser().parse_file(cue_path)

        table = Table(title=f"💿 {sheet.performer} - {sheet.title}", box=box.SIMPLE)
        table.add_column("#", justify="right")
        table.add_column("Start", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Output file", style="yellow")
        for track, duration in zip(sheet.tracks, sheet.durations()):
            table.add_row(str(track.track_index), f"{track.start_seconds:.2f}s",
                          "to end" if duration is None else f"{duration:.2f}s",
                          track.output_filename())
        console.print(table)

        audio_path = cue_path.parent / (sheet.audio_file or cue_path.with_suffix('.mp3').name)
        output_dir = Path(args.output) if args.output else cue_path.parent
        for command in sheet.build_split_commands(audio_path, output_dir):
            print(format_command(command))
        return EXIT_SUCCESS

    except CueSheetError as e:
        print(handle_user_error(e), file=sys.stderr)
        return EXIT_FAILURE
    except Exception as e:
        logger.exception("Reading cut sheet failed")
        print(handle_user_error(e), file=sys.stderr)
        return EXIT_FAILURE


MODE_HANDLERS = {
    "organize": run_organize_mode,
    "search": run_search_mode,
    "export": run_export_mode,
    "cache": run_cache_mode,
    "cue": run_cue_mode,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level or "INFO", args.log_file)
    logger = logging.getLogger(__name__)

    if not validate_arguments(args):
        return EXIT_FAILURE

    logger.info(f"Music Catalog v{__version__} starting...")
    logger.info(f"Mode: {args.mode}")

    try:
        return MODE_HANDLERS[args.mode](args)
    except KeyboardInterrupt:
        print("\n⚠️  Operation cancelled by user", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"❌ Unexpected error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
