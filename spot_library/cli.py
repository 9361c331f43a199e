"""
Command-line interface for spot-library.

This module implements the CLI using Click, exposing the duplicate
finder, the quality-upgrade matcher and the file operations that act
on their results. rich-click is used for the output colors.

Commands:
    spotlib duplicates <folder>                Find duplicate tracks
    spotlib revalidate <file>...               Re-check one group after edits
    spotlib upgrade <file-or-folder>...        Find lossless sources for lossy files
    spotlib delete <file>...                   Delete files
    spotlib quarantine <root> <file>...        Move files to the root's quarantine
    spotlib restore <root> <file>...           Move quarantined files back
    spotlib quarantine-list <root>             List quarantined files
    spotlib quarantine-empty <root>            Delete all quarantined files
    spotlib cache clear <root>                 Forget the scan cache of a root
    spotlib cache prune <root>                 Drop cache entries of deleted files

Global Options:
    --config <path>                            Use this config.yaml
    --verbose                                  Show DEBUG messages on the console
    --version                                  Show version and exit

Usage:
    # Metadata grouping, then content hash for the rest
    spotlib duplicates ~/Music --hash

    # Match by title/artist only, 8 readers
    spotlib duplicates ~/Music --ignore-duration --workers 8

    # Look for lossless sources of a folder
    spotlib upgrade ~/Music/MP3

    # Move the worse copies out of the way
    spotlib quarantine ~/Music "~/Music/Album/01 - Track.mp3"

Configuration:
    config.yaml in the current directory is optional; the `spotify`
    section (client_id, client_secret) is only needed by `upgrade`.

Exit Codes:
    0    success
    1    configuration error
    2    scan cache error
    3    Spotify authentication error
    4    other errors
    130  interrupted (partial results are printed first)
"""

import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "spotlib duplicates": [
        {
            "name": "Matching",
            "options": ["--hash", "--fingerprint", "--ignore-duration", "--tolerance", "--merge-similar"],
        },
        {
            "name": "Input",
            "options": ["--no-filename-fallback", "--no-recursive"],
        },
        {
            "name": "Performance",
            "options": ["--workers"],
        },
    ],
}
click.rich_click.COMMAND_GROUPS = {
    "spotlib": [
        {
            "name": "Scans",
            "commands": ["duplicates", "revalidate", "upgrade"],
        },
        {
            "name": "File Operations",
            "commands": ["delete", "quarantine", "restore", "quarantine-list", "quarantine-empty"],
        },
        {
            "name": "Maintenance",
            "commands": ["cache"],
        },
    ],
}

from spot_library import __version__
from spot_library.core import (
    CacheError,
    CancellationToken,
    CatalogError,
    ConfigError,
    SpotLibraryError,
    get_logger,
    setup_logging,
    shutdown_logging,
)
from spot_library.core.cache import ScanCacheRegistry
from spot_library.core.config import Config, load_config
from spot_library.core.logger import (
    Colors,
    format_failure_message,
    format_group_header,
    format_upgrade_message,
)
from spot_library.core.progress import ScanProgressBar, UpgradeProgressBar
from spot_library.library.duplicates import DuplicateFinder
from spot_library.library.file_manager import FileManager
from spot_library.library.models import DuplicateGroup, DuplicateScanResult
from spot_library.library.normalize import normalize_path
from spot_library.spotify import SpotifyCatalog
from spot_library.upgrade import QualityUpgradeMatcher, QualityUpgradeSuggestion, SongLinkClient
from spot_library.utils import format_duration, format_file_size, list_audio_files

logger = get_logger(__name__)


# Exit code after Ctrl-C (128 + SIGINT)
EXIT_INTERRUPTED = 130


@click.group(invoke_without_command=True)
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml if present)"
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Show debug messages on the console"
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit."
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool, version: bool) -> None:
    """
    spot-library: duplicates and lossless upgrades for a local music library.

    \b
    DUPLICATES:
        spotlib duplicates ~/Music                  # Title/artist/duration
        spotlib duplicates ~/Music --hash           # + identical content
        spotlib duplicates ~/Music --fingerprint    # + acoustic match (fpcalc)

    \b
    UPGRADES:
        spotlib upgrade ~/Music/MP3                 # Needs spotify credentials

    \b
    CLEANUP:
        spotlib quarantine ~/Music <file>...        # Reversible
        spotlib restore ~/Music <quarantined>...
        spotlib delete <file>...                    # Permanent
    """
    if version:
        click.echo(f"spot-library {__version__}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# =============================================================================
# Command runner
# =============================================================================

def _run_command(ctx: click.Context, action: Callable[[Config, ScanCacheRegistry], int]) -> None:
    """
    Load configuration, set up logging and the cache, then run `action`.

    Maps errors to exit codes the same way for every command and always
    flushes the cache and shuts logging down.

    Args:
        ctx: Click context carrying the global options.
        action: Command body; returns the exit code.

    Raises:
        SystemExit: Always, with the command's exit code.
    """
    registry: ScanCacheRegistry | None = None
    exit_code = 0

    try:
        config = load_config(ctx.obj.get("config_path"))

        setup_logging(config.logging.directory, verbose=ctx.obj.get("verbose", False))
        logger.debug(f"spot-library {__version__} starting: {ctx.info_name}")

        registry = ScanCacheRegistry.from_directory(
            config.cache.directory, persist_delay=config.cache.persist_delay
        )
        exit_code = action(config, registry)

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        exit_code = 1

    except CacheError as e:
        click.echo(f"Cache error: {e.message}", err=True)
        logger.error(f"Cache error: {e.message}", exc_info=True)
        exit_code = 2

    except CatalogError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        if e.is_auth_error:
            click.echo("Check your client_id and client_secret in config.yaml", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        exit_code = 3 if e.is_auth_error else 4

    except SpotLibraryError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        exit_code = 4

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        exit_code = EXIT_INTERRUPTED

    finally:
        if registry is not None:
            try:
                registry.close()
            except CacheError as e:
                click.echo(f"Cache error: {e.message}", err=True)
                exit_code = exit_code or 2
        shutdown_logging()

    sys.exit(exit_code)


@contextmanager
def _cancel_on_interrupt(token: CancellationToken) -> Generator[CancellationToken, None, None]:
    """
    Turn the first Ctrl-C into a cancellation of `token`.

    In-flight files finish and the command prints what it has. A second
    Ctrl-C raises KeyboardInterrupt as usual.
    """
    def handler(signum, frame) -> None:
        if token.cancelled:
            raise KeyboardInterrupt
        token.cancel()
        click.echo("\nStopping after the files in progress (Ctrl-C again to abort)", err=True)

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


# =============================================================================
# Duplicates
# =============================================================================

@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--hash", "use_exact_hash", is_flag=True,
              help="Also group identical files by content hash")
@click.option("--fingerprint", "use_acoustic_fingerprint", is_flag=True,
              help="Also group by acoustic fingerprint (needs fpcalc, slow)")
@click.option("--ignore-duration", is_flag=True,
              help="Match on title and artist only")
@click.option("--tolerance", "duration_tolerance_ms", type=click.IntRange(min=1), default=None,
              metavar="<ms>", help="Duration tolerance in milliseconds")
@click.option("--merge-similar", is_flag=True,
              help="Merge groups with near-identical titles")
@click.option("--no-filename-fallback", "no_filename_fallback", is_flag=True,
              help="Do not parse filenames when tags are missing")
@click.option("--no-recursive", "no_recursive", is_flag=True,
              help="Only scan the folder itself")
@click.option("--workers", "worker_count", type=click.IntRange(min=1), default=None,
              metavar="<n>", help="Concurrent file readers")
@click.pass_context
def duplicates(
    ctx: click.Context,
    folder: Path,
    use_exact_hash: bool,
    use_acoustic_fingerprint: bool,
    ignore_duration: bool,
    duration_tolerance_ms: Optional[int],
    merge_similar: bool,
    no_filename_fallback: bool,
    no_recursive: bool,
    worker_count: Optional[int]
) -> None:
    """Find duplicate tracks under FOLDER."""
    def action(config: Config, registry: ScanCacheRegistry) -> int:
        options = config.duplicates.to_scan_options(
            use_exact_hash=use_exact_hash or None,
            use_acoustic_fingerprint=use_acoustic_fingerprint or None,
            ignore_duration=ignore_duration or None,
            duration_tolerance_ms=duration_tolerance_ms,
            merge_similar=merge_similar or None,
            use_filename_fallback=False if no_filename_fallback else None,
            recursive=False if no_recursive else None,
            worker_count=worker_count,
        )
        finder = DuplicateFinder(registry)

        with _cancel_on_interrupt(CancellationToken()) as token:
            with ScanProgressBar() as progress:
                result = finder.find_duplicates(
                    str(folder), options=options, cancel_token=token, on_progress=progress.on_progress
                )

        _print_scan_result(result)
        return EXIT_INTERRUPTED if result.stopped else 0

    _run_command(ctx, action)


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--root", type=click.Path(exists=True, file_okay=False, path_type=Path), default=None,
              help="Library root the files were scanned under")
@click.pass_context
def revalidate(ctx: click.Context, files: tuple[Path, ...], root: Optional[Path]) -> None:
    """Re-check whether FILES are still duplicates of each other."""
    def action(config: Config, registry: ScanCacheRegistry) -> int:
        finder = DuplicateFinder(registry)
        group = finder.revalidate_group(
            [str(path) for path in files],
            options=config.duplicates.to_scan_options(),
            root_path=str(root) if root else None,
        )
        if group is None:
            click.echo("No duplicate group remains among these files.")
            return 0
        _print_group(group)
        missing = [str(path) for path in files if not group.contains(str(path))]
        for path in missing:
            click.echo(f"  no longer in the group: {path}")
        return 0

    _run_command(ctx, action)


def _print_group(group: DuplicateGroup) -> None:
    click.echo(format_group_header(
        group.normalized_title, group.normalized_artist, len(group.files), group.match_method
    ))
    for detail in group.files:
        marker = f"{Colors.GREEN}★{Colors.RESET}" if detail.path == group.best_file else " "
        click.echo(
            f"  {marker} {detail.path}  "
            f"[{format_file_size(detail.size)}, {format_duration(detail.duration_ms)}, "
            f"{detail.quality_summary()}]"
        )
    bitrate = f", avg {group.average_bitrate // 1000} kbps" if group.average_bitrate else ""
    click.echo(
        f"    {group.lossless_count} lossless, {group.lossy_count} lossy, "
        f"{format_duration(group.representative_duration_ms)}{bitrate}"
    )
    click.echo(f"    best: {group.best_reason}")


def _print_scan_result(result: DuplicateScanResult) -> None:
    """Print all groups followed by the summary and the error summary."""
    groups = sorted(result.groups, key=lambda g: (g.normalized_artist, g.normalized_title, g.best_file))
    for group in groups:
        _print_group(group)
        click.echo("")

    click.echo(
        f"{len(groups)} duplicate group(s), {result.duplicate_file_count} files, "
        f"{format_file_size(result.reclaimable_size)} reclaimable "
        f"({result.files_scanned} files scanned)"
    )

    if result.error_count:
        click.echo(f"{Colors.RED}{result.error_count} file(s) could not be read{Colors.RESET}")
        for error in result.errors:
            click.echo(f"  {error.path}: {error.message}")
        hidden = result.error_count - len(result.errors)
        if hidden > 0:
            click.echo(f"  ... and {hidden} more (see scan_errors log)")

    if result.stopped:
        click.echo(f"{Colors.YELLOW}Scan stopped early: the result is partial{Colors.RESET}")


# =============================================================================
# Upgrades
# =============================================================================

@cli.command()
@click.argument("targets", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--workers", type=click.IntRange(min=1), default=None, metavar="<n>",
              help="Files matched concurrently")
@click.option("--no-recursive", "no_recursive", is_flag=True,
              help="Do not descend into subfolders of folder targets")
@click.pass_context
def upgrade(ctx: click.Context, targets: tuple[Path, ...], workers: Optional[int], no_recursive: bool) -> None:
    """Find lossless sources for the audio files in TARGETS (files or folders)."""
    def action(config: Config, registry: ScanCacheRegistry) -> int:
        spotify_config = config.require_spotify()
        catalog = SpotifyCatalog(
            spotify_config.client_id,
            spotify_config.client_secret,
            timeout=config.upgrade.search_timeout,
        )
        catalog.verify()

        matcher = QualityUpgradeMatcher(
            catalog,
            availability=SongLinkClient(timeout=config.upgrade.availability_timeout),
            search_limit=config.upgrade.search_limit,
            search_delay=config.upgrade.search_delay_ms / 1000,
        )

        paths = _collect_upgrade_paths(targets, recursive=not no_recursive)
        if not paths:
            click.echo("No audio files found.")
            return 0

        with _cancel_on_interrupt(CancellationToken()) as token:
            with UpgradeProgressBar(total=len(paths)) as progress:
                batch = matcher.scan_files(
                    paths,
                    cancel_token=token,
                    on_progress=progress.on_progress,
                    workers=workers or config.upgrade.workers,
                )

        _print_suggestions(batch.results)
        for error in batch.errors:
            click.echo(format_failure_message(str(error.item), error.message))
        if batch.stopped:
            click.echo(
                f"{Colors.YELLOW}Stopped after {batch.completed} of {batch.total} files{Colors.RESET}"
            )
            return EXIT_INTERRUPTED
        return 0

    _run_command(ctx, action)


def _collect_upgrade_paths(targets: tuple[Path, ...], recursive: bool) -> list[str]:
    """Expand folders to their audio files; keep files as given, without repeats."""
    paths: list[str] = []
    for target in targets:
        if target.is_dir():
            paths.extend(list_audio_files(target, recursive=recursive))
        else:
            paths.append(normalize_path(target))
    return list(dict.fromkeys(paths))


def _print_suggestions(suggestions: list[QualityUpgradeSuggestion]) -> None:
    upgradeable = 0
    for suggestion in suggestions:
        if not suggestion.is_matched:
            click.echo(format_failure_message(suggestion.file_name, suggestion.error or "no match"))
            continue

        if suggestion.current_lossless:
            logger.debug(f"{suggestion.file_name} is already lossless")
            continue

        track = suggestion.catalog_track
        if suggestion.error:
            click.echo(format_failure_message(suggestion.file_name, suggestion.error))
        else:
            services = suggestion.availability.services() if suggestion.availability else []
            click.echo(format_upgrade_message(suggestion.file_name, suggestion.match_confidence, services))
        click.echo(f"    {track.artists} - {track.name}  {track.external_url}")
        if suggestion.is_upgradeable:
            upgradeable += 1
            for service, url in suggestion.availability.urls().items():
                click.echo(f"    {service}: {url}")

    click.echo(f"\n{upgradeable} of {len(suggestions)} file(s) can be upgraded to lossless")


# =============================================================================
# File operations
# =============================================================================

def _print_statuses(statuses: dict[str, str], success: str) -> None:
    done = 0
    for path, status in statuses.items():
        if status == success:
            done += 1
            click.echo(f"  {success}: {path}")
        else:
            click.echo(f"  {Colors.YELLOW}{status}{Colors.RESET}: {path}")
    click.echo(f"{done} of {len(statuses)} file(s) {success}")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx: click.Context, files: tuple[Path, ...], yes: bool) -> None:
    """Permanently delete FILES."""
    if not yes:
        click.confirm(f"Permanently delete {len(files)} file(s)?", abort=True)

    def action(config: Config, registry: ScanCacheRegistry) -> int:
        statuses = FileManager(registry).delete_files([str(path) for path in files])
        _print_statuses(statuses, "deleted")
        return 0

    _run_command(ctx, action)


@cli.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("files", nargs=-1, required=True, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def quarantine(ctx: click.Context, root: Path, files: tuple[Path, ...]) -> None:
    """Move FILES into the quarantine folder of ROOT."""
    def action(config: Config, registry: ScanCacheRegistry) -> int:
        statuses = FileManager(registry).move_to_quarantine([str(path) for path in files], str(root))
        _print_statuses(statuses, "moved")
        return 0

    _run_command(ctx, action)


@cli.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("files", nargs=-1, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--all", "restore_all", is_flag=True, help="Restore every quarantined file")
@click.pass_context
def restore(ctx: click.Context, root: Path, files: tuple[Path, ...], restore_all: bool) -> None:
    """Move quarantined FILES back to their place under ROOT."""
    if not files and not restore_all:
        raise click.UsageError("Give the quarantined files to restore, or --all")

    def action(config: Config, registry: ScanCacheRegistry) -> int:
        manager = FileManager(registry)
        paths = manager.list_quarantine(str(root)) if restore_all else [str(path) for path in files]
        if not paths:
            click.echo("Quarantine is empty.")
            return 0
        _print_statuses(manager.restore_from_quarantine(paths, str(root)), "restored")
        return 0

    _run_command(ctx, action)


@cli.command("quarantine-list")
@click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def quarantine_list(ctx: click.Context, root: Path) -> None:
    """List the quarantined files of ROOT."""
    def action(config: Config, registry: ScanCacheRegistry) -> int:
        paths = FileManager(registry).list_quarantine(str(root))
        for path in paths:
            click.echo(path)
        click.echo(f"{len(paths)} quarantined file(s)")
        return 0

    _run_command(ctx, action)


@cli.command("quarantine-empty")
@click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def quarantine_empty(ctx: click.Context, root: Path, yes: bool) -> None:
    """Permanently delete the quarantined files of ROOT."""
    if not yes:
        click.confirm("Permanently delete all quarantined files?", abort=True)

    def action(config: Config, registry: ScanCacheRegistry) -> int:
        count = FileManager(registry).empty_quarantine(str(root))
        click.echo(f"{count} quarantined file(s) deleted")
        return 0

    _run_command(ctx, action)


# =============================================================================
# Cache maintenance
# =============================================================================

@cli.group()
def cache() -> None:
    """Scan cache maintenance."""


@cache.command("clear")
@click.argument("root", type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def cache_clear(ctx: click.Context, root: Path) -> None:
    """Forget every cached entry of ROOT."""
    def action(config: Config, registry: ScanCacheRegistry) -> int:
        registry.clear(str(root))
        click.echo(f"Cache cleared for {normalize_path(root)}")
        return 0

    _run_command(ctx, action)


@cache.command("prune")
@click.argument("root", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def cache_prune(ctx: click.Context, root: Path) -> None:
    """Drop cached entries of files that no longer exist under ROOT."""
    def action(config: Config, registry: ScanCacheRegistry) -> int:
        removed = registry.prune(str(root))
        click.echo(f"{removed} stale cache entr{'y' if removed == 1 else 'ies'} removed")
        return 0

    _run_command(ctx, action)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `spotlib` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
