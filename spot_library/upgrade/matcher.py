"""
Quality-upgrade matching for spot-library.

For one local file: read (or parse) its metadata, search the catalog,
pick the best result with ordered matching passes, label the confidence,
and ask the availability service whether a lossless source exists.

Matching Algorithm:
    Every pass scans all results and returns the first one it accepts.
    1. title AND artist match, duration within 3000 ms (skipped if a
       duration is unknown)
    2. title matches, duration within 5000 ms
    3. title AND artist match, duration ignored
    Fallback: the first result, so a match is always shown.

    "Match" means the normalized strings are equal, or one contains the
    other, and both are non-empty.

Confidence:
    high:   exact title + exact artist + (duration within 1000 ms or unknown),
            or exact title + contained artist + duration within 1000 ms
    medium: title match + artist match + duration within 3000 ms
    low:    everything else

Rate Limiting:
    Each worker thread waits at least `search_delay` seconds between two
    catalog searches. Repeated queries are answered from SearchCache.

Usage:
    matcher = QualityUpgradeMatcher(SpotifyCatalog(id, secret), SongLinkClient())
    suggestion = matcher.scan_file("/music/01 - One More Time.mp3")
    if suggestion.is_upgradeable:
        print(suggestion.availability.services())

    batch = matcher.scan_folder("/music", cancel_token=token)
"""

import os
import threading
import time
from dataclasses import replace
from typing import Callable, Protocol

from spot_library.core.batch import BatchResult, BatchScanCoordinator, CancellationToken
from spot_library.core.exceptions import AvailabilityError, CatalogError, InputError, MetadataError
from spot_library.core.logger import get_logger, log_upgrade_candidate
from spot_library.library.filename_parser import parse_filename
from spot_library.library.models import (
    LOSSLESS_CODECS,
    LOSSLESS_EXTENSIONS,
    UNKNOWN_ARTIST,
    AudioMetadata,
)
from spot_library.library.normalize import (
    clean_search_string,
    file_extension,
    fix_swapped,
    normalize_key,
    normalize_path,
    repair_mojibake,
    strip_parentheticals,
)
from spot_library.library.tags import MutagenTagReader, TagReader
from spot_library.spotify.models import CatalogTrack
from spot_library.upgrade.models import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    Availability,
    QualityUpgradeSuggestion,
)
from spot_library.utils import list_audio_files


logger = get_logger(__name__)


# Catalog results requested per query
DEFAULT_SEARCH_LIMIT = 5

# Minimum seconds between two catalog searches of one worker
DEFAULT_SEARCH_DELAY = 0.25

# Default concurrent files for batch scans
DEFAULT_UPGRADE_WORKERS = 3

# Duration thresholds (milliseconds)
EXACT_DURATION_MS = 1000
CLOSE_DURATION_MS = 3000
PASS_TITLE_DURATION_MS = 5000

FALLBACK_PASS = "fallback"


class CatalogSearch(Protocol):
    def search(self, query: str, kind: str = "track", limit: int = 5, offset: int = 0) -> list[CatalogTrack]:
        ...


class AvailabilityLookup(Protocol):
    def check_availability(self, catalog_id: str, fallback_id: str = "") -> Availability:
        ...


# =============================================================================
# Matching helpers
# =============================================================================

def strings_match(first: str | None, second: str | None) -> bool:
    """Normalized equality or containment in either direction; both must be non-empty."""
    a, b = normalize_key(first), normalize_key(second)
    if not a or not b:
        return False
    return a == b or a in b or b in a


def strings_equal(first: str | None, second: str | None) -> bool:
    a, b = normalize_key(first), normalize_key(second)
    return bool(a) and a == b


def duration_diff(metadata: AudioMetadata, track: CatalogTrack) -> int | None:
    """Absolute duration difference in ms, or None if either side is unknown."""
    if not metadata.duration_ms or not track.duration_ms:
        return None
    return abs(metadata.duration_ms - track.duration_ms)


def pass_title_artist_duration(metadata: AudioMetadata, track: CatalogTrack) -> bool:
    diff = duration_diff(metadata, track)
    if diff is None:
        return False
    return (
        strings_match(metadata.title, track.name)
        and strings_match(metadata.artist, track.artists)
        and diff <= CLOSE_DURATION_MS
    )


def pass_title_duration(metadata: AudioMetadata, track: CatalogTrack) -> bool:
    diff = duration_diff(metadata, track)
    if diff is None:
        return False
    return strings_match(metadata.title, track.name) and diff <= PASS_TITLE_DURATION_MS


def pass_title_artist(metadata: AudioMetadata, track: CatalogTrack) -> bool:
    return strings_match(metadata.title, track.name) and strings_match(metadata.artist, track.artists)


# Ordered passes; the first pass accepting a result wins
MATCH_PASSES: tuple[tuple[str, Callable[[AudioMetadata, CatalogTrack], bool]], ...] = (
    ("title_artist_duration", pass_title_artist_duration),
    ("title_duration", pass_title_duration),
    ("title_artist", pass_title_artist),
)


def select_best_match(
    metadata: AudioMetadata,
    results: list[CatalogTrack]
) -> tuple[CatalogTrack | None, str | None]:
    """
    Pick the best catalog result.

    Returns:
        Tuple of (track, pass name); (None, None) for an empty result list.
    """
    if not results:
        return None, None
    for name, accepts in MATCH_PASSES:
        for track in results:
            if accepts(metadata, track):
                return track, name
    return results[0], FALLBACK_PASS


def compute_confidence(metadata: AudioMetadata, track: CatalogTrack) -> str:
    """
    Label how trustworthy a match is.

    Example:
        compute_confidence(
            AudioMetadata(title="One More Time", artist="Daft Punk", duration_ms=320000),
            CatalogTrack(id="x", name="One More Time", artists="Daft Punk",
                         album_name="Discovery", duration_ms=320500, external_url="")
        )
        # "high"
    """
    title_exact = strings_equal(metadata.title, track.name)
    artist_exact = strings_equal(metadata.artist, track.artists)
    title_match = strings_match(metadata.title, track.name)
    artist_match = strings_match(metadata.artist, track.artists)

    diff = duration_diff(metadata, track)
    duration_exact = diff is not None and diff <= EXACT_DURATION_MS
    duration_close = diff is not None and diff <= CLOSE_DURATION_MS

    if title_exact and artist_exact and (duration_exact or diff is None):
        return CONFIDENCE_HIGH
    if title_exact and artist_match and duration_exact:
        return CONFIDENCE_HIGH
    if title_match and artist_match and duration_close:
        return CONFIDENCE_MEDIUM
    return CONFIDENCE_LOW


def build_search_query(metadata: AudioMetadata) -> str:
    """
    Build "{title} {artist}" from cleaned values.

    The artist is omitted when it is the "Unknown Artist" placeholder.
    """
    title = clean_search_string(metadata.title)
    artist = clean_search_string(metadata.artist)
    if artist == UNKNOWN_ARTIST:
        artist = ""
    return " ".join(part for part in (title, artist) if part)


def build_query_variants(metadata: AudioMetadata) -> list[str]:
    """
    Catalog queries to try in order until one returns results.

    The first is build_search_query(). The retries drop bracketed parts
    of the title, then the artist (often wrong in ripped tags), then both.
    Duplicates and empty queries are skipped.
    """
    title = clean_search_string(metadata.title)
    artist = clean_search_string(metadata.artist)
    if artist == UNKNOWN_ARTIST:
        artist = ""
    bare_title = strip_parentheticals(title)

    variants = []
    for parts in ((title, artist), (bare_title, artist), (title,), (bare_title,)):
        query = " ".join(part for part in parts if part)
        if query and query not in variants:
            variants.append(query)
    return variants


class SearchCache:
    """
    Process-lifetime cache of catalog results keyed by the exact query.

    Shared by all worker threads of a matcher; no eviction.
    """

    def __init__(self) -> None:
        self._results: dict[str, list[CatalogTrack]] = {}
        self._lock = threading.Lock()

    def get(self, query: str) -> list[CatalogTrack] | None:
        with self._lock:
            results = self._results.get(query)
        return list(results) if results is not None else None

    def put(self, query: str, results: list[CatalogTrack]) -> None:
        with self._lock:
            self._results[query] = list(results)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


class QualityUpgradeMatcher:
    """
    Matches local files against the catalog and checks lossless availability.

    Collaborators are injected; tests pass fakes.

    Attributes:
        catalog: Catalog search (SpotifyCatalog in production).
        availability: Availability lookup, or None to skip the lookup.
        tag_reader: TagReader implementation.
        search_cache: Shared query cache.
        search_limit: Results requested per query.
        search_delay: Minimum seconds between searches of one worker thread.
    """

    def __init__(
        self,
        catalog: CatalogSearch,
        availability: AvailabilityLookup | None = None,
        tag_reader: TagReader | None = None,
        search_cache: SearchCache | None = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        search_delay: float = DEFAULT_SEARCH_DELAY,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.catalog = catalog
        self.availability = availability
        self.tag_reader = tag_reader or MutagenTagReader()
        self.search_cache = search_cache if search_cache is not None else SearchCache()
        self.search_limit = search_limit
        self.search_delay = search_delay
        self._sleep = sleep
        self._throttle = threading.local()

    # =========================================================================
    # Single file
    # =========================================================================

    def scan_file(self, file_path: str) -> QualityUpgradeSuggestion:
        """
        Match one file.

        Args:
            file_path: Audio file path.

        Returns:
            QualityUpgradeSuggestion; failures are recorded on `error`.

        Raises:
            InputError: If file_path is empty.
        """
        if not file_path or not str(file_path).strip():
            raise InputError("File path must not be empty")

        path = normalize_path(file_path)
        file_name = os.path.basename(path)
        current_format = file_extension(path)
        suggestion = QualityUpgradeSuggestion(
            file_path=path,
            file_name=file_name,
            current_format=current_format,
            current_lossless=current_format in LOSSLESS_EXTENSIONS,
        )

        try:
            file_size = os.path.getsize(path)
        except OSError as e:
            logger.warning(f"Cannot access {path}: {e}")
            return replace(suggestion, error=f"File not found or not accessible: {e}")

        metadata = self._read_metadata(path)
        if metadata.codec:
            suggestion = replace(
                suggestion,
                current_lossless=metadata.codec.lower() in LOSSLESS_CODECS or suggestion.current_lossless,
            )
        suggestion = replace(suggestion, file_size=file_size, metadata=metadata)

        if metadata.is_empty:
            logger.info(f"Skipping {file_name}: no title or artist")
            return replace(suggestion, error="Missing title and artist metadata")

        query = build_search_query(metadata)
        suggestion = replace(suggestion, search_query=query)
        if not query:
            return replace(suggestion, error="Could not build search query")

        try:
            results = self._search(query)
            for variant in build_query_variants(metadata)[1:]:
                if results:
                    break
                logger.debug(f"No results for {query!r}, retrying with {variant!r}")
                results = self._search(variant)
                if results:
                    suggestion = replace(suggestion, search_query=variant)
        except CatalogError as e:
            logger.warning(f"Catalog search failed for {file_name}: {e.message}")
            return replace(suggestion, error=f"Search failed: {e.message}")

        track, pass_name = select_best_match(metadata, results)
        if track is None:
            logger.info(f"No catalog match for {file_name}")
            return replace(suggestion, error="No matching tracks found in catalog")

        confidence = compute_confidence(metadata, track)
        suggestion = replace(
            suggestion,
            catalog_track=track,
            match_confidence=confidence,
            match_pass=pass_name,
        )
        logger.debug(
            f"Matched {file_name} -> {track.artists} - {track.name} "
            f"(pass={pass_name}, confidence={confidence})"
        )

        if self.availability is None:
            return suggestion

        try:
            availability = self.availability.check_availability(track.id)
        except AvailabilityError as e:
            logger.warning(f"Availability lookup failed for {file_name}: {e.message}")
            return replace(suggestion, error=f"Failed to check availability: {e.message}")

        suggestion = replace(suggestion, availability=availability)
        if suggestion.is_upgradeable:
            log_upgrade_candidate(
                logger,
                path,
                f"{track.artists} - {track.name}",
                track.external_url,
                confidence,
                availability.services(),
            )
        return suggestion

    def _read_metadata(self, path: str) -> AudioMetadata:
        """Tags, repaired, with missing title/artist filled from the filename (swap-checked)."""
        try:
            metadata = self.tag_reader.read_metadata(path)
        except MetadataError as e:
            logger.warning(f"Could not read tags of {path}: {e.message}")
            metadata = AudioMetadata()

        metadata = replace(
            metadata,
            title=repair_mojibake(metadata.title) or None,
            artist=repair_mojibake(metadata.artist) or None,
        )
        if metadata.has_title and metadata.has_artist:
            return metadata

        parsed = parse_filename(os.path.basename(path))
        if parsed is None:
            return metadata
        parsed = replace(
            parsed,
            title=repair_mojibake(parsed.title),
            artist=repair_mojibake(parsed.artist),
        )
        # Only a filename can put the parts in the wrong order; tags are trusted
        return fix_swapped(metadata.merge_missing(parsed))

    def _search(self, query: str) -> list[CatalogTrack]:
        cached = self.search_cache.get(query)
        if cached is not None:
            logger.debug(f"Search cache hit: {query!r}")
            return cached

        self._wait_for_slot()
        results = self.catalog.search(query, kind="track", limit=self.search_limit)
        self.search_cache.put(query, results)
        return results

    def _wait_for_slot(self) -> None:
        """Keep at least search_delay seconds between searches of this thread."""
        last = getattr(self._throttle, "last_search", None)
        if last is not None and self.search_delay > 0:
            remaining = self.search_delay - (time.monotonic() - last)
            if remaining > 0:
                self._sleep(remaining)
        self._throttle.last_search = time.monotonic()

    # =========================================================================
    # Batches
    # =========================================================================

    def scan_files(
        self,
        file_paths: list[str],
        cancel_token: CancellationToken | None = None,
        on_progress: Callable[[int, int, QualityUpgradeSuggestion | None], None] | None = None,
        workers: int = DEFAULT_UPGRADE_WORKERS
    ) -> BatchResult[QualityUpgradeSuggestion]:
        """
        Match several files concurrently.

        Args:
            file_paths: Files to match.
            cancel_token: Optional cancellation token.
            on_progress: Called as (completed, total, suggestion) on the
                         coordinating thread.
            workers: Concurrent files.

        Returns:
            BatchResult with suggestions in input order; `stopped` is set
            when cancelled.

        Raises:
            InputError: If file_paths is empty.
        """
        if not file_paths:
            raise InputError("No files to scan")

        coordinator = BatchScanCoordinator(workers=workers)
        batch = coordinator.run(file_paths, self.scan_file, cancel_token=cancel_token, on_progress=on_progress)

        upgradeable = sum(1 for s in batch.results if s.is_upgradeable)
        logger.info(
            f"Upgrade scan: {upgradeable} of {batch.completed} file(s) have a lossless source"
            + (" (stopped early)" if batch.stopped else "")
        )
        return batch

    def scan_folder(
        self,
        root_path: str,
        recursive: bool = True,
        cancel_token: CancellationToken | None = None,
        on_progress: Callable[[int, int, QualityUpgradeSuggestion | None], None] | None = None,
        workers: int = DEFAULT_UPGRADE_WORKERS
    ) -> BatchResult[QualityUpgradeSuggestion]:
        """
        Match every audio file of a folder.

        Returns:
            BatchResult (empty for a folder without audio files).

        Raises:
            InputError: If the folder is empty, missing or not a directory.
        """
        if not root_path or not str(root_path).strip():
            raise InputError("Folder path is required")
        root = normalize_path(root_path)
        if not os.path.isdir(root):
            raise InputError(f"Not a folder: {root}", details={"root_path": root})

        paths = list_audio_files(root, recursive=recursive)
        if not paths:
            logger.info(f"No audio files in {root}")
            return BatchResult[QualityUpgradeSuggestion](total=0)
        return self.scan_files(paths, cancel_token=cancel_token, on_progress=on_progress, workers=workers)
