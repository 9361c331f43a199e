"""
Duplicate grouping engine for spot-library.

Finds files under a folder that represent the same recording even when
their filenames and tags disagree.

Pipeline (find_duplicates):
    1. Validate the root and prune stale cache entries.
    2. List audio files (discovery order = sorted directory walk).
    3. Read tags in batches on a worker pool, reusing valid cache entries.
       Files whose tags cannot be read become per-file errors.
    4. Fill a missing title/artist from the filename (optional).
    5. Group by (normalized title, normalized artist, duration bucket).
    6. Optionally merge near-identical titles (rapidfuzz Jaro-Winkler).
    7. Optionally group the still ungrouped files by content hash.
    8. Optionally group the rest by acoustic fingerprint (fpcalc).
    9. Rank the members of every group and flush the cache.

Duration buckets:
    bucket = floor((duration + tolerance / 2) / tolerance), i.e. rounding
    half up. Files with an unknown duration share their own bucket and
    never join a bucket of files with a known duration.

Usage:
    registry = ScanCacheRegistry.from_directory(cache_dir)
    finder = DuplicateFinder(registry)

    result = finder.find_duplicates("/music", ScanOptions(use_exact_hash=True))
    for group in result.groups:
        print(group.best_file, group.best_reason)
"""

import os
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Iterable

from rapidfuzz.distance import JaroWinkler

from spot_library.core.batch import BatchResult, BatchScanCoordinator, CancellationToken
from spot_library.core.cache import ScanCache, ScanCacheRegistry
from spot_library.core.exceptions import FingerprintError, InputError, MetadataError
from spot_library.core.logger import get_logger, log_scan_error
from spot_library.library.filename_parser import parse_filename
from spot_library.library.fingerprint import (
    ChromaprintFingerprinter,
    durations_compatible,
    fingerprints_match,
)
from spot_library.library.models import (
    AudioMetadata,
    CacheEntry,
    DuplicateGroup,
    DuplicateScanResult,
    FileDetail,
    ScanError,
    ScanOptions,
)
from spot_library.library.normalize import normalize_key, normalize_path, repair_mojibake
from spot_library.library.tags import MutagenTagReader, TagReader
from spot_library.utils import compute_file_hash, list_audio_files


logger = get_logger(__name__)


# Per-file errors kept in a scan result (the total is always counted)
MAX_REPORTED_ERRORS = 10

# Minimum Jaro-Winkler similarity of two titles for merge_similar
SIMILAR_TITLE_THRESHOLD = 0.92

MATCH_METHOD_METADATA = "metadata"
MATCH_METHOD_HASH = "hash"
MATCH_METHOD_FINGERPRINT = "fingerprint"

_BRACKETED = re.compile(r"[(\[{]([^)\]}]*)[)\]}]")
_NUMBER = re.compile(r"\d+")


def duration_bucket(duration_ms: int | None, tolerance_ms: int) -> int | None:
    """
    Map a duration to its bucket.

    Args:
        duration_ms: Duration, or None if unknown.
        tolerance_ms: Bucket width (positive).

    Returns:
        Bucket number (rounded half up), or None for an unknown duration.

    Examples:
        duration_bucket(1499, 3000)   # 0
        duration_bucket(1500, 3000)   # 1
        duration_bucket(None, 3000)   # None
    """
    if duration_ms is None:
        return None
    # floor((d + t/2) / t) without floats, exact for odd tolerances too
    return (2 * duration_ms + tolerance_ms) // (2 * tolerance_ms)


def titles_similar(first: str, second: str) -> bool:
    """
    Check whether two normalized titles are near-identical spellings.

    Bracketed content and numbers must agree exactly, so "song (live)"
    never merges with "song (remix)" and "track 1" never with "track 2".
    """
    if first == second:
        return True
    if not first or not second:
        return False
    if sorted(_BRACKETED.findall(first)) != sorted(_BRACKETED.findall(second)):
        return False
    if _NUMBER.findall(first) != _NUMBER.findall(second):
        return False
    return JaroWinkler.normalized_similarity(first, second) >= SIMILAR_TITLE_THRESHOLD


@dataclass(frozen=True)
class _ScannedFile:
    index: int
    path: str
    size: int
    mod_time_ns: int
    metadata: AudioMetadata
    title_key: str
    artist_key: str


class _ScanState:
    """Mutable bookkeeping of one run (coordinating thread only)."""

    def __init__(self, root_path: str) -> None:
        self.root_path = root_path
        self.files: list[_ScannedFile] = []
        self.errors: list[ScanError] = []
        self.error_count = 0
        self.stopped = False

    def add_error(self, path: str, message: str) -> None:
        self.error_count += 1
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(ScanError(path=path, message=message))
        log_scan_error(logger, path, message)

    def add_task_errors(self, batch: BatchResult, path_of: Callable[[object], str]) -> None:
        """Record the tasks of a batch that raised, counting those it did not list."""
        for error in batch.errors:
            self.add_error(path_of(error.item), error.message)
        self.error_count += batch.error_count - len(batch.errors)


class DuplicateFinder:
    """
    Groups duplicate audio files under a root folder.

    Attributes:
        cache_registry: Scan cache registry (shared with the file mutators).
        tag_reader: TagReader implementation (mutagen by default).
        fingerprinter: Acoustic fingerprinter, created on first use when a
                       scan opts into fingerprinting.

    Example:
        finder = DuplicateFinder(registry)
        token = CancellationToken()
        result = finder.find_duplicates("/music", cancel_token=token)
        if result.stopped:
            print("Partial result")
    """

    def __init__(
        self,
        cache_registry: ScanCacheRegistry,
        tag_reader: TagReader | None = None,
        fingerprinter: ChromaprintFingerprinter | None = None
    ) -> None:
        self.cache_registry = cache_registry
        self.tag_reader = tag_reader or MutagenTagReader()
        self.fingerprinter = fingerprinter

    # =========================================================================
    # Public API
    # =========================================================================

    def find_duplicates(
        self,
        root_path: str,
        options: ScanOptions | None = None,
        cancel_token: CancellationToken | None = None,
        on_progress: Callable[[int, int, int], None] | None = None
    ) -> DuplicateScanResult:
        """
        Scan a folder and group duplicate files.

        Args:
            root_path: Folder to scan.
            options: Scan options (defaults if None).
            cancel_token: Optional cancellation token. A cancelled scan
                          returns the groups built from the files read so far.
            on_progress: Called as (files processed, total files, errors so far)
                         from the coordinating thread.

        Returns:
            DuplicateScanResult with valid groups only.

        Raises:
            InputError: If the root is empty, missing or not a directory, or
                        the options are invalid.
            CacheError: If the persisted cache cannot be written.
        """
        if not root_path or not str(root_path).strip():
            raise InputError("Root folder must not be empty", details={"root_path": root_path})

        root = normalize_path(root_path)
        if not os.path.exists(root):
            raise InputError(f"Folder does not exist: {root}", details={"root_path": root})
        if not os.path.isdir(root):
            raise InputError(f"Not a folder: {root}", details={"root_path": root})

        options = options or ScanOptions()
        options.validate()
        token = cancel_token or CancellationToken()

        cache = self.cache_registry.for_root(root)
        pruned = cache.prune()
        if pruned:
            logger.debug(f"Pruned {pruned} cache entries for deleted files")

        paths = list_audio_files(root, recursive=options.recursive)
        logger.info(f"Scanning {len(paths)} audio files in {root}")

        state = _ScanState(root)
        self._read_files(paths, cache, options, token, state, on_progress)
        groups = self._build_groups(state, cache, options, token)
        cache.flush()

        result = DuplicateScanResult(
            root_path=root,
            groups=groups,
            files_scanned=len(state.files),
            errors=state.errors,
            error_count=state.error_count,
            stopped=state.stopped,
        )
        logger.info(
            f"Found {len(groups)} duplicate groups ({result.duplicate_file_count} files) "
            f"in {len(state.files)} scanned files"
            + (", scan stopped early" if result.stopped else "")
        )
        return result

    def revalidate_group(
        self,
        file_paths: Iterable[str],
        options: ScanOptions | None = None,
        root_path: str | None = None
    ) -> DuplicateGroup | None:
        """
        Re-run grouping over exactly the given files.

        Used after the user edited tags or replaced files of a group.

        Args:
            file_paths: Members of the group being checked.
            options: Scan options (defaults if None).
            root_path: Cache root; defaults to the common parent folder.

        Returns:
            The rebuilt group containing all still existing files if there
            is one; otherwise the largest rebuilt group (the one discovered
            first on ties); None if no group of two or more survives.

        Raises:
            InputError: If file_paths is empty or the options are invalid.
        """
        paths = [normalize_path(path) for path in file_paths]
        if not paths:
            raise InputError("No files to revalidate")

        options = options or ScanOptions()
        options.validate()

        existing = list(dict.fromkeys(path for path in paths if os.path.isfile(path)))
        missing = len(set(paths)) - len(existing)
        if missing:
            logger.info(f"{missing} file(s) of the group no longer exist")
        if len(existing) < 2:
            return None

        root = normalize_path(root_path) if root_path else os.path.commonpath(
            [os.path.dirname(path) for path in existing]
        )
        cache = self.cache_registry.for_root(root)

        state = _ScanState(normalize_path(root))
        self._read_files(existing, cache, options, CancellationToken(), state, None)
        groups = self._build_groups(state, cache, options, CancellationToken())
        cache.flush()

        if not groups:
            return None

        wanted = set(existing)
        for group in groups:
            if wanted.issubset(group.paths):
                return group

        order = {path: index for index, path in enumerate(existing)}
        best = groups[0]
        for group in groups[1:]:
            if len(group.files) > len(best.files) or (
                len(group.files) == len(best.files)
                and order[group.files[0].path] < order[best.files[0].path]
            ):
                best = group
        return best

    # =========================================================================
    # Reading
    # =========================================================================

    def _read_files(
        self,
        paths: list[str],
        cache: ScanCache,
        options: ScanOptions,
        token: CancellationToken,
        state: _ScanState,
        on_progress: Callable[[int, int, int], None] | None
    ) -> None:
        coordinator = BatchScanCoordinator(workers=options.worker_count, max_errors=MAX_REPORTED_ERRORS)
        total = len(paths)
        processed = 0

        for start in range(0, total, options.batch_size):
            if token.cancelled:
                state.stopped = True
                break

            batch_paths = paths[start:start + options.batch_size]
            indexed = list(enumerate(batch_paths, start=start))

            def report(completed: int, _total: int, _value: object) -> None:
                if on_progress is not None:
                    on_progress(processed + completed, total, state.error_count)

            batch = coordinator.run(
                indexed,
                lambda item: self._read_one(item[0], item[1], cache, options),
                cancel_token=token,
                on_progress=report,
            )
            processed += batch.completed

            for value in batch.results:
                if isinstance(value, ScanError):
                    state.add_error(value.path, value.message)
                else:
                    state.files.append(value)
            state.add_task_errors(batch, lambda item: item[1])

            if batch.stopped:
                state.stopped = True
                break

        state.files.sort(key=lambda f: f.index)

    def _read_one(
        self,
        index: int,
        path: str,
        cache: ScanCache,
        options: ScanOptions
    ) -> "_ScannedFile | ScanError":
        lookup = cache.lookup(path)
        if lookup.file_ref is None:
            return ScanError(path=path, message="File not found or not accessible")

        if lookup.hit and lookup.entry.metadata is not None:
            raw = lookup.entry.metadata
        else:
            try:
                raw = self.tag_reader.read_metadata(path)
            except MetadataError as e:
                return ScanError(path=path, message=e.message)
            cache.update(path, CacheEntry.for_file(lookup.file_ref, metadata=raw))

        metadata = raw
        if options.use_filename_fallback and not (raw.has_title and raw.has_artist):
            metadata = raw.merge_missing(parse_filename(os.path.basename(path)))

        return _ScannedFile(
            index=index,
            path=lookup.file_ref.path,
            size=lookup.file_ref.size,
            mod_time_ns=lookup.file_ref.mod_time_ns,
            metadata=metadata,
            title_key=normalize_key(repair_mojibake(metadata.title)),
            artist_key=normalize_key(repair_mojibake(metadata.artist)),
        )

    # =========================================================================
    # Grouping
    # =========================================================================

    def _build_groups(
        self,
        state: _ScanState,
        cache: ScanCache,
        options: ScanOptions,
        token: CancellationToken
    ) -> list[DuplicateGroup]:
        groups: list[DuplicateGroup] = []
        grouped: set[str] = set()

        for members in self._group_by_metadata(state.files, options):
            groups.append(self._make_group(members, MATCH_METHOD_METADATA))
            grouped.update(f.path for f in members)

        remaining = [f for f in state.files if f.path not in grouped]

        if options.use_exact_hash and remaining and not token.cancelled:
            for members in self._group_by_hash(remaining, cache, options, token, state):
                group = self._make_group(members, MATCH_METHOD_HASH)
                group.normalized_title = ""
                group.normalized_artist = ""
                groups.append(group)
                grouped.update(f.path for f in members)
            remaining = [f for f in remaining if f.path not in grouped]

        if options.use_acoustic_fingerprint and remaining and not token.cancelled:
            for members in self._group_by_fingerprint(remaining, cache, options, token, state):
                groups.append(self._make_group(members, MATCH_METHOD_FINGERPRINT))
                grouped.update(f.path for f in members)

        if token.cancelled:
            state.stopped = True
        return groups

    def _group_by_metadata(
        self,
        files: list[_ScannedFile],
        options: ScanOptions
    ) -> list[list[_ScannedFile]]:
        buckets: dict[tuple, list[_ScannedFile]] = {}
        for scanned in files:
            if not scanned.title_key:
                continue
            if options.ignore_duration:
                key: tuple = (scanned.title_key, scanned.artist_key)
            else:
                bucket = duration_bucket(scanned.metadata.duration_ms, options.duration_tolerance_ms)
                key = (scanned.title_key, scanned.artist_key, bucket)
            buckets.setdefault(key, []).append(scanned)

        clusters = list(buckets.items())
        if options.merge_similar:
            clusters = self._merge_similar(clusters)

        return [members for _, members in clusters if len(members) >= 2]

    def _merge_similar(
        self,
        clusters: list[tuple[tuple, list[_ScannedFile]]]
    ) -> list[tuple[tuple, list[_ScannedFile]]]:
        """Greedily fold every bucket into the first earlier bucket with a similar key."""
        merged: list[tuple[tuple, list[_ScannedFile]]] = []
        for key, members in clusters:
            title, artist, *rest = key
            for target_key, target_members in merged:
                target_title, target_artist, *target_rest = target_key
                if artist == target_artist and rest == target_rest and titles_similar(title, target_title):
                    target_members.extend(members)
                    logger.debug(f"Merged similar titles: {title!r} into {target_title!r}")
                    break
            else:
                merged.append((key, list(members)))

        for _, members in merged:
            members.sort(key=lambda f: f.index)
        return merged

    def _group_by_hash(
        self,
        files: list[_ScannedFile],
        cache: ScanCache,
        options: ScanOptions,
        token: CancellationToken,
        state: _ScanState
    ) -> list[list[_ScannedFile]]:
        # Identical content implies identical size; hash only colliding sizes
        by_size: dict[int, list[_ScannedFile]] = defaultdict(list)
        for scanned in files:
            by_size[scanned.size].append(scanned)
        candidates = [f for members in by_size.values() if len(members) >= 2 for f in members]
        if not candidates:
            return []

        logger.info(f"Hashing {len(candidates)} files with matching sizes")
        coordinator = BatchScanCoordinator(workers=options.worker_count, max_errors=MAX_REPORTED_ERRORS)
        batch = coordinator.run(candidates, lambda f: self._hash_one(f, cache), cancel_token=token)
        if batch.stopped:
            state.stopped = True

        by_hash: dict[str, list[_ScannedFile]] = {}
        for scanned, file_hash in batch.results:
            if isinstance(file_hash, ScanError):
                state.add_error(file_hash.path, file_hash.message)
                continue
            by_hash.setdefault(file_hash, []).append(scanned)
        state.add_task_errors(batch, lambda scanned: scanned.path)

        groups = [sorted(members, key=lambda f: f.index) for members in by_hash.values() if len(members) >= 2]
        groups.sort(key=lambda members: members[0].index)
        return groups

    def _hash_one(self, scanned: _ScannedFile, cache: ScanCache) -> tuple[_ScannedFile, "str | ScanError"]:
        entry = cache.get(scanned.path)
        if entry is not None and entry.file_hash and entry.matches(scanned.size, scanned.mod_time_ns):
            return scanned, entry.file_hash

        try:
            file_hash = compute_file_hash(scanned.path)
        except OSError as e:
            return scanned, ScanError(path=scanned.path, message=f"Cannot hash file: {e}")

        if entry is not None and entry.matches(scanned.size, scanned.mod_time_ns):
            cache.update(scanned.path, entry.with_hash(file_hash))
        return scanned, file_hash

    def _group_by_fingerprint(
        self,
        files: list[_ScannedFile],
        cache: ScanCache,
        options: ScanOptions,
        token: CancellationToken,
        state: _ScanState
    ) -> list[list[_ScannedFile]]:
        if self.fingerprinter is None:
            self.fingerprinter = ChromaprintFingerprinter()
        if not self.fingerprinter.is_available:
            logger.warning("fpcalc (Chromaprint) not found, acoustic fingerprints unavailable")

        logger.info(f"Fingerprinting {len(files)} ungrouped files")
        coordinator = BatchScanCoordinator(workers=options.worker_count, max_errors=MAX_REPORTED_ERRORS)
        batch = coordinator.run(files, lambda f: self._fingerprint_one(f, cache), cancel_token=token)
        if batch.stopped:
            state.stopped = True

        fingerprinted: list[tuple[_ScannedFile, tuple[int, ...]]] = []
        for scanned, fingerprint in batch.results:
            if isinstance(fingerprint, ScanError):
                state.add_error(fingerprint.path, fingerprint.message)
                continue
            fingerprinted.append((scanned, fingerprint))
        state.add_task_errors(batch, lambda scanned: scanned.path)

        # Greedy clustering in discovery order, compared to each cluster's first member
        clusters: list[list[tuple[_ScannedFile, tuple[int, ...]]]] = []
        for scanned, fingerprint in fingerprinted:
            for cluster in clusters:
                head, head_fingerprint = cluster[0]
                if durations_compatible(
                    scanned.metadata.duration_ms, head.metadata.duration_ms
                ) and fingerprints_match(fingerprint, head_fingerprint):
                    cluster.append((scanned, fingerprint))
                    break
            else:
                clusters.append([(scanned, fingerprint)])

        return [[scanned for scanned, _ in cluster] for cluster in clusters if len(cluster) >= 2]

    def _fingerprint_one(
        self,
        scanned: _ScannedFile,
        cache: ScanCache
    ) -> tuple[_ScannedFile, "tuple[int, ...] | ScanError"]:
        entry = cache.get(scanned.path)
        if entry is not None and entry.fingerprint and entry.matches(scanned.size, scanned.mod_time_ns):
            return scanned, entry.fingerprint

        try:
            fingerprint, _ = self.fingerprinter.fingerprint(scanned.path)
        except FingerprintError as e:
            return scanned, ScanError(path=scanned.path, message=e.message)

        if entry is not None and entry.matches(scanned.size, scanned.mod_time_ns):
            cache.update(scanned.path, entry.with_fingerprint(fingerprint))
        return scanned, fingerprint

    def _make_group(self, members: list[_ScannedFile], method: str) -> DuplicateGroup:
        first = members[0]
        return DuplicateGroup(
            normalized_title=first.title_key,
            normalized_artist=first.artist_key,
            files=[FileDetail.from_scan(f.path, f.size, f.metadata) for f in members],
            match_method=method,
        )
