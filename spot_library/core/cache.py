"""
Persisted scan cache for spot-library.

The cache remembers, per scanned root folder, what was read from every
audio file (tags, content hash, fingerprint) together with the size and
modification time the file had at that moment. A later scan reuses the
entry only if a fresh stat yields the same size and mtime.

Layers:
    ScanCacheStore:     Thread-safe SQLite store, one row per root folder
                        (root_path -> JSON map of normalized path -> entry).
    ScanCache:          In-memory cache of ONE root with validated lookup,
                        invalidation, pruning and debounced persistence.
    ScanCacheRegistry:  One ScanCache per root; entry point used by the
                        duplicate engine and the file mutators.

Failure semantics:
    - A store that cannot be opened or written raises CacheError.
    - Corrupted JSON for a root, or a malformed entry, is a cache miss.
    - A stat failure during lookup removes the entry and reports a miss.

Usage:
    registry = ScanCacheRegistry.from_directory(cache_dir)
    cache = registry.for_root("/music")

    found = cache.lookup("/music/a.flac")
    if found.hit:
        metadata = found.entry.metadata
    elif found.file_ref is not None:
        cache.update(found.file_ref.path, CacheEntry.for_file(found.file_ref, metadata))

    registry.close()
"""

import json
import os
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Iterable, NamedTuple

from spot_library.core.exceptions import CacheError
from spot_library.core.logger import get_logger
from spot_library.library.models import AudioFileRef, CacheEntry
from spot_library.library.normalize import normalize_path, path_is_within


logger = get_logger(__name__)


CACHE_SCHEMA_VERSION = 1
CACHE_DB_FILENAME = "scan_cache.db"

# Seconds between the first unsaved change and the write to disk
DEFAULT_PERSIST_DELAY = 2.0


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS scan_cache (
    root_path TEXT PRIMARY KEY,
    entries TEXT NOT NULL,       -- JSON object: normalized path -> entry
    entry_count INTEGER NOT NULL,
    saved_at TEXT NOT NULL
);
"""


class ScanCacheStore:
    """
    Thread-safe SQLite store holding one cache record per root folder.

    One connection is shared by all threads; every public method
    holds self._lock while it runs.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(
                f"Cannot create cache directory: {db_path.parent}",
                details={"path": str(db_path.parent), "original_error": str(e)}
            ) from e

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to initialize scan cache store: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield the persistent connection, creating it on first use."""
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # guarded by _lock
            )
            self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    def _init_database(self) -> None:
        with self._lock, self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)", (CACHE_SCHEMA_VERSION,)
                )
                conn.commit()
            elif row[0] != CACHE_SCHEMA_VERSION:
                raise CacheError(
                    f"Scan cache version mismatch: expected {CACHE_SCHEMA_VERSION}, got {row[0]}",
                    details={"expected": CACHE_SCHEMA_VERSION, "actual": row[0]}
                )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # =========================================================================
    # Root records
    # =========================================================================

    def load_entries(self, root_path: str) -> dict[str, CacheEntry]:
        """
        Load all entries of one root.

        Args:
            root_path: Normalized root folder.

        Returns:
            Map of normalized path -> CacheEntry. Empty if the root was never
            saved or its record is corrupted.

        Raises:
            CacheError: If the store cannot be queried.
        """
        try:
            with self._lock, self._get_connection() as conn:
                row = conn.execute(
                    "SELECT entries FROM scan_cache WHERE root_path = ?", (root_path,)
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to read scan cache: {e}",
                details={"root_path": root_path}
            ) from e

        if row is None:
            return {}

        try:
            raw_entries = json.loads(row[0])
        except (TypeError, ValueError):
            logger.warning(f"Scan cache for {root_path} is corrupted, starting empty")
            return {}

        if not isinstance(raw_entries, dict):
            logger.warning(f"Scan cache for {root_path} has unexpected shape, starting empty")
            return {}

        entries: dict[str, CacheEntry] = {}
        for path, data in raw_entries.items():
            try:
                entries[path] = CacheEntry.from_dict(path, data)
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.debug(f"Dropping malformed cache entry: {path}")
        return entries

    def save_entries(self, root_path: str, entries: dict[str, CacheEntry]) -> None:
        """
        Replace the record of one root atomically.

        Raises:
            CacheError: If the write fails.
        """
        payload = json.dumps(
            {path: entry.to_dict() for path, entry in entries.items()},
            ensure_ascii=False,
        )
        saved_at = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock, self._get_connection() as conn:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO scan_cache (root_path, entries, entry_count, saved_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(root_path) DO UPDATE SET
                            entries = excluded.entries,
                            entry_count = excluded.entry_count,
                            saved_at = excluded.saved_at
                        """,
                        (root_path, payload, len(entries), saved_at)
                    )
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to write scan cache: {e}",
                details={"root_path": root_path}
            ) from e

    def delete_root(self, root_path: str) -> bool:
        """Delete the record of one root. Returns True if a record existed."""
        try:
            with self._lock, self._get_connection() as conn:
                with conn:
                    cursor = conn.execute(
                        "DELETE FROM scan_cache WHERE root_path = ?", (root_path,)
                    )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to delete scan cache record: {e}",
                details={"root_path": root_path}
            ) from e

    def list_roots(self) -> list[str]:
        """Return all root folders with a saved record."""
        try:
            with self._lock, self._get_connection() as conn:
                rows = conn.execute("SELECT root_path FROM scan_cache ORDER BY root_path").fetchall()
        except sqlite3.Error as e:
            raise CacheError(f"Failed to list scan cache roots: {e}") from e
        return [row[0] for row in rows]


class CacheLookup(NamedTuple):
    """
    Result of a validated lookup.

    Attributes:
        entry: The valid cache entry, or None on a miss.
        file_ref: Snapshot from the lookup's stat, or None if the stat failed.
    """
    entry: CacheEntry | None
    file_ref: AudioFileRef | None

    @property
    def hit(self) -> bool:
        return self.entry is not None


class ScanCache:
    """
    Cache of one root folder.

    Writes are serialized by a lock. Entries are immutable and replaced
    as a whole, so a concurrent reader sees either the old or the new
    entry, never a partial one.

    Attributes:
        root_path: Normalized root folder.
        persist_delay: Debounce delay for writes to the store (seconds).
    """

    def __init__(
        self,
        root_path: str,
        store: ScanCacheStore | None = None,
        persist_delay: float = DEFAULT_PERSIST_DELAY,
        stat_func: Callable[[str], os.stat_result] = os.stat
    ) -> None:
        self.root_path = normalize_path(root_path)
        self.persist_delay = persist_delay
        self._store = store
        self._stat = stat_func
        self._lock = threading.Lock()
        # Held across snapshot and store write so writes land in snapshot order
        self._persist_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._dirty = False
        self._entries: dict[str, CacheEntry] = (
            store.load_entries(self.root_path) if store is not None else {}
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, file_path: str) -> bool:
        return normalize_path(file_path) in self._entries

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, file_path: str) -> CacheLookup:
        """
        Validated lookup; performs exactly one stat.

        Args:
            file_path: File path in any form.

        Returns:
            CacheLookup. On a size/mtime mismatch the stale entry is purged
            and a miss is reported. On a stat failure the entry is removed
            and file_ref is None.
        """
        key = normalize_path(file_path)
        try:
            stat_result = self._stat(key)
        except OSError as e:
            logger.debug(f"Stat failed for {key}: {e}")
            self.invalidate(key)
            return CacheLookup(entry=None, file_ref=None)

        file_ref = AudioFileRef(
            path=key,
            size=stat_result.st_size,
            mod_time_ns=stat_result.st_mtime_ns,
        )
        entry = self._entries.get(key)
        if entry is None:
            return CacheLookup(entry=None, file_ref=file_ref)

        if entry.matches(file_ref.size, file_ref.mod_time_ns):
            return CacheLookup(entry=entry, file_ref=file_ref)

        logger.debug(f"Stale cache entry purged: {key}")
        self.invalidate(key)
        return CacheLookup(entry=None, file_ref=file_ref)

    def get(self, file_path: str) -> CacheEntry | None:
        """Return the stored entry without validating it against the filesystem."""
        return self._entries.get(normalize_path(file_path))

    # =========================================================================
    # Mutation
    # =========================================================================

    def update(self, file_path: str, entry: CacheEntry) -> None:
        """Insert or replace the entry of a file and schedule a persist."""
        key = normalize_path(file_path)
        if entry.path != key:
            entry = replace(entry, path=key)
        with self._lock:
            self._entries[key] = entry
            self._mark_dirty()

    def invalidate(self, file_path: str) -> bool:
        """Remove the entry of a file. Returns True if it existed."""
        key = normalize_path(file_path)
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._mark_dirty()
            return True

    def invalidate_many(self, file_paths: Iterable[str]) -> int:
        """Remove several entries. Returns the number removed."""
        keys = [normalize_path(path) for path in file_paths]
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            if removed:
                self._mark_dirty()
        return removed

    def prune(self) -> int:
        """
        Remove entries whose file no longer exists (or cannot be stat'ed).

        Returns:
            Number of entries removed.
        """
        stale = []
        for key in list(self._entries):
            try:
                self._stat(key)
            except OSError:
                stale.append(key)

        removed = self.invalidate_many(stale)
        if removed:
            logger.debug(f"Pruned {removed} stale cache entries under {self.root_path}")
        return removed

    def clear(self) -> None:
        """Drop every entry of this root, in memory and in the store."""
        with self._persist_lock:
            with self._lock:
                self._entries = {}
                self._dirty = False
                self._cancel_timer()
            if self._store is not None:
                self._store.delete_root(self.root_path)

    # =========================================================================
    # Persistence
    # =========================================================================

    def _mark_dirty(self) -> None:
        # Caller holds self._lock
        self._dirty = True
        if self._store is None or self._timer is not None:
            return
        self._timer = threading.Timer(self.persist_delay, self._persist_from_timer)
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self) -> None:
        # Caller holds self._lock
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _persist_from_timer(self) -> None:
        try:
            self.flush()
        except CacheError as e:
            # Left dirty; the next flush() retries and raises to its caller
            logger.error(f"Deferred scan cache write failed: {e.message}")

    def flush(self) -> None:
        """
        Write pending changes to the store now.

        Raises:
            CacheError: If the write fails (changes stay pending).
        """
        with self._persist_lock:
            with self._lock:
                self._cancel_timer()
                if not self._dirty or self._store is None:
                    return
                snapshot = dict(self._entries)
                self._dirty = False

            try:
                self._store.save_entries(self.root_path, snapshot)
            except CacheError:
                with self._lock:
                    self._dirty = True
                raise
        logger.debug(f"Scan cache saved for {self.root_path} ({len(snapshot)} entries)")

    def close(self) -> None:
        """Flush pending changes."""
        self.flush()


class ScanCacheRegistry:
    """
    Owns one ScanCache per root folder.

    Also the single entry point for invalidation triggered by file
    deletion and moves: invalidate_paths() removes the paths from every
    known root (loaded or only persisted) that contains them.
    """

    def __init__(
        self,
        store: ScanCacheStore | None = None,
        persist_delay: float = DEFAULT_PERSIST_DELAY,
        stat_func: Callable[[str], os.stat_result] = os.stat
    ) -> None:
        self._store = store
        self._persist_delay = persist_delay
        self._stat = stat_func
        self._caches: dict[str, ScanCache] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_directory(
        cls,
        cache_dir: Path,
        persist_delay: float = DEFAULT_PERSIST_DELAY
    ) -> "ScanCacheRegistry":
        """
        Open (or create) the store in cache_dir.

        Raises:
            CacheError: If the store cannot be opened.
        """
        return cls(ScanCacheStore(cache_dir / CACHE_DB_FILENAME), persist_delay=persist_delay)

    def for_root(self, root_path: str) -> ScanCache:
        """Return the cache of a root, loading it on first use."""
        key = normalize_path(root_path)
        with self._lock:
            cache = self._caches.get(key)
            if cache is None:
                cache = ScanCache(
                    key,
                    store=self._store,
                    persist_delay=self._persist_delay,
                    stat_func=self._stat,
                )
                self._caches[key] = cache
            return cache

    def lookup(self, root_path: str, file_path: str) -> CacheLookup:
        return self.for_root(root_path).lookup(file_path)

    def update(self, root_path: str, file_path: str, entry: CacheEntry) -> None:
        self.for_root(root_path).update(file_path, entry)

    def invalidate(self, root_path: str, file_path: str) -> bool:
        return self.for_root(root_path).invalidate(file_path)

    def invalidate_many(self, root_path: str, file_paths: Iterable[str]) -> int:
        return self.for_root(root_path).invalidate_many(file_paths)

    def prune(self, root_path: str) -> int:
        return self.for_root(root_path).prune()

    def clear(self, root_path: str) -> None:
        self.for_root(root_path).clear()

    def known_roots(self) -> list[str]:
        """Roots loaded in memory or saved in the store."""
        with self._lock:
            roots = set(self._caches)
        if self._store is not None:
            roots.update(self._store.list_roots())
        return sorted(roots)

    def invalidate_paths(self, file_paths: Iterable[str]) -> int:
        """
        Remove files from every known root that contains them.

        Called after a file was deleted or moved.

        Returns:
            Total number of entries removed.
        """
        paths = [normalize_path(path) for path in file_paths]
        if not paths:
            return 0

        removed = 0
        for root in self.known_roots():
            inside = [path for path in paths if path_is_within(path, root)]
            if inside:
                removed += self.for_root(root).invalidate_many(inside)
        return removed

    def flush_all(self) -> None:
        with self._lock:
            caches = list(self._caches.values())
        for cache in caches:
            cache.flush()

    def close(self) -> None:
        """Flush every cache and close the store."""
        self.flush_all()
        if self._store is not None:
            self._store.close()
