"""Test configuration and fixtures"""

import os
import tempfile
from pathlib import Path

import pytest

from spot_library.core.cache import ScanCacheRegistry, ScanCacheStore
from spot_library.core.exceptions import MetadataError
from spot_library.library.models import AudioMetadata
from spot_library.library.normalize import normalize_path
from spot_library.spotify.models import CatalogTrack
from spot_library.upgrade.models import Availability


class FakeTagReader:
    """In-memory TagReader keyed by normalized path; counts reads."""

    def __init__(self, tags: dict[str, AudioMetadata | Exception] | None = None):
        self.tags = {normalize_path(path): value for path, value in (tags or {}).items()}
        self.reads: list[str] = []

    def set(self, path, value) -> None:
        self.tags[normalize_path(path)] = value

    def read_metadata(self, file_path: str) -> AudioMetadata:
        key = normalize_path(file_path)
        self.reads.append(key)
        value = self.tags.get(key)
        if value is None:
            return AudioMetadata()
        if isinstance(value, Exception):
            raise value
        return value


class FakeCatalog:
    """Catalog search returning canned results per query; records queries."""

    def __init__(self, results: dict[str, list[CatalogTrack]] | None = None, error: Exception | None = None):
        self.results = results or {}
        self.error = error
        self.queries: list[str] = []

    def search(self, query: str, kind: str = "track", limit: int = 5, offset: int = 0) -> list[CatalogTrack]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.results.get(query, []))


class FakeAvailability:
    """Availability lookup returning a fixed answer (or raising)."""

    def __init__(self, availability: Availability | None = None, error: Exception | None = None):
        self.availability = availability
        self.error = error
        self.calls: list[str] = []

    def check_availability(self, catalog_id: str, fallback_id: str = "") -> Availability:
        self.calls.append(catalog_id)
        if self.error is not None:
            raise self.error
        return self.availability or Availability(catalog_id=catalog_id)


def make_track(
    track_id: str = "track1",
    name: str = "One More Time",
    artists: str = "Daft Punk",
    duration_ms: int = 320000
) -> CatalogTrack:
    return CatalogTrack(
        id=track_id,
        name=name,
        artists=artists,
        album_name="Discovery",
        duration_ms=duration_ms,
        external_url=f"https://open.spotify.com/track/{track_id}",
    )


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def make_file(temp_dir):
    """Write a file below temp_dir and return its normalized path."""
    def _make(relative: str, content: bytes = b"audio", mtime: int | None = None) -> str:
        path = temp_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return normalize_path(path)
    return _make


@pytest.fixture
def tag_reader():
    return FakeTagReader()


@pytest.fixture
def registry(temp_dir):
    """Registry backed by a store outside the scanned folders."""
    store = ScanCacheStore(temp_dir / "cache" / "scan_cache.db")
    registry = ScanCacheRegistry(store=store, persist_delay=60)
    yield registry
    registry.close()


@pytest.fixture
def library_dir(temp_dir):
    """Folder scanned by the tests (kept apart from the cache folder)."""
    path = temp_dir / "music"
    path.mkdir()
    return path
