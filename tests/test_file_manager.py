# tests/test_file_manager.py
"""Test delete, quarantine and restore"""

import os

import pytest

from spot_library.core.exceptions import FileOperationError, InputError
from spot_library.library.file_manager import (
    QUARANTINE_DIRNAME,
    STATUS_DELETED,
    STATUS_MISSING,
    STATUS_MOVED,
    STATUS_NOT_IN_QUARANTINE,
    STATUS_OUTSIDE_ROOT,
    STATUS_RESTORED,
    FileManager,
    quarantine_dir,
)
from spot_library.library.models import (
    AudioFileRef,
    AudioMetadata,
    CacheEntry,
    DuplicateGroup,
    DuplicateScanResult,
    FileDetail,
)


def _cache(registry, root, path):
    stat = os.stat(path)
    ref = AudioFileRef(path=path, size=stat.st_size, mod_time_ns=stat.st_mtime_ns)
    registry.update(str(root), path, CacheEntry.for_file(ref, metadata=AudioMetadata(title="Song")))


def _result(root, *groups) -> DuplicateScanResult:
    return DuplicateScanResult(
        root_path=str(root),
        groups=[
            DuplicateGroup(
                normalized_title="song",
                normalized_artist="artist",
                files=[FileDetail.from_scan(path, 5, AudioMetadata()) for path in paths],
            )
            for paths in groups
        ],
    )


class TestDelete:
    """Test deleting files"""

    def test_delete_file(self, registry, make_file, library_dir):
        """The file is removed along with its cache entry"""
        path = make_file("music/a.mp3")
        _cache(registry, library_dir, path)

        FileManager(registry).delete_file(path)

        assert not os.path.exists(path)
        assert registry.lookup(str(library_dir), path).entry is None

    def test_delete_missing_file(self, registry, temp_dir):
        with pytest.raises(FileOperationError):
            FileManager(registry).delete_file(str(temp_dir / "gone.mp3"))

    def test_delete_files_statuses(self, registry, make_file, temp_dir):
        path = make_file("music/a.mp3")
        missing = str(temp_dir / "music" / "gone.mp3")

        statuses = FileManager(registry).delete_files([path, missing])

        assert statuses == {path: STATUS_DELETED, missing: STATUS_MISSING}

    def test_delete_updates_scan_result(self, registry, make_file, library_dir):
        """A group left with one file disappears from the result"""
        a = make_file("music/a.mp3")
        b = make_file("music/b.mp3")
        c = make_file("music/c.mp3")
        d = make_file("music/d.mp3")
        e = make_file("music/e.mp3")
        result = _result(library_dir, [a, b], [c, d, e])

        FileManager(registry).delete_files([a, c], result=result)

        assert len(result.groups) == 1
        assert result.groups[0].paths == [d, e]

    def test_delete_no_paths(self, registry):
        with pytest.raises(InputError):
            FileManager(registry).delete_files([])


class TestQuarantine:
    """Test moving files in and out of quarantine"""

    def test_move_keeps_relative_path(self, registry, make_file, library_dir):
        path = make_file("music/Album/01.mp3", b"data")
        _cache(registry, library_dir, path)

        statuses = FileManager(registry).move_to_quarantine([path], str(library_dir))

        dest = f"{quarantine_dir(str(library_dir))}/Album/01.mp3"
        assert statuses == {path: STATUS_MOVED}
        assert not os.path.exists(path)
        with open(dest, "rb") as f:
            assert f.read() == b"data"
        assert registry.lookup(str(library_dir), path).entry is None

    def test_move_rejects_outside_root(self, registry, make_file, library_dir):
        outside = make_file("elsewhere/a.mp3")
        inside_quarantine = make_file(f"music/{QUARANTINE_DIRNAME}/b.mp3")
        missing = str(library_dir / "gone.mp3")

        statuses = FileManager(registry).move_to_quarantine(
            [outside, inside_quarantine, missing], str(library_dir)
        )

        assert statuses[outside] == STATUS_OUTSIDE_ROOT
        assert statuses[inside_quarantine] == STATUS_OUTSIDE_ROOT
        assert statuses[missing] == STATUS_MISSING
        assert os.path.exists(outside)

    def test_move_does_not_overwrite(self, registry, make_file, library_dir):
        """A name already taken in quarantine gets a suffix"""
        manager = FileManager(registry)
        first = make_file("music/a.mp3", b"first")
        manager.move_to_quarantine([first], str(library_dir))
        second = make_file("music/a.mp3", b"second")
        manager.move_to_quarantine([second], str(library_dir))

        listed = manager.list_quarantine(str(library_dir))
        assert len(listed) == 2
        assert any(".quarantined." in path for path in listed)

    def test_restore(self, registry, make_file, library_dir):
        path = make_file("music/Album/01.mp3", b"data")
        manager = FileManager(registry)
        manager.move_to_quarantine([path], str(library_dir))
        quarantined = manager.list_quarantine(str(library_dir))

        statuses = manager.restore_from_quarantine(quarantined, str(library_dir))

        assert statuses == {quarantined[0]: STATUS_RESTORED}
        assert os.path.exists(path)
        assert manager.list_quarantine(str(library_dir)) == []

    def test_restore_to_occupied_destination(self, registry, make_file, library_dir):
        """The original is kept and the restored copy gets a suffix"""
        path = make_file("music/a.mp3", b"old")
        manager = FileManager(registry)
        manager.move_to_quarantine([path], str(library_dir))
        make_file("music/a.mp3", b"new")

        manager.restore_from_quarantine(manager.list_quarantine(str(library_dir)), str(library_dir))

        with open(path, "rb") as f:
            assert f.read() == b"new"
        restored = [name for name in os.listdir(library_dir) if ".restored." in name]
        assert len(restored) == 1

    def test_restore_rejects_other_paths(self, registry, make_file, library_dir):
        path = make_file("music/a.mp3")
        statuses = FileManager(registry).restore_from_quarantine([path], str(library_dir))
        assert statuses == {path: STATUS_NOT_IN_QUARANTINE}

    def test_list_without_quarantine(self, registry, library_dir):
        assert FileManager(registry).list_quarantine(str(library_dir)) == []

    def test_empty_quarantine(self, registry, make_file, library_dir):
        manager = FileManager(registry)
        paths = [make_file("music/a.mp3"), make_file("music/Album/b.mp3")]
        manager.move_to_quarantine(paths, str(library_dir))

        assert manager.empty_quarantine(str(library_dir)) == 2
        assert manager.list_quarantine(str(library_dir)) == []
        assert os.path.isdir(quarantine_dir(str(library_dir)))
        assert not os.path.exists(f"{quarantine_dir(str(library_dir))}/Album")

    def test_root_required(self, registry, make_file):
        manager = FileManager(registry)
        with pytest.raises(InputError):
            manager.move_to_quarantine([make_file("music/a.mp3")], "")
        with pytest.raises(InputError):
            manager.list_quarantine("")
