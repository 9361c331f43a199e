# tests/test_utils.py
"""Test utilities and helpers"""

import hashlib

from spot_library.utils import (
    compute_file_hash,
    format_duration,
    format_file_size,
    is_audio_file,
    list_audio_files,
)


class TestHelpers:
    """Test helper functions"""

    def test_format_duration(self):
        """Test duration formatting"""
        assert format_duration(90000) == "1:30"
        assert format_duration(3661000) == "1:01:01"
        assert format_duration(0) == "0:00"
        assert format_duration(None) == "--:--"

    def test_format_file_size(self):
        """Test file size formatting"""
        assert format_file_size(1024) == "1.0 KB"
        assert format_file_size(1048576) == "1.0 MB"
        assert format_file_size(512) == "512 B"

    def test_is_audio_file(self):
        assert is_audio_file("/music/Song.FLAC")
        assert is_audio_file("track.opus")
        assert not is_audio_file("cover.jpg")
        assert not is_audio_file("notes")

    def test_compute_file_hash(self, make_file):
        path = make_file("music/a.mp3", b"same bytes")
        assert compute_file_hash(path) == hashlib.sha1(b"same bytes").hexdigest()
        assert compute_file_hash(path, chunk_size=3) == compute_file_hash(path)


class TestListAudioFiles:
    """Test audio file discovery"""

    def test_sorted_and_filtered(self, make_file, library_dir):
        b = make_file("music/b.mp3")
        a = make_file("music/a.flac")
        nested = make_file("music/Album/01.m4a")
        make_file("music/cover.jpg")

        assert list_audio_files(library_dir) == [a, b, nested]

    def test_hidden_entries_skipped(self, make_file, library_dir):
        """Hidden files and folders, including the quarantine, are not listed"""
        kept = make_file("music/a.mp3")
        make_file("music/.hidden.mp3")
        make_file("music/.spot_library_quarantine/b.mp3")

        assert list_audio_files(library_dir) == [kept]

    def test_non_recursive(self, make_file, library_dir):
        top = make_file("music/a.mp3")
        make_file("music/Album/b.mp3")
        assert list_audio_files(library_dir, recursive=False) == [top]
