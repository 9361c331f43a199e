# tests/test_normalize.py
"""Test path and key normalization"""

import os

import pytest

from spot_library.core.exceptions import InputError
from spot_library.library.models import AudioMetadata
from spot_library.library.normalize import (
    clean_search_string,
    contains_track_keywords,
    file_extension,
    fix_swapped,
    looks_swapped,
    normalize_key,
    normalize_path,
    path_is_within,
    repair_mojibake,
    strip_parentheticals,
)


class TestNormalizePath:
    """Test canonical path form"""

    def test_equivalent_paths_are_equal(self, temp_dir):
        """Doubled separators and dot segments collapse"""
        direct = normalize_path(temp_dir / "Album" / "01.flac")
        messy = normalize_path(f"{temp_dir}//Album/./sub/../01.flac")
        assert direct == messy

    def test_idempotent(self, temp_dir):
        """Normalizing twice changes nothing"""
        once = normalize_path(f"{temp_dir}/a/../b//c.mp3")
        assert normalize_path(once) == once

    def test_relative_becomes_absolute(self):
        """Relative paths are made absolute"""
        assert os.path.isabs(normalize_path("some/file.mp3"))

    def test_forward_slashes(self, temp_dir):
        """Result never contains backslashes"""
        assert "\\" not in normalize_path(temp_dir / "x.mp3")

    def test_empty_path_rejected(self):
        """Empty and blank paths raise InputError"""
        with pytest.raises(InputError):
            normalize_path("")
        with pytest.raises(InputError):
            normalize_path("   ")


class TestNormalizeKey:
    """Test title/artist keys"""

    def test_case_and_whitespace(self):
        """Case and whitespace runs are folded"""
        assert normalize_key("  Daft  Punk ") == "daft punk"
        assert normalize_key("DAFT PUNK") == normalize_key("daft punk")

    def test_diacritics(self):
        """Accents are removed"""
        assert normalize_key("Beyoncé") == "beyonce"
        assert normalize_key("Sigur Rós") == "sigur ros"

    def test_separators(self):
        """Separator-only tokens are dropped, underscores become spaces"""
        assert normalize_key("Song - (Live)") == "song (live)"
        assert normalize_key("Jay_Z") == "jay z"

    def test_ampersand(self):
        """& is spelled out"""
        assert normalize_key("Simon & Garfunkel") == normalize_key("Simon and Garfunkel")

    def test_brackets_kept(self):
        """Bracketed content distinguishes versions"""
        assert normalize_key("Song (Live)") != normalize_key("Song")
        assert normalize_key("Song (Live)") != normalize_key("Song (Remix)")

    def test_empty(self):
        """None and blank input give an empty key"""
        assert normalize_key(None) == ""
        assert normalize_key("") == ""
        assert normalize_key("   ") == ""

    def test_idempotent(self):
        """Normalizing a key again changes nothing"""
        for text in ["Beyoncé & Jay_Z", "Song - (Live)", "  ÀÉÎ  õü  ", "İstanbul"]:
            key = normalize_key(text)
            assert normalize_key(key) == key


class TestRepairAndCleaning:
    """Test mojibake repair and query cleaning"""

    def test_repair_mojibake(self):
        """UTF-8 read as Latin-1 is repaired"""
        assert repair_mojibake("CafÃ©") == "Café"
        assert repair_mojibake("RÃ¶yksopp") == "Röyksopp"
        assert repair_mojibake(None) is None
        assert repair_mojibake("") == ""

    def test_clean_bitrate_and_video_markers(self):
        """Quality and video junk is removed"""
        assert clean_search_string("One More Time (Official Video) 320kbps") == "One More Time"
        assert clean_search_string("Song [320 kbps]") == "Song"
        assert clean_search_string("Song (Lyrics)") == "Song"

    def test_clean_extension_and_year(self):
        """Leaked extensions and trailing years are removed"""
        assert clean_search_string("Song.mp3") == "Song"
        assert clean_search_string("Song (2005)") == "Song"

    def test_clean_keeps_version_markers(self):
        """Live/remix markers stay in the query"""
        assert clean_search_string("Song (Live)") == "Song (Live)"

    def test_clean_empty(self):
        assert clean_search_string(None) == ""


class TestSwapDetection:
    """Test title/artist swap heuristics"""

    def test_keywords(self):
        assert contains_track_keywords("Song (Radio Edit)")
        assert not contains_track_keywords("Daft Punk")

    def test_keywords_need_whole_words(self):
        """Artist names that merely contain a track word are not track titles"""
        for artist in ("Radiohead", "Oliver Heldens", "Editors", "Mixmaster Mike"):
            assert not contains_track_keywords(artist)
        assert contains_track_keywords("Song (feat. Someone)")
        assert contains_track_keywords("Song - Live")
        assert not looks_swapped("Creep", "Radiohead")

    def test_strip_parentheticals(self):
        assert strip_parentheticals("One More Time (Radio Edit) [2001]") == "One More Time"
        assert strip_parentheticals("No Brackets") == "No Brackets"

    def test_swapped_pair_is_fixed(self):
        """An artist-looking title with a track-looking artist is swapped"""
        metadata = AudioMetadata(title="Daft Punk", artist="One More Time (Radio Edit)")
        assert looks_swapped(metadata.title, metadata.artist)
        fixed = fix_swapped(metadata)
        assert fixed.title == "One More Time (Radio Edit)"
        assert fixed.artist == "Daft Punk"

    def test_normal_pair_untouched(self):
        metadata = AudioMetadata(title="One More Time", artist="Daft Punk")
        assert fix_swapped(metadata) is metadata

    def test_missing_values(self):
        assert not looks_swapped(None, "Live Mix")
        assert not looks_swapped("Artist", None)


class TestPathHelpers:
    """Test path containment and extensions"""

    def test_path_is_within(self, temp_dir):
        root = temp_dir / "music"
        assert path_is_within(root / "a" / "b.mp3", root)
        assert path_is_within(root, root)
        assert not path_is_within(temp_dir / "music2" / "b.mp3", root)

    def test_file_extension(self):
        assert file_extension("/x/Song.flac") == "FLAC"
        assert file_extension("/x/Song") == ""
