# tests/test_filename_parser.py
"""Test filename parsing fallback"""

from spot_library.library.filename_parser import parse_filename
from spot_library.library.models import UNKNOWN_ARTIST


class TestParseFilename:
    """Test ordered filename rules"""

    def test_numbered_title_artist(self):
        """'01. Title - Artist' drops the number"""
        parsed = parse_filename("01. One More Time - Daft Punk.flac")
        assert parsed.title == "One More Time"
        assert parsed.artist == "Daft Punk"

    def test_numbered_variants(self):
        """Space and dash after the number work too"""
        assert parse_filename("07 Aerodynamic - Daft Punk.mp3").title == "Aerodynamic"
        assert parse_filename("07-Aerodynamic - Daft Punk.mp3").artist == "Daft Punk"

    def test_generic_dash_is_title_artist(self):
        """'A - B' is always read as title first"""
        parsed = parse_filename("Daft Punk - One More Time.mp3")
        assert parsed.title == "Daft Punk"
        assert parsed.artist == "One More Time"

    def test_by_pattern(self):
        parsed = parse_filename("Yesterday by The Beatles.mp3")
        assert parsed.title == "Yesterday"
        assert parsed.artist == "The Beatles"

    def test_feat_pattern(self):
        parsed = parse_filename("Get Lucky feat. Pharrell Williams.m4a")
        assert parsed.title == "Get Lucky"
        assert parsed.artist == "Pharrell Williams"

    def test_versus_pattern(self):
        parsed = parse_filename("Skrillex vs Kill The Noise.mp3")
        assert parsed.title == "Skrillex"
        assert parsed.artist == "Kill The Noise"

        assert parse_filename("Skrillex vs. Kill The Noise.mp3").artist == "Kill The Noise"

    def test_x_pattern(self):
        parsed = parse_filename("Song x Other.flac")
        assert parsed.title == "Song"
        assert parsed.artist == "Other"

    def test_versus_tried_last(self):
        """A name that an earlier rule can read never reaches the vs/x rule"""
        dashed = parse_filename("Run x Away - Band.mp3")
        assert dashed.title == "Run x Away"
        assert dashed.artist == "Band"

        by = parse_filename("Song x Other by Band.mp3")
        assert by.title == "Song x Other"
        assert by.artist == "Band"

        featuring = parse_filename("Song vs Other feat. Guest.mp3")
        assert featuring.title == "Song vs Other"
        assert featuring.artist == "Guest"

    def test_x_inside_words_ignored(self):
        parsed = parse_filename("Xtal.mp3")
        assert parsed.title == "Xtal"
        assert parsed.artist == UNKNOWN_ARTIST

    def test_trailing_year_removed(self):
        parsed = parse_filename("Song Title - Some Artist (2005).mp3")
        assert parsed.title == "Song Title"
        assert parsed.artist == "Some Artist"

    def test_wrapping_brackets_stripped(self):
        parsed = parse_filename("Song Title - [Some Artist].mp3")
        assert parsed.artist == "Some Artist"

    def test_no_rule_matches(self):
        """The stem becomes the title with a placeholder artist"""
        parsed = parse_filename("untitled.mp3")
        assert parsed.title == "untitled"
        assert parsed.artist == UNKNOWN_ARTIST

    def test_bitrate_artist_rejected(self):
        """A bitrate marker is never an artist"""
        parsed = parse_filename("Song - 320kbps MP3.mp3")
        assert parsed.artist == UNKNOWN_ARTIST
        assert parsed.title == "Song - 320kbps MP3"

    def test_one_character_captures_skipped(self):
        """Captures of one character do not count as a match"""
        parsed = parse_filename("A - B.mp3")
        assert parsed.artist == UNKNOWN_ARTIST

    def test_path_uses_last_component(self):
        parsed = parse_filename("/music/Album - Artist/01. Track Name - Band.mp3")
        assert parsed.title == "Track Name"
        assert parsed.artist == "Band"

    def test_empty(self):
        assert parse_filename("") is None
        assert parse_filename("   ") is None
