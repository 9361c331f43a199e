"""
Filename parsing for files without usable tags.

parse_filename derives a best-effort (title, artist) pair from a bare
filename. Rules are tried in order and the first one producing two
captures longer than one character wins.

Ordering convention:
    The generic "A - B" shape is read as "Title - Artist", the same
    order as the numbered "01. Title - Artist" rule. The order is never
    guessed per file.

Examples:
    parse_filename("01. One More Time - Daft Punk.flac")
    # AudioMetadata(title="One More Time", artist="Daft Punk")

    parse_filename("untitled.mp3")
    # AudioMetadata(title="untitled", artist="Unknown Artist")
"""

import re
from pathlib import PurePath

from spot_library.core.logger import get_logger
from spot_library.library.models import UNKNOWN_ARTIST, AudioMetadata


logger = get_logger(__name__)


# (pattern, title group, artist group), in priority order
FILENAME_RULES: tuple[tuple[re.Pattern, int, int], ...] = (
    # "01. Title - Artist", "01 Title - Artist", "01-Title - Artist"
    (re.compile(r"^(\d+)[.\s\-]+(.+?)\s*-\s*(.+)$"), 2, 3),
    # "Title - Artist"
    (re.compile(r"^(.+?)\s*-\s*(.+)$"), 1, 2),
    # "Title by Artist"
    (re.compile(r"^(.+?)\s+by\s+(.+)$", re.IGNORECASE), 1, 2),
    # "Title feat. Other", "Title ft Other", "Title featuring Other"
    (re.compile(r"^(.+?)\s+(?:feat\.?|ft\.?|featuring)\s+(.+)$", re.IGNORECASE), 1, 2),
    # "Artist vs Artist", "Artist x Artist"
    (re.compile(r"^(.+?)\s+(?:vs\.?|x)\s+(.+)$", re.IGNORECASE), 1, 2),
)

# Trailing release year: "Song (2005)", "Song [2005]"
_TRAILING_YEAR = re.compile(r"\s*[(\[{]\d{4}[)\]}]$")

# A parsed artist polluted by bitrate/format markers ("320kbps MP3")
_INVALID_ARTIST = re.compile(r"\d{3,4}\s*k?\s*(?:bps|mp3|flac|aac)", re.IGNORECASE)

_WRAPPING_PAIRS = {"(": ")", "[": "]", "{": "}"}

# Captures must be longer than this
_MIN_CAPTURE_LENGTH = 1


def _strip_capture(value: str) -> str:
    """Trim a capture and unwrap it if one bracket pair encloses all of it."""
    value = value.strip()
    if len(value) >= 2 and _WRAPPING_PAIRS.get(value[0]) == value[-1]:
        value = value[1:-1].strip()
    return value


def parse_filename(file_name: str) -> AudioMetadata | None:
    """
    Parse a title and artist out of a filename.

    Args:
        file_name: Bare filename or path; only the last component is used.

    Returns:
        AudioMetadata with title and artist set, or None if the name is empty.
        When no rule matches, the stripped name becomes the title and the
        artist is "Unknown Artist".
    """
    if not file_name or not file_name.strip():
        return None

    stem = PurePath(file_name.strip()).stem.strip()
    if not stem:
        return None

    stem = _TRAILING_YEAR.sub("", stem).strip() or stem

    for pattern, title_group, artist_group in FILENAME_RULES:
        match = pattern.match(stem)
        if match is None:
            continue

        title = _strip_capture(match.group(title_group))
        artist = _strip_capture(match.group(artist_group))
        if len(title) <= _MIN_CAPTURE_LENGTH or len(artist) <= _MIN_CAPTURE_LENGTH:
            continue

        if _INVALID_ARTIST.search(artist):
            logger.debug(f"Rejecting parsed artist {artist!r} (contains bitrate/format)")
            break

        return AudioMetadata(title=title, artist=artist)

    return AudioMetadata(title=stem, artist=UNKNOWN_ARTIST)
