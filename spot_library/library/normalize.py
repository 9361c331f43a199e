"""
Path and key normalization for spot-library.

Two files (or two tag sets) that mean the same thing must produce the same
string here, otherwise the scan cache keeps two entries for one file and
the duplicate engine splits one recording into two groups.

Functions:
    normalize_path: Canonical, idempotent form of a filesystem path.
    normalize_key: Canonical, idempotent form of a title or artist.
    repair_mojibake: Undo common UTF-8-read-as-Latin-1 damage in tags.
    clean_search_string: Remove bitrate/format junk before a catalog query.
    strip_parentheticals: Drop bracketed parts for a looser catalog query.
    fix_swapped: Swap title/artist when a parser clearly reversed them.

Bracketed content:
    normalize_key keeps "(Live)", "[Remix]" etc. A key that strips them
    puts a live recording and a studio recording into one duplicate group.
"""

import os
import posixpath
import re
import unicodedata
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from spot_library.core.exceptions import InputError

if TYPE_CHECKING:
    from spot_library.library.models import AudioMetadata


# Tokens that carry no meaning once whitespace-separated ("Title - Artist", "A / B")
_SEPARATOR_TOKEN = re.compile(r"[-‐-―.,:;/|~*+_]+")

# Common mojibake sequences (UTF-8 bytes decoded as Windows-1252)
_MOJIBAKE_REPLACEMENTS = (
    ("Ã\u0098", "Ø"),
    ("Ã˜", "Ø"),
    ("Ã©", "é"),
    ("Ã¨", "è"),
    ("Ã¢", "â"),
    ("Ã¤", "ä"),
    ("Ã¶", "ö"),
    ("Ã¼", "ü"),
    ("ÃŸ", "ß"),
    ("Ã±", "ñ"),
    ("Ã­", "í"),
    ("Ã³", "ó"),
    ("Ãº", "ú"),
    ("Ã ", "à"),
    ("Â ", ""),
)

# Junk removed from catalog queries (never from duplicate keys)
_JUNK_BRACKETS = re.compile(
    r"[\(\[]([^)\]]*(?:\d{3,4}\s*k?\s*(?:bps|mp3|flac|aac|ogg|wav|m4a)"
    r"|official|video|lyrics?|audio|explicit|clean|\bhd\b|\bhq\b)[^)\]]*)[\)\]]",
    re.IGNORECASE,
)
_JUNK_OPEN_BITRATE = re.compile(
    r"\s*\(\s*[-–]?\s*\d{3,4}\s*k?\s*(?:bps|mp3|flac|aac|ogg|m4a|wav)?\s*\)?",
    re.IGNORECASE,
)
_JUNK_BITRATE = re.compile(
    r"\s+(?:\d{3,4}\s*k?(?:bps)?|mp3|flac|aac|ogg|m4a|wav)(?=\s|$)",
    re.IGNORECASE,
)
_JUNK_EXTENSION = re.compile(r"\.(?:mp3|flac|aac|ogg|m4a|wav|wma)(?=\s|$)", re.IGNORECASE)
_TRAILING_YEAR = re.compile(r"\s*[\(\[]\d{4}[\)\]]\s*$")
_WHITESPACE = re.compile(r"\s+")

# Words that mark a string as a track title rather than an artist name
_TRACK_KEYWORD = re.compile(
    r"\b(?:mix|edit|remix|version|radio|extended|original|instrumental|acoustic|live)\b|\b(?:feat|ft)\.",
    re.IGNORECASE,
)
_PARENTHETICAL = re.compile(r"\s*[\[\(][^\]\)]*[\]\)]")


def normalize_path(path: str | os.PathLike) -> str:
    """
    Return the canonical form of a filesystem path.

    The result is absolute, uses forward slashes, has no "." / ".." or
    doubled separators and is case-folded on case-insensitive platforms
    (via os.path.normcase). Applying it twice gives the same result.

    Args:
        path: Path as string or Path-like object.

    Returns:
        Canonical path string.

    Raises:
        InputError: If the path is empty.

    Example:
        normalize_path("music//Album/../Album/01.flac")
        # "/home/user/music/Album/01.flac"
    """
    text = os.fspath(path)
    if not text or not text.strip():
        raise InputError("Path must not be empty", details={"path": text})

    if not os.path.isabs(text):
        text = os.path.abspath(text)
    text = os.path.normcase(text).replace("\\", "/")
    return posixpath.normpath(text)


def _fold(text: str) -> str:
    # lower() may introduce combining marks (e.g. "İ"), so decompose after it too
    text = unicodedata.normalize("NFKD", text).lower()
    text = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in text if not unicodedata.combining(ch))


def normalize_key(text: str | None) -> str:
    """
    Normalize a title or artist for grouping and matching.

    Lowercases, folds diacritics, turns "_" into spaces, spells "&" as
    "and", drops tokens made only of separator punctuation (" - ", " / ")
    and collapses whitespace. Bracketed content is kept.

    Args:
        text: Title or artist, or None.

    Returns:
        The normalized key ("" for None or blank input).

    Examples:
        normalize_key("  Daft  Punk ")       # "daft punk"
        normalize_key("Song - (Live)")       # "song (live)"
        normalize_key("Beyoncé & Jay_Z")     # "beyonce and jay z"
    """
    if not text:
        return ""

    folded = _fold(text).replace("_", " ").replace("&", " and ")
    tokens = [token for token in folded.split() if not _SEPARATOR_TOKEN.fullmatch(token)]
    return " ".join(tokens)


def repair_mojibake(text: str | None) -> str | None:
    """
    Repair common UTF-8 mojibake from tags written as Latin-1/Windows-1252.

    Args:
        text: Tag value, or None.

    Returns:
        Repaired and trimmed text, or the input unchanged if it is empty.
    """
    if not text:
        return text
    for bad, good in _MOJIBAKE_REPLACEMENTS:
        text = text.replace(bad, good)
    return text.strip()


def clean_search_string(text: str | None) -> str:
    """
    Strip quality markers and download junk from a string used as a query.

    Removes bracketed "(320kbps)", "[Official Video]", "(Lyrics)" markers,
    standalone bitrate/format words, leaked file extensions and a trailing
    "(YYYY)" year. Used only for catalog queries.

    Args:
        text: Title or artist, or None.

    Returns:
        Cleaned text ("" for None).

    Example:
        clean_search_string("One More Time (Official Video) 320kbps")
        # "One More Time"
    """
    if not text:
        return ""

    result = text.strip()
    result = _JUNK_BRACKETS.sub("", result)
    result = _JUNK_OPEN_BITRATE.sub("", result)
    result = _JUNK_BITRATE.sub(" ", result)
    result = _JUNK_EXTENSION.sub(" ", result)
    result = _TRAILING_YEAR.sub("", result)
    return _WHITESPACE.sub(" ", result).strip()


def contains_track_keywords(text: str) -> bool:
    """
    Return True if text contains a whole word typical of track titles.

    "Radio Edit" qualifies, "Radiohead" and "Editors" do not.
    """
    return _TRACK_KEYWORD.search(text) is not None


def strip_parentheticals(text: str) -> str:
    """Drop every (...) and [...] part: "Song (Radio Edit)" -> "Song"."""
    return _WHITESPACE.sub(" ", _PARENTHETICAL.sub("", text)).strip()


def looks_swapped(title: str | None, artist: str | None) -> bool:
    """
    Check whether a title/artist pair looks reversed.

    The title must look like an artist name (at most 4 words, no track
    keywords) while the artist looks like a track title (track keywords
    or more than 4 words).
    """
    if not title or not artist:
        return False
    title_looks_like_artist = len(title.split()) <= 4 and not contains_track_keywords(title)
    artist_looks_like_track = contains_track_keywords(artist) or len(artist.split()) > 4
    return title_looks_like_artist and artist_looks_like_track


def fix_swapped(metadata: "AudioMetadata") -> "AudioMetadata":
    """Return metadata with title and artist swapped if they look reversed."""
    if looks_swapped(metadata.title, metadata.artist):
        return replace(metadata, title=metadata.artist, artist=metadata.title)
    return metadata


def path_is_within(path: str | os.PathLike, root: str | os.PathLike) -> bool:
    """
    Check whether a path lies inside a root folder (both normalized).

    Args:
        path: Candidate file path.
        root: Root folder.

    Returns:
        True if path equals root or is below it.
    """
    normalized_path = normalize_path(path)
    normalized_root = normalize_path(root)
    if normalized_path == normalized_root:
        return True
    prefix = normalized_root if normalized_root.endswith("/") else normalized_root + "/"
    return normalized_path.startswith(prefix)


def file_extension(path: str | os.PathLike) -> str:
    """Return the upper-case extension without the dot ("FLAC"), or "" if none."""
    return Path(os.fspath(path)).suffix.lstrip(".").upper()
