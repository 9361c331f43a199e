"""
Utility functions for spot-library.

This module provides common helpers used across the application:
    - Audio file discovery (hidden folders such as the quarantine are skipped)
    - Content hashing for exact-duplicate detection
    - Human-readable formatting of sizes and durations

Usage:
    from spot_library.utils import (
        list_audio_files,
        compute_file_hash,
        format_file_size
    )
"""

import hashlib
import os

from spot_library.core.logger import get_logger
from spot_library.library.normalize import normalize_path


logger = get_logger(__name__)


# Extensions considered audio files during a scan (lower-case, with dot)
AUDIO_EXTENSIONS = frozenset({
    ".flac", ".mp3", ".m4a", ".wav", ".aac", ".ogg", ".opus",
    ".wma", ".aiff", ".aif", ".ape", ".wv",
})

# Read size for hashing (1 MiB)
HASH_CHUNK_SIZE = 1024 * 1024


def is_audio_file(path: str | os.PathLike) -> bool:
    return os.path.splitext(os.fspath(path))[1].lower() in AUDIO_EXTENSIONS


def list_audio_files(root: str | os.PathLike, recursive: bool = True) -> list[str]:
    """
    List audio files under a folder.

    Args:
        root: Folder to scan.
        recursive: Whether to descend into subfolders.

    Returns:
        Normalized paths in a stable order (directory walk order with
        sorted entries). This order is the "discovery order" used for
        tie-breaking.

    Behavior:
        - Hidden files and hidden folders (name starting with ".") are
          skipped, which keeps the quarantine folder out of scans.
        - Unreadable subfolders are logged and skipped.
    """
    files: list[str] = []

    def on_error(error: OSError) -> None:
        logger.warning(f"Cannot list {error.filename}: {error.strerror}")

    for dirpath, dirnames, filenames in os.walk(os.fspath(root), onerror=on_error):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for name in sorted(filenames):
            if name.startswith(".") or not is_audio_file(name):
                continue
            files.append(normalize_path(os.path.join(dirpath, name)))
        if not recursive:
            break

    return files


def compute_file_hash(file_path: str | os.PathLike, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """
    Compute the SHA-1 of a file's content.

    Raises:
        OSError: If the file cannot be read.
    """
    digest = hashlib.sha1()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def format_file_size(size: int) -> str:
    """
    Format a byte count for display.

    Examples:
        format_file_size(512)         # "512 B"
        format_file_size(31457280)    # "30.0 MB"
    """
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def format_duration(duration_ms: int | None) -> str:
    """
    Format a duration as M:SS (or H:MM:SS).

    Examples:
        format_duration(320000)   # "5:20"
        format_duration(None)     # "--:--"
    """
    if duration_ms is None:
        return "--:--"
    total_seconds = int(round(duration_ms / 1000))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"

