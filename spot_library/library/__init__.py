"""
Local library module for spot-library.

Data models, normalization, filename parsing and tag reading shared by
the duplicate engine and the upgrade matcher.

The engine and the file mutators live in their own modules:

    from spot_library.library.duplicates import DuplicateFinder
    from spot_library.library.file_manager import FileManager
"""

from spot_library.library.models import (
    AudioFileRef,
    AudioMetadata,
    CacheEntry,
    DuplicateGroup,
    DuplicateScanResult,
    FileDetail,
    ScanError,
    ScanOptions,
)
from spot_library.library.normalize import normalize_key, normalize_path
from spot_library.library.filename_parser import parse_filename

__all__ = [
    "AudioFileRef",
    "AudioMetadata",
    "CacheEntry",
    "DuplicateGroup",
    "DuplicateScanResult",
    "FileDetail",
    "ScanError",
    "ScanOptions",
    "normalize_key",
    "normalize_path",
    "parse_filename",
]
