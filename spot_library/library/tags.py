"""
Tag reading for local audio files.

The engine only depends on the TagReader protocol; MutagenTagReader is
the production implementation. Tests use an in-memory fake.

Supported containers (via mutagen):
    - FLAC
    - MP3 (ID3)
    - M4A/MP4 (AAC or ALAC)
    - Ogg Vorbis / Opus
    - WAV / AIFF (ID3 chunk)

Partial tags are normal and produce an AudioMetadata with None fields.
A file that mutagen cannot open at all raises MetadataError.
"""

from pathlib import Path
from typing import Any, Protocol

import mutagen
from mutagen import MutagenError

from spot_library.core.exceptions import MetadataError
from spot_library.core.logger import get_logger
from spot_library.library.models import LOSSLESS_CODECS, AudioMetadata


logger = get_logger(__name__)


# Easy tag keys, with the raw ID3 frame used by WAV/AIFF files as fallback
_TAG_KEYS = {
    "title": ("title", "TIT2"),
    "artist": ("artist", "TPE1"),
    "album": ("album", "TALB"),
    "album_artist": ("albumartist", "album artist", "TPE2"),
    "track_number": ("tracknumber", "TRCK"),
    "disc_number": ("discnumber", "TPOS"),
}

# mutagen file class name -> codec
_CODEC_BY_TYPE = {
    "FLAC": "flac",
    "MP3": "mp3",
    "EasyMP3": "mp3",
    "OggVorbis": "vorbis",
    "OggOpus": "opus",
    "OggFLAC": "flac",
    "WAVE": "pcm",
    "AIFF": "aiff",
    "MonkeysAudio": "ape",
    "WavPack": "wavpack",
    "ASF": "wma",
}


class TagReader(Protocol):
    """Reads tags and stream properties of one audio file."""

    def read_metadata(self, file_path: str) -> AudioMetadata:
        """
        Raises:
            MetadataError: If the file cannot be opened as audio.
        """
        ...


def _first_value(tags: Any, keys: tuple[str, ...]) -> str | None:
    if tags is None:
        return None
    for key in keys:
        try:
            value = tags.get(key)
        except (KeyError, ValueError):
            continue
        if value is None:
            continue
        # Raw ID3 frames expose .text, easy tags are lists of strings
        if hasattr(value, "text"):
            value = value.text
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _parse_number(value: str | None) -> int | None:
    """Parse "3" or "3/12" into 3."""
    if not value:
        return None
    head = value.split("/", 1)[0].strip()
    try:
        number = int(head)
    except ValueError:
        return None
    return number if number > 0 else None


def _positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _detect_codec(audio: Any) -> str | None:
    info = audio.info
    codec = getattr(info, "codec", None)
    if isinstance(codec, str) and codec:
        # MP4 reports "alac" or "mp4a.40.2"
        return "aac" if codec.startswith("mp4a") else codec.lower()
    return _CODEC_BY_TYPE.get(type(audio).__name__)


class MutagenTagReader:
    """
    TagReader implementation backed by mutagen.

    Example:
        reader = MutagenTagReader()
        metadata = reader.read_metadata("/music/01 - One More Time.flac")
        print(metadata.title, metadata.duration_ms, metadata.lossless)
    """

    def read_metadata(self, file_path: str) -> AudioMetadata:
        """
        Read tags and stream properties.

        Args:
            file_path: Path to the audio file.

        Returns:
            AudioMetadata; fields are None when a tag or property is absent.

        Raises:
            MetadataError: If the file does not exist, cannot be read, or is
                           not a recognized audio container.
        """
        try:
            audio = mutagen.File(file_path, easy=True)
        except (MutagenError, OSError) as e:
            raise MetadataError(
                f"Failed to read tags: {e}",
                details={"file_path": file_path, "original_error": str(e)}
            ) from e

        if audio is None:
            raise MetadataError(
                "Unsupported or unreadable audio file",
                details={"file_path": file_path, "extension": Path(file_path).suffix}
            )

        tags = audio.tags
        info = audio.info
        codec = _detect_codec(audio)

        length = getattr(info, "length", None)
        duration_ms = int(round(length * 1000)) if length else None

        metadata = AudioMetadata(
            title=_first_value(tags, _TAG_KEYS["title"]),
            artist=_first_value(tags, _TAG_KEYS["artist"]),
            album=_first_value(tags, _TAG_KEYS["album"]),
            album_artist=_first_value(tags, _TAG_KEYS["album_artist"]),
            track_number=_parse_number(_first_value(tags, _TAG_KEYS["track_number"])),
            disc_number=_parse_number(_first_value(tags, _TAG_KEYS["disc_number"])),
            duration_ms=duration_ms,
            bitrate=_positive_int(getattr(info, "bitrate", None)),
            sample_rate=_positive_int(getattr(info, "sample_rate", None)),
            bit_depth=_positive_int(getattr(info, "bits_per_sample", None)),
            channels=_positive_int(getattr(info, "channels", None)),
            lossless=(codec in LOSSLESS_CODECS) if codec else None,
            codec=codec,
        )

        logger.debug(
            f"Read tags for {file_path}: {metadata.artist} - {metadata.title} "
            f"({metadata.duration_ms} ms, {codec})"
        )
        return metadata
