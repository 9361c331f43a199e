"""
Data models for local library scans.

This module defines the dataclasses shared by the scan cache, the tag
reader and the duplicate grouping engine.

Models:
    AudioFileRef: Identity of a file at scan time (path, size, mtime).
    AudioMetadata: Tags and stream properties, every field optional.
    CacheEntry: What the scan cache remembers about one file.
    FileDetail: Per-file quality facts used to rank a duplicate group.
    DuplicateGroup: Two or more files believed to be the same recording.
    DuplicateScanResult: Outcome of one folder scan.
    ScanOptions: Knobs of the duplicate engine.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any

from spot_library.core.exceptions import InputError
from spot_library.library.normalize import file_extension, normalize_path


# Extensions whose content is always lossless
LOSSLESS_EXTENSIONS = frozenset({"FLAC", "WAV", "AIFF", "AIF", "APE", "WV", "ALAC", "DSF"})

# Codecs reported by the tag reader that are lossless even in ambiguous containers (M4A)
LOSSLESS_CODECS = frozenset({"flac", "alac", "pcm", "wav", "aiff", "ape", "wavpack"})

# Default duration tolerance for duplicate bucketing (milliseconds)
DEFAULT_DURATION_TOLERANCE_MS = 3000

# Number of files read per batch during a folder scan
DEFAULT_BATCH_SIZE = 200

# Placeholder artist used when a filename has no recognizable artist
UNKNOWN_ARTIST = "Unknown Artist"


@dataclass(frozen=True)
class AudioFileRef:
    """
    Snapshot of a file's identity taken by a single stat call.

    Attributes:
        path: Normalized absolute path.
        size: Size in bytes.
        mod_time_ns: Modification time in nanoseconds since the epoch.
    """
    path: str
    size: int
    mod_time_ns: int


@dataclass(frozen=True)
class AudioMetadata:
    """
    Tags and stream properties of an audio file.

    Every field is optional; None means "unknown" (tag absent or not
    obtainable), which is different from a tag that is present but empty.
    A partially filled instance is the common case.

    Attributes:
        title: Track title.
        artist: Track artist (as written in the tags, may list several).
        album: Album name.
        album_artist: Album artist.
        track_number: Position on the disc.
        disc_number: Disc number.
        duration_ms: Duration in milliseconds.
        bitrate: Average bitrate in bits per second.
        sample_rate: Sample rate in Hz.
        bit_depth: Bits per sample (lossless formats only).
        channels: Channel count.
        lossless: Whether the stream is lossless, if the reader knows.
        codec: Codec name as reported by the reader ("flac", "mp3", "alac", "aac").
    """
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    album_artist: str | None = None
    track_number: int | None = None
    disc_number: int | None = None
    duration_ms: int | None = None
    bitrate: int | None = None
    sample_rate: int | None = None
    bit_depth: int | None = None
    channels: int | None = None
    lossless: bool | None = None
    codec: str | None = None

    @property
    def has_title(self) -> bool:
        return bool(self.title and self.title.strip())

    @property
    def has_artist(self) -> bool:
        return bool(self.artist and self.artist.strip())

    @property
    def is_empty(self) -> bool:
        """True when neither title nor artist is usable (terminal for matching)."""
        return not self.has_title and not self.has_artist

    def merge_missing(self, other: "AudioMetadata | None") -> "AudioMetadata":
        """
        Fill only the title/artist fields that are missing here from another instance.

        Used for the filename fallback: parsed values never overwrite
        values that came from real tags.
        """
        if other is None:
            return self
        updates: dict[str, Any] = {}
        if not self.has_title and other.has_title:
            updates["title"] = other.title
        if not self.has_artist and other.has_artist:
            updates["artist"] = other.artist
        return replace(self, **updates) if updates else self

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict (cache storage)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AudioMetadata":
        """Create from a dict produced by to_dict(); unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(frozen=True)
class CacheEntry:
    """
    Everything the scan cache remembers about one file.

    An entry is valid only while a fresh stat of `path` yields the same
    size and modification time.

    Attributes:
        path: Normalized path (cache key).
        size: Size in bytes at the time of caching.
        mod_time_ns: Modification time at the time of caching.
        metadata: Raw tags as read from the file (before filename fallback),
                  or None if not read yet.
        file_hash: SHA-1 of the content, if computed.
        fingerprint: Raw Chromaprint fingerprint, if computed.
        saved_at: ISO timestamp of when the entry was created.
    """
    path: str
    size: int
    mod_time_ns: int
    metadata: AudioMetadata | None = None
    file_hash: str | None = None
    fingerprint: tuple[int, ...] | None = None
    saved_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def for_file(
        cls,
        file_ref: AudioFileRef,
        metadata: AudioMetadata | None = None,
        file_hash: str | None = None,
        fingerprint: tuple[int, ...] | None = None
    ) -> "CacheEntry":
        """Create an entry from a fresh file snapshot."""
        return cls(
            path=file_ref.path,
            size=file_ref.size,
            mod_time_ns=file_ref.mod_time_ns,
            metadata=metadata,
            file_hash=file_hash,
            fingerprint=fingerprint,
        )

    def matches(self, size: int, mod_time_ns: int) -> bool:
        """Check whether the entry still describes a file with this size and mtime."""
        return self.size == size and self.mod_time_ns == mod_time_ns

    def with_hash(self, file_hash: str) -> "CacheEntry":
        return replace(self, file_hash=file_hash)

    def with_fingerprint(self, fingerprint: tuple[int, ...]) -> "CacheEntry":
        return replace(self, fingerprint=tuple(fingerprint))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict (cache storage)."""
        return {
            "size": self.size,
            "mod_time_ns": self.mod_time_ns,
            "metadata": self.metadata.to_dict() if self.metadata is not None else None,
            "file_hash": self.file_hash,
            "fingerprint": list(self.fingerprint) if self.fingerprint is not None else None,
            "saved_at": self.saved_at,
        }

    @classmethod
    def from_dict(cls, path: str, data: dict[str, Any]) -> "CacheEntry":
        """
        Create from a stored dict.

        Raises:
            KeyError, TypeError, ValueError: If the stored data is malformed.
                The cache treats these as a miss.
        """
        metadata = data.get("metadata")
        fingerprint = data.get("fingerprint")
        return cls(
            path=path,
            size=int(data["size"]),
            mod_time_ns=int(data["mod_time_ns"]),
            metadata=AudioMetadata.from_dict(metadata) if metadata is not None else None,
            file_hash=data.get("file_hash"),
            fingerprint=tuple(int(v) for v in fingerprint) if fingerprint is not None else None,
            saved_at=data.get("saved_at") or datetime.now(timezone.utc).isoformat(),
        )


@dataclass(frozen=True)
class FileDetail:
    """
    Quality facts about one member of a duplicate group.

    Attributes:
        path: Normalized path.
        size: Size in bytes.
        format: Upper-case extension ("FLAC", "MP3").
        duration_ms: Duration, if known.
        bitrate: Bits per second, if known.
        sample_rate: Hz, if known.
        bit_depth: Bits per sample, if known.
        channels: Channel count, if known.
        lossless: Whether the file is lossless (from codec, else from extension).
    """
    path: str
    size: int
    format: str
    duration_ms: int | None = None
    bitrate: int | None = None
    sample_rate: int | None = None
    bit_depth: int | None = None
    channels: int | None = None
    lossless: bool = False

    @classmethod
    def from_scan(cls, path: str, size: int, metadata: AudioMetadata | None) -> "FileDetail":
        """Build the detail for a scanned file from its cached tags."""
        extension = file_extension(path)
        metadata = metadata or AudioMetadata()
        if metadata.lossless is not None:
            lossless = metadata.lossless
        elif metadata.codec:
            lossless = metadata.codec.lower() in LOSSLESS_CODECS
        else:
            lossless = extension in LOSSLESS_EXTENSIONS
        return cls(
            path=path,
            size=size,
            format=extension,
            duration_ms=metadata.duration_ms,
            bitrate=metadata.bitrate,
            sample_rate=metadata.sample_rate,
            bit_depth=metadata.bit_depth,
            channels=metadata.channels,
            lossless=lossless,
        )

    def quality_key(self) -> tuple[bool, int, int, int]:
        """Ranking tuple: losslessness, bit depth, sample rate, size (higher is better)."""
        return (self.lossless, self.bit_depth or 0, self.sample_rate or 0, self.size)

    def quality_summary(self) -> str:
        """Human-readable quality description, e.g. "lossless • 44100Hz • 16bit • FLAC"."""
        parts = ["lossless" if self.lossless else "lossy"]
        if self.sample_rate:
            parts.append(f"{self.sample_rate}Hz")
        if self.bit_depth:
            parts.append(f"{self.bit_depth}bit")
        if not self.lossless and self.bitrate:
            parts.append(f"{self.bitrate // 1000}kbps")
        if self.format:
            parts.append(self.format)
        return " • ".join(parts)


def select_best_file(files: list[FileDetail]) -> tuple[FileDetail, str]:
    """
    Pick the best-quality file of a group.

    Compares losslessness, then bit depth, then sample rate, then size.
    On a full tie the earliest discovered file wins.

    Args:
        files: Group members in discovery order (non-empty).

    Returns:
        Tuple of (best file, reason for the audit trail).

    Raises:
        ValueError: If files is empty.
    """
    if not files:
        raise ValueError("Cannot select best file of an empty group")

    best = files[0]
    for candidate in files[1:]:
        if candidate.quality_key() > best.quality_key():
            best = candidate

    reason = best.quality_summary()
    if len(files) > 1:
        runner_up = [f for f in files if f is not best]
        if all(f.quality_key()[:3] == best.quality_key()[:3] for f in runner_up):
            if all(f.size == best.size for f in runner_up):
                reason += " • first discovered"
            else:
                reason += " • largest file"
    return best, reason


@dataclass
class DuplicateGroup:
    """
    Two or more files believed to represent the same recording.

    Members keep discovery order, which makes best-file tie-breaking
    deterministic. The group is mutated in place when members are
    deleted or moved; derived fields are recomputed on every change.

    Attributes:
        normalized_title: Normalized title shared by the members ("" for hash groups).
        normalized_artist: Normalized artist shared by the members.
        files: Member details in discovery order.
        match_method: "metadata", "hash" or "fingerprint".
        best_file: Path of the best-quality member (derived).
        best_reason: Why best_file was chosen (derived).
        total_size: Sum of member sizes (derived).
        formats: Distinct formats present, in discovery order (derived).
    """
    normalized_title: str
    normalized_artist: str
    files: list[FileDetail]
    match_method: str = "metadata"
    best_file: str = field(init=False, default="")
    best_reason: str = field(init=False, default="")
    total_size: int = field(init=False, default=0)
    formats: list[str] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        self._refresh()

    def _refresh(self) -> None:
        self.total_size = sum(f.size for f in self.files)
        self.formats = list(dict.fromkeys(f.format for f in self.files if f.format))
        if self.files:
            best, reason = select_best_file(self.files)
            self.best_file = best.path
            self.best_reason = reason
        else:
            self.best_file = ""
            self.best_reason = ""

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    @property
    def is_valid(self) -> bool:
        """A group is only meaningful with at least two members."""
        return len(self.files) >= 2

    @property
    def lossless_count(self) -> int:
        return sum(1 for f in self.files if f.lossless)

    @property
    def lossy_count(self) -> int:
        return len(self.files) - self.lossless_count

    @property
    def average_bitrate(self) -> int | None:
        bitrates = [f.bitrate for f in self.files if f.bitrate]
        if not bitrates:
            return None
        return sum(bitrates) // len(bitrates)

    @property
    def representative_duration_ms(self) -> int | None:
        """Duration of the best file, else of the first member with a known duration."""
        for f in self.files:
            if f.path == self.best_file and f.duration_ms:
                return f.duration_ms
        for f in self.files:
            if f.duration_ms:
                return f.duration_ms
        return None

    def contains(self, path: str) -> bool:
        return normalize_path(path) in self.paths

    def remove_file(self, path: str) -> bool:
        """
        Remove a member (after it was deleted or moved) and recompute.

        Args:
            path: Member path in any form.

        Returns:
            True if the file was a member.
        """
        target = normalize_path(path)
        remaining = [f for f in self.files if f.path != target]
        if len(remaining) == len(self.files):
            return False
        self.files = remaining
        self._refresh()
        return True


@dataclass
class ScanError:
    """A per-file failure collected during a scan."""
    path: str
    message: str


@dataclass
class DuplicateScanResult:
    """
    Outcome of a duplicate scan.

    Attributes:
        root_path: Normalized root folder.
        groups: Valid duplicate groups (order not significant).
        files_scanned: Number of audio files successfully read.
        errors: First per-file errors (bounded).
        error_count: Total number of per-file errors.
        stopped: True if the scan was cancelled (partial result).
    """
    root_path: str
    groups: list[DuplicateGroup] = field(default_factory=list)
    files_scanned: int = 0
    errors: list[ScanError] = field(default_factory=list)
    error_count: int = 0
    stopped: bool = False

    @property
    def duplicate_file_count(self) -> int:
        return sum(len(g.files) for g in self.groups)

    @property
    def reclaimable_size(self) -> int:
        """Bytes freed if every non-best file were removed."""
        total = 0
        for group in self.groups:
            total += sum(f.size for f in group.files if f.path != group.best_file)
        return total

    def discard_files(self, paths: list[str]) -> int:
        """
        Remove deleted/moved files from all groups.

        Groups that drop below two members are removed entirely.

        Args:
            paths: Paths in any form.

        Returns:
            Number of groups removed.
        """
        for path in paths:
            for group in self.groups:
                group.remove_file(path)
        before = len(self.groups)
        self.groups = [g for g in self.groups if g.is_valid]
        return before - len(self.groups)


@dataclass(frozen=True)
class ScanOptions:
    """
    Options of a duplicate scan.

    Attributes:
        use_exact_hash: Group files missed by metadata grouping by content hash.
        duration_tolerance_ms: Bucket width for duration matching.
        ignore_duration: Match on title/artist alone.
        use_filename_fallback: Parse the filename when title or artist tags are missing.
        use_acoustic_fingerprint: Group remaining files by Chromaprint fingerprint (slow).
        merge_similar: Merge metadata groups with near-identical titles.
        recursive: Include subfolders.
        worker_count: Concurrent file readers.
        batch_size: Files per batch.
    """
    use_exact_hash: bool = False
    duration_tolerance_ms: int = DEFAULT_DURATION_TOLERANCE_MS
    ignore_duration: bool = False
    use_filename_fallback: bool = True
    use_acoustic_fingerprint: bool = False
    merge_similar: bool = False
    recursive: bool = True
    worker_count: int = 4
    batch_size: int = DEFAULT_BATCH_SIZE

    def validate(self) -> None:
        """
        Raises:
            InputError: If any option has an invalid value.
        """
        if not self.ignore_duration and self.duration_tolerance_ms <= 0:
            raise InputError(
                "Duration tolerance must be positive",
                details={"duration_tolerance_ms": self.duration_tolerance_ms}
            )
        if self.worker_count < 1:
            raise InputError(
                "Worker count must be at least 1",
                details={"worker_count": self.worker_count}
            )
        if self.batch_size < 1:
            raise InputError(
                "Batch size must be at least 1",
                details={"batch_size": self.batch_size}
            )
