"""
Data models for quality-upgrade matching.

Models:
    Availability: On which lossless services a catalog track exists.
    QualityUpgradeSuggestion: Outcome of matching one local file.

Confidence levels are plain strings ("high", "medium", "low") so they can
be logged and printed as they are.
"""

from dataclasses import dataclass
from typing import Any

from spot_library.library.models import AudioMetadata
from spot_library.spotify.models import CatalogTrack


CONFIDENCE_HIGH = "high"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_LOW = "low"

# Services checked for a lossless source, in display order
LOSSLESS_SERVICES = ("tidal", "qobuz", "amazon", "deezer")


@dataclass(frozen=True)
class Availability:
    """
    Availability of one catalog track on lossless streaming services.

    Attributes:
        catalog_id: Spotify track ID the lookup was made for.
        tidal, qobuz, amazon, deezer: Whether the track exists there.
        *_url: Link to the track on that service, if available.
    """
    catalog_id: str
    tidal: bool = False
    tidal_url: str | None = None
    qobuz: bool = False
    qobuz_url: str | None = None
    amazon: bool = False
    amazon_url: str | None = None
    deezer: bool = False
    deezer_url: str | None = None

    @property
    def any_available(self) -> bool:
        return any(getattr(self, service) for service in LOSSLESS_SERVICES)

    def services(self) -> list[str]:
        """Names of the services that carry the track, in display order."""
        return [service for service in LOSSLESS_SERVICES if getattr(self, service)]

    def urls(self) -> dict[str, str]:
        return {
            service: getattr(self, f"{service}_url")
            for service in self.services()
            if getattr(self, f"{service}_url")
        }


@dataclass(frozen=True)
class QualityUpgradeSuggestion:
    """
    Result of matching one local file against the catalog.

    A suggestion is always returned, even on failure: `error` then says
    why. An availability failure keeps the catalog match and only sets
    `error`; a missing file, empty metadata or a failed catalog search
    leaves `catalog_track` as None.

    Attributes:
        file_path: Normalized path of the local file.
        file_name: Bare filename.
        file_size: Size in bytes (0 if unknown).
        current_format: Upper-case extension ("MP3").
        current_lossless: Whether the local file is already lossless.
        metadata: Metadata used for matching (after repair, fill and swap fix).
        search_query: The catalog query that produced `catalog_track`.
        catalog_track: Selected catalog track, or None.
        match_confidence: "high", "medium", "low", or None without a match.
        match_pass: Name of the pass that selected the track, or "fallback".
        availability: Lossless availability of the track, or None.
        error: Failure description, or None.
    """
    file_path: str
    file_name: str
    file_size: int = 0
    current_format: str = ""
    current_lossless: bool = False
    metadata: AudioMetadata | None = None
    search_query: str = ""
    catalog_track: CatalogTrack | None = None
    match_confidence: str | None = None
    match_pass: str | None = None
    availability: Availability | None = None
    error: str | None = None

    @property
    def is_matched(self) -> bool:
        return self.catalog_track is not None

    @property
    def is_upgradeable(self) -> bool:
        """True when a lossless source exists and the local file is lossy."""
        return (
            not self.current_lossless
            and self.availability is not None
            and self.availability.any_available
        )

    def to_dict(self) -> dict[str, Any]:
        """Flat, JSON-serializable summary for reports."""
        track = self.catalog_track
        return {
            "file_path": self.file_path,
            "current_format": self.current_format,
            "track": f"{track.artists} - {track.name}" if track else None,
            "track_url": track.external_url if track else None,
            "confidence": self.match_confidence,
            "match_pass": self.match_pass,
            "services": self.availability.services() if self.availability else [],
            "error": self.error,
        }
