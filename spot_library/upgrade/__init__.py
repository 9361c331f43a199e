"""
Quality-upgrade module for spot-library.

Matches lossy local files against the Spotify catalog and checks whether
a lossless source exists on Tidal, Qobuz, Amazon Music or Deezer.

Usage:
    from spot_library.upgrade import QualityUpgradeMatcher, SongLinkClient

    matcher = QualityUpgradeMatcher(catalog, SongLinkClient())
    batch = matcher.scan_folder("/music")
"""

from spot_library.upgrade.matcher import (
    MATCH_PASSES,
    QualityUpgradeMatcher,
    SearchCache,
    compute_confidence,
    select_best_match,
)
from spot_library.upgrade.models import Availability, QualityUpgradeSuggestion
from spot_library.upgrade.songlink import SongLinkClient

__all__ = [
    "MATCH_PASSES",
    "Availability",
    "QualityUpgradeMatcher",
    "QualityUpgradeSuggestion",
    "SearchCache",
    "SongLinkClient",
    "compute_confidence",
    "select_best_match",
]
