"""
Spotify module for spot-library.

Catalog search over the Spotify Web API (spotipy, client credentials).

Usage:
    from spot_library.spotify import SpotifyCatalog

    catalog = SpotifyCatalog(client_id, client_secret)
    tracks = catalog.search("One More Time Daft Punk", limit=5)
"""

from spot_library.spotify.client import SpotifyCatalog
from spot_library.spotify.models import CatalogTrack

__all__ = [
    "CatalogTrack",
    "SpotifyCatalog",
]
