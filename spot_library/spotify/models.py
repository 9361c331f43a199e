"""
Catalog data models for spot-library.

CatalogTrack is the immutable view of a Spotify search result used by
the quality-upgrade matcher.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CatalogTrack:
    """
    A track as returned by a catalog search.

    Attributes:
        id: Spotify track ID (22 characters).
        name: Track title as listed in the catalog.
        artists: All artist names joined with ", ".
        album_name: Album title.
        duration_ms: Duration in milliseconds (0 if the catalog omits it).
        external_url: Spotify web URL.
        image_url: Largest album cover, or None.
        isrc: International Standard Recording Code, if provided.
    """
    id: str
    name: str
    artists: str
    album_name: str
    duration_ms: int
    external_url: str
    image_url: str | None = None
    isrc: str | None = None

    @property
    def primary_artist(self) -> str:
        return self.artists.split(", ")[0] if self.artists else ""

    @classmethod
    def from_spotify_api(cls, track_data: dict[str, Any]) -> "CatalogTrack":
        """
        Create a CatalogTrack from a track object of the Spotify Web API.

        Args:
            track_data: One item of search()["tracks"]["items"].

        Raises:
            KeyError: If the track object has no "id" or "name".

        Example:
            response = spotify.search(q="One More Time Daft Punk", type="track", limit=5)
            tracks = [CatalogTrack.from_spotify_api(t) for t in response["tracks"]["items"]]
        """
        album = track_data.get("album") or {}
        images = album.get("images") or []
        # Spotify lists images largest first
        image_url = images[0].get("url") if images else None

        return cls(
            id=track_data["id"],
            name=track_data["name"],
            artists=", ".join(a["name"] for a in track_data.get("artists", []) if a.get("name")),
            album_name=album.get("name", ""),
            duration_ms=int(track_data.get("duration_ms") or 0),
            external_url=(track_data.get("external_urls") or {}).get(
                "spotify", f"https://open.spotify.com/track/{track_data['id']}"
            ),
            image_url=image_url,
            isrc=(track_data.get("external_ids") or {}).get("isrc"),
        )
