"""
Spotify catalog search for spot-library.

Thin wrapper around spotipy that implements the catalog search used by
the quality-upgrade matcher and maps every spotipy/requests failure to
CatalogError.

The client is an ordinary object created from config and injected into
the matcher; tests pass a Mock spotipy instance through `spotify=`.

Authentication:
    Client credentials flow only (client_id and client_secret from
    config.yaml). Searching the catalog needs no user data.

Usage:
    from spot_library.spotify.client import SpotifyCatalog

    catalog = SpotifyCatalog(config.spotify.client_id, config.spotify.client_secret)
    catalog.verify()  # fail fast on bad credentials
    tracks = catalog.search("One More Time Daft Punk", limit=5)
"""

import requests
import spotipy
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOauthError

from spot_library.core.exceptions import CatalogError, InputError
from spot_library.core.logger import get_logger
from spot_library.spotify.models import CatalogTrack


logger = get_logger(__name__)


# HTTP timeout of one catalog request (seconds)
DEFAULT_SEARCH_TIMEOUT = 15

# spotipy's own retries on 429/5xx before an exception reaches us
SPOTIPY_RETRIES = 3

# Spotify caps search results per page
MAX_SEARCH_LIMIT = 50


class SpotifyCatalog:
    """
    Catalog search backed by the Spotify Web API.

    Attributes:
        timeout: HTTP timeout in seconds passed to spotipy.

    Example:
        catalog = SpotifyCatalog("id", "secret")
        for track in catalog.search("Harder Better Faster Stronger"):
            print(track.name, track.artists, track.duration_ms)
    """

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        timeout: float = DEFAULT_SEARCH_TIMEOUT,
        spotify: spotipy.Spotify | None = None
    ) -> None:
        """
        Args:
            client_id: Spotify application client ID.
            client_secret: Spotify application client secret.
            timeout: HTTP timeout of one request in seconds.
            spotify: Pre-built spotipy client (tests); credentials are
                     ignored when given.

        Raises:
            CatalogError: If no client is given and credentials are empty
                          (is_auth_error=True).
        """
        self.timeout = timeout
        if spotify is not None:
            self._spotify = spotify
            return

        if not client_id or not client_secret:
            raise CatalogError(
                "Spotify client_id and client_secret are required",
                is_auth_error=True
            )

        auth_manager = SpotifyClientCredentials(
            client_id=client_id,
            client_secret=client_secret,
            requests_timeout=timeout,
        )
        self._spotify = spotipy.Spotify(
            auth_manager=auth_manager,
            requests_timeout=timeout,
            retries=SPOTIPY_RETRIES,
        )

    def verify(self) -> None:
        """
        Check the credentials with a minimal search.

        Raises:
            CatalogError: If authentication fails (is_auth_error=True) or
                          the API is unreachable.
        """
        try:
            self._spotify.search(q="test", type="track", limit=1)
        except SpotifyOauthError as e:
            raise CatalogError(
                f"Spotify authentication failed: {e}",
                details={"original_error": str(e)},
                is_auth_error=True
            ) from e
        except spotipy.SpotifyException as e:
            raise CatalogError(
                f"Spotify authentication failed: {e}",
                details={"original_error": str(e), "http_status": e.http_status},
                is_auth_error=e.http_status in (400, 401, 403)
            ) from e
        except requests.exceptions.RequestException as e:
            raise CatalogError(
                f"Spotify API unreachable: {e}",
                details={"original_error": str(e)}
            ) from e

    def search(
        self,
        query: str,
        kind: str = "track",
        limit: int = 5,
        offset: int = 0
    ) -> list[CatalogTrack]:
        """
        Search the catalog.

        Args:
            query: Free-text query ("{title} {artist}").
            kind: Search type; only "track" results are mapped.
            limit: Maximum results (1-50).
            offset: Result offset.

        Returns:
            Matching tracks in catalog relevance order (may be empty).

        Raises:
            InputError: If the query is empty or the limit is out of range.
            CatalogError: On HTTP errors, timeouts, rate limiting or
                          rejected credentials.
        """
        if not query or not query.strip():
            raise InputError("Search query must not be empty")
        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise InputError(
                f"Search limit must be between 1 and {MAX_SEARCH_LIMIT}",
                details={"limit": limit}
            )

        try:
            response = self._spotify.search(q=query, type=kind, limit=limit, offset=offset)
        except SpotifyOauthError as e:
            raise CatalogError(
                f"Spotify authentication failed: {e}",
                details={"query": query, "original_error": str(e)},
                is_auth_error=True
            ) from e
        except spotipy.SpotifyException as e:
            if e.http_status == 429:
                raise CatalogError(
                    f"Rate limited while searching: {query}",
                    details={"query": query, "http_status": 429},
                    is_rate_limit=True
                ) from e
            if e.http_status == 401:
                raise CatalogError(
                    "Spotify rejected the access token",
                    details={"query": query, "http_status": 401},
                    is_auth_error=True
                ) from e
            raise CatalogError(
                f"Catalog search failed: {e}",
                details={"query": query, "http_status": e.http_status}
            ) from e
        except requests.exceptions.Timeout as e:
            raise CatalogError(
                f"Catalog search timed out after {self.timeout:.0f}s",
                details={"query": query}
            ) from e
        except requests.exceptions.RequestException as e:
            raise CatalogError(
                f"Catalog search failed: {e}",
                details={"query": query, "original_error": str(e)}
            ) from e

        items = ((response or {}).get(f"{kind}s") or {}).get("items") or []
        tracks = []
        for item in items:
            # Local files and unavailable tracks come back as null or without an id
            if not item or not item.get("id"):
                continue
            tracks.append(CatalogTrack.from_spotify_api(item))

        logger.debug(f"Catalog search {query!r}: {len(tracks)} result(s)")
        return tracks
