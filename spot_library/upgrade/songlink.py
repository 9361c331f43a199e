"""
Lossless availability lookup through the song.link (Odesli) API.

Given a Spotify track ID, the links API returns the same recording on
other platforms. The platforms that stream lossless audio are mapped to
an Availability.

Endpoint:
    GET https://api.song.link/v1-alpha.1/links?url=https://open.spotify.com/track/<id>

Failure semantics:
    - 404 (the service does not know the track): empty Availability
    - Timeout, connection error, other HTTP error, bad JSON: AvailabilityError

Usage:
    client = SongLinkClient()
    availability = client.check_availability("0DiWol3AO6WpXZgp0goxAV")
    print(availability.services())  # ["tidal", "amazon", "deezer"]
"""

from typing import Any

import requests

from spot_library.core.exceptions import AvailabilityError, InputError
from spot_library.core.logger import get_logger
from spot_library.upgrade.models import Availability


logger = get_logger(__name__)


SONGLINK_API_URL = "https://api.song.link/v1-alpha.1/links"
SPOTIFY_TRACK_URL = "https://open.spotify.com/track/{track_id}"

# HTTP timeout of one lookup (seconds)
DEFAULT_AVAILABILITY_TIMEOUT = 20

USER_AGENT = "spot-library/0.1.0"

# linksByPlatform key -> Availability field
_PLATFORM_FIELDS = {
    "tidal": "tidal",
    "qobuz": "qobuz",
    "amazonMusic": "amazon",
    "deezer": "deezer",
}


class SongLinkClient:
    """
    Availability lookup over the song.link links API.

    Attributes:
        timeout: HTTP timeout in seconds.
        session: requests.Session reused for every lookup.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_AVAILABILITY_TIMEOUT,
        session: requests.Session | None = None
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def check_availability(self, catalog_id: str, fallback_id: str = "") -> Availability:
        """
        Look up where a catalog track can be streamed lossless.

        Args:
            catalog_id: Spotify track ID.
            fallback_id: Spotify track ID to use when catalog_id is empty
                         (e.g. a relinked track).

        Returns:
            Availability (all False if the links API does not know the track).

        Raises:
            InputError: If both IDs are empty.
            AvailabilityError: On timeouts, HTTP errors or malformed responses.
        """
        track_id = (catalog_id or fallback_id or "").strip()
        if not track_id:
            raise InputError("A catalog track ID is required for the availability lookup")

        params = {"url": SPOTIFY_TRACK_URL.format(track_id=track_id)}
        try:
            response = self.session.get(SONGLINK_API_URL, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise AvailabilityError(
                f"Availability lookup timed out after {self.timeout:.0f}s",
                details={"catalog_id": track_id}
            ) from e
        except requests.exceptions.RequestException as e:
            raise AvailabilityError(
                f"Availability lookup failed: {e}",
                details={"catalog_id": track_id, "original_error": str(e)}
            ) from e

        if response.status_code == 404:
            logger.debug(f"song.link has no entry for {track_id}")
            return Availability(catalog_id=track_id)

        if response.status_code == 429:
            raise AvailabilityError(
                "Availability lookup rate limited",
                details={"catalog_id": track_id, "http_status": 429}
            )

        try:
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            raise AvailabilityError(
                f"Availability lookup failed: HTTP {response.status_code}",
                details={"catalog_id": track_id, "http_status": response.status_code}
            ) from e
        except ValueError as e:
            raise AvailabilityError(
                "Availability lookup returned invalid JSON",
                details={"catalog_id": track_id}
            ) from e

        return parse_links_response(track_id, data)


def parse_links_response(catalog_id: str, data: Any) -> Availability:
    """
    Map a links API response to an Availability.

    Raises:
        AvailabilityError: If the body is not a JSON object.
    """
    if not isinstance(data, dict):
        raise AvailabilityError(
            "Unexpected availability response",
            details={"catalog_id": catalog_id}
        )

    links = data.get("linksByPlatform") or {}
    values: dict[str, Any] = {}
    for platform, field in _PLATFORM_FIELDS.items():
        entry = links.get(platform)
        if isinstance(entry, dict) and entry.get("url"):
            values[field] = True
            values[f"{field}_url"] = entry["url"]

    availability = Availability(catalog_id=catalog_id, **values)
    logger.debug(f"Availability of {catalog_id}: {availability.services() or 'none'}")
    return availability
