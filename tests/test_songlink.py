# tests/test_songlink.py
"""Test the song.link availability client"""

from unittest.mock import Mock

import pytest
import requests

from spot_library.core.exceptions import AvailabilityError, InputError
from spot_library.upgrade.songlink import SONGLINK_API_URL, SongLinkClient, parse_links_response


SAMPLE_RESPONSE = {
    "entityUniqueId": "SPOTIFY_SONG::0DiWol3AO6WpXZgp0goxAV",
    "linksByPlatform": {
        "spotify": {"url": "https://open.spotify.com/track/0DiWol3AO6WpXZgp0goxAV"},
        "tidal": {"url": "https://listen.tidal.com/track/1234"},
        "deezer": {"url": "https://www.deezer.com/track/5678"},
        "amazonMusic": {"url": ""},
    },
}


def _client(status_code=200, payload=None, error=None) -> tuple[SongLinkClient, Mock]:
    session = Mock()
    if error is not None:
        session.get.side_effect = error
    else:
        response = Mock(status_code=status_code)
        if isinstance(payload, Exception):
            response.json.side_effect = payload
        else:
            response.json.return_value = payload
        if status_code >= 400:
            response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code}")
        session.get.return_value = response
    return SongLinkClient(timeout=5, session=session), session


class TestSongLinkClient:
    """Test HTTP handling"""

    def test_available(self):
        client, session = _client(payload=SAMPLE_RESPONSE)

        availability = client.check_availability("0DiWol3AO6WpXZgp0goxAV")

        assert availability.services() == ["tidal", "deezer"]
        assert availability.tidal_url == "https://listen.tidal.com/track/1234"
        assert not availability.amazon
        args, kwargs = session.get.call_args
        assert args[0] == SONGLINK_API_URL
        assert kwargs["params"]["url"].endswith("/track/0DiWol3AO6WpXZgp0goxAV")
        assert kwargs["timeout"] == 5

    def test_unknown_track(self):
        """404 means not available anywhere"""
        client, _ = _client(status_code=404)
        availability = client.check_availability("abc")
        assert not availability.any_available
        assert availability.catalog_id == "abc"

    def test_fallback_id(self):
        client, session = _client(payload={})
        assert client.check_availability("", fallback_id="xyz").catalog_id == "xyz"

    @pytest.mark.parametrize("kwargs", [
        {"status_code": 429},
        {"status_code": 500},
        {"payload": ValueError("bad json")},
        {"payload": ["not", "an", "object"]},
        {"error": requests.exceptions.Timeout("slow")},
        {"error": requests.exceptions.ConnectionError("down")},
    ])
    def test_failures(self, kwargs):
        client, _ = _client(**kwargs)
        with pytest.raises(AvailabilityError):
            client.check_availability("abc")

    def test_empty_id(self):
        client, session = _client()
        with pytest.raises(InputError):
            client.check_availability("")
        session.get.assert_not_called()


class TestParseLinksResponse:
    def test_no_links(self):
        assert parse_links_response("abc", {}).services() == []

    def test_qobuz(self):
        data = {"linksByPlatform": {"qobuz": {"url": "https://open.qobuz.com/track/1"}}}
        availability = parse_links_response("abc", data)
        assert availability.qobuz
        assert availability.urls() == {"qobuz": "https://open.qobuz.com/track/1"}
