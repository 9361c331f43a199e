# tests/test_spotify_catalog.py
"""Test the Spotify catalog wrapper"""

from unittest.mock import Mock

import pytest
import requests
import spotipy
from spotipy.oauth2 import SpotifyOauthError

from spot_library.core.exceptions import CatalogError, InputError
from spot_library.spotify.client import SpotifyCatalog
from spot_library.spotify.models import CatalogTrack


@pytest.fixture
def sample_track_data():
    """Sample Spotify API track object"""
    return {
        "id": "0DiWol3AO6WpXZgp0goxAV",
        "name": "One More Time",
        "artists": [{"name": "Daft Punk"}, {"name": "Romanthony"}],
        "album": {
            "name": "Discovery",
            "images": [
                {"url": "https://i.scdn.co/image/large", "height": 640},
                {"url": "https://i.scdn.co/image/small", "height": 64},
            ],
        },
        "duration_ms": 320357,
        "external_urls": {"spotify": "https://open.spotify.com/track/0DiWol3AO6WpXZgp0goxAV"},
        "external_ids": {"isrc": "GBDUW0000053"},
    }


class TestCatalogTrack:
    """Test API object mapping"""

    def test_from_spotify_api(self, sample_track_data):
        track = CatalogTrack.from_spotify_api(sample_track_data)

        assert track.id == "0DiWol3AO6WpXZgp0goxAV"
        assert track.artists == "Daft Punk, Romanthony"
        assert track.album_name == "Discovery"
        assert track.duration_ms == 320357
        assert track.image_url == "https://i.scdn.co/image/large"
        assert track.isrc == "GBDUW0000053"

    def test_minimal_object(self):
        track = CatalogTrack.from_spotify_api({"id": "x", "name": "Song"})
        assert track.artists == ""
        assert track.external_url == "https://open.spotify.com/track/x"
        assert track.image_url is None

    def test_missing_id(self):
        with pytest.raises(KeyError):
            CatalogTrack.from_spotify_api({"name": "Song"})


class TestSpotifyCatalog:
    """Test search and error mapping"""

    def test_search(self, sample_track_data):
        spotify = Mock()
        spotify.search.return_value = {"tracks": {"items": [sample_track_data, None, {"id": None}]}}
        catalog = SpotifyCatalog(spotify=spotify)

        tracks = catalog.search("One More Time Daft Punk", limit=5)

        assert [t.id for t in tracks] == ["0DiWol3AO6WpXZgp0goxAV"]
        spotify.search.assert_called_once_with(
            q="One More Time Daft Punk", type="track", limit=5, offset=0
        )

    def test_empty_response(self):
        spotify = Mock()
        spotify.search.return_value = {"tracks": {"items": []}}
        assert SpotifyCatalog(spotify=spotify).search("nothing") == []

    def test_invalid_arguments(self):
        catalog = SpotifyCatalog(spotify=Mock())
        with pytest.raises(InputError):
            catalog.search("  ")
        with pytest.raises(InputError):
            catalog.search("q", limit=0)
        with pytest.raises(InputError):
            catalog.search("q", limit=51)

    def test_rate_limited(self):
        spotify = Mock()
        spotify.search.side_effect = spotipy.SpotifyException(429, -1, "too many requests")
        with pytest.raises(CatalogError) as exc_info:
            SpotifyCatalog(spotify=spotify).search("q")
        assert exc_info.value.is_rate_limit
        assert not exc_info.value.is_auth_error

    def test_rejected_token(self):
        spotify = Mock()
        spotify.search.side_effect = spotipy.SpotifyException(401, -1, "expired")
        with pytest.raises(CatalogError) as exc_info:
            SpotifyCatalog(spotify=spotify).search("q")
        assert exc_info.value.is_auth_error

    def test_timeout(self):
        spotify = Mock()
        spotify.search.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(CatalogError) as exc_info:
            SpotifyCatalog(spotify=spotify).search("q")
        assert "timed out" in exc_info.value.message

    def test_verify_bad_credentials(self):
        spotify = Mock()
        spotify.search.side_effect = SpotifyOauthError("invalid_client")
        with pytest.raises(CatalogError) as exc_info:
            SpotifyCatalog(spotify=spotify).verify()
        assert exc_info.value.is_auth_error

    def test_missing_credentials(self):
        with pytest.raises(CatalogError) as exc_info:
            SpotifyCatalog("", "")
        assert exc_info.value.is_auth_error
