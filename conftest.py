"""
Pytest configuration for spotistats tests.

Provides:
- a baseline StatsConfig
- a stub bearer token source
- canned Spotify payloads and an httpx.MockTransport factory serving them
"""

import httpx
import pytest

from spotistats.config import StatsConfig

API_BASE = "https://api.spotify.test/v1"


class StubTokenSource:
    """Token source that never talks to Spotify."""

    def __init__(self, token="test-token"):
        self.token = token
        self.calls = 0
        self.invalidated = 0

    async def get_token(self):
        self.calls += 1
        return self.token

    def invalidate(self):
        self.invalidated += 1


def _artist(name):
    return {"name": name, "external_urls": {"spotify": f"https://open.spotify.com/artist/{name.lower()}"}}


def _track(name, *artists):
    return {
        "name": name,
        "artists": [_artist(artist) for artist in artists],
        "external_urls": {"spotify": f"https://open.spotify.com/track/{name.lower().replace(' ', '-')}"},
        "duration_ms": 200000,
    }


def _spotify_responses():
    return {
        "/me/player/currently-playing": (
            200,
            {"progress_ms": 42000, "is_playing": True, "item": _track("Windowlicker", "Aphex Twin")},
        ),
        "/me/top/artists": (200, {"items": [_artist("Boards of Canada"), _artist("Autechre")]}),
        "/me/top/tracks": (200, {"items": [_track("Roygbiv", "Boards of Canada")]}),
        "/me/player/recently-played": (
            200,
            {
                "items": [
                    {"track": _track("Xtal", "Aphex Twin"), "played_at": "2024-05-01T10:00:00.000Z"},
                    {"track": _track("Gantz Graf", "Autechre"), "played_at": "2024-05-01T09:55:00.000Z"},
                ]
            },
        ),
    }


@pytest.fixture
def config():
    """Baseline configuration pointing at a fake API host."""
    return StatsConfig(
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        api_base_url=API_BASE,
    )


@pytest.fixture
def token_source():
    return StubTokenSource()


@pytest.fixture
def spotify_responses():
    """Mapping of API path to (status, json body or None). Tests may edit it."""
    return _spotify_responses()


@pytest.fixture
def spotify_transport(spotify_responses):
    """
    MockTransport answering from spotify_responses.

    Every request is recorded on transport.requests.
    """
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path[len("/v1"):]
        status, body = spotify_responses[path]
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport
