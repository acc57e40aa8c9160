"""
Tests for SpotifyClient against an httpx.MockTransport.
"""

from dataclasses import replace

import httpx
import pytest

from spotistats.client import SpotifyClient
from spotistats.config import TimeRange
from spotistats.errors import (
    MalformedResponseError,
    RateLimitedError,
    RequestTimeoutError,
    UnauthorizedError,
    UnexpectedStatusError,
    UpstreamUnavailableError,
)


def _client(config, token_source, transport):
    return SpotifyClient(config, token_source, http_client=httpx.AsyncClient(transport=transport))


def _status_transport(status, **kwargs):
    def handler(request):
        return httpx.Response(status, **kwargs)

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_fetch_all_endpoints(config, token_source, spotify_transport):
    client = _client(config, token_source, spotify_transport)

    currently_playing = await client.fetch_currently_playing()
    top_artists = await client.fetch_top_artists()
    top_tracks = await client.fetch_top_tracks()
    recently_played = await client.fetch_recently_played()

    assert currently_playing.track.name == "Windowlicker"
    assert [artist.name for artist in top_artists.artists] == ["Boards of Canada", "Autechre"]
    assert top_tracks.tracks[0].name == "Roygbiv"
    assert len(recently_played.tracks) == 2


@pytest.mark.asyncio
async def test_requests_carry_bearer_token_and_params(config, token_source, spotify_transport):
    config = replace(config, limit=7, time_range=TimeRange.MEDIUM_TERM)
    client = _client(config, token_source, spotify_transport)

    await client.fetch_top_tracks()
    await client.fetch_recently_played()

    top_request, recent_request = spotify_transport.requests
    assert top_request.headers["Authorization"] == "Bearer test-token"
    assert top_request.url.path == "/v1/me/top/tracks"
    assert top_request.url.params["limit"] == "7"
    assert top_request.url.params["time_range"] == "medium_term"
    assert recent_request.url.params["limit"] == "7"
    assert "time_range" not in recent_request.url.params


@pytest.mark.asyncio
async def test_no_content_means_nothing_playing(config, token_source, spotify_responses, spotify_transport):
    spotify_responses["/me/player/currently-playing"] = (204, None)
    client = _client(config, token_source, spotify_transport)

    assert await client.fetch_currently_playing() is None


@pytest.mark.asyncio
async def test_unauthorized_invalidates_token(config, token_source):
    client = _client(config, token_source, _status_transport(401))

    with pytest.raises(UnauthorizedError):
        await client.fetch_top_artists()
    assert token_source.invalidated == 1


@pytest.mark.asyncio
async def test_rate_limited_carries_retry_after(config, token_source):
    client = _client(config, token_source, _status_transport(429, headers={"Retry-After": "30"}))

    with pytest.raises(RateLimitedError) as excinfo:
        await client.fetch_top_tracks()
    assert excinfo.value.retry_after == 30
    assert excinfo.value.retryable


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [500, 502, 503])
async def test_server_errors_are_upstream_unavailable(config, token_source, status):
    client = _client(config, token_source, _status_transport(status))

    with pytest.raises(UpstreamUnavailableError) as excinfo:
        await client.fetch_recently_played()
    assert excinfo.value.status_code == status


@pytest.mark.asyncio
async def test_other_status_is_unexpected(config, token_source):
    client = _client(config, token_source, _status_transport(418))

    with pytest.raises(UnexpectedStatusError) as excinfo:
        await client.fetch_currently_playing()
    assert excinfo.value.status_code == 418


@pytest.mark.asyncio
async def test_invalid_json_is_malformed(config, token_source):
    client = _client(config, token_source, _status_transport(200, content=b"{not json"))

    with pytest.raises(MalformedResponseError):
        await client.fetch_top_artists()


@pytest.mark.asyncio
async def test_wrong_shape_is_malformed(config, token_source):
    client = _client(config, token_source, _status_transport(200, json={"items": [{"nom": "x"}]}))

    with pytest.raises(MalformedResponseError):
        await client.fetch_top_artists()


@pytest.mark.asyncio
async def test_oversized_body_is_rejected(config, token_source, spotify_transport):
    client = _client(replace(config, max_response_bytes=64), token_source, spotify_transport)

    with pytest.raises(MalformedResponseError, match="exceeds"):
        await client.fetch_recently_played()


@pytest.mark.asyncio
async def test_transport_errors(config, token_source):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    def stall(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamUnavailableError):
        await _client(config, token_source, httpx.MockTransport(refuse)).fetch_top_tracks()
    with pytest.raises(RequestTimeoutError):
        await _client(config, token_source, httpx.MockTransport(stall)).fetch_top_tracks()


@pytest.mark.asyncio
async def test_aclose_leaves_shared_client_open(config, token_source, spotify_transport):
    http_client = httpx.AsyncClient(transport=spotify_transport)
    client = SpotifyClient(config, token_source, http_client=http_client)

    await client.aclose()

    assert not http_client.is_closed
    await http_client.aclose()
