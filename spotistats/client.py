"""
Spotify Web API client for spotistats.

Issues the four GET requests the snapshot is built from. All methods are
coroutines and are safe to run concurrently on one instance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .errors import (
    MalformedResponseError,
    RateLimitedError,
    RequestTimeoutError,
    UnauthorizedError,
    UnexpectedStatusError,
    UpstreamUnavailableError,
)
from .models import CurrentlyPlaying, RecentlyPlayed, TopArtists, TopTracks
from .schemas import (
    SpotifyCurrentlyPlaying,
    SpotifyRecentlyPlayed,
    SpotifyTopArtists,
    SpotifyTopTracks,
)

if TYPE_CHECKING:
    from .auth import SpotifyTokenSource
    from .config import StatsConfig

CURRENTLY_PLAYING_PATH = "/me/player/currently-playing"
RECENTLY_PLAYED_PATH = "/me/player/recently-played"
TOP_TRACKS_PATH = "/me/top/tracks"
TOP_ARTISTS_PATH = "/me/top/artists"

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class SpotifyClient:
    """HTTPX based client for the four Spotify endpoints."""

    def __init__(
        self,
        config: "StatsConfig",
        token_source: "SpotifyTokenSource",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize SpotifyClient.

        Args:
            config: Runtime configuration (base URL, limit, time range, caps)
            token_source: Supplies bearer tokens
            http_client: Shared AsyncClient; one is created (and owned) if None
        """
        self.logger = logging.getLogger(__name__)
        self.config = config
        self.token_source = token_source
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout_seconds, connect=min(config.request_timeout_seconds, 5.0))
        )

    @property
    def _limit_params(self) -> Dict[str, str]:
        return {"limit": str(self.config.limit)}

    @property
    def _top_params(self) -> Dict[str, str]:
        return {"limit": str(self.config.limit), "time_range": self.config.time_range.value}

    async def fetch_currently_playing(self) -> Optional[CurrentlyPlaying]:
        """
        Get the track currently playing.

        Returns:
            CurrentlyPlaying, or None when nothing is playing (HTTP 204 or no item)
        """
        payload = await self._request(CURRENTLY_PLAYING_PATH, self._limit_params, SpotifyCurrentlyPlaying)
        if payload is None:
            return None
        return payload.convert()

    async def fetch_top_artists(self) -> Optional[TopArtists]:
        """Get the user's top artists for the configured time range."""
        payload = await self._request(TOP_ARTISTS_PATH, self._top_params, SpotifyTopArtists)
        return payload.convert() if payload is not None else None

    async def fetch_top_tracks(self) -> Optional[TopTracks]:
        """Get the user's top tracks for the configured time range."""
        payload = await self._request(TOP_TRACKS_PATH, self._top_params, SpotifyTopTracks)
        return payload.convert() if payload is not None else None

    async def fetch_recently_played(self) -> Optional[RecentlyPlayed]:
        """Get recently played tracks, most recent first."""
        payload = await self._request(RECENTLY_PLAYED_PATH, self._limit_params, SpotifyRecentlyPlayed)
        return payload.convert() if payload is not None else None

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http.aclose()

    async def _request(
        self, path: str, params: Dict[str, str], schema: Type[SchemaT]
    ) -> Optional[SchemaT]:
        """
        Perform an authenticated GET and decode the body into schema.

        Returns None for HTTP 204. Raises a SpotifyStatsError subclass for
        every other non-200 status, transport failure, or decode failure.
        """
        token = await self.token_source.get_token()
        url = f"{self.config.api_base_url}{path}"
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

        try:
            async with self._http.stream("GET", url, params=params, headers=headers) as response:
                self._check_status(response)
                if response.status_code == httpx.codes.NO_CONTENT:
                    return None
                body = await self._read_capped(response)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"request to {path} timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"request to {path} failed: {e}") from e

        try:
            return schema.model_validate_json(body)
        except ValidationError as e:
            raise MalformedResponseError(f"failed to decode response from {path}: {e}") from e

    def _check_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status in (httpx.codes.OK, httpx.codes.NO_CONTENT):
            return

        if status == httpx.codes.UNAUTHORIZED:
            self.token_source.invalidate()
            raise UnauthorizedError("unauthorized: invalid or expired token")

        if status == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimitedError(retry_after=_parse_retry_after(response.headers.get("Retry-After")))

        if status >= 500:
            raise UpstreamUnavailableError(f"spotify server error: {status}", status_code=status)

        raise UnexpectedStatusError(status)

    async def _read_capped(self, response: httpx.Response) -> bytes:
        """Read the body, refusing anything larger than max_response_bytes."""
        limit = self.config.max_response_bytes
        chunks = []
        size = 0
        async for chunk in response.aiter_bytes():
            size += len(chunk)
            if size > limit:
                raise MalformedResponseError(f"response body exceeds {limit} bytes")
            chunks.append(chunk)
        return b"".join(chunks)


def _parse_retry_after(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return max(0, int(str(value).strip()))
    except ValueError:
        return None
