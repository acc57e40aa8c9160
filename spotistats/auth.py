"""
Bearer token source for the Spotify Web API.

Refreshing is delegated to spotipy's SpotifyOAuth. The refresh token itself
is obtained out of band by the authorization flow and supplied via config.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional

import requests
from fastapi.concurrency import run_in_threadpool
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from .config import SPOTIFY_SCOPE
from .errors import SpotifyStatsError, UnauthorizedError, UpstreamUnavailableError

if TYPE_CHECKING:
    from .config import StatsConfig


class SpotifyTokenSource:
    """Supplies a valid access token, refreshing it when expired."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        redirect_uri: str,
        scope: str = SPOTIFY_SCOPE,
        requests_timeout: Optional[float] = None,
        oauth: Optional[Any] = None,
    ):
        """
        Initialize SpotifyTokenSource.

        Args:
            client_id: Spotify application client ID
            client_secret: Spotify application client secret
            refresh_token: Long-lived refresh token from the authorization flow
            redirect_uri: Redirect URI registered for the application
            scope: Space-separated OAuth scopes
            requests_timeout: Seconds before a token request is abandoned
            oauth: Pre-built SpotifyOAuth-compatible object (tests)
        """
        self.logger = logging.getLogger(__name__)
        self._refresh_token = refresh_token
        self._token_info: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()
        self._completed_refreshes = 0
        self._last_error: Optional[SpotifyStatsError] = None
        self._oauth = oauth or SpotifyOAuth(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scope=scope,
            cache_handler=MemoryCacheHandler(),
            open_browser=False,
            requests_timeout=requests_timeout,
        )

    @classmethod
    def from_config(cls, config: "StatsConfig") -> "SpotifyTokenSource":
        return cls(
            client_id=config.client_id,
            client_secret=config.client_secret,
            refresh_token=config.refresh_token,
            redirect_uri=config.redirect_uri,
            requests_timeout=config.request_timeout_seconds,
        )

    async def get_token(self) -> str:
        """Return a valid access token without blocking the event loop."""
        return await run_in_threadpool(self.get_token_sync)

    def get_token_sync(self) -> str:
        """
        Return a valid access token, refreshing if needed.

        Raises:
            UnauthorizedError: Spotify rejected the refresh token
            UpstreamUnavailableError: the token endpoint could not be reached
        """
        seen_refreshes = self._completed_refreshes
        with self._lock:
            if self._token_info and not self._oauth.is_token_expired(self._token_info):
                return self._token_info["access_token"]

            # A refresh finished while we waited for the lock and it failed
            if self._completed_refreshes != seen_refreshes and self._last_error is not None:
                raise type(self._last_error)(str(self._last_error))

            self.logger.debug("Refreshing Spotify access token")
            try:
                token_info = self._refresh()
            except SpotifyStatsError as e:
                self._last_error = e
                raise
            finally:
                self._completed_refreshes += 1

            self._last_error = None

            # Spotify may rotate the refresh token
            rotated = token_info.get("refresh_token")
            if rotated and rotated != self._refresh_token:
                self.logger.info("Spotify issued a new refresh token")
                self._refresh_token = rotated

            self._token_info = token_info
            self.logger.info("Spotify access token refreshed")
            return token_info["access_token"]

    def _refresh(self) -> Dict[str, Any]:
        """Exchange the refresh token for new token info. Caller holds the lock."""
        try:
            token_info = self._oauth.refresh_access_token(self._refresh_token)
        except SpotifyOauthError as e:
            self._token_info = None
            raise UnauthorizedError(f"unauthorized: invalid or expired token ({e})") from e
        except requests.RequestException as e:
            raise UpstreamUnavailableError(f"token refresh failed: {e}") from e

        if not token_info or not token_info.get("access_token"):
            raise UnauthorizedError("unauthorized: token endpoint returned no access token")
        return token_info

    def invalidate(self) -> None:
        """Drop the cached access token so the next call refreshes it."""
        with self._lock:
            self._token_info = None
