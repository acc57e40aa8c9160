"""
Error types for spotistats.

Every failure an upstream fetch can produce maps to one of these classes.
The HTTP layer never shows their messages to clients; they are logged.
"""

from typing import Optional


class SpotifyStatsError(Exception):
    """Base class for errors raised while building a snapshot."""

    kind = "error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthorizedError(SpotifyStatsError):
    """The refresh token or access token was rejected."""

    kind = "unauthorized"


class RateLimitedError(SpotifyStatsError):
    """Spotify throttled the request (HTTP 429)."""

    kind = "rate_limited"
    retryable = True

    def __init__(self, message: str = "rate limited by Spotify API", retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamUnavailableError(SpotifyStatsError):
    """Spotify answered with a 5xx or could not be reached."""

    kind = "upstream_unavailable"
    retryable = True

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(SpotifyStatsError):
    """The response body could not be decoded into the expected shape."""

    kind = "malformed_response"


class UnexpectedStatusError(SpotifyStatsError):
    """Any non-200 status not covered by a more specific error."""

    kind = "unexpected_status"

    def __init__(self, status_code: int):
        super().__init__(f"unexpected status code: {status_code}")
        self.status_code = status_code


class RequestTimeoutError(SpotifyStatsError):
    """The request deadline expired before the snapshot was built."""

    kind = "timeout"
    retryable = True


class SerializationError(SpotifyStatsError):
    """The snapshot could not be encoded as JSON."""

    kind = "serialization_failure"


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing or invalid."""
