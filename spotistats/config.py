"""
Configuration management using environment variables.

ConfigManager reads raw values (with defaults and type conversion) and
load_config() turns them into a single immutable StatsConfig.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

from .errors import ConfigurationError

MIN_LIMIT = 1
MAX_LIMIT = 50

REQUIRED_KEYS = (
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_CLIENT_SECRET",
    "SPOTIFY_REFRESH_TOKEN",
)

# Scopes needed by the four endpoints we call
SPOTIFY_SCOPE = "user-read-currently-playing user-top-read user-read-recently-played"


class TimeRange(str, Enum):
    """Window Spotify uses to rank top artists and tracks."""

    SHORT_TERM = "short_term"
    MEDIUM_TERM = "medium_term"
    LONG_TERM = "long_term"


class FailurePolicy(str, Enum):
    """How the aggregator reacts when one of the four fetches fails."""

    LENIENT = "lenient"  # null the failed section, serve the rest
    STRICT = "strict"  # fail the whole request


def clamp_limit(limit: int) -> int:
    """Clamp a requested item count into Spotify's accepted 1..50 range."""
    if limit < MIN_LIMIT:
        return MIN_LIMIT
    if limit > MAX_LIMIT:
        return MAX_LIMIT
    return limit


@dataclass(frozen=True)
class StatsConfig:
    """Runtime configuration, built once at startup."""

    client_id: str
    client_secret: str
    refresh_token: str
    redirect_uri: str = "http://127.0.0.1:8888/callback"
    limit: int = 5
    time_range: TimeRange = TimeRange.SHORT_TERM
    api_base_url: str = "https://api.spotify.com/v1"
    cache_ttl_seconds: float = 180.0
    request_timeout_seconds: float = 10.0
    max_response_bytes: int = 10 * 1024 * 1024
    failure_policy: FailurePolicy = FailurePolicy.LENIENT
    allowed_origins: Tuple[str, ...] = ()
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"


class ConfigManager:
    """Reads configuration values from the environment."""

    # Default configuration values
    DEFAULTS = {
        "SPOTIFY_CLIENT_ID": None,
        "SPOTIFY_CLIENT_SECRET": None,
        "SPOTIFY_REFRESH_TOKEN": None,
        "SPOTIFY_REDIRECT_URI": "http://127.0.0.1:8888/callback",
        "SPOTIFY_LIMIT": "5",
        "SPOTIFY_TIME_RANGE": TimeRange.SHORT_TERM.value,
        "SPOTIFY_API_BASE_URL": "https://api.spotify.com/v1",
        "CACHE_TTL_SECONDS": "180",  # 3 minutes
        "REQUEST_TIMEOUT_SECONDS": "10",
        "MAX_RESPONSE_BYTES": str(10 * 1024 * 1024),
        "FAILURE_POLICY": FailurePolicy.LENIENT.value,
        "ALLOWED_ORIGINS": "",  # Comma-separated list
        "HOST": "0.0.0.0",
        "PORT": "8080",
        "LOG_LEVEL": "INFO",
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize ConfigManager.

        Args:
            environ: Mapping to read from (defaults to os.environ)
        """
        self.environ = os.environ if environ is None else environ
        self.logger = logging.getLogger(__name__)

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not set (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        if default is None:
            default = self.DEFAULTS.get(key)

        value = self.environ.get(key)
        if value is None:
            return default
        value = value.strip()
        return value if value else default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get configuration value as float."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            self.logger.warning("Invalid float value for %s: %s", key, value)
            return default

    def get_list(self, key: str) -> List[str]:
        """Get a comma-separated configuration value as a list."""
        value = self.get(key)
        if not value:
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    def missing_required(self) -> List[str]:
        """Return the required keys that are unset or empty."""
        return [key for key in REQUIRED_KEYS if not self.get(key)]


def _positive(value: float, key: str):
    if value <= 0:
        raise ConfigurationError(f"{key} must be greater than zero, got {value}")
    return value


def load_config(config_manager: Optional[ConfigManager] = None) -> StatsConfig:
    """
    Build a StatsConfig from the environment.

    Out-of-range limits are clamped; unknown time ranges or failure policies
    and missing credentials raise ConfigurationError.
    """
    manager = config_manager or ConfigManager()
    logger = logging.getLogger(__name__)

    missing = manager.missing_required()
    if missing:
        raise ConfigurationError(f"missing required environment variables: {', '.join(missing)}")

    requested_limit = manager.get_int("SPOTIFY_LIMIT", 5)
    limit = clamp_limit(requested_limit)
    if limit != requested_limit:
        logger.warning("SPOTIFY_LIMIT %d out of range, clamped to %d", requested_limit, limit)

    time_range_value = manager.get("SPOTIFY_TIME_RANGE")
    try:
        time_range = TimeRange(time_range_value)
    except ValueError:
        choices = ", ".join(item.value for item in TimeRange)
        raise ConfigurationError(
            f"invalid SPOTIFY_TIME_RANGE {time_range_value!r} (expected one of {choices})"
        ) from None

    policy_value = (manager.get("FAILURE_POLICY") or "").lower()
    try:
        failure_policy = FailurePolicy(policy_value)
    except ValueError:
        raise ConfigurationError(
            f"invalid FAILURE_POLICY {policy_value!r} (expected lenient or strict)"
        ) from None

    return StatsConfig(
        client_id=manager.get("SPOTIFY_CLIENT_ID"),
        client_secret=manager.get("SPOTIFY_CLIENT_SECRET"),
        refresh_token=manager.get("SPOTIFY_REFRESH_TOKEN"),
        redirect_uri=manager.get("SPOTIFY_REDIRECT_URI"),
        limit=limit,
        time_range=time_range,
        api_base_url=manager.get("SPOTIFY_API_BASE_URL").rstrip("/"),
        cache_ttl_seconds=_positive(manager.get_float("CACHE_TTL_SECONDS", 180.0), "CACHE_TTL_SECONDS"),
        request_timeout_seconds=_positive(
            manager.get_float("REQUEST_TIMEOUT_SECONDS", 10.0), "REQUEST_TIMEOUT_SECONDS"
        ),
        max_response_bytes=_positive(
            manager.get_int("MAX_RESPONSE_BYTES", 10 * 1024 * 1024), "MAX_RESPONSE_BYTES"
        ),
        failure_policy=failure_policy,
        allowed_origins=tuple(manager.get_list("ALLOWED_ORIGINS")),
        host=manager.get("HOST"),
        port=manager.get_int("PORT", 8080),
        log_level=manager.get("LOG_LEVEL").upper(),
    )
