"""
Data models for spotistats.

Defines the simplified, client-facing shapes served by the /api endpoint.
Upstream Spotify payloads are decoded in schemas.py and converted into these.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Artist:
    """Artist entity."""

    name: str
    spotify_url: Optional[str] = None


@dataclass(frozen=True)
class Track:
    """Track entity. Owns its list of artists."""

    name: str
    artists: List[Artist] = field(default_factory=list)
    spotify_url: Optional[str] = None


@dataclass(frozen=True)
class CurrentlyPlaying:
    """Playback state. track is None when nothing is playing."""

    progress_ms: int = 0
    track: Optional[Track] = None


@dataclass(frozen=True)
class TopArtists:
    """Top artists ranked by Spotify for the configured time range."""

    artists: List[Artist] = field(default_factory=list)


@dataclass(frozen=True)
class TopTracks:
    """Top tracks ranked by Spotify for the configured time range."""

    tracks: List[Track] = field(default_factory=list)


@dataclass(frozen=True)
class RecentlyPlayed:
    """Recently played tracks, most recent first."""

    tracks: List[Track] = field(default_factory=list)


@dataclass(frozen=True)
class Snapshot:
    """
    Composite result of one aggregation pass.

    Each section is None when its fetch failed under the lenient policy
    (or, for currently_playing, when Spotify reported nothing playing).
    """

    currently_playing: Optional[CurrentlyPlaying] = None
    top_artists: Optional[TopArtists] = None
    top_tracks: Optional[TopTracks] = None
    recently_played: Optional[RecentlyPlayed] = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Build the /api document. Key order is fixed."""
        return {
            "top_artists": _section(self.top_artists),
            "top_tracks": _section(self.top_tracks),
            "currently_playing": _section(self.currently_playing),
            "recently_played": _section(self.recently_played),
        }


@dataclass(frozen=True)
class CacheEntry:
    """Serialized snapshot held by the cache."""

    payload: bytes
    captured_at: datetime
    stored_at: float  # monotonic clock reading at store time


def _section(value) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    return asdict(value)
