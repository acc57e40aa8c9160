"""Minimal Pydantic models for the Spotify Web API responses we consume."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import Artist, CurrentlyPlaying, RecentlyPlayed, TopArtists, TopTracks, Track


class SpotifyBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SpotifyArtist(SpotifyBaseModel):
    name: str
    external_urls: Dict[str, str] = Field(default_factory=dict)

    def convert(self) -> Artist:
        return Artist(name=self.name, spotify_url=self.external_urls.get("spotify"))


class SpotifyTrack(SpotifyBaseModel):
    name: str
    artists: List[SpotifyArtist] = Field(default_factory=list)
    external_urls: Dict[str, str] = Field(default_factory=dict)

    def convert(self) -> Track:
        return Track(
            name=self.name,
            artists=[artist.convert() for artist in self.artists],
            spotify_url=self.external_urls.get("spotify"),
        )


class SpotifyCurrentlyPlaying(SpotifyBaseModel):
    progress_ms: Optional[int] = None
    # None for ads, podcasts without a track object, or private sessions
    item: Optional[SpotifyTrack] = None

    def convert(self) -> Optional[CurrentlyPlaying]:
        if self.item is None:
            return None
        return CurrentlyPlaying(progress_ms=self.progress_ms or 0, track=self.item.convert())


class SpotifyPlayHistoryItem(SpotifyBaseModel):
    track: SpotifyTrack
    played_at: Optional[datetime] = None


class SpotifyRecentlyPlayed(SpotifyBaseModel):
    items: List[SpotifyPlayHistoryItem] = Field(default_factory=list)

    def convert(self) -> RecentlyPlayed:
        return RecentlyPlayed(tracks=[item.track.convert() for item in self.items])


class SpotifyTopTracks(SpotifyBaseModel):
    items: List[SpotifyTrack] = Field(default_factory=list)

    def convert(self) -> TopTracks:
        return TopTracks(tracks=[track.convert() for track in self.items])


class SpotifyTopArtists(SpotifyBaseModel):
    items: List[SpotifyArtist] = Field(default_factory=list)

    def convert(self) -> TopArtists:
        return TopArtists(artists=[artist.convert() for artist in self.items])
