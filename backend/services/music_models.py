"""Catalog-facing data types shared by the playlist engine and its adapters.

Tracks are built fresh for every search result, so the same catalog id can
appear several times in one candidate pool with different priority boosts.
The selector is what collapses them back into one entry.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AudioFeatures(BaseModel):
    """Per-track audio descriptors, each in [0, 1]."""

    valence: float = 0.5
    energy: float = 0.5
    instrumentalness: float = 0.0
    speechiness: float = 0.0


class UserPreferences(BaseModel):
    """Listener toggles. Frozen for the duration of one generation."""

    model_config = ConfigDict(frozen=True)

    instrumental_only: bool = False
    foreign_lyrics_ok: bool = True


class Track(BaseModel):
    """A catalog record plus the two fields the engine attaches to it."""

    id: str
    name: str
    artist: str = ""
    album: str = ""
    album_type: str | None = None
    duration_ms: int = 0
    popularity: int | None = None
    preview_url: str | None = None
    image_url: str | None = None
    external_url: str | None = None
    features: AudioFeatures | None = None

    priority_boost: float = 0.0
    quality_score: int = 0
    strategy: str = Field(default="", description="Name of the search strategy that found the track")

    @property
    def searchable_text(self) -> str:
        return f"{self.name} {self.artist} {self.album}".lower()

    @property
    def duration_minutes(self) -> float:
        return self.duration_ms / 60000
