"""Shared test fixtures and configuration."""

import os
import sys
from pathlib import Path

import pytest

# Add backend dir to path so imports work
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env for test runs
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

from services.music_models import AudioFeatures, Track


def has_api_key(key_name: str) -> bool:
    val = os.environ.get(key_name, "")
    return val != "" and val != "REPLACE_ME"


# Markers for skipping tests when API keys aren't configured
requires_gemini = pytest.mark.skipif(
    not has_api_key("GEMINI_API_KEY"),
    reason="GEMINI_API_KEY not set",
)

requires_spotify = pytest.mark.skipif(
    not (has_api_key("SPOTIFY_CLIENT_ID") and has_api_key("SPOTIFY_CLIENT_SECRET")),
    reason="SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET not set",
)


def make_track(
    track_id: str,
    name: str = "Spiegel im Spiegel",
    artist: str = "Arvo Pärt",
    album: str = "Alina",
    duration_ms: int = 240_000,
    popularity: int | None = 45,
    **extra,
) -> Track:
    """Build a structurally valid track; override whatever a test cares about."""
    return Track(
        id=track_id,
        name=name,
        artist=artist,
        album=album,
        duration_ms=duration_ms,
        popularity=popularity,
        **extra,
    )


def features(
    valence: float = 0.2,
    energy: float = 0.2,
    instrumentalness: float = 0.9,
    speechiness: float = 0.04,
) -> AudioFeatures:
    return AudioFeatures(
        valence=valence,
        energy=energy,
        instrumentalness=instrumentalness,
        speechiness=speechiness,
    )
