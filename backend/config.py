import os
from pathlib import Path
from dotenv import load_dotenv

from services.track_scoring import ScoringConfig

load_dotenv(Path(__file__).parent / ".env")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
SPOTIFY_CLIENT_ID = os.environ.get("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.environ.get("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_MARKET = os.environ.get("SPOTIFY_MARKET", "US")
# Spotify has withdrawn audio features for new apps; turn off to score lexically.
SPOTIFY_AUDIO_FEATURES = _env_bool("SPOTIFY_AUDIO_FEATURES", True)
MUSIC_CATALOG = os.environ.get("MUSIC_CATALOG", "spotify").lower()
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

SEARCH_CONCURRENCY = int(os.environ.get("SEARCH_CONCURRENCY", "5"))
GENERATION_TIMEOUT_S = float(os.environ.get("GENERATION_TIMEOUT_S", "60"))

SCORING = ScoringConfig(
    min_quality_score=int(os.environ.get("MIN_QUALITY_SCORE", "75")),
    sensitive_min_quality_score=int(os.environ.get("SENSITIVE_MIN_QUALITY_SCORE", "85")),
    target_playlist_size=int(os.environ.get("TARGET_PLAYLIST_SIZE", "30")),
    mood_match_weight=float(os.environ.get("MOOD_MATCH_WEIGHT", "20")),
    duration_hard_filter=_env_bool("DURATION_HARD_FILTER", False),
)
