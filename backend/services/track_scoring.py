"""Quality scoring for candidate tracks.

Scores run 0-100 from a base of 50. Hard rejects return 0 outright; every
other rule is additive, and the strategy's priority boost is added last
before the final clamp.

When the catalog exposes no audio features the scorer falls back to lexical
cues in the track text plus popularity, so a feature-reduced deployment still
produces a ranked playlist.
"""

from __future__ import annotations

from dataclasses import dataclass

from services.book_analysis import BookAnalysis
from services.music_models import AudioFeatures, Track, UserPreferences


@dataclass(frozen=True)
class ScoringConfig:
    """Tuning constants for filtering, scoring and selection."""

    base_score: int = 50
    min_quality_score: int = 75
    sensitive_min_quality_score: int = 85
    target_playlist_size: int = 30

    min_instrumentalness: float = 0.70
    max_speechiness: float = 0.33
    sensitive_max_valence: float = 0.6
    sensitive_max_energy: float = 0.7

    instrumental_bonus: int = 30
    somber_bonus: int = 20
    somber_max_valence: float = 0.4
    somber_max_energy: float = 0.5
    mood_match_weight: float = 20.0

    discovery_popularity_cutoff: int = 30
    discovery_bonus: int = 10

    min_duration_minutes: float = 1.0
    max_duration_minutes: float = 10.0
    duration_penalty: int = 20
    duration_hard_filter: bool = False

    lexical_cue_bonus: int = 20

    def min_score_for(self, analysis: BookAnalysis) -> int:
        if analysis.is_sensitive:
            return self.sensitive_min_quality_score
        return self.min_quality_score


DEFAULT_SCORING = ScoringConfig()

LEXICAL_CUES = ("instrumental", "piano", "ambient", "classical")

# Coarse (valence, energy) baseline per emotional weight.
_WEIGHT_TARGETS: dict[str, tuple[float, float]] = {
    "light": (0.65, 0.55),
    "medium": (0.45, 0.40),
    "heavy": (0.30, 0.30),
    "devastating": (0.15, 0.20),
}

# Fine (valence, energy) shift per subject gravity.
_GRAVITY_SHIFTS: dict[str, tuple[float, float]] = {
    "lighthearted": (0.10, 0.10),
    "contemplative": (0.0, -0.05),
    "serious": (-0.05, -0.05),
    "tragic": (-0.10, -0.10),
    "traumatic": (-0.15, -0.10),
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def mood_target(analysis: BookAnalysis) -> tuple[float, float]:
    """Target (valence, energy) for the book, clamped to [0, 1]."""
    valence, energy = _WEIGHT_TARGETS.get(analysis.emotional_weight, _WEIGHT_TARGETS["medium"])
    d_valence, d_energy = _GRAVITY_SHIFTS.get(analysis.subject_gravity, (0.0, 0.0))
    return _clamp(valence + d_valence), _clamp(energy + d_energy)


def mood_similarity(features: AudioFeatures, target: tuple[float, float]) -> float:
    """1 minus the mean absolute distance in valence and energy."""
    valence_diff = abs(features.valence - target[0])
    energy_diff = abs(features.energy - target[1])
    return 1 - (valence_diff + energy_diff) / 2


def has_lexical_cue(track: Track) -> bool:
    text = track.searchable_text
    return any(cue in text for cue in LEXICAL_CUES)


def duration_in_range(track: Track, config: ScoringConfig = DEFAULT_SCORING) -> bool:
    return config.min_duration_minutes <= track.duration_minutes <= config.max_duration_minutes


def _shared_adjustments(track: Track, config: ScoringConfig) -> float:
    """Discovery bonus, duration penalty and strategy boost."""
    score = 0.0
    if track.popularity is not None and track.popularity < config.discovery_popularity_cutoff:
        score += config.discovery_bonus
    if not config.duration_hard_filter and not duration_in_range(track, config):
        score -= config.duration_penalty
    score += track.priority_boost
    return score


def _finalize(score: float) -> int:
    return int(round(max(0.0, min(100.0, score))))


def _score_with_features(
    track: Track,
    features: AudioFeatures,
    prefs: UserPreferences,
    analysis: BookAnalysis,
    config: ScoringConfig,
) -> int:
    if prefs.instrumental_only and features.instrumentalness < config.min_instrumentalness:
        return 0
    if features.speechiness > config.max_speechiness:
        return 0
    if analysis.is_sensitive and (
        features.valence > config.sensitive_max_valence
        or features.energy > config.sensitive_max_energy
    ):
        return 0

    score: float = config.base_score
    if prefs.instrumental_only:
        score += config.instrumental_bonus
    if (
        analysis.is_sensitive
        and features.valence < config.somber_max_valence
        and features.energy < config.somber_max_energy
    ):
        score += config.somber_bonus

    score += mood_similarity(features, mood_target(analysis)) * config.mood_match_weight
    score += _shared_adjustments(track, config)
    return _finalize(score)


def _score_lexically(
    track: Track,
    prefs: UserPreferences,
    config: ScoringConfig,
) -> int:
    cue = has_lexical_cue(track)
    # Without instrumentalness there is nothing else to vouch for a vocal-free track.
    if prefs.instrumental_only and not cue:
        return 0

    score: float = config.base_score
    if cue:
        score += config.instrumental_bonus if prefs.instrumental_only else config.lexical_cue_bonus
    score += _shared_adjustments(track, config)
    return _finalize(score)


def score_track(
    track: Track,
    features: AudioFeatures | None,
    prefs: UserPreferences,
    analysis: BookAnalysis,
    config: ScoringConfig = DEFAULT_SCORING,
) -> int:
    """Fitness of ``track`` for the book, an integer in [0, 100]."""
    if features is None:
        return _score_lexically(track, prefs, config)
    return _score_with_features(track, features, prefs, analysis, config)
