"""Playlist engine: book analysis in, ranked track list out.

Flow:
  normalize analysis -> build blacklist -> search strategies -> filter
  -> audio features (optional, batched) -> score -> select

Only two failures cross this boundary, both user-actionable:
NoCandidatesError (the searches found nothing at all) and
NoQualifyingTracksError (tracks were found but none cleared the bar).
Everything else degrades locally: failed searches contribute nothing and
failed feature batches fall back to lexical scoring.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence

from services.book_analysis import BookAnalysis, normalize_analysis
from services.candidate_search import DEFAULT_CONCURRENCY, SearchFn, generate_candidates
from services.exclusions import build_blacklist
from services.music_models import AudioFeatures, Track, UserPreferences
from services.track_filter import filter_tracks
from services.track_scoring import DEFAULT_SCORING, ScoringConfig, score_track
from services.track_selector import select_tracks

logger = logging.getLogger(__name__)

FeaturesFn = Callable[[Sequence[str]], Awaitable[Mapping[str, AudioFeatures]]]

FEATURE_BATCH_SIZE = 50


class PlaylistGenerationError(Exception):
    """Base class for failures reported back to the caller."""


class NoCandidatesError(PlaylistGenerationError):
    def __init__(self, message: str = "No tracks found for this book. Try a different book or adjust your preferences."):
        super().__init__(message)


class NoQualifyingTracksError(PlaylistGenerationError):
    def __init__(self, candidate_count: int, min_score: int, message: str | None = None):
        self.candidate_count = candidate_count
        self.min_score = min_score
        super().__init__(
            message
            or (
                f"Found {candidate_count} tracks but none scored {min_score} or higher. "
                "Try relaxing your preferences."
            )
        )


@dataclass
class PlaylistStats:
    candidates: int = 0
    filtered: int = 0
    with_features: int = 0
    qualifying: int = 0
    selected: int = 0


@dataclass
class PlaylistResult:
    analysis: BookAnalysis
    tracks: list[Track]
    min_score: int
    stats: PlaylistStats = field(default_factory=PlaylistStats)


def _batches(items: Sequence[str], size: int) -> list[Sequence[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class PlaylistEngine:
    """Sequences search, filtering, scoring and selection for one catalog."""

    def __init__(
        self,
        search: SearchFn,
        audio_features: FeaturesFn | None = None,
        config: ScoringConfig = DEFAULT_SCORING,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        self.search = search
        self.audio_features = audio_features
        self.config = config
        self.concurrency = concurrency

    async def _fetch_batch(
        self, ids: Sequence[str], semaphore: asyncio.Semaphore
    ) -> Mapping[str, AudioFeatures]:
        async with semaphore:
            try:
                return await self.audio_features(ids)
            except Exception as e:
                logger.warning("[ENGINE] Audio features batch of %d failed: %s", len(ids), e)
                return {}

    async def fetch_features(
        self, tracks: Sequence[Track], semaphore: asyncio.Semaphore
    ) -> dict[str, AudioFeatures]:
        """Audio features for the unique ids in ``tracks``; missing ids are simply absent."""
        if self.audio_features is None or not tracks:
            return {}

        ids = list(dict.fromkeys(t.id for t in tracks))
        results = await asyncio.gather(
            *(self._fetch_batch(batch, semaphore) for batch in _batches(ids, FEATURE_BATCH_SIZE))
        )
        features: dict[str, AudioFeatures] = {}
        for batch_result in results:
            features.update(batch_result)
        logger.info("[ENGINE] Audio features for %d/%d tracks", len(features), len(ids))
        return features

    def score_all(
        self,
        tracks: Sequence[Track],
        features: Mapping[str, AudioFeatures],
        prefs: UserPreferences,
        analysis: BookAnalysis,
    ) -> list[Track]:
        scored = []
        for track in tracks:
            track_features = features.get(track.id, track.features)
            score = score_track(track, track_features, prefs, analysis, self.config)
            scored.append(track.model_copy(update={"quality_score": score, "features": track_features}))
        return scored

    async def generate(
        self,
        analysis: BookAnalysis | Mapping[str, Any] | None,
        prefs: UserPreferences,
        target_size: int | None = None,
    ) -> PlaylistResult:
        """Build a playlist for ``analysis``.

        Raises NoCandidatesError or NoQualifyingTracksError; nothing else is
        expected to escape.
        """
        analysis = normalize_analysis(analysis)
        target_size = target_size or self.config.target_playlist_size
        min_score = self.config.min_score_for(analysis)
        stats = PlaylistStats()

        blacklist = build_blacklist(analysis)
        logger.info(
            "[ENGINE] Generating: weight=%s gravity=%s sensitive=%s prefs=%s min_score=%d",
            analysis.emotional_weight,
            analysis.subject_gravity,
            sorted(analysis.sensitive_topics),
            prefs.model_dump(),
            min_score,
        )

        semaphore = asyncio.Semaphore(self.concurrency)
        candidates = await generate_candidates(analysis, prefs, blacklist, self.search, semaphore=semaphore)
        stats.candidates = len(candidates)
        if not candidates:
            raise NoCandidatesError()

        filtered = filter_tracks(candidates, blacklist, self.config)
        stats.filtered = len(filtered)

        features = await self.fetch_features(filtered, semaphore)
        stats.with_features = sum(1 for t in filtered if t.id in features)

        scored = self.score_all(filtered, features, prefs, analysis)
        stats.qualifying = len({t.id for t in scored if t.quality_score >= min_score})

        selected = select_tracks(scored, target_size=target_size, min_score=min_score)
        stats.selected = len(selected)
        if not selected:
            raise NoQualifyingTracksError(candidate_count=len(candidates), min_score=min_score)

        logger.info(
            "[ENGINE] Playlist ready: %d tracks (top: %s)",
            len(selected),
            [f"{t.name} - {t.artist} ({t.quality_score})" for t in selected[:5]],
        )
        return PlaylistResult(analysis=analysis, tracks=selected, min_score=min_score, stats=stats)
