"""Structural and lexical filtering of candidate tracks."""

from __future__ import annotations

import logging
from typing import Iterable

from services.exclusions import matching_term
from services.music_models import Track
from services.track_scoring import DEFAULT_SCORING, ScoringConfig, duration_in_range

logger = logging.getLogger(__name__)


def rejection_reason(
    track: Track,
    blacklist: frozenset[str],
    config: ScoringConfig = DEFAULT_SCORING,
) -> str | None:
    """Why ``track`` should be dropped, or None if it passes."""
    if not track.id or not track.name:
        return "missing id or name"
    if not track.album or not track.artist:
        return "missing album or artist"
    if track.album_type == "compilation":
        return "compilation album"
    term = matching_term(track.searchable_text, blacklist)
    if term is not None:
        return f"blacklisted term {term!r}"
    if config.duration_hard_filter and not duration_in_range(track, config):
        return f"duration {track.duration_minutes:.1f} min out of range"
    return None


def filter_tracks(
    candidates: Iterable[Track],
    blacklist: frozenset[str],
    config: ScoringConfig = DEFAULT_SCORING,
) -> list[Track]:
    """Keep the candidates that pass ``rejection_reason``, preserving order."""
    kept: list[Track] = []
    rejected = 0
    for track in candidates:
        reason = rejection_reason(track, blacklist, config)
        if reason is None:
            kept.append(track)
            continue
        rejected += 1
        logger.debug("[FILTER] Dropped %r by %r: %s", track.name, track.artist, reason)

    logger.info("[FILTER] %d kept, %d rejected", len(kept), rejected)
    return kept
