"""Playlist track selector.

Collapses the scored candidate pool into the final playlist: one entry per
catalog id, highest score first, at most ``target_size`` long.
"""

from __future__ import annotations

import logging
from typing import Iterable

from services.music_models import Track

logger = logging.getLogger(__name__)

DEFAULT_TARGET_SIZE = 30


def dedupe_tracks(tracks: Iterable[Track]) -> list[Track]:
    """One track per id, keeping the highest-scoring copy.

    The kept copy takes the list position where the id was first discovered,
    so later duplicates never reorder the pool.
    """
    best: dict[str, Track] = {}
    for track in tracks:
        current = best.get(track.id)
        if current is None:
            best[track.id] = track
        elif track.quality_score > current.quality_score:
            # Reassigning an existing key keeps its insertion position.
            best[track.id] = track
    return list(best.values())


def select_tracks(
    tracks: Iterable[Track],
    target_size: int = DEFAULT_TARGET_SIZE,
    min_score: int = 0,
) -> list[Track]:
    """Dedupe, drop anything under ``min_score``, rank and truncate.

    Sorting is stable, so equal scores keep discovery order and repeated runs
    over the same pool give the same playlist.
    """
    if target_size <= 0:
        return []

    unique = dedupe_tracks(tracks)
    qualifying = [t for t in unique if t.quality_score >= min_score]
    ranked = sorted(qualifying, key=lambda t: t.quality_score, reverse=True)
    selected = ranked[:target_size]

    logger.info(
        "[SELECT] %d unique, %d >= %d, %d selected",
        len(unique),
        len(qualifying),
        min_score,
        len(selected),
    )
    return selected
