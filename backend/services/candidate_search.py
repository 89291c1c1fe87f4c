"""Multi-strategy candidate search.

Each strategy turns part of the book analysis into catalog queries and tags
what it finds with a priority boost reflecting how much we trust it:

  artists      +25  names the model picked for this book, 2 less per rank
  geographic   +15  traditional/folk/classical music of the setting
  instruments    0  mood x instrument, exploratory
  genres         0  suggested genres, or a cultural map of the setting
  atmosphere     0  descriptor queries, exploratory
  period         0  time-period soundtrack queries

Queries run concurrently under a shared semaphore. A query that fails is
logged and yields nothing; it never takes its siblings down with it.
Results are not deduplicated here.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from services.book_analysis import BookAnalysis
from services.exclusions import matching_term
from services.music_models import Track, UserPreferences

logger = logging.getLogger(__name__)

SearchFn = Callable[[str, int], Awaitable[Sequence[Track]]]

DEFAULT_CONCURRENCY = 5

MAX_ARTISTS = 6
MAX_MOODS = 2
MAX_INSTRUMENTS = 3
MAX_DESCRIPTORS = 3

ARTIST_BOOST = 25.0
ARTIST_BOOST_STEP = 2.0
GEOGRAPHIC_BOOST = 15.0

ARTIST_LIMIT = 15
GEOGRAPHIC_LIMIT = 20
INSTRUMENT_LIMIT = 12
GENRE_LIMIT = 15
ATMOSPHERE_LIMIT = 10
PERIOD_LIMIT = 15

INSTRUMENTAL_QUALIFIER = "instrumental"

GEOGRAPHIC_TEMPLATES = (
    "{setting} traditional music",
    "{setting} folk music",
    "{setting} classical music",
)

PERIOD_TEMPLATES = (
    "{period} instrumental",
    "{period} classical",
    "{period} soundtrack",
)

DEFAULT_INSTRUMENTS = ("piano", "strings", "ambient")

DEFAULT_GENRES = ("ambient", "modern classical", "instrumental")

# Setting keyword -> regional genres, used when the analysis suggests none.
CULTURAL_GENRES: dict[str, tuple[str, ...]] = {
    "turkey": ("turkish classical", "turkish folk", "ottoman classical"),
    "romania": ("romanian folk", "romanian classical"),
    "japan": ("japanese traditional", "gagaku", "shamisen"),
    "india": ("indian classical", "raga", "sitar"),
    "middle east": ("arabic classical", "oud", "qanun"),
    "russia": ("russian classical", "russian folk"),
    "ireland": ("irish traditional", "celtic"),
    "spain": ("flamenco", "spanish classical"),
    "brazil": ("bossa nova", "brazilian jazz"),
    "africa": ("african traditional", "kora", "mbira"),
    "france": ("french cafe jazz", "french classical"),
    "cyprus": ("cypriot folk", "greek bouzouki"),
}

WORLD_GENRES = ("world music", "traditional", "ethnic")


@dataclass(frozen=True)
class SearchQuery:
    """One sub-query issued by a strategy."""

    strategy: str
    text: str
    limit: int
    boost: float = 0.0


def qualify(query: str, prefs: UserPreferences) -> str:
    """Append the instrumental qualifier when the listener asked for it."""
    if prefs.instrumental_only and INSTRUMENTAL_QUALIFIER not in query.lower():
        return f"{query} {INSTRUMENTAL_QUALIFIER}"
    return query


def cultural_genres(setting: str | None) -> tuple[str, ...]:
    if not setting:
        return DEFAULT_GENRES
    lowered = setting.lower()
    for key, genres in CULTURAL_GENRES.items():
        if key in lowered:
            return genres
    return WORLD_GENRES


def artist_boost(rank: int) -> float:
    """Boost for the artist at ``rank`` (0 = the model's first pick)."""
    return ARTIST_BOOST - ARTIST_BOOST_STEP * rank


def artist_queries(analysis: BookAnalysis, prefs: UserPreferences) -> list[SearchQuery]:
    return [
        SearchQuery("artists", qualify(f'artist:"{artist}"', prefs), ARTIST_LIMIT, artist_boost(rank))
        for rank, artist in enumerate(analysis.suggested_artists[:MAX_ARTISTS])
    ]


def geographic_queries(analysis: BookAnalysis, prefs: UserPreferences) -> list[SearchQuery]:
    if not prefs.foreign_lyrics_ok or not analysis.geographic_setting:
        return []
    return [
        SearchQuery(
            "geographic",
            qualify(template.format(setting=analysis.geographic_setting), prefs),
            GEOGRAPHIC_LIMIT,
            GEOGRAPHIC_BOOST,
        )
        for template in GEOGRAPHIC_TEMPLATES
    ]


def instrument_queries(analysis: BookAnalysis, prefs: UserPreferences) -> list[SearchQuery]:
    instruments = analysis.instrument_palette[:MAX_INSTRUMENTS] or list(DEFAULT_INSTRUMENTS)
    return [
        SearchQuery("instruments", qualify(f"{instrument} {mood}", prefs), INSTRUMENT_LIMIT)
        for mood in analysis.mood[:MAX_MOODS]
        for instrument in instruments
    ]


def genre_queries(analysis: BookAnalysis, prefs: UserPreferences) -> list[SearchQuery]:
    genres = analysis.genre_suggestions or list(cultural_genres(analysis.geographic_setting))
    return [SearchQuery("genres", qualify(genre, prefs), GENRE_LIMIT) for genre in genres]


def atmosphere_queries(analysis: BookAnalysis, prefs: UserPreferences) -> list[SearchQuery]:
    lead_mood = analysis.mood[0] if analysis.mood else ""
    queries = []
    for descriptor in analysis.atmospheric_descriptors[:MAX_DESCRIPTORS]:
        text = f"{lead_mood} {descriptor}".strip()
        queries.append(SearchQuery("atmosphere", qualify(text, prefs), ATMOSPHERE_LIMIT))
    return queries


def period_queries(analysis: BookAnalysis, prefs: UserPreferences) -> list[SearchQuery]:
    if not analysis.time_period:
        return []
    return [
        SearchQuery("period", qualify(template.format(period=analysis.time_period), prefs), PERIOD_LIMIT)
        for template in PERIOD_TEMPLATES
    ]


STRATEGIES: tuple[Callable[[BookAnalysis, UserPreferences], list[SearchQuery]], ...] = (
    artist_queries,
    geographic_queries,
    instrument_queries,
    genre_queries,
    atmosphere_queries,
    period_queries,
)


def plan_queries(
    analysis: BookAnalysis,
    prefs: UserPreferences,
    blacklist: frozenset[str] = frozenset(),
) -> list[SearchQuery]:
    """All sub-queries in priority order, minus any that ask for a blacklisted term."""
    planned: list[SearchQuery] = []
    for strategy in STRATEGIES:
        for query in strategy(analysis, prefs):
            term = matching_term(query.text, blacklist)
            if term is not None:
                logger.info("[SEARCH] Skipping %s query %r (blacklisted %r)", query.strategy, query.text, term)
                continue
            planned.append(query)
    return planned


async def _run_query(search: SearchFn, query: SearchQuery, semaphore: asyncio.Semaphore) -> list[Track]:
    async with semaphore:
        try:
            results = await search(query.text, query.limit)
        except Exception as e:
            logger.warning("[SEARCH] %s query %r failed: %s", query.strategy, query.text, e)
            return []

    tracks = []
    for track in results:
        tracks.append(track.model_copy(update={
            "priority_boost": track.priority_boost + query.boost,
            "strategy": query.strategy,
        }))
    logger.debug("[SEARCH] %s %r -> %d tracks", query.strategy, query.text, len(tracks))
    return tracks


async def generate_candidates(
    analysis: BookAnalysis,
    prefs: UserPreferences,
    blacklist: frozenset[str],
    search: SearchFn,
    *,
    semaphore: asyncio.Semaphore | None = None,
) -> list[Track]:
    """Run every strategy and return the raw candidate pool in discovery order."""
    queries = plan_queries(analysis, prefs, blacklist)
    if semaphore is None:
        semaphore = asyncio.Semaphore(DEFAULT_CONCURRENCY)

    logger.info("[SEARCH] Issuing %d queries", len(queries))
    batches = await asyncio.gather(*(_run_query(search, q, semaphore) for q in queries))

    candidates: list[Track] = []
    per_strategy: dict[str, int] = {}
    for query, batch in zip(queries, batches):
        candidates.extend(batch)
        per_strategy[query.strategy] = per_strategy.get(query.strategy, 0) + len(batch)

    logger.info("[SEARCH] Collected %d candidates %s", len(candidates), per_strategy)
    return candidates
