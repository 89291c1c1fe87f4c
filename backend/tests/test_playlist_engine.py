"""End-to-end tests for the playlist engine against a fake catalog."""

import asyncio

import pytest

from services.music_models import UserPreferences
from services.playlist_engine import (
    FEATURE_BATCH_SIZE,
    NoCandidatesError,
    NoQualifyingTracksError,
    PlaylistEngine,
)
from tests.conftest import features, make_track


class Catalog:
    """Fake catalog: a search router plus a feature table."""

    def __init__(self, routes=None, default=None, feature_table=None):
        self.routes = routes or {}
        self.default = default or []
        self.feature_table = feature_table or {}
        self.queries: list[str] = []
        self.feature_calls: list[list[str]] = []

    async def search(self, query, limit):
        self.queries.append(query)
        for marker, tracks in self.routes.items():
            if marker in query:
                return list(tracks)
        return list(self.default)

    async def audio_features(self, ids):
        self.feature_calls.append(list(ids))
        return {i: self.feature_table[i] for i in ids if i in self.feature_table}


@pytest.mark.asyncio
async def test_scenario_sensitive_instrumental_book():
    """Genocide, devastating, Arvo Pärt, instrumental only."""
    quiet = features(valence=0.15, energy=0.15, instrumentalness=0.95)
    catalog = Catalog(
        routes={"Arvo Pärt": [make_track("part-1", popularity=60)]},
        default=[
            make_track("generic-quiet", name="Lament", artist="Someone", album="Elegies", popularity=60),
            make_track("loud", name="Anthem", artist="Band", album="Loud"),
            make_track("bright-ish", name="Morning", artist="Band", album="Sun"),
            make_track("vocal", name="Ballad", artist="Singer", album="Songs"),
        ],
        feature_table={
            "part-1": quiet,
            "generic-quiet": quiet,
            "loud": features(valence=0.3, energy=0.9, instrumentalness=0.9),
            "bright-ish": features(valence=0.7, energy=0.3, instrumentalness=0.9),
            "vocal": features(valence=0.2, energy=0.2, instrumentalness=0.2),
        },
    )
    engine = PlaylistEngine(catalog.search, catalog.audio_features)

    result = await engine.generate(
        {
            "sensitiveTopics": ["genocide"],
            "emotionalWeight": "devastating",
            "suggestedArtists": ["Arvo Pärt"],
        },
        UserPreferences(instrumental_only=True),
    )

    ids = [t.id for t in result.tracks]
    assert result.min_score == 85
    assert ids == ["part-1", "generic-quiet"]
    for track in result.tracks:
        assert track.features.instrumentalness >= 0.70
        assert track.features.valence <= 0.6
        assert track.features.energy <= 0.7
        assert track.quality_score >= result.min_score
    assert all("instrumental" in q for q in catalog.queries)


@pytest.mark.asyncio
async def test_scenario_geographic_gated_by_foreign_lyrics():
    good = make_track("oud-1", name="Taksim", artist="Oud Player", album="Classical Oud", popularity=10)
    catalog = Catalog(default=[good], feature_table={"oud-1": features(valence=0.45, energy=0.35)})
    engine = PlaylistEngine(catalog.search, catalog.audio_features)

    result = await engine.generate(
        {"geographicSetting": "Turkey", "mood": ["wistful"]},
        UserPreferences(foreign_lyrics_ok=False),
    )

    assert not any("traditional music" in q or "folk music" in q for q in catalog.queries)
    assert any(q.startswith("turkish classical") for q in catalog.queries)
    assert any("wistful" in q for q in catalog.queries)
    assert [t.id for t in result.tracks] == ["oud-1"]
    assert all(t.strategy != "geographic" for t in result.tracks)


@pytest.mark.asyncio
async def test_scenario_truncates_to_top_thirty():
    pool = []
    table = {}
    for i in range(45):
        track_id = f"q{i:02d}"
        pool.append(make_track(track_id, popularity=10))
        table[track_id] = features(valence=0.45 + i * 0.005, energy=0.35, instrumentalness=0.5)
    for i in range(10):
        track_id = f"talk{i}"
        pool.append(make_track(track_id, popularity=10))
        table[track_id] = features(speechiness=0.6)

    catalog = Catalog(default=pool, feature_table=table)
    engine = PlaylistEngine(catalog.search, catalog.audio_features)
    result = await engine.generate({"genreSuggestions": ["minimalism"]}, UserPreferences())

    assert len(result.tracks) == 30
    assert result.stats.qualifying == 45
    assert not any(t.id.startswith("talk") for t in result.tracks)
    kept = {t.id for t in result.tracks}
    assert kept == {f"q{i:02d}" for i in range(30)}
    scores = [t.quality_score for t in result.tracks]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_scenario_total_outage_reports_no_candidates():
    async def broken_search(query, limit):
        raise ConnectionError("network unreachable")

    engine = PlaylistEngine(broken_search)
    with pytest.raises(NoCandidatesError):
        await engine.generate(
            {"suggestedArtists": ["Nils Frahm"], "mood": ["calm"], "geographicSetting": "Iceland"},
            UserPreferences(),
        )


@pytest.mark.asyncio
async def test_nothing_clears_threshold():
    loud = make_track("loud", name="Anthem", artist="Band", album="Loud")
    catalog = Catalog(default=[loud], feature_table={"loud": features(valence=0.9, energy=0.9)})
    engine = PlaylistEngine(catalog.search, catalog.audio_features)

    with pytest.raises(NoQualifyingTracksError) as exc_info:
        await engine.generate({"sensitiveTopics": ["war"]}, UserPreferences())
    assert exc_info.value.min_score == 85
    assert exc_info.value.candidate_count > 0


@pytest.mark.asyncio
async def test_everything_blacklisted_is_no_qualifying_tracks():
    catalog = Catalog(default=[make_track("xmas", album="Christmas Hits")])
    engine = PlaylistEngine(catalog.search)
    with pytest.raises(NoQualifyingTracksError):
        await engine.generate({}, UserPreferences())


@pytest.mark.asyncio
async def test_feature_reduced_catalog_uses_lexical_scoring():
    catalog = Catalog(default=[
        make_track("p", name="Piano Etude", popularity=5),
        make_track("v", name="Love Song", artist="Band", album="Hits", popularity=5),
    ])
    engine = PlaylistEngine(catalog.search)

    result = await engine.generate({"genreSuggestions": ["neoclassical"]}, UserPreferences())

    assert [t.id for t in result.tracks] == ["p"]
    assert result.tracks[0].features is None
    assert result.stats.with_features == 0


@pytest.mark.asyncio
async def test_features_fetched_in_batches_and_failures_degrade():
    pool = [make_track(f"t{i:03d}", name=f"Piano {i}", popularity=5) for i in range(120)]
    table = {t.id: features(valence=0.45, energy=0.35) for t in pool}
    catalog = Catalog(default=pool, feature_table=table)

    async def flaky_features(ids):
        if "t000" in ids:
            raise RuntimeError("429 Too Many Requests")
        return await catalog.audio_features(ids)

    engine = PlaylistEngine(catalog.search, flaky_features)
    result = await engine.generate({"genreSuggestions": ["piano"]}, UserPreferences(), target_size=200)

    # The first batch failed; the other two made it through.
    assert [len(call) for call in catalog.feature_calls] == [FEATURE_BATCH_SIZE, 20]
    assert result.stats.with_features == 70
    assert len(result.tracks) == 120


@pytest.mark.asyncio
async def test_same_track_from_two_strategies_is_collapsed():
    shared = make_track("shared", name="Fratres", popularity=60)
    catalog = Catalog(
        routes={"Arvo Pärt": [shared], "Estonia": [shared]},
        feature_table={"shared": features(valence=0.45, energy=0.35, instrumentalness=0.9)},
    )
    engine = PlaylistEngine(catalog.search, catalog.audio_features)

    result = await engine.generate(
        {"suggestedArtists": ["Arvo Pärt"], "geographicSetting": "Estonia"},
        UserPreferences(),
    )

    assert [t.id for t in result.tracks] == ["shared"]
    # 50 + 20 mood match + 25 artist boost beats the +15 geographic copy.
    assert result.tracks[0].quality_score == 95
    assert result.tracks[0].strategy == "artists"


@pytest.mark.asyncio
async def test_cancellation_propagates():
    started = asyncio.Event()

    async def slow_search(query, limit):
        started.set()
        await asyncio.sleep(10)
        return []

    engine = PlaylistEngine(slow_search)
    task = asyncio.create_task(engine.generate({}, UserPreferences()))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
