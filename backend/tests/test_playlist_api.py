"""Tests for the FastAPI app and playlist endpoints (dependencies overridden)."""

import pytest
from fastapi.testclient import TestClient

from main import app
from routers import playlists
from services.book_analysis import normalize_analysis
from services.book_lookup import BookInfo
from services.playlist_engine import PlaylistEngine
from services.spotify_service import ExportedPlaylist
from tests.conftest import features, make_track


class FakeLookup:
    async def find_book(self, query):
        if query == "unknown book":
            return None
        return BookInfo(title="Snow", author="Orhan Pamuk", description="An exiled poet returns to Turkey.")


class FakeAnalyst:
    def __init__(self):
        self.calls = []

    async def analyze(self, title, author=None, description=None):
        self.calls.append((title, author, description))
        return normalize_analysis({
            "mood": ["melancholic"],
            "suggestedArtists": ["Erkin Koray"],
            "geographicSetting": "Turkey",
        })


class FakeSpotify:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def create_playlist(self, user_token, name, description, track_ids, public=False):
        self.calls.append((user_token, name, description, list(track_ids)))
        if self.fail:
            raise RuntimeError("401 Unauthorized")
        return ExportedPlaylist("pl1", "https://open.spotify.com/playlist/pl1", len(track_ids))


def engine_with(tracks, feature_table=None):
    async def search(query, limit):
        return list(tracks)

    async def audio_features(ids):
        return {i: feature_table[i] for i in ids if i in (feature_table or {})}

    return PlaylistEngine(search, audio_features if feature_table is not None else None)


@pytest.fixture
def analyst():
    return FakeAnalyst()


@pytest.fixture
def client(analyst):
    app.dependency_overrides[playlists.get_book_lookup] = lambda: FakeLookup()
    app.dependency_overrides[playlists.get_analyst] = lambda: analyst
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_app_routes():
    routes = [r.path for r in app.routes]
    assert "/health" in routes
    assert "/api/playlists/analyze" in routes
    assert "/api/playlists/generate" in routes
    assert "/api/playlists/export" in routes


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_analyze_endpoint(client, analyst):
    response = client.post("/api/playlists/analyze", json={"title": "snow pamuk"})

    assert response.status_code == 200
    body = response.json()
    assert body["book"]["title"] == "Snow"
    assert body["analysis"]["suggestedArtists"] == ["Erkin Koray"]
    assert body["analysis"]["emotionalWeight"] == "medium"
    assert analyst.calls == [("Snow", "Orhan Pamuk", "An exiled poet returns to Turkey.")]


def test_analyze_uses_raw_title_when_lookup_misses(client, analyst):
    response = client.post("/api/playlists/analyze", json={"title": "unknown book"})
    assert response.status_code == 200
    assert response.json()["book"]["title"] == "unknown book"
    assert analyst.calls[0][0] == "unknown book"


def test_generate_endpoint(client):
    tracks = [
        make_track("good", name="Piano Nocturne", popularity=10),
        make_track("meh", name="Song", artist="Band", album="Hits", duration_ms=30_000),
    ]
    app.dependency_overrides[playlists.get_engine] = lambda: engine_with(tracks)

    response = client.post(
        "/api/playlists/generate",
        json={"title": "snow pamuk", "instrumentalOnly": False, "foreignLyricsOk": True, "targetSize": 10},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["minScore"] == 75
    assert [t["id"] for t in body["tracks"]] == ["good"]
    assert body["tracks"][0]["qualityScore"] >= 75
    assert body["tracks"][0]["durationMs"] == 240_000
    assert "features" not in body["tracks"][0]
    assert body["stats"]["selected"] == 1
    assert body["analysis"]["geographicSetting"] == "Turkey"


def test_generate_no_candidates_is_404(client):
    app.dependency_overrides[playlists.get_engine] = lambda: engine_with([])
    response = client.post("/api/playlists/generate", json={"title": "snow"})
    assert response.status_code == 404
    assert "Try a different book" in response.json()["detail"]


def test_generate_no_qualifying_tracks_is_422(client):
    loud = [make_track("loud", name="Anthem", artist="Band", album="Stadium")]
    app.dependency_overrides[playlists.get_engine] = lambda: engine_with(
        loud, {"loud": features(valence=0.95, energy=0.95, instrumentalness=0.0)}
    )
    response = client.post("/api/playlists/generate", json={"title": "snow", "instrumentalOnly": True})
    assert response.status_code == 422
    assert "relaxing your preferences" in response.json()["detail"]


def test_generate_validates_request(client):
    assert client.post("/api/playlists/generate", json={"title": ""}).status_code == 422
    assert client.post("/api/playlists/generate", json={"title": "snow", "targetSize": 0}).status_code == 422


def test_export_endpoint(client):
    spotify = FakeSpotify()
    app.dependency_overrides[playlists.get_spotify] = lambda: spotify

    response = client.post(
        "/api/playlists/export",
        json={"accessToken": "user-token", "title": "Snow", "trackIds": ["a", "b"]},
    )

    assert response.status_code == 200
    assert response.json() == {
        "playlistId": "pl1",
        "url": "https://open.spotify.com/playlist/pl1",
        "trackCount": 2,
    }
    token, name, description, ids = spotify.calls[0]
    assert token == "user-token"
    assert "Snow" in name
    assert description == "A reading soundtrack for Snow"
    assert ids == ["a", "b"]


def test_export_failure_is_502(client):
    app.dependency_overrides[playlists.get_spotify] = lambda: FakeSpotify(fail=True)
    response = client.post(
        "/api/playlists/export",
        json={"accessToken": "expired", "title": "Snow", "trackIds": ["a"]},
    )
    assert response.status_code == 502


def test_generate_without_gemini_key_uses_default_analysis(monkeypatch):
    monkeypatch.setattr(playlists, "GEMINI_API_KEY", "")
    monkeypatch.setattr(playlists, "_analyst", None)
    app.dependency_overrides[playlists.get_book_lookup] = lambda: FakeLookup()
    app.dependency_overrides[playlists.get_engine] = lambda: engine_with(
        [make_track("good", name="Piano Nocturne", popularity=10)]
    )
    try:
        response = TestClient(app).post("/api/playlists/generate", json={"title": "Snow"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["emotionalWeight"] == "medium"
    assert body["analysis"]["suggestedArtists"] == []
    assert [t["id"] for t in body["tracks"]] == ["good"]
