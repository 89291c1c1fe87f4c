"""Spotify Web API client.

Provides the catalog capabilities the playlist engine depends on:
- track search (never raises; failures come back as an empty list)
- audio features in batches of up to 50 ids
- client-credentials access tokens, cached until shortly before expiry
- playlist export to a user's account, given a user access token
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, NamedTuple, Sequence

import httpx

from services.music_models import AudioFeatures, Track

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
API_URL = "https://api.spotify.com/v1"

TOKEN_REFRESH_MARGIN_S = 60
MAX_SEARCH_LIMIT = 50
MAX_FEATURE_IDS = 50
MAX_PLAYLIST_ADD = 100


class AccessToken(NamedTuple):
    token: str
    expires_at: float


class SpotifyTokenCache:
    """Client-credentials token shared by every request in the process.

    Concurrent callers wait on one lock, so an expired token triggers a
    single fetch whose result they all reuse.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock=time.monotonic,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._transport = transport
        self._clock = clock
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    def _valid(self) -> bool:
        return self._token is not None and self._clock() < self._token.expires_at

    async def get_token(self) -> AccessToken:
        if self._valid():
            return self._token
        async with self._lock:
            if self._valid():
                return self._token
            self._token = await self._fetch()
            return self._token

    def invalidate(self) -> None:
        self._token = None

    async def _fetch(self) -> AccessToken:
        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            response = await client.post(
                TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
            response.raise_for_status()
            data = response.json()

        expires_in = int(data.get("expires_in", 3600))
        token = AccessToken(
            token=data["access_token"],
            expires_at=self._clock() + expires_in - TOKEN_REFRESH_MARGIN_S,
        )
        logger.info("[SPOTIFY] New access token, valid for %ds", expires_in)
        return token


class ExportedPlaylist(NamedTuple):
    playlist_id: str
    url: str | None
    track_count: int


class SpotifyService:
    """Catalog adapter for the Spotify Web API."""

    def __init__(
        self,
        token_cache: SpotifyTokenCache,
        market: str = "US",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_cache = token_cache
        self.market = market
        self._transport = transport

    async def _auth_headers(self) -> dict[str, str]:
        access = await self.token_cache.get_token()
        return {"Authorization": f"Bearer {access.token}"}

    @staticmethod
    def parse_track(item: dict[str, Any]) -> Track | None:
        """Map a Spotify track object to a Track. Returns None for unusable items."""
        if not isinstance(item, dict) or not item.get("id"):
            return None
        artists = item.get("artists") or []
        album = item.get("album") or {}
        images = album.get("images") or []
        return Track(
            id=item["id"],
            name=item.get("name") or "",
            artist=(artists[0].get("name") or "") if artists else "",
            album=album.get("name") or "",
            album_type=album.get("album_type"),
            duration_ms=int(item.get("duration_ms") or 0),
            popularity=item.get("popularity"),
            preview_url=item.get("preview_url"),
            # Spotify lists images largest first.
            image_url=images[-1].get("url") if images else None,
            external_url=(item.get("external_urls") or {}).get("spotify"),
        )

    @staticmethod
    def parse_features(item: dict[str, Any]) -> AudioFeatures:
        return AudioFeatures(
            valence=float(item.get("valence", 0.5)),
            energy=float(item.get("energy", 0.5)),
            instrumentalness=float(item.get("instrumentalness", 0.0)),
            speechiness=float(item.get("speechiness", 0.0)),
        )

    async def search_tracks(self, query: str, limit: int = 20) -> list[Track]:
        """Search the catalog for tracks. Returns [] on any failure."""
        try:
            headers = await self._auth_headers()
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.get(
                    f"{API_URL}/search",
                    headers=headers,
                    params={
                        "q": query,
                        "type": "track",
                        "limit": min(limit, MAX_SEARCH_LIMIT),
                        "market": self.market,
                    },
                )

            if resp.status_code == 401:
                self.token_cache.invalidate()
            if resp.status_code != 200:
                logger.warning("[SPOTIFY] Search %r failed: HTTP %d %s", query, resp.status_code, resp.text[:200])
                return []

            items = resp.json().get("tracks", {}).get("items", [])
            tracks = [t for t in (self.parse_track(item) for item in items) if t is not None]
            logger.info("[SPOTIFY] Search %r: %d results", query, len(tracks))
            return tracks

        except Exception as e:
            logger.warning("[SPOTIFY] Search %r error: %s", query, e)
            return []

    async def get_audio_features(self, ids: Sequence[str]) -> dict[str, AudioFeatures]:
        """Fetch audio features for up to 50 ids. Raises on HTTP errors."""
        if not ids:
            return {}
        if len(ids) > MAX_FEATURE_IDS:
            raise ValueError(f"At most {MAX_FEATURE_IDS} ids per audio-features request, got {len(ids)}")

        headers = await self._auth_headers()
        async with httpx.AsyncClient(timeout=15, transport=self._transport) as client:
            response = await client.get(
                f"{API_URL}/audio-features",
                headers=headers,
                params={"ids": ",".join(ids)},
            )
            response.raise_for_status()
            data = response.json()

        features = {}
        for item in data.get("audio_features") or []:
            if item and item.get("id"):
                features[item["id"]] = self.parse_features(item)
        return features

    async def create_playlist(
        self,
        user_token: str,
        name: str,
        description: str,
        track_ids: Sequence[str],
        public: bool = False,
    ) -> ExportedPlaylist:
        """Create a playlist on the user's account and fill it with ``track_ids``."""
        headers = {"Authorization": f"Bearer {user_token}"}
        async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
            me = await client.get(f"{API_URL}/me", headers=headers)
            me.raise_for_status()
            user_id = me.json()["id"]

            created = await client.post(
                f"{API_URL}/users/{user_id}/playlists",
                headers=headers,
                json={"name": name, "description": description, "public": public},
            )
            created.raise_for_status()
            playlist = created.json()
            playlist_id = playlist["id"]

            uris = [f"spotify:track:{track_id}" for track_id in track_ids]
            for start in range(0, len(uris), MAX_PLAYLIST_ADD):
                added = await client.post(
                    f"{API_URL}/playlists/{playlist_id}/tracks",
                    headers=headers,
                    json={"uris": uris[start:start + MAX_PLAYLIST_ADD]},
                )
                added.raise_for_status()

        logger.info("[SPOTIFY] Created playlist %s with %d tracks for %s", playlist_id, len(uris), user_id)
        return ExportedPlaylist(
            playlist_id=playlist_id,
            url=(playlist.get("external_urls") or {}).get("spotify"),
            track_count=len(uris),
        )
