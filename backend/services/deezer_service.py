"""Deezer search integration — no authentication required.

Uses the public Deezer search API as a feature-reduced catalog: tracks come
with 30-second MP3 previews but no audio features, so the playlist engine
scores them with its lexical fallback.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from services.music_models import Track

logger = logging.getLogger(__name__)

DEEZER_SEARCH_URL = "https://api.deezer.com/search"


class DeezerService:
    """Stateless Deezer search client. No API key or auth required."""

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    @staticmethod
    def parse_track(item: dict[str, Any]) -> Track | None:
        if not isinstance(item, dict) or not item.get("id"):
            return None
        artist = item.get("artist") or {}
        album = item.get("album") or {}
        return Track(
            id=str(item["id"]),
            name=item.get("title") or "",
            artist=artist.get("name") or "",
            album=album.get("title") or "",
            duration_ms=int(item.get("duration") or 0) * 1000,
            preview_url=item.get("preview") or None,
            image_url=album.get("cover_small"),
            external_url=item.get("link"),
        )

    async def search_tracks(self, query: str, limit: int = 20) -> list[Track]:
        """Search the Deezer catalog for tracks matching a query.

        Returns [] on any failure so a broken query never sinks a playlist.
        """
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.get(
                    DEEZER_SEARCH_URL,
                    params={"q": query, "limit": limit},
                )

            if resp.status_code != 200:
                logger.warning("[DEEZER] Search %r failed: HTTP %d %s", query, resp.status_code, resp.text[:200])
                return []

            data = resp.json()
            if "error" in data:
                logger.warning("[DEEZER] Search %r error payload: %s", query, data["error"])
                return []

            tracks = [t for t in (self.parse_track(item) for item in data.get("data", [])) if t is not None]
            logger.info("[DEEZER] Search %r: %d results", query, len(tracks))
            return tracks

        except Exception as e:
            logger.warning("[DEEZER] Search %r error: %s", query, e)
            return []
