"""Playlist REST endpoints.

Provides REST endpoints for the frontend to:
- Analyze a book into its musical profile
- Generate a ranked reading playlist for a book
- Export a generated playlist to the listener's Spotify account

Generation failures the listener can act on come back as 404 (nothing
found at all) or 422 (nothing good enough), with a message to show as-is.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from config import (
    GEMINI_API_KEY,
    GENERATION_TIMEOUT_S,
    MUSIC_CATALOG,
    SCORING,
    SEARCH_CONCURRENCY,
    SPOTIFY_AUDIO_FEATURES,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_MARKET,
)
from services.book_analysis import BookAnalysis
from services.book_lookup import BookInfo, BookLookupService
from services.deezer_service import DeezerService
from services.gemini_analyst import GeminiAnalyst
from services.music_models import Track, UserPreferences
from services.playlist_engine import (
    NoCandidatesError,
    NoQualifyingTracksError,
    PlaylistEngine,
)
from services.spotify_service import SpotifyService, SpotifyTokenCache

router = APIRouter(prefix="/api/playlists", tags=["playlists"])
logger = logging.getLogger(__name__)

token_cache = SpotifyTokenCache(SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET)
spotify = SpotifyService(token_cache, market=SPOTIFY_MARKET)
deezer = DeezerService()
book_lookup = BookLookupService()
_analyst: GeminiAnalyst | None = None


def _build_engine() -> PlaylistEngine:
    if MUSIC_CATALOG == "deezer":
        return PlaylistEngine(
            search=deezer.search_tracks,
            config=SCORING,
            concurrency=SEARCH_CONCURRENCY,
        )
    return PlaylistEngine(
        search=spotify.search_tracks,
        audio_features=spotify.get_audio_features if SPOTIFY_AUDIO_FEATURES else None,
        config=SCORING,
        concurrency=SEARCH_CONCURRENCY,
    )


engine = _build_engine()


def get_engine() -> PlaylistEngine:
    return engine


def get_analyst() -> GeminiAnalyst:
    global _analyst
    if _analyst is None:
        _analyst = GeminiAnalyst(api_key=GEMINI_API_KEY)
    return _analyst


def get_book_lookup() -> BookLookupService:
    return book_lookup


def get_spotify() -> SpotifyService:
    return spotify


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(CamelModel):
    title: str = Field(min_length=1)


class GenerateRequest(CamelModel):
    title: str = Field(min_length=1)
    instrumental_only: bool = False
    foreign_lyrics_ok: bool = True
    target_size: int | None = Field(default=None, ge=1, le=100)


class ExportRequest(CamelModel):
    access_token: str = Field(min_length=1)
    title: str = Field(min_length=1)
    track_ids: list[str] = Field(min_length=1)
    description: str | None = None


class TrackResponse(CamelModel):
    id: str
    name: str
    artist: str
    album: str
    duration_ms: int
    popularity: int | None = None
    preview_url: str | None = None
    image_url: str | None = None
    external_url: str | None = None
    quality_score: int
    strategy: str


class StatsResponse(CamelModel):
    candidates: int
    filtered: int
    with_features: int
    qualifying: int
    selected: int


class AnalyzeResponse(CamelModel):
    book: BookInfo
    analysis: BookAnalysis


class GenerateResponse(CamelModel):
    book: BookInfo
    analysis: BookAnalysis
    min_score: int
    tracks: list[TrackResponse]
    stats: StatsResponse


class ExportResponse(CamelModel):
    playlist_id: str
    url: str | None = None
    track_count: int


def _track_response(track: Track) -> TrackResponse:
    return TrackResponse(**track.model_dump(exclude={"features", "priority_boost", "album_type"}))


async def _analyze_book(
    title: str, lookup: BookLookupService, gemini: GeminiAnalyst
) -> tuple[BookInfo, BookAnalysis]:
    book = await lookup.find_book(title) or BookInfo(title=title)
    analysis = await gemini.analyze(book.title, book.author, book.description)
    return book, analysis


@router.post("/analyze", response_model=AnalyzeResponse, response_model_by_alias=True)
async def analyze_book(
    req: AnalyzeRequest,
    lookup: BookLookupService = Depends(get_book_lookup),
    gemini: GeminiAnalyst = Depends(get_analyst),
):
    """Look up a book and return its musical analysis."""
    try:
        book, analysis = await _analyze_book(req.title, lookup, gemini)
        return AnalyzeResponse(book=book, analysis=analysis)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/generate", response_model=GenerateResponse, response_model_by_alias=True)
async def generate_playlist(
    req: GenerateRequest,
    playlist_engine: PlaylistEngine = Depends(get_engine),
    lookup: BookLookupService = Depends(get_book_lookup),
    gemini: GeminiAnalyst = Depends(get_analyst),
):
    """Analyze the book and build its playlist."""
    prefs = UserPreferences(
        instrumental_only=req.instrumental_only,
        foreign_lyrics_ok=req.foreign_lyrics_ok,
    )

    async def run():
        book, analysis = await _analyze_book(req.title, lookup, gemini)
        result = await playlist_engine.generate(analysis, prefs, target_size=req.target_size)
        return book, result

    try:
        book, result = await asyncio.wait_for(run(), timeout=GENERATION_TIMEOUT_S)
    except NoCandidatesError as e:
        logger.info("[PLAYLIST-API] No candidates for %r", req.title)
        raise HTTPException(status_code=404, detail=str(e))
    except NoQualifyingTracksError as e:
        logger.info("[PLAYLIST-API] No qualifying tracks for %r (min score %d)", req.title, e.min_score)
        raise HTTPException(status_code=422, detail=str(e))
    except asyncio.TimeoutError:
        logger.warning("[PLAYLIST-API] Generation for %r timed out", req.title)
        raise HTTPException(status_code=504, detail="Playlist generation timed out. Please try again.")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[PLAYLIST-API] Generation for %r failed", req.title)
        raise HTTPException(status_code=500, detail=str(e))

    logger.info("[PLAYLIST-API] %r -> %d tracks", book.title, len(result.tracks))
    return GenerateResponse(
        book=book,
        analysis=result.analysis,
        min_score=result.min_score,
        tracks=[_track_response(t) for t in result.tracks],
        stats=StatsResponse(**vars(result.stats)),
    )


@router.post("/export", response_model=ExportResponse, response_model_by_alias=True)
async def export_playlist(
    req: ExportRequest,
    spotify_service: SpotifyService = Depends(get_spotify),
):
    """Save a generated playlist to the listener's Spotify account."""
    description = req.description or f"A reading soundtrack for {req.title}"
    try:
        exported = await spotify_service.create_playlist(
            user_token=req.access_token,
            name=f"{req.title} — Reading Soundtrack",
            description=description,
            track_ids=req.track_ids,
        )
    except Exception as e:
        logger.error("[PLAYLIST-API] Export of %r failed: %s", req.title, e)
        raise HTTPException(status_code=502, detail=f"Spotify export failed: {e}")

    return ExportResponse(
        playlist_id=exported.playlist_id,
        url=exported.url,
        track_count=exported.track_count,
    )
