"""Gemini book analyst.

Uses the google-genai SDK with Gemini 2.5 Flash to read a book's title,
author and description and describe the music that fits it: mood words,
emotional weight, subject gravity, sensitive topics, setting, period,
artists, instruments, genres and atmosphere.

The model answers in JSON. Whatever comes back (or fails to) goes through
``normalize_analysis``, so callers always receive a usable BookAnalysis.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from google import genai
from google.genai import types

from services.book_analysis import BookAnalysis, normalize_analysis

logger = logging.getLogger(__name__)

MODEL_NAME = "gemini-2.5-flash"

ANALYSIS_PROMPT = """\
Analyze this book and describe the SPECIFIC music that would make the perfect \
reading soundtrack for it.

Book Title: {title}
Author: {author}
Description: {description}

Respond with ONLY a JSON object in exactly this shape:
{{
  "mood": ["most relevant emotion word", "second", "third"],
  "emotionalWeight": "light | medium | heavy | devastating",
  "subjectGravity": "lighthearted | contemplative | serious | tragic | traumatic",
  "sensitiveTopics": ["e.g. genocide, war, abuse, suicide; empty if none"],
  "geographicSetting": "country or region the book is set in, or null",
  "timePeriod": "time period the book is set in, or null",
  "suggestedArtists": ["best fitting artist first"],
  "instrumentPalette": ["instrument1", "instrument2", "instrument3"],
  "genreSuggestions": ["specific genre1", "specific genre2", "specific genre3"],
  "atmosphericDescriptors": ["descriptor1", "descriptor2", "descriptor3"]
}}

Be SPECIFIC, not generic. Name real artists, instruments and regional music \
traditions that match the book's setting and themes. For example, for "The \
Forty Rules of Love" (Rumi, Sufism, 13th century Konya) good answers are \
genres like "turkish classical" and "sema music", instruments like "ney \
flute", "oud" and "bendir", and artists like "Kudsi Erguner" and "Mercan \
Dede". For "Giovanni's Room" (1950s Paris) think "cool jazz", "piano", \
"double bass", "Chet Baker", "Bill Evans".

Flag sensitiveTopics honestly. A book about genocide or war must never be \
paired with upbeat or celebratory music."""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def build_prompt(title: str, author: str | None = None, description: str | None = None) -> str:
    return ANALYSIS_PROMPT.format(
        title=title,
        author=author or "Unknown",
        description=description or "No description available",
    )


def parse_analysis_text(text: str | None) -> dict[str, Any]:
    """Strip markdown fences and decode the model's JSON. Raises ValueError on junk."""
    if not text:
        raise ValueError("Empty response from Gemini")
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class GeminiAnalyst:
    """Stateless book analysis on top of Gemini 2.5 Flash."""

    def __init__(self, api_key: str, model: str = MODEL_NAME):
        # genai.Client refuses an empty key; without one every book gets the defaults.
        self.client = genai.Client(api_key=api_key) if api_key else None
        self.model = model

    def _build_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            response_mime_type="application/json",
            temperature=0.4,
        )

    async def analyze(
        self,
        title: str,
        author: str | None = None,
        description: str | None = None,
    ) -> BookAnalysis:
        """Analyze a book. Falls back to the default analysis on any failure."""
        if self.client is None:
            logger.warning("[GEMINI] No API key configured, using default analysis for %r", title)
            return normalize_analysis({})

        logger.info("[GEMINI] Analyzing %r by %s", title, author or "unknown author")
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=build_prompt(title, author, description),
                config=self._build_config(),
            )
            raw = parse_analysis_text(response.text)
        except Exception as e:
            logger.error("[GEMINI] Analysis failed for %r, using defaults: %s", title, e)
            return normalize_analysis({})

        analysis = normalize_analysis(raw)
        logger.info(
            "[GEMINI] Analysis: mood=%s weight=%s gravity=%s artists=%s",
            analysis.mood,
            analysis.emotional_weight,
            analysis.subject_gravity,
            analysis.suggested_artists,
        )
        return analysis
