"""Canonical book analysis and the normalizer that produces it.

The generative model answers in free-form JSON: keys go missing, enums come
back misspelled, lists arrive as comma strings. ``normalize_analysis`` turns
any of that (or nothing at all) into a ``BookAnalysis`` whose fields are all
present, so nothing downstream has to ask whether a field exists.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

EmotionalWeight = Literal["light", "medium", "heavy", "devastating"]
SubjectGravity = Literal["lighthearted", "contemplative", "serious", "tragic", "traumatic"]

EMOTIONAL_WEIGHTS: tuple[str, ...] = ("light", "medium", "heavy", "devastating")
SUBJECT_GRAVITIES: tuple[str, ...] = ("lighthearted", "contemplative", "serious", "tragic", "traumatic")

DEFAULT_EMOTIONAL_WEIGHT: EmotionalWeight = "medium"
DEFAULT_SUBJECT_GRAVITY: SubjectGravity = "contemplative"


class BookAnalysis(BaseModel):
    """Musical reading of a book. Every collection defaults to empty."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mood: list[str] = Field(default_factory=list)
    emotional_weight: EmotionalWeight = DEFAULT_EMOTIONAL_WEIGHT
    subject_gravity: SubjectGravity = DEFAULT_SUBJECT_GRAVITY
    sensitive_topics: set[str] = Field(default_factory=set)
    geographic_setting: str | None = None
    time_period: str | None = None
    suggested_artists: list[str] = Field(default_factory=list)
    instrument_palette: list[str] = Field(default_factory=list)
    genre_suggestions: list[str] = Field(default_factory=list)
    atmospheric_descriptors: list[str] = Field(default_factory=list)
    explicit_exclusions: set[str] = Field(default_factory=set)

    @property
    def is_sensitive(self) -> bool:
        return bool(self.sensitive_topics)


# Canonical field -> accepted input keys, first match wins. The trailing
# entries are the loose keys older prompts asked the model for.
_FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "mood": ("mood", "moods"),
    "emotional_weight": ("emotional_weight", "emotionalWeight"),
    "subject_gravity": ("subject_gravity", "subjectGravity"),
    "sensitive_topics": ("sensitive_topics", "sensitiveTopics"),
    "geographic_setting": ("geographic_setting", "geographicSetting", "setting_place"),
    "time_period": ("time_period", "timePeriod", "setting_era"),
    "suggested_artists": ("suggested_artists", "suggestedArtists", "artists"),
    "instrument_palette": ("instrument_palette", "instrumentPalette", "instruments"),
    "genre_suggestions": ("genre_suggestions", "genreSuggestions", "music_genres", "genres"),
    "atmospheric_descriptors": ("atmospheric_descriptors", "atmosphericDescriptors", "vibes"),
    "explicit_exclusions": ("explicit_exclusions", "explicitExclusions", "exclusions"),
}

# Placeholder values the model uses when it has nothing to say.
_EMPTY_MARKERS = {"", "none", "unknown", "n/a", "null"}


def _lookup(raw: Mapping[str, Any], field: str) -> Any:
    for key in _FIELD_KEYS[field]:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _as_text(value: Any) -> str | None:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return None
    text = str(value).strip()
    if text.lower() in _EMPTY_MARKERS:
        return None
    return text


def _as_list(value: Any) -> list[str]:
    """Coerce a string, scalar or iterable into an ordered, deduplicated list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        items: list[Any] = value.split(",") if "," in value else [value]
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        items = [value]

    result: list[str] = []
    seen: set[str] = set()
    for item in items:
        text = _as_text(item)
        if text is None:
            continue
        key = text.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(text)
    return result


def _as_lowered_set(value: Any) -> set[str]:
    return {item.lower() for item in _as_list(value)}


def _as_choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    text = _as_text(value)
    if text is None:
        return default
    text = text.lower()
    return text if text in choices else default


def normalize_analysis(raw: Any) -> BookAnalysis:
    """Build a canonical ``BookAnalysis`` from any payload. Never raises."""
    if isinstance(raw, BookAnalysis):
        return raw
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("[ANALYSIS] Expected a mapping, got %s; using defaults", type(raw).__name__)
        return BookAnalysis()

    return BookAnalysis(
        mood=_as_list(_lookup(raw, "mood")),
        emotional_weight=_as_choice(
            _lookup(raw, "emotional_weight"), EMOTIONAL_WEIGHTS, DEFAULT_EMOTIONAL_WEIGHT
        ),
        subject_gravity=_as_choice(
            _lookup(raw, "subject_gravity"), SUBJECT_GRAVITIES, DEFAULT_SUBJECT_GRAVITY
        ),
        sensitive_topics=_as_lowered_set(_lookup(raw, "sensitive_topics")),
        geographic_setting=_as_text(_lookup(raw, "geographic_setting")),
        time_period=_as_text(_lookup(raw, "time_period")),
        suggested_artists=_as_list(_lookup(raw, "suggested_artists")),
        instrument_palette=_as_list(_lookup(raw, "instrument_palette")),
        genre_suggestions=_as_list(_lookup(raw, "genre_suggestions")),
        atmospheric_descriptors=_as_list(_lookup(raw, "atmospheric_descriptors")),
        explicit_exclusions=_as_lowered_set(_lookup(raw, "explicit_exclusions")),
    )
