"""Lexical denylist for candidate tracks.

Terms are matched as lower-cased substrings of " name artist album ", so keep
them specific enough not to knock out legitimate titles. Short acronyms carry
their surrounding spaces (" edm ") so they only match as whole words.
"""

from __future__ import annotations

from services.book_analysis import BookAnalysis

# Never reading music, whatever the book.
BASE_BLACKLIST = frozenset({
    "comedy",
    "stand-up",
    "podcast",
    "audiobook",
    "spoken word",
    "kids",
    "children",
    "nursery rhyme",
    "lullaby",
    "christmas",
    "holiday",
    "karaoke",
})

# Added for tragic or traumatic subject matter.
SOMBER_BLACKLIST = frozenset({
    "party",
    "dance",
    "club",
    "upbeat",
    "celebration",
    "festive",
    "workout",
    " edm ",
    "dubstep",
    "hardstyle",
})

# Added whenever the analysis flags sensitive topics. Overlaps the somber
# set and adds upbeat regional genres that slip past a generic "party" term.
STRICT_BLACKLIST = frozenset({
    "party",
    "dance",
    "club",
    " edm ",
    "dubstep",
    "hardstyle",
    "drum and bass",
    "dance pop",
    "reggaeton",
    "dancehall",
    "soca",
    "bhangra",
    "cumbia",
    "kuduro",
    "baile funk",
    "k-pop",
    "j-pop",
    "eurodance",
})

SOMBER_GRAVITIES = frozenset({"tragic", "traumatic"})


def build_blacklist(analysis: BookAnalysis) -> frozenset[str]:
    """Union of the base list, explicit exclusions and sensitivity-derived terms."""
    terms: set[str] = set(BASE_BLACKLIST)
    if analysis.subject_gravity in SOMBER_GRAVITIES:
        terms |= SOMBER_BLACKLIST
    if analysis.sensitive_topics:
        terms |= STRICT_BLACKLIST
    terms |= {term.strip().lower() for term in analysis.explicit_exclusions if term and term.strip()}

    return frozenset(terms)


def matching_term(text: str, blacklist: frozenset[str]) -> str | None:
    """Return the first blacklist term found in ``text``, if any."""
    lowered = f" {text.lower()} "
    for term in sorted(blacklist):
        if term in lowered:
            return term
    return None
