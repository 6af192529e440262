"""String similarity and candidate relevance scoring."""

from __future__ import annotations

from typing import Sequence, TypeVar

from rapidfuzz.distance import Levenshtein

TITLE_WEIGHT = 0.6
ARTIST_WEIGHT = 0.4
DURATION_TOLERANCE = 10.0  # seconds
DURATION_BONUS = 0.10

T = TypeVar("T")


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings, counted in code points."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Similarity of two strings from 0.0 (unrelated) to 1.0 (equal).

    Comparison is case-insensitive and ignores surrounding whitespace.
    A string contained in the other scores at least 0.7, so variants like
    "Song (Remix)" stay close to "Song".
    """
    s1 = a.lower().strip()
    s2 = b.lower().strip()

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    longer, shorter = (s1, s2) if len(s1) > len(s2) else (s2, s1)
    if shorter in longer:
        return 0.7 + 0.3 * len(shorter) / len(longer)

    distance = levenshtein(s1, s2)
    return max(0.0, 1.0 - distance / max(len(s1), len(s2)))


def calculate_relevance(
    query_title: str,
    query_artist: str,
    result_title: str,
    result_artist: str,
    query_duration: float | None = None,
    result_duration: float | None = None,
) -> float:
    """Relevance of a search result to the query, from 0.0 to 1.0.

    Title counts 60%, artist 40%. When both durations are known and differ
    by less than 10 seconds, up to 0.10 is added (tapering linearly to zero
    at the tolerance) to separate live/radio-edit versions of a song.
    """
    score = (
        similarity(query_title, result_title) * TITLE_WEIGHT
        + similarity(query_artist, result_artist) * ARTIST_WEIGHT
    )

    if query_duration and result_duration and min(query_duration, result_duration) > 0:
        diff = abs(query_duration - result_duration)
        if diff < DURATION_TOLERANCE:
            score += DURATION_BONUS * (1.0 - diff / DURATION_TOLERANCE)

    return min(1.0, score)


def rank(items: Sequence[T], score_of) -> list[T]:
    """Sort descending by score; equal scores keep their input order."""
    return sorted(items, key=lambda item: -score_of(item))
