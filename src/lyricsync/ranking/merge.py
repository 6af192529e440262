"""Choosing the effective lyrics among cached candidates."""

from __future__ import annotations

from dataclasses import replace

from lyricsync.core.models import ScoredCandidate, Timeline
from lyricsync.ranking.similarity import rank


def quality_from_relevance(relevance: float) -> int:
    """Map a 0..1 relevance score to the 0..100 quality stored in metadata."""
    return max(0, min(100, round(relevance * 100)))


def with_quality(candidate: ScoredCandidate) -> Timeline:
    """The candidate's timeline stamped with its quality, ready for caching."""
    timeline = candidate.timeline
    return replace(
        timeline,
        metadata=replace(timeline.metadata, quality=quality_from_relevance(candidate.relevance)),
    )


def rank_candidates(candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
    """Best match first; ties keep first-seen order."""
    return rank(candidates, lambda c: c.relevance)


def select_effective(
    timelines: list[Timeline],
    override_id: str | None = None,
) -> Timeline | None:
    """Pick the timeline to display for a track.

    A user override wins if it still resolves to a cached timeline.
    Otherwise the highest ``metadata.quality`` wins; among equal qualities
    the first in ``timelines`` order is chosen.
    """
    if override_id is not None:
        for timeline in timelines:
            if timeline.id == override_id:
                return timeline

    best: Timeline | None = None
    for timeline in timelines:
        if best is None or timeline.metadata.quality > best.metadata.quality:
            best = timeline
    return best


def order_for_selection(
    timelines: list[Timeline],
    override_id: str | None = None,
) -> list[Timeline]:
    """Order cached timelines for a manual picker: override first, then by quality."""
    ordered = rank(timelines, lambda t: t.metadata.quality)
    if override_id is not None:
        pinned = [t for t in ordered if t.id == override_id]
        ordered = pinned + [t for t in ordered if t.id != override_id]
    return ordered
