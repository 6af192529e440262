"""Active-line lookup over a sorted Timeline."""

from __future__ import annotations

from bisect import bisect_right
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lyricsync.core.models import Timeline


def locate_line(timeline: Timeline, adjusted_time: float) -> int | None:
    """Return the index of the line active at ``adjusted_time``.

    ``adjusted_time`` is playback time plus the timeline offset. The active
    line is the rightmost one whose start is <= the time, so a line is
    active from exactly its start. Lines with equal start times resolve to
    the last of them.

    Returns:
        The line index, or None if there are no lines or the time precedes
        the first line.
    """
    lines = timeline.lines
    if not lines:
        return None
    index = bisect_right(lines, adjusted_time, key=lambda ln: ln.start) - 1
    return index if index >= 0 else None


def adjusted_time(timeline: Timeline, playback_time: float) -> float:
    """Playback time corrected by the timeline's offset."""
    return playback_time + timeline.offset_ms / 1000.0
