"""Sub-line highlight progress for karaoke-style rendering."""

from __future__ import annotations

from lyricsync.core.models import Line, WordMark

ASSUMED_LINE_DURATION = 3.0  # seconds, used for the last line without word marks


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _progress_with_marks(marks: list[WordMark], relative: float) -> float:
    highlighted = 0
    for i, mark in enumerate(marks):
        if relative >= mark.time_offset:
            highlighted = i + 1
        else:
            break

    total = len(marks)
    if highlighted >= total:
        return 1.0

    base = highlighted / total

    # Interpolate inside the character that is currently being sung.
    if highlighted == 0:
        return base
    current = marks[highlighted - 1]
    following = marks[highlighted]
    duration = following.time_offset - current.time_offset
    if duration <= 0:
        return base
    return base + _clamp((relative - current.time_offset) / duration) / total


def calculate_progress(
    line: Line,
    current_time: float,
    next_line_start: float | None = None,
    assumed_duration: float = ASSUMED_LINE_DURATION,
) -> float:
    """Fraction (0.0 to 1.0) of ``line`` that should be highlighted.

    Args:
        line: The active line.
        current_time: Offset-adjusted playback time in seconds.
        next_line_start: Start of the following line, if any.
        assumed_duration: Line length used when there is no next line.
    """
    relative = current_time - line.start
    if relative < 0:
        return 0.0

    if line.word_marks:
        return _progress_with_marks(line.word_marks, relative)

    if next_line_start is None:
        return _clamp(relative / assumed_duration)

    duration = next_line_start - line.start
    if duration <= 0:
        return 1.0
    return _clamp(relative / duration)
