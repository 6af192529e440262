"""Timed-text parsers.

Two independent pure functions turn provider text into a Timeline:

- ``parse_line_timed`` for LRC-style text, one timestamp per line:
  ``[01:02.50]content`` (2-digit fraction = centiseconds, 3-digit = ms)
- ``parse_word_timed`` for YRC-style text, one timestamp per character:
  ``[lineStartMs,lineDurMs](charStartMs,charDurMs,flags)c(...)c``

Malformed lines are skipped, never fatal. A parse that yields no lines
returns None ("no lyrics"), it does not raise.
"""

from __future__ import annotations

import re
from dataclasses import replace

from lyricsync.core.exceptions import ParseError
from lyricsync.core.models import (
    Line,
    LyricsFormat,
    LyricsMetadata,
    RawLyrics,
    Timeline,
    WordMark,
)

# One or more leading timestamps, then the line content.
# "[00:12.30][01:40.00]Chorus" yields two lines with the same text.
_TIMESTAMP_RE = re.compile(r"\[(\d{2,}):(\d{2})\.(\d{2,3})\]")
_TIMESTAMPS_PREFIX_RE = re.compile(r"^((?:\[\d{2,}:\d{2}\.\d{2,3}\])+)(.*)$")

# Metadata directives. Later directives overwrite earlier ones.
_TITLE_RE = re.compile(r"^\[ti:(.*)\]$")
_ARTIST_RE = re.compile(r"^\[ar:(.*)\]$")
_OFFSET_RE = re.compile(r"^\[offset:\s*([+-]?\d+)\s*\]$")

_YRC_LINE_RE = re.compile(r"^\[(\d+),(\d+)\](.*)$")
# A timed group: the characters up to the next "(" belong to it.
_YRC_GROUP_RE = re.compile(r"\((\d+),(\d+),\d+\)([^(]+)")


def _fraction_to_ms(frac: str) -> int:
    """2-digit fractions are centiseconds, 3-digit are milliseconds."""
    return int(frac) * 10 if len(frac) == 2 else int(frac)


def _stamp_to_seconds(mm: str, ss: str, frac: str) -> float:
    return int(mm) * 60 + int(ss) + _fraction_to_ms(frac) / 1000.0


def parse_line_timed(
    text: str,
    track_id: str,
    metadata: LyricsMetadata | None = None,
) -> Timeline | None:
    """Parse line-timed (LRC) text into a Timeline.

    Args:
        text: LRC text. Unrecognised lines are ignored.
        track_id: Identifier of the track these lyrics belong to.
        metadata: Metadata to attach. Defaults to an empty record.

    Returns:
        Timeline with lines sorted by start time (stable), or None when no
        timestamped line with content was found.
    """
    title = ""
    artist = ""
    offset = 0
    lines: list[Line] = []

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = _TITLE_RE.match(line)
        if match:
            title = match.group(1).strip()
            continue
        match = _ARTIST_RE.match(line)
        if match:
            artist = match.group(1).strip()
            continue
        match = _OFFSET_RE.match(line)
        if match:
            offset = int(match.group(1))
            continue

        match = _TIMESTAMPS_PREFIX_RE.match(line)
        if not match:
            continue
        content = match.group(2).strip()
        if not content:
            continue
        for stamp in _TIMESTAMP_RE.finditer(match.group(1)):
            lines.append(Line(start=_stamp_to_seconds(*stamp.groups()), text=content))

    if not lines:
        return None

    # list.sort is stable: equal start times keep file order
    lines.sort(key=lambda ln: ln.start)

    return Timeline(
        track_id=track_id,
        title=title,
        artist=artist,
        metadata=metadata if metadata is not None else LyricsMetadata(),
        lines=lines,
        offset_ms=offset,
    )


def _parse_yrc_line(line: str, absolute_offsets: bool) -> Line | None:
    match = _YRC_LINE_RE.match(line)
    if not match:
        return None
    line_start_ms = int(match.group(1))

    chars: list[str] = []
    marks: list[WordMark] = []
    for group in _YRC_GROUP_RE.finditer(match.group(3)):
        start_ms = int(group.group(1))
        dur_ms = int(group.group(2))
        if absolute_offsets:
            start_ms = max(0, start_ms - line_start_ms)
        piece = group.group(3)
        # Multi-character groups (whole words) are spread evenly over the
        # group's duration so every character still gets its own mark.
        step = dur_ms / len(piece)
        for i, ch in enumerate(piece):
            chars.append(ch)
            marks.append(
                WordMark(time_offset=(start_ms + i * step) / 1000.0, char_index=len(chars) - 1)
            )

    content = "".join(chars)
    if not content.strip():
        return None
    return Line(start=line_start_ms / 1000.0, text=content, word_marks=marks)


def parse_word_timed(
    text: str,
    track_id: str,
    metadata: LyricsMetadata | None = None,
    absolute_offsets: bool = False,
) -> Timeline | None:
    """Parse word-timed (YRC) text into a Timeline with per-character marks.

    Character indices are assigned from the running character count since
    the format carries no index field.

    Args:
        text: YRC text, one lyric line per physical line.
        track_id: Identifier of the track these lyrics belong to.
        metadata: Metadata to attach; ``has_word_marks`` is set on a copy.
        absolute_offsets: Character start times are absolute track times
            (as served by NetEase) rather than offsets from the line start.

    Returns:
        Timeline sorted by line start, or None if no line had characters.
    """
    lines: list[Line] = []
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parsed = _parse_yrc_line(line, absolute_offsets)
        if parsed is not None:
            lines.append(parsed)

    if not lines:
        return None

    lines.sort(key=lambda ln: ln.start)

    base = metadata if metadata is not None else LyricsMetadata()
    updated = replace(base, has_word_marks=any(ln.word_marks for ln in lines))

    return Timeline(track_id=track_id, metadata=updated, lines=lines)


def parse_raw(
    raw: RawLyrics,
    track_id: str,
    metadata: LyricsMetadata | None = None,
    absolute_offsets: bool = False,
) -> Timeline | None:
    """Dispatch tagged provider text to the matching parser."""
    if raw.format is LyricsFormat.LINE_TIMED:
        return parse_line_timed(raw.text, track_id, metadata)
    if raw.format is LyricsFormat.WORD_TIMED:
        return parse_word_timed(raw.text, track_id, metadata, absolute_offsets=absolute_offsets)
    raise ParseError(f"Unsupported lyrics format: {raw.format!r}")


def attach_translation(timeline: Timeline, translation_text: str) -> Timeline:
    """Pair line-timed translation text with the timeline's lines.

    A translation line is attached to every original line whose start time
    matches to the centisecond. Unmatched lines are left untouched.
    """
    translated = parse_line_timed(translation_text, timeline.track_id)
    if translated is None:
        return timeline

    by_time = {round(ln.start * 100): ln.text for ln in translated.lines}
    merged = [
        replace(ln, translation=by_time.get(round(ln.start * 100), ln.translation))
        for ln in timeline.lines
    ]
    has_translation = any(ln.translation for ln in merged)
    return replace(
        timeline,
        lines=merged,
        metadata=replace(
            timeline.metadata,
            has_translation=timeline.metadata.has_translation or has_translation,
        ),
    )
