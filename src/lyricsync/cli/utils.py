"""Shared CLI utilities."""

from __future__ import annotations

import re
from pathlib import Path

from lyricsync.core.models import LyricsFormat, Timeline

_FORMAT_BY_SUFFIX = {
    ".lrc": LyricsFormat.LINE_TIMED,
    ".yrc": LyricsFormat.WORD_TIMED,
}
_YRC_HEAD_RE = re.compile(r"^\[\d+,\d+\]", re.MULTILINE)


def detect_format(path: Path, text: str | None = None) -> LyricsFormat:
    """Guess the timed-text format from the file suffix, then from the content."""
    fmt = _FORMAT_BY_SUFFIX.get(path.suffix.lower())
    if fmt is not None:
        return fmt
    if text is not None and _YRC_HEAD_RE.search(text):
        return LyricsFormat.WORD_TIMED
    return LyricsFormat.LINE_TIMED


def format_time(seconds: float) -> str:
    """Render seconds as ``MM:SS.cc``."""
    sign = "-" if seconds < 0 else ""
    cs = round(abs(seconds) * 100)
    minutes, cs = divmod(cs, 6000)
    return f"{sign}{minutes:02d}:{cs // 100:02d}.{cs % 100:02d}"


def find_timeline(timelines: list[Timeline], key: str) -> Timeline | None:
    """Resolve a 1-based list position or a timeline id prefix."""
    if key.isdigit():
        index = int(key) - 1
        return timelines[index] if 0 <= index < len(timelines) else None
    matches = [t for t in timelines if t.id.startswith(key)]
    return matches[0] if len(matches) == 1 else None


def progress_bar(text: str, progress: float) -> str:
    """Rich markup highlighting the sung part of ``text``."""
    from rich.markup import escape

    cut = round(len(text) * max(0.0, min(1.0, progress)))
    return f"[bold cyan]{escape(text[:cut])}[/bold cyan]{escape(text[cut:])}"
