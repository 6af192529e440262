"""Timed-text exporters, the inverses of the parsers in ``parser``."""

from __future__ import annotations

from lyricsync.core.models import Timeline


def _format_lrc_time(seconds: float) -> str:
    """Format seconds as an LRC timestamp (MM:SS.CC), rounded to centiseconds."""
    cs = max(0, round(seconds * 100))
    m, rem = divmod(cs, 6000)
    s, cs = divmod(rem, 100)
    return f"{m:02d}:{s:02d}.{cs:02d}"


def export_line_timed(timeline: Timeline) -> str:
    """Render a Timeline as LRC text.

    Lossy: word marks and translations are dropped. Header directives are
    written only when they carry a value.
    """
    out: list[str] = []
    if timeline.title:
        out.append(f"[ti:{timeline.title}]")
    if timeline.artist:
        out.append(f"[ar:{timeline.artist}]")
    if timeline.offset_ms != 0:
        out.append(f"[offset:{timeline.offset_ms:+d}]")
    if out:
        out.append("")

    for line in timeline.lines:
        # A space keeps text that starts with "[" from reading as another tag.
        sep = " " if line.text.startswith("[") else ""
        out.append(f"[{_format_lrc_time(line.start)}]{sep}{line.text}")

    return "\n".join(out) + "\n"


def export_word_timed(timeline: Timeline) -> str:
    """Render a Timeline as YRC text with character offsets relative to line start.

    Lines without word marks get a single group spanning the whole line.
    Character durations run to the next mark; the last one runs to the end
    of the line (the next line's start, or zero for the final line).
    """
    out: list[str] = []
    lines = timeline.lines
    for i, line in enumerate(lines):
        start_ms = round(line.start * 1000)
        end_ms = round(lines[i + 1].start * 1000) if i + 1 < len(lines) else start_ms
        line_dur = max(0, end_ms - start_ms)

        groups: list[str] = []
        if line.word_marks:
            marks = line.word_marks
            for j, mark in enumerate(marks):
                if mark.char_index >= len(line.text):
                    continue
                off = round(mark.time_offset * 1000)
                nxt = round(marks[j + 1].time_offset * 1000) if j + 1 < len(marks) else line_dur
                groups.append(f"({off},{max(0, nxt - off)},0){line.text[mark.char_index]}")
        else:
            groups.append(f"(0,{line_dur},0){line.text}")

        out.append(f"[{start_ms},{line_dur}]" + "".join(groups))

    return "\n".join(out) + "\n"
