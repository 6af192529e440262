"""lsync parse command: inspect a local LRC/YRC file."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from lyricsync.utils.console import console


def parse(
    path: Annotated[
        Path,
        typer.Argument(help="Timed lyrics file (.lrc or .yrc)."),
    ],
    at: Annotated[
        Optional[float],
        typer.Option("--at", "-t", help="Show the active line at this playback time (seconds)."),
    ] = None,
    export: Annotated[
        Optional[Path],
        typer.Option("--export", "-o", help="Write the parsed lyrics back out (.lrc or .yrc)."),
    ] = None,
) -> None:
    """Parse a timed lyrics file and print its lines."""
    from lyricsync.cli.utils import detect_format, format_time, progress_bar
    from lyricsync.core.models import LyricsFormat, RawLyrics
    from lyricsync.sync.locator import adjusted_time, locate_line
    from lyricsync.sync.progress import calculate_progress
    from lyricsync.timedtext.export import export_line_timed, export_word_timed
    from lyricsync.timedtext.parser import parse_raw

    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1)

    text = path.read_text(encoding="utf-8")
    fmt = detect_format(path, text)
    timeline = parse_raw(RawLyrics(text, fmt, str(path)), track_id=str(path.resolve()))
    if timeline is None:
        console.print(f"[red]No timed lines found in[/red] {path}")
        raise typer.Exit(1)

    header = " - ".join(part for part in (timeline.title, timeline.artist) if part)
    table = Table(title=header or path.name)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Start", style="bold cyan")
    table.add_column("Text")
    table.add_column("Marks", justify="right")
    for i, line in enumerate(timeline.lines, 1):
        text_cell = line.text
        if line.translation:
            text_cell += f"\n[dim]{line.translation}[/dim]"
        table.add_row(str(i), format_time(line.start), text_cell, str(len(line.word_marks or [])))
    console.print(table)
    console.print(
        f"[dim]{len(timeline.lines)} lines, format {fmt.value}, "
        f"offset {timeline.offset_ms:+d} ms[/dim]"
    )

    if at is not None:
        t = adjusted_time(timeline, at)
        index = locate_line(timeline, t)
        if index is None:
            console.print(f"[yellow]No line is active at {format_time(at)}[/yellow]")
        else:
            line = timeline.lines[index]
            lines = timeline.lines
            next_start = lines[index + 1].start if index + 1 < len(lines) else None
            progress = calculate_progress(line, t, next_start)
            console.print(f"[bold]#{index + 1}[/bold] {progress_bar(line.text, progress)}")
            console.print(f"[dim]progress {progress:.0%}[/dim]")

    if export is not None:
        if export.suffix.lower() == f".{LyricsFormat.WORD_TIMED.value}":
            body = export_word_timed(timeline)
        else:
            body = export_line_timed(timeline)
        export.parent.mkdir(parents=True, exist_ok=True)
        export.write_text(body, encoding="utf-8")
        console.print(f"[green]Saved:[/green] {export}")
