"""lsync cache commands: inspect and curate cached lyrics."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from lyricsync.core.config import load_config
from lyricsync.utils.console import console

cache_app = typer.Typer(
    name="cache",
    help="Inspect and curate cached lyrics.",
    no_args_is_help=True,
)

TrackIdArg = Annotated[str, typer.Argument(help="Track id (for played files, the file path).")]
CacheDirOpt = Annotated[
    Optional[Path],
    typer.Option("--cache-dir", help="Override the lyrics cache directory."),
]


def _open(cache_dir: Optional[Path]):
    from lyricsync.storage.cache import LyricsCache

    config = load_config(**{"cache.cache_dir": cache_dir})
    return LyricsCache(config.cache.cache_dir)


def _resolve(cache, track_id: str, key: str):
    from lyricsync.cli.utils import find_timeline

    timelines = cache.get_ordered(track_id)
    if not timelines:
        console.print(f"[red]No cached lyrics for[/red] {track_id}")
        raise typer.Exit(1)
    timeline = find_timeline(timelines, key)
    if timeline is None:
        console.print(f"[red]No unique candidate matches[/red] {key}")
        raise typer.Exit(1)
    return timeline


@cache_app.command("list")
def list_cached(
    track_id: Annotated[
        Optional[str],
        typer.Argument(help="Track id. Omit to list every cached track."),
    ] = None,
    cache_dir: CacheDirOpt = None,
) -> None:
    """List cached tracks, or the candidates cached for one track."""
    cache = _open(cache_dir)

    if track_id is None:
        ids = cache.track_ids()
        if not ids:
            console.print("[dim]Cache is empty.[/dim]")
            return
        table = Table(title=f"Cached tracks ({len(ids)})")
        table.add_column("Track id", no_wrap=True)
        table.add_column("Candidates", justify="right")
        table.add_column("Override")
        for tid in ids:
            pinned = "yes" if cache.get_override(tid) else "-"
            table.add_row(tid, str(len(cache.get_all(tid))), pinned)
        console.print(table)
        return

    if cache.is_marked_no_lyrics(track_id):
        console.print("[yellow]Marked as having no lyrics.[/yellow]")
    timelines = cache.get_ordered(track_id)
    if not timelines:
        console.print(f"[dim]No cached lyrics for {track_id}[/dim]")
        return

    effective = cache.get(track_id)
    table = Table(title=track_id)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Id", style="dim")
    table.add_column("Quality", justify="right")
    table.add_column("Source", style="bold cyan")
    table.add_column("Title", max_width=40, no_wrap=True)
    table.add_column("Offset", justify="right")
    table.add_column("")
    for i, timeline in enumerate(timelines, 1):
        marker = ""
        if effective is not None and timeline.id == effective.id:
            marker = "[green]active[/green]"
        if timeline.metadata.is_user_selected:
            marker += " [magenta]pinned[/magenta]"
        table.add_row(
            str(i),
            timeline.id[:8],
            str(timeline.metadata.quality),
            timeline.metadata.source.value,
            timeline.title,
            f"{timeline.offset_ms:+d}",
            marker.strip(),
        )
    console.print(table)


@cache_app.command("select")
def select(
    track_id: TrackIdArg,
    candidate: Annotated[str, typer.Argument(help="List position (1-based) or id prefix.")],
    cache_dir: CacheDirOpt = None,
) -> None:
    """Pin a cached candidate as the lyrics to use for a track."""
    cache = _open(cache_dir)
    timeline = cache.set_override(_resolve(cache, track_id, candidate))
    console.print(f"[green]Pinned[/green] {timeline.id[:8]} ({timeline.metadata.source.value})")


@cache_app.command("clear-override")
def clear_override(track_id: TrackIdArg, cache_dir: CacheDirOpt = None) -> None:
    """Forget the pinned choice; the best-quality candidate is used again."""
    cache = _open(cache_dir)
    if cache.get_override(track_id) is None:
        console.print("[dim]No override set.[/dim]")
        return
    cache.clear_override(track_id)
    console.print("[green]Override cleared.[/green]")


@cache_app.command("offset")
def offset(
    track_id: TrackIdArg,
    delta: Annotated[int, typer.Argument(help="Milliseconds to add (negative allowed).")],
    cache_dir: CacheDirOpt = None,
) -> None:
    """Shift the active lyrics of a track by DELTA milliseconds."""
    cache = _open(cache_dir)
    timeline = cache.get(track_id)
    if timeline is None:
        console.print(f"[red]No cached lyrics for[/red] {track_id}")
        raise typer.Exit(1)
    adjusted = timeline.with_offset(timeline.offset_ms + delta)
    cache.put(adjusted)
    console.print(f"[green]Offset now[/green] {adjusted.offset_ms:+d} ms")


@cache_app.command("mark")
def mark(track_id: TrackIdArg, cache_dir: CacheDirOpt = None) -> None:
    """Mark a track as having no lyrics; it will not be searched again."""
    _open(cache_dir).mark_no_lyrics(track_id)
    console.print(f"[green]Marked[/green] {track_id}")


@cache_app.command("unmark")
def unmark(track_id: TrackIdArg, cache_dir: CacheDirOpt = None) -> None:
    """Remove a no-lyrics mark."""
    _open(cache_dir).unmark_no_lyrics(track_id)
    console.print(f"[green]Unmarked[/green] {track_id}")


@cache_app.command("import")
def import_lrc(
    track_id: TrackIdArg,
    path: Annotated[Path, typer.Argument(help="LRC file to import.")],
    title: Annotated[str, typer.Option("--title", help="Track title.")] = "",
    artist: Annotated[str, typer.Option("--artist", help="Track artist.")] = "",
    select_it: Annotated[
        bool,
        typer.Option("--select/--no-select", help="Pin the imported lyrics."),
    ] = True,
    cache_dir: CacheDirOpt = None,
) -> None:
    """Import a local LRC file as a candidate for a track."""
    from lyricsync.core.models import Track

    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1)

    cache = _open(cache_dir)
    timeline = cache.import_file(path, Track(id=track_id, title=title, artist=artist))
    if timeline is None:
        console.print(f"[red]No timed lines found in[/red] {path}")
        raise typer.Exit(1)
    if select_it:
        cache.set_override(timeline)
    console.print(f"[green]Imported[/green] {len(timeline.lines)} lines as {timeline.id[:8]}")


@cache_app.command("export")
def export_lrc(
    track_id: TrackIdArg,
    path: Annotated[Path, typer.Argument(help="Destination .lrc file.")],
    candidate: Annotated[
        Optional[str],
        typer.Option("--candidate", "-c", help="List position or id prefix. Default: active."),
    ] = None,
    cache_dir: CacheDirOpt = None,
) -> None:
    """Export cached lyrics for a track as LRC."""
    from lyricsync.storage.cache import LyricsCache

    cache = _open(cache_dir)
    timeline = _resolve(cache, track_id, candidate) if candidate else cache.get(track_id)
    if timeline is None:
        console.print(f"[red]No cached lyrics for[/red] {track_id}")
        raise typer.Exit(1)
    saved = LyricsCache.export_file(timeline, path)
    console.print(f"[green]Saved:[/green] {saved}")
