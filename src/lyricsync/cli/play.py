"""lsync play command: play audio with mpv and follow its lyrics live."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Group
from rich.live import Live
from rich.text import Text

from lyricsync.core.config import LyricSyncConfig, load_config
from lyricsync.utils.console import console

_CONTEXT_LINES = 2


def _render(engine) -> Group:
    """The active line with a little context above and below."""
    from lyricsync.cli.utils import progress_bar
    from lyricsync.core.models import TrackType

    track = engine.track
    hint = TrackType.detect(track).display_hint
    title = f"[bold]{track.title}[/bold] [dim]{track.artist}[/dim]"
    if hint:
        title += f" [magenta]({hint})[/magenta]"
    rows = [Text.from_markup(title), Text("")]

    timeline = engine.timeline
    if timeline is None:
        message = engine.lyrics_state.message or "Waiting for playback..."
        rows.append(Text(message, style="dim"))
        return Group(*rows)

    index = engine.line_index
    centre = 0 if index is None else index
    start = max(0, centre - _CONTEXT_LINES)
    for i in range(start, min(len(timeline.lines), centre + _CONTEXT_LINES + 1)):
        line = timeline.lines[i]
        if i == index:
            rows.append(Text.from_markup(progress_bar(line.text, engine.progress)))
        else:
            rows.append(Text(line.text, style="dim"))
        if line.translation:
            rows.append(Text(f"  {line.translation}", style="italic dim"))
    rows.append(Text(""))
    rows.append(
        Text(
            f"{timeline.metadata.source.value}  offset {timeline.offset_ms:+d} ms",
            style="dim",
        )
    )
    return Group(*rows)


async def _follow(path: Path, config: LyricSyncConfig, offset: int, video: bool) -> None:
    from lyricsync.core import events
    from lyricsync.core.engine import LyricsEngine
    from lyricsync.player.mpv_player import MpvSource
    from lyricsync.providers.search import CombinedSearch, build_providers
    from lyricsync.storage.cache import LyricsCache

    source = MpvSource(config.player, video=video)
    engine = LyricsEngine(
        cache=LyricsCache(config.cache.cache_dir),
        searcher=CombinedSearch(build_providers(config.search), config.search),
        source=source,
        config=config.sync,
    )

    if offset:
        applied: set[str] = set()

        def apply_offset(event) -> None:
            # Applied once per newly loaded timeline, on top of any cached offset.
            if event.value is not None and event.value.id not in applied:
                applied.add(event.value.id)
                engine.adjust_offset(offset)

        engine.feed.subscribe(apply_offset, events.TIMELINE)

    await engine.start()
    try:
        source.play(path)
        with Live(_render(engine), console=console, refresh_per_second=20) as live:
            while not source.finished.is_set():
                live.update(_render(engine))
                await asyncio.sleep(1 / 20)
    finally:
        await engine.stop()


def play(
    path: Annotated[
        Path,
        typer.Argument(help="Audio or video file to play."),
    ],
    offset: Annotated[
        int,
        typer.Option("--offset", help="Extra lyrics offset in milliseconds (positive = earlier)."),
    ] = 0,
    video: Annotated[
        bool,
        typer.Option("--video/--no-video", help="Show the video window."),
    ] = False,
    cache_dir: Annotated[
        Optional[Path],
        typer.Option("--cache-dir", help="Override the lyrics cache directory."),
    ] = None,
) -> None:
    """Play a file with mpv and show synchronized lyrics.

    Lyrics come from the cache when available, otherwise every configured
    provider is searched and the best match is used.
    """
    from lyricsync.player.mpv_player import check_mpv

    if not path.is_file():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1)
    if not check_mpv():
        console.print("[red]mpv not found.[/red] Install it with: brew install mpv")
        raise typer.Exit(1)

    config = load_config(**{"cache.cache_dir": cache_dir})
    try:
        asyncio.run(_follow(path, config, offset, video))
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")
