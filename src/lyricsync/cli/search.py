"""lsync search command: query the lyrics providers."""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.table import Table

from lyricsync.core.config import load_config
from lyricsync.utils.console import console


def search(
    title: Annotated[str, typer.Argument(help="Track title.")],
    artist: Annotated[str, typer.Argument(help="Track artist.")] = "",
    duration: Annotated[
        Optional[float],
        typer.Option("--duration", "-d", help="Track duration in seconds, improves ranking."),
    ] = None,
    provider: Annotated[
        Optional[list[str]],
        typer.Option("--provider", "-p", help="Provider to query (repeatable)."),
    ] = None,
    save: Annotated[
        Optional[str],
        typer.Option("--save", help="Cache the results under this track id."),
    ] = None,
) -> None:
    """Search all providers concurrently and list ranked candidates."""
    from lyricsync.providers.base import SearchQuery
    from lyricsync.providers.search import CombinedSearch, build_providers
    from lyricsync.ranking.merge import with_quality
    from lyricsync.storage.cache import LyricsCache

    overrides: dict[str, object] = {}
    if provider:
        overrides["search.providers"] = provider
    config = load_config(**overrides)

    providers = build_providers(config.search)
    if not providers:
        console.print("[red]No usable providers configured.[/red]")
        raise typer.Exit(1)

    query = SearchQuery(title=title, artist=artist, duration=duration, track_id=save or "")
    with console.status(f"Searching {len(providers)} providers..."):
        outcome = asyncio.run(CombinedSearch(providers, config.search).search(query))

    for name, reason in outcome.failures.items():
        console.print(f"[yellow]{name} failed:[/yellow] {reason}")
    for name, reason in outcome.parse_failures.items():
        console.print(f"[yellow]{name} returned unparseable lyrics:[/yellow] {reason}")
    if not outcome.candidates:
        console.print("[red]No lyrics found.[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Results for {query.title} {query.artist}".strip())
    table.add_column("#", justify="right", style="dim")
    table.add_column("Relevance", justify="right")
    table.add_column("Source", style="bold cyan")
    table.add_column("Title", max_width=40, no_wrap=True)
    table.add_column("Artist", max_width=30, no_wrap=True)
    table.add_column("Lines", justify="right")
    table.add_column("Extras")
    for i, candidate in enumerate(outcome.candidates, 1):
        timeline = candidate.timeline
        extras = []
        if timeline.metadata.has_word_marks:
            extras.append("word")
        if timeline.metadata.has_translation:
            extras.append("trans")
        table.add_row(
            str(i),
            f"{candidate.relevance:.2f}",
            timeline.metadata.source.value,
            timeline.title,
            timeline.artist,
            str(len(timeline.lines)),
            ",".join(extras) or "-",
        )
    console.print(table)

    if save:
        cache = LyricsCache(config.cache.cache_dir)
        for candidate in outcome.candidates:
            cache.put(with_quality(candidate))
        console.print(f"[green]Cached {len(outcome.candidates)} candidates for[/green] {save}")
