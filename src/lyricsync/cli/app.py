"""LyricSync CLI entry point."""

from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv

from lyricsync import __version__
from lyricsync.cli.cache import cache_app
from lyricsync.cli.parse import parse
from lyricsync.cli.play import play
from lyricsync.cli.search import search

app = typer.Typer(
    name="lsync",
    help="LyricSync: synchronized lyrics for whatever is playing.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lsync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)."),
    ] = None,
    log_file: Annotated[
        Optional[Path],
        typer.Option("--log-file", help="Also write logs to this file."),
    ] = None,
) -> None:
    """LyricSync: synchronized lyrics for whatever is playing."""
    from lyricsync.core.config import load_config
    from lyricsync.utils.logging import setup_logging

    # Does not override existing env vars, so shell exports (LSYNC_*) take precedence
    load_dotenv(override=False)
    config = load_config(log_level=log_level)
    setup_logging(config.log_level, log_file=log_file, verbose=verbose)


app.command("parse")(parse)
app.command("search")(search)
app.command("play")(play)
app.add_typer(cache_app, name="cache")
