"""Logging configuration for LyricSync."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from lyricsync.utils.console import console


def setup_logging(
    level: str = "WARNING", log_file: Optional[Path] = None, verbose: bool = False
) -> logging.Logger:
    """Route the ``lyricsync`` loggers through rich, optionally also to a file."""

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger("lyricsync")
    logger.setLevel(logging.DEBUG if verbose else getattr(logging, level.upper()))
    logger.handlers.clear()

    handler = RichHandler(console=console, show_path=verbose, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    return logger
