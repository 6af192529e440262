"""Shared test fixtures."""

from pathlib import Path

import pytest

from lyricsync.core.models import Line, LyricsMetadata, Timeline, WordMark
from lyricsync.storage.cache import LyricsCache

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_lrc(fixtures_dir: Path) -> Path:
    return fixtures_dir / "sample.lrc"


@pytest.fixture
def sample_yrc(fixtures_dir: Path) -> Path:
    return fixtures_dir / "sample.yrc"


@pytest.fixture
def cache(tmp_path: Path) -> LyricsCache:
    return LyricsCache(tmp_path / "cache")


def make_timeline(
    track_id: str = "track-1",
    starts: tuple[float, ...] = (0.0, 5.0, 10.0),
    quality: int = 0,
    **kwargs,
) -> Timeline:
    """A small line-timed timeline with one line per start time."""
    lines = [Line(start=s, text=f"line {i}") for i, s in enumerate(starts)]
    return Timeline(
        track_id=track_id,
        metadata=LyricsMetadata(quality=quality),
        lines=lines,
        **kwargs,
    )


def marked_line(start: float, text: str, offsets: list[float]) -> Line:
    """A line whose i-th character is highlighted at ``offsets[i]``."""
    return Line(
        start=start,
        text=text,
        word_marks=[WordMark(time_offset=o, char_index=i) for i, o in enumerate(offsets)],
    )
