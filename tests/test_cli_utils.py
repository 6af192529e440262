"""Tests for CLI utility functions."""

from pathlib import Path

import pytest
from conftest import make_timeline

from lyricsync.cli.utils import detect_format, find_timeline, format_time, progress_bar
from lyricsync.core.models import LyricsFormat


class TestDetectFormat:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("song.lrc", LyricsFormat.LINE_TIMED),
            ("SONG.LRC", LyricsFormat.LINE_TIMED),
            ("song.yrc", LyricsFormat.WORD_TIMED),
        ],
        ids=["lrc", "upper-case", "yrc"],
    )
    def test_by_suffix(self, name, expected):
        assert detect_format(Path(name)) is expected

    def test_suffix_beats_content(self):
        assert detect_format(Path("song.lrc"), "[1000,500](0,500,0)x") is LyricsFormat.LINE_TIMED

    def test_word_timed_content(self):
        text = "[ti:Song]\n[1000,2000](0,500,0)你(500,500,0)好"
        assert detect_format(Path("song.txt"), text) is LyricsFormat.WORD_TIMED

    def test_tag_with_comma_is_not_word_timed(self):
        text = "[ti:One, Two]\n[00:01.00]hello"
        assert detect_format(Path("song.txt"), text) is LyricsFormat.LINE_TIMED

    def test_unknown_without_content(self):
        assert detect_format(Path("song.txt")) is LyricsFormat.LINE_TIMED


class TestFormatTime:
    @pytest.mark.parametrize(
        "seconds, expected",
        [(0, "00:00.00"), (12.5, "00:12.50"), (65.3, "01:05.30"), (59.999, "01:00.00")],
    )
    def test_format(self, seconds, expected):
        assert format_time(seconds) == expected

    def test_negative(self):
        assert format_time(-1.5) == "-00:01.50"


class TestFindTimeline:
    def setup_method(self):
        self.timelines = [
            make_timeline(id="aaaa-1111"),
            make_timeline(id="aabb-2222"),
            make_timeline(id="cccc-3333"),
        ]

    def test_by_position(self):
        assert find_timeline(self.timelines, "2").id == "aabb-2222"

    def test_position_out_of_range(self):
        assert find_timeline(self.timelines, "0") is None
        assert find_timeline(self.timelines, "4") is None

    def test_by_unique_prefix(self):
        assert find_timeline(self.timelines, "cc").id == "cccc-3333"

    def test_ambiguous_prefix(self):
        assert find_timeline(self.timelines, "aa") is None


class TestProgressBar:
    def test_half(self):
        assert progress_bar("abcd", 0.5) == "[bold cyan]ab[/bold cyan]cd"

    def test_clamped(self):
        assert progress_bar("ab", 2.0) == "[bold cyan]ab[/bold cyan]"
        assert progress_bar("ab", -1.0) == "[bold cyan][/bold cyan]ab"

    def test_markup_escaped(self):
        assert "\\[chorus]" in progress_bar("[chorus]", 0.0)
