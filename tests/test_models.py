"""Tests for core data models."""

import pytest

from lyricsync.core.models import (
    ErrorKind,
    Line,
    LyricsMetadata,
    LyricsState,
    LyricsStatus,
    NotFoundReason,
    PlaybackState,
    PlaybackStatus,
    Timeline,
    Track,
    TrackType,
)


def test_empty_track():
    track = Track.empty()
    assert track.is_empty
    assert not Track(id="a", title="", artist="").is_empty
    assert not Track(id="", title="Song", artist="").is_empty


def test_track_helpers():
    track = Track(id="1", title="AC/DC: Live", artist="Some\\One")
    assert track.search_query == "AC/DC: Live Some\\One"
    assert track.safe_file_name == "AC-DC- Live - Some-One"


@pytest.mark.parametrize(
    "title, artist, duration, expected",
    [
        ("Interlude", "X", 60, TrackType.INSTRUMENTAL),
        ("晴天 (伴奏)", "周杰伦", 269, TrackType.INSTRUMENTAL),
        ("Talk", "X", 3600, TrackType.PODCAST),
        ("Daily Podcast", "X", 600, TrackType.PODCAST),
        ("Song (Live)", "X", 240, TrackType.LIVE),
        ("Song (Club Remix)", "X", 240, TrackType.REMIX),
        ("Song", "Band", 240, TrackType.NORMAL),
    ],
)
def test_track_type_detect(title, artist, duration, expected):
    track = Track(id="t", title=title, artist=artist, duration=duration)
    assert TrackType.detect(track) is expected


def test_track_type_hint():
    assert TrackType.NORMAL.display_hint is None
    assert TrackType.LIVE.display_hint == "Live version"


def test_timeline_defaults():
    tl = Timeline(track_id="t")
    assert tl.lines == []
    assert tl.offset_ms == 0
    assert tl.metadata == LyricsMetadata()
    assert tl.id != Timeline(track_id="t").id


def test_timeline_current_and_next_line():
    tl = Timeline(
        track_id="t",
        lines=[Line(0.0, "a"), Line(5.0, "b"), Line(10.0, "c")],
        offset_ms=1000,
    )
    # 4.0 s of playback + 1.0 s offset lands on "b"
    assert tl.current_line(4.0).text == "b"
    assert tl.next_line(4.0).text == "c"
    assert tl.next_line(20.0) is None
    assert tl.current_line(-2.0) is None


def test_with_offset_keeps_identity():
    tl = Timeline(track_id="t", lines=[Line(1.0, "a")])
    shifted = tl.with_offset(-250)
    assert shifted.offset_ms == -250
    assert shifted.offset_seconds == -0.25
    assert shifted.id == tl.id
    assert tl.offset_ms == 0


class TestPlaybackState:
    def test_defaults(self):
        state = PlaybackState()
        assert state.status is PlaybackStatus.STOPPED
        assert not state.is_playing

    def test_position_extrapolates_while_playing(self):
        state = PlaybackState(PlaybackStatus.PLAYING, position=10.0, observed_at=100.0)
        assert state.current_position(now=102.5) == pytest.approx(12.5)

    def test_position_frozen_when_paused(self):
        state = PlaybackState(PlaybackStatus.PAUSED, position=10.0, observed_at=100.0)
        assert state.current_position(now=150.0) == 10.0


class TestLyricsState:
    def test_retry_allowed_only_for_recoverable_states(self):
        assert LyricsState.not_found(NotFoundReason.SEARCH_FAILED).can_retry
        assert LyricsState.failed(ErrorKind.NETWORK).can_retry
        assert not LyricsState.not_found(NotFoundReason.USER_MARKED).can_retry
        assert not LyricsState.failed(ErrorKind.PARSE).can_retry
        assert not LyricsState.found().can_retry

    def test_mark_no_lyrics_only_after_failed_search(self):
        assert LyricsState.not_found(NotFoundReason.SEARCH_FAILED).can_mark_no_lyrics
        assert not LyricsState.searching().can_mark_no_lyrics

    def test_messages(self):
        assert LyricsState.idle().message == ""
        assert LyricsState.searching().status is LyricsStatus.SEARCHING
        assert "Marked" in LyricsState.not_found(NotFoundReason.USER_MARKED).message
        assert "Network" in LyricsState.failed(ErrorKind.NETWORK).message
