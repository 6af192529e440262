"""Now-playing sources: producers of track and playback-state events."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable

from lyricsync.core.models import PlaybackState, PlaybackStatus, Track

TrackCallback = Callable[[Track], None]
PlaybackCallback = Callable[[PlaybackState], None]

# Position drift (seconds) beyond which a poll counts as a seek.
SEEK_TOLERANCE = 0.25


class NowPlayingSource(ABC):
    """Reports the current track and playback state.

    Callbacks fire only when the value changes and are always invoked on
    the event loop that called ``start``.
    """

    def __init__(self) -> None:
        self.on_track_changed: TrackCallback | None = None
        self.on_playback_changed: PlaybackCallback | None = None
        self._track = Track.empty()
        self._playback = PlaybackState()

    @property
    def current_track(self) -> Track:
        return self._track

    @property
    def current_playback(self) -> PlaybackState:
        return self._playback

    @abstractmethod
    async def start(self) -> None:
        """Begin observing the player."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop observing. Safe to call more than once."""

    def _playback_changed(self, playback: PlaybackState) -> bool:
        """A new status, or a position that jumped away from the extrapolated one."""
        if playback.status != self._playback.status:
            return True
        expected = self._playback.current_position(playback.observed_at)
        return abs(playback.position - expected) > SEEK_TOLERANCE

    def _update(self, track: Track | None = None, playback: PlaybackState | None = None) -> None:
        if track is not None and track != self._track:
            self._track = track
            if self.on_track_changed:
                self.on_track_changed(track)
        if playback is not None and self._playback_changed(playback):
            self._playback = playback
            if self.on_playback_changed:
                self.on_playback_changed(playback)


class ManualSource(NowPlayingSource):
    """A source driven by explicit calls, for tests and scripted demos."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self._clock = clock

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    def set_track(self, track: Track) -> None:
        self._update(track=track)

    def set_playback(self, playback: PlaybackState) -> None:
        self._update(playback=playback)

    def play(self, position: float | None = None) -> None:
        if position is None:
            position = self._playback.current_position(self._clock())
        self.set_playback(PlaybackState(PlaybackStatus.PLAYING, position, self._clock()))

    def pause(self) -> None:
        position = self._playback.current_position(self._clock())
        self.set_playback(PlaybackState(PlaybackStatus.PAUSED, position, self._clock()))

    def seek(self, position: float) -> None:
        self.set_playback(PlaybackState(self._playback.status, position, self._clock()))
