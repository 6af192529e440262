"""Now-playing source backed by an embedded mpv player."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from pathlib import Path

from lyricsync.core.config import PlayerConfig
from lyricsync.core.models import PlaybackState, PlaybackStatus, Track
from lyricsync.player.source import NowPlayingSource

logger = logging.getLogger(__name__)


def check_mpv() -> bool:
    """Check if mpv is available on the system."""
    return shutil.which("mpv") is not None


def track_from_properties(path: str | None, metadata: dict | None, duration: float | None) -> Track:
    """Build a Track from mpv's ``path``, ``metadata`` and ``duration`` properties.

    Tag names vary in case between containers, so lookups are case-insensitive.
    The file path is the track's identity.
    """
    if not path:
        return Track.empty()
    tags = {str(k).lower(): v for k, v in (metadata or {}).items()}
    return Track(
        id=str(Path(path).resolve()) if not path.startswith(("http://", "https://")) else path,
        title=tags.get("title") or Path(path).stem,
        artist=tags.get("artist") or tags.get("album_artist") or "",
        album=tags.get("album"),
        duration=float(duration or 0.0),
    )


class MpvSource(NowPlayingSource):
    """Plays local files with mpv and reports what is playing.

    mpv is polled on a fixed interval from the event loop, so callbacks
    always run on the loop thread.
    """

    def __init__(self, config: PlayerConfig | None = None, video: bool = False):
        super().__init__()
        self.config = config or PlayerConfig()
        self.video = video
        self.finished = asyncio.Event()
        self._player = None
        self._poll_task: asyncio.Task | None = None
        self._has_played = False

    async def start(self) -> None:
        if self._player is not None:
            return
        if not check_mpv():
            raise FileNotFoundError("mpv not found. Install it with: brew install mpv")
        try:
            import mpv
        except ImportError:
            raise ImportError("python-mpv is not installed. Install with: uv sync --extra player")

        self._player = mpv.MPV(
            input_default_bindings=True,
            input_vo_keyboard=True,
            osc=self.video,
            video=self.video,
        )
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    def play(self, path: Path | str) -> None:
        if self._player is None:
            raise RuntimeError("MpvSource.start() must be awaited before play()")
        self._player.play(str(path))

    def toggle_pause(self) -> None:
        if self._player is not None:
            self._player.pause = not self._player.pause

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        if self._player is not None:
            self._player.terminate()
            self._player = None
        self.finished.set()

    def _read(self) -> tuple[Track, PlaybackState]:
        player = self._player
        path = player.path
        track = track_from_properties(path, player.metadata, player.duration)
        if not path:
            return track, PlaybackState(PlaybackStatus.STOPPED, 0.0, time.monotonic())

        position = player.time_pos or 0.0
        status = PlaybackStatus.PAUSED if player.pause else PlaybackStatus.PLAYING
        return track, PlaybackState(status, float(position), time.monotonic())

    async def _poll(self) -> None:
        import mpv

        while self._player is not None:
            try:
                track, playback = self._read()
            except mpv.ShutdownError:
                logger.info("mpv was closed")
                self.finished.set()
                return
            except Exception:
                logger.exception("Reading mpv state failed")
            else:
                if not track.is_empty:
                    self._has_played = True
                elif self._has_played:
                    self.finished.set()
                self._update(track=track, playback=playback)
            await asyncio.sleep(self.config.poll_interval)
