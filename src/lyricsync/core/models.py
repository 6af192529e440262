"""Shared data models for LyricSync."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Track:
    """The track currently reported by the now-playing source."""

    id: str
    title: str
    artist: str
    album: str | None = None
    duration: float = 0.0  # seconds
    artwork_ref: object | None = None

    @classmethod
    def empty(cls) -> Track:
        """Placeholder meaning "nothing is playing"."""
        return cls(id="", title="", artist="")

    @property
    def is_empty(self) -> bool:
        return not self.id and not self.title

    @property
    def search_query(self) -> str:
        return f"{self.title} {self.artist}"

    @property
    def safe_file_name(self) -> str:
        name = f"{self.title} - {self.artist}"
        for ch in "/:\\":
            name = name.replace(ch, "-")
        return name


class TrackType(Enum):
    NORMAL = "normal"
    INSTRUMENTAL = "instrumental"
    PODCAST = "podcast"
    LIVE = "live"
    REMIX = "remix"

    @classmethod
    def detect(cls, track: Track) -> TrackType:
        """Guess the kind of track from its title, artist and duration."""
        title = track.title.lower()
        artist = track.artist.lower()

        if any(k in title for k in _INSTRUMENTAL_KEYWORDS):
            return cls.INSTRUMENTAL
        if track.duration > 1800:
            return cls.PODCAST
        if any(k in title or k in artist for k in _PODCAST_KEYWORDS):
            return cls.PODCAST
        if any(k in title for k in _LIVE_KEYWORDS):
            return cls.LIVE
        if any(k in title for k in _REMIX_KEYWORDS):
            return cls.REMIX
        return cls.NORMAL

    @property
    def display_hint(self) -> str | None:
        return _TRACK_TYPE_HINTS.get(self)


_INSTRUMENTAL_KEYWORDS = (
    "instrumental", "intro", "outro", "interlude", "prelude",
    "纯音乐", "伴奏", "配乐", "背景音乐",
)
_PODCAST_KEYWORDS = ("podcast", "episode", "有声书", "广播", "ep.", "第", "集")
_LIVE_KEYWORDS = ("live", "现场", "演唱会", "concert")
_REMIX_KEYWORDS = ("remix", "mix", "mashup", "edit", "混音")

_TRACK_TYPE_HINTS = {
    TrackType.INSTRUMENTAL: "Instrumental",
    TrackType.PODCAST: "Podcast",
    TrackType.LIVE: "Live version",
    TrackType.REMIX: "Remix",
}


@dataclass(frozen=True)
class WordMark:
    """Highlight onset of one character, relative to its line's start."""

    time_offset: float  # seconds
    char_index: int


@dataclass(frozen=True)
class Line:
    """A lyric line with optional translation and per-character marks."""

    start: float  # seconds
    text: str
    translation: str | None = None
    word_marks: list[WordMark] | None = None


class LyricsSource(str, Enum):
    NETEASE = "netease"
    QQMUSIC = "qqmusic"
    LOCAL = "local"
    MANUAL = "manual"
    UNKNOWN = "unknown"


class LyricsFormat(str, Enum):
    LINE_TIMED = "lrc"
    WORD_TIMED = "yrc"


@dataclass
class LyricsMetadata:
    source: LyricsSource = LyricsSource.UNKNOWN
    source_id: str | None = None
    quality: int = 0  # 0..100
    has_translation: bool = False
    has_word_marks: bool = False
    language: str | None = None
    is_user_selected: bool = False
    fetched_at: datetime | None = None


@dataclass
class Timeline:
    """Parsed lyrics for one track.

    ``lines`` is always sorted ascending by start time; the locator relies
    on it. ``offset_ms`` is added to playback time before lookup.
    """

    track_id: str
    title: str = ""
    artist: str = ""
    metadata: LyricsMetadata = field(default_factory=LyricsMetadata)
    lines: list[Line] = field(default_factory=list)
    offset_ms: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def offset_seconds(self) -> float:
        return self.offset_ms / 1000.0

    def current_line(self, playback_time: float) -> Line | None:
        from lyricsync.sync.locator import locate_line

        index = locate_line(self, playback_time + self.offset_seconds)
        return None if index is None else self.lines[index]

    def next_line(self, playback_time: float) -> Line | None:
        from lyricsync.sync.locator import locate_line

        index = locate_line(self, playback_time + self.offset_seconds)
        if index is None or index + 1 >= len(self.lines):
            return None
        return self.lines[index + 1]

    def with_offset(self, offset_ms: int) -> Timeline:
        return replace(self, offset_ms=offset_ms)


class PlaybackStatus(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PlaybackState:
    """Player status snapshot.

    ``observed_at`` is a ``time.monotonic()`` reading taken when the
    position was sampled, so the position can be extrapolated while playing.
    """

    status: PlaybackStatus = PlaybackStatus.STOPPED
    position: float = 0.0  # seconds
    observed_at: float = field(default_factory=time.monotonic)

    @property
    def is_playing(self) -> bool:
        return self.status is PlaybackStatus.PLAYING

    def current_position(self, now: float | None = None) -> float:
        if not self.is_playing:
            return self.position
        if now is None:
            now = time.monotonic()
        return self.position + (now - self.observed_at)


@dataclass(frozen=True)
class RawLyrics:
    """Provider payload: raw timed text tagged with the format it is in."""

    text: str
    format: LyricsFormat
    provider_ref: str | None = None


@dataclass
class ScoredCandidate:
    """A parsed search result and its relevance to the query (0.0 to 1.0)."""

    timeline: Timeline
    relevance: float


class NotFoundReason(str, Enum):
    SEARCH_FAILED = "search_failed"
    USER_MARKED = "user_marked"
    INCOMPLETE_TRACK_INFO = "incomplete_track_info"


class ErrorKind(str, Enum):
    NETWORK = "network"
    PARSE = "parse"


class LyricsStatus(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class LyricsState:
    """Availability of lyrics for the current track, as shown to the user."""

    status: LyricsStatus = LyricsStatus.IDLE
    reason: NotFoundReason | None = None
    error: ErrorKind | None = None

    @classmethod
    def idle(cls) -> LyricsState:
        return cls(LyricsStatus.IDLE)

    @classmethod
    def searching(cls) -> LyricsState:
        return cls(LyricsStatus.SEARCHING)

    @classmethod
    def found(cls) -> LyricsState:
        return cls(LyricsStatus.FOUND)

    @classmethod
    def not_found(cls, reason: NotFoundReason) -> LyricsState:
        return cls(LyricsStatus.NOT_FOUND, reason=reason)

    @classmethod
    def failed(cls, kind: ErrorKind) -> LyricsState:
        return cls(LyricsStatus.ERROR, error=kind)

    @property
    def can_retry(self) -> bool:
        return (
            self.status is LyricsStatus.NOT_FOUND and self.reason is NotFoundReason.SEARCH_FAILED
        ) or (self.status is LyricsStatus.ERROR and self.error is ErrorKind.NETWORK)

    @property
    def can_mark_no_lyrics(self) -> bool:
        return self.status is LyricsStatus.NOT_FOUND and self.reason is NotFoundReason.SEARCH_FAILED

    @property
    def message(self) -> str:
        if self.status is LyricsStatus.SEARCHING:
            return "Searching for lyrics..."
        if self.status is LyricsStatus.NOT_FOUND:
            return {
                NotFoundReason.SEARCH_FAILED: "No lyrics found",
                NotFoundReason.USER_MARKED: "Marked as having no lyrics",
                NotFoundReason.INCOMPLETE_TRACK_INFO: "Track info is incomplete",
            }[self.reason]
        if self.status is LyricsStatus.ERROR:
            if self.error is ErrorKind.NETWORK:
                return "Network error, could not fetch lyrics"
            return "Could not parse lyrics"
        return ""
