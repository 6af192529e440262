"""NetEase Cloud Music lyrics provider.

Prefers the word-timed YRC payload and falls back to line-timed LRC.
YRC character times are absolute track times, not offsets from the line.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import aiohttp

from lyricsync.core.exceptions import LyricsParseError
from lyricsync.core.models import (
    LyricsFormat,
    LyricsMetadata,
    LyricsSource,
    RawLyrics,
    ScoredCandidate,
    Timeline,
)
from lyricsync.providers.base import LyricsProvider, SearchQuery
from lyricsync.ranking.similarity import calculate_relevance
from lyricsync.timedtext.parser import attach_translation, parse_raw

logger = logging.getLogger(__name__)

BASE_URL = "https://music.163.com/api"


def _song_duration(song: dict) -> float | None:
    """NetEase reports milliseconds under "dt" or "duration"."""
    for key in ("dt", "duration"):
        value = song.get(key)
        if isinstance(value, (int, float)) and value > 0:
            return value / 1000.0
    return None


def _song_artist(song: dict) -> str:
    artists = song.get("artists") or song.get("ar") or []
    if artists and isinstance(artists[0], dict):
        return artists[0].get("name", "")
    return ""


def lyrics_from_payload(payload: dict, track_id: str, song_id: str) -> Timeline | None:
    """Build a Timeline from a ``/song/lyric`` response.

    Returns None when the song has no lyrics. Raises ``LyricsParseError``
    when lyrics text is present but none of it parses.
    """
    metadata = LyricsMetadata(
        source=LyricsSource.NETEASE,
        source_id=song_id,
        fetched_at=datetime.now(timezone.utc),
    )
    translation = (payload.get("tlyric") or {}).get("lyric") or ""

    yrc = (payload.get("yrc") or {}).get("lyric") or ""
    if yrc:
        raw = RawLyrics(yrc, LyricsFormat.WORD_TIMED, provider_ref=song_id)
        timeline = parse_raw(raw, track_id, metadata, absolute_offsets=True)
        if timeline is not None:
            logger.info("NetEase: word-timed lyrics for song %s", song_id)
            return attach_translation(timeline, translation) if translation else timeline

    lrc = (payload.get("lrc") or {}).get("lyric") or ""
    if not lrc:
        if yrc:
            raise LyricsParseError("netease", f"No timed lines in lyrics of song {song_id}")
        return None
    raw = RawLyrics(lrc, LyricsFormat.LINE_TIMED, provider_ref=song_id)
    timeline = parse_raw(raw, track_id, metadata)
    if timeline is None:
        raise LyricsParseError("netease", f"No timed lines in lyrics of song {song_id}")
    return attach_translation(timeline, translation) if translation else timeline


class NetEaseProvider(LyricsProvider):
    name = "netease"

    async def search(
        self, session: aiohttp.ClientSession, query: SearchQuery
    ) -> list[ScoredCandidate]:
        data = await self._get_json(
            session,
            f"{BASE_URL}/search/get",
            params={"s": f"{query.title} {query.artist}", "type": 1, "limit": 10},
        )
        songs = (data.get("result") or {}).get("songs") or []
        logger.debug("NetEase: %d songs for %r", len(songs), query.title)

        return await self._gather_candidates(
            self._fetch_candidate(session, song, query)
            for song in songs[: self.max_results]
            if song.get("id") is not None
        )

    async def _fetch_candidate(
        self, session: aiohttp.ClientSession, song: dict, query: SearchQuery
    ) -> ScoredCandidate | None:
        song_id = str(song["id"])
        payload = await self._get_json(
            session,
            f"{BASE_URL}/song/lyric",
            params={"id": song_id, "lv": 1, "tv": 1, "yrc": 1},
        )
        timeline = lyrics_from_payload(payload, query.track_id, song_id)
        if timeline is None:
            return None

        title = song.get("name", "")
        artist = _song_artist(song)
        timeline.title = timeline.title or title
        timeline.artist = timeline.artist or artist
        score = calculate_relevance(
            query.title, query.artist, title, artist, query.duration, _song_duration(song)
        )
        logger.debug("NetEase match: %s - %s scored %.3f", title, artist, score)
        return ScoredCandidate(timeline=timeline, relevance=score)
