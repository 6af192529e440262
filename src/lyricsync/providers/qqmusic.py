"""QQ Music lyrics provider (line-timed LRC only)."""

from __future__ import annotations

import html
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
)
from lyricsync.providers.base import LyricsProvider, SearchQuery
from lyricsync.ranking.similarity import calculate_relevance
from lyricsync.timedtext.parser import attach_translation, parse_raw

logger = logging.getLogger(__name__)

SEARCH_URL = "https://c.y.qq.com/soso/fcgi-bin/client_search_cp"
LYRIC_URL = "https://c.y.qq.com/lyric/fcgi-bin/fcg_query_lyric_new.fcg"
_HEADERS = {"Referer": "https://y.qq.com"}


class QQMusicProvider(LyricsProvider):
    name = "qqmusic"

    async def search(
        self, session: aiohttp.ClientSession, query: SearchQuery
    ) -> list[ScoredCandidate]:
        data = await self._get_json(
            session,
            SEARCH_URL,
            params={"w": f"{query.title} {query.artist}", "format": "json", "n": 10},
            headers=_HEADERS,
        )
        songs = ((data.get("data") or {}).get("song") or {}).get("list") or []
        logger.debug("QQ Music: %d songs for %r", len(songs), query.title)

        return await self._gather_candidates(
            self._fetch_candidate(session, song, query)
            for song in songs[: self.max_results]
            if song.get("songmid")
        )

    async def _fetch_candidate(
        self, session: aiohttp.ClientSession, song: dict, query: SearchQuery
    ) -> ScoredCandidate | None:
        songmid = song["songmid"]
        payload = await self._get_json(
            session,
            LYRIC_URL,
            params={"songmid": songmid, "format": "json", "nobase64": 1},
            headers=_HEADERS,
        )
        lyric = html.unescape(payload.get("lyric") or "")
        if not lyric:
            return None

        metadata = LyricsMetadata(
            source=LyricsSource.QQMUSIC,
            source_id=songmid,
            fetched_at=datetime.now(timezone.utc),
        )
        raw = RawLyrics(lyric, LyricsFormat.LINE_TIMED, provider_ref=songmid)
        timeline = parse_raw(raw, query.track_id, metadata)
        if timeline is None:
            raise LyricsParseError(self.name, f"No timed lines in lyrics of {songmid}")
        trans = html.unescape(payload.get("trans") or "")
        if trans:
            timeline = attach_translation(timeline, trans)

        title = song.get("songname", "")
        singers = song.get("singer") or []
        artist = singers[0].get("name", "") if singers else ""
        duration = song.get("interval")
        score = calculate_relevance(
            query.title,
            query.artist,
            title,
            artist,
            query.duration,
            float(duration) if isinstance(duration, (int, float)) else None,
        )
        timeline.title = timeline.title or title
        timeline.artist = timeline.artist or artist
        logger.debug("QQ Music match: %s - %s scored %.3f", title, artist, score)
        return ScoredCandidate(timeline=timeline, relevance=score)
