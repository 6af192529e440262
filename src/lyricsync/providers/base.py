"""Common interface of lyrics providers."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import aiohttp

from lyricsync.core.exceptions import LyricsParseError, ProviderError
from lyricsync.core.models import ScoredCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchQuery:
    """What to search for, and which track the results will be cached under."""

    title: str
    artist: str
    duration: float | None = None
    track_id: str = ""


class LyricsProvider(ABC):
    """A remote lyrics source.

    Subclasses implement ``search`` and raise ``ProviderError`` on any
    transport or payload failure; the combined search turns that into an
    empty contribution.
    """

    name: str = "provider"

    def __init__(self, max_results: int = 5):
        self.max_results = max_results

    @abstractmethod
    async def search(
        self, session: aiohttp.ClientSession, query: SearchQuery
    ) -> list[ScoredCandidate]:
        """Return scored candidates for ``query``, best first."""

    async def _get_json(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> dict:
        """GET ``url`` and decode a JSON object, tolerating wrong content types."""
        try:
            async with session.get(url, params=params, headers=headers) as response:
                if response.status != 200:
                    raise ProviderError(self.name, f"HTTP {response.status} from {url}")
                text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderError(self.name, f"Request to {url} failed: {e}") from e

        text = text.strip()
        # Some endpoints answer JSONP: callback({...})
        if text and not text.startswith("{"):
            start, end = text.find("{"), text.rfind("}")
            if start != -1 and end > start:
                text = text[start : end + 1]
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ProviderError(self.name, f"Invalid JSON from {url}") from e
        if not isinstance(data, dict):
            raise ProviderError(self.name, f"Unexpected payload from {url}")
        return data

    async def _gather_candidates(self, coros) -> list[ScoredCandidate]:
        """Run per-song fetches concurrently, dropping the ones that fail.

        Raises ``LyricsParseError`` when nothing usable came back and at
        least one song had lyrics that could not be parsed.
        """
        results = await asyncio.gather(*coros, return_exceptions=True)
        candidates = []
        unparseable = 0
        for result in results:
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, LyricsParseError):
                    unparseable += 1
                logger.debug("%s: lyrics fetch failed: %s", self.name, result)
                continue
            if result is not None:
                candidates.append(result)
        if not candidates and unparseable:
            raise LyricsParseError(self.name, f"{unparseable} lyrics payloads could not be parsed")
        candidates.sort(key=lambda c: -c.relevance)
        return candidates
