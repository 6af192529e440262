"""Concurrent search across all configured providers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import aiohttp

from lyricsync.core.config import SearchConfig
from lyricsync.core.exceptions import LyricsParseError, ProviderError
from lyricsync.core.models import ScoredCandidate
from lyricsync.providers.base import LyricsProvider, SearchQuery
from lyricsync.ranking.merge import rank_candidates

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    """Merged search results plus which providers failed and why.

    ``failures`` holds transport and payload errors; ``parse_failures``
    holds providers whose lyrics came back but could not be parsed.
    """

    candidates: list[ScoredCandidate] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    parse_failures: dict[str, str] = field(default_factory=dict)
    provider_count: int = 0

    @property
    def all_failed(self) -> bool:
        failed = len(self.failures) + len(self.parse_failures)
        return self.provider_count > 0 and failed == self.provider_count

    @property
    def all_unparseable(self) -> bool:
        return self.provider_count > 0 and len(self.parse_failures) == self.provider_count


def build_providers(config: SearchConfig) -> list[LyricsProvider]:
    """Instantiate the providers named in the config, in order."""
    from lyricsync.providers.netease import NetEaseProvider
    from lyricsync.providers.qqmusic import QQMusicProvider

    available = {
        NetEaseProvider.name: NetEaseProvider,
        QQMusicProvider.name: QQMusicProvider,
    }
    providers = []
    for name in config.providers:
        cls = available.get(name)
        if cls is None:
            logger.warning("Unknown lyrics provider in config: %s", name)
            continue
        providers.append(cls(max_results=config.max_results))
    return providers


class CombinedSearch:
    """Fan a query out to every provider and merge the ranked results.

    One provider failing only removes its contribution; the merged list is
    sorted by relevance with ties in provider order.
    """

    def __init__(self, providers: list[LyricsProvider], config: SearchConfig | None = None):
        self.providers = providers
        self.config = config or SearchConfig()

    async def _run_one(
        self, provider: LyricsProvider, session: aiohttp.ClientSession, query: SearchQuery
    ) -> list[ScoredCandidate]:
        try:
            return await provider.search(session, query)
        except ProviderError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ProviderError(provider.name, f"Unexpected failure: {e}") from e

    async def search(self, query: SearchQuery) -> SearchOutcome:
        outcome = SearchOutcome(provider_count=len(self.providers))
        if not self.providers:
            return outcome

        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        headers = {"User-Agent": self.config.user_agent}
        async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
            results = await asyncio.gather(
                *(self._run_one(p, session, query) for p in self.providers),
                return_exceptions=True,
            )

        merged: list[ScoredCandidate] = []
        for provider, result in zip(self.providers, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, LyricsParseError):
                logger.warning("Provider %s returned unparseable lyrics: %s", provider.name, result)
                outcome.parse_failures[provider.name] = str(result)
                continue
            if isinstance(result, BaseException):
                logger.warning("Provider %s failed: %s", provider.name, result)
                outcome.failures[provider.name] = str(result)
                continue
            logger.info("Provider %s returned %d candidates", provider.name, len(result))
            merged.extend(result)

        outcome.candidates = rank_candidates(merged)
        return outcome
