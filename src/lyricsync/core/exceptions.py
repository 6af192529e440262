"""Exceptions raised inside LyricSync.

Parsers and scorers never raise for malformed input; these cover the
I/O boundaries (providers and the cache store).
"""


class LyricSyncError(Exception):
    """Base exception for LyricSync."""


class ProviderError(LyricSyncError):
    """A lyrics provider failed (network, HTTP status or payload decoding)."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class CacheIOError(LyricSyncError):
    """Reading or writing the lyrics cache failed."""


class ParseError(LyricSyncError):
    """Timed text handed to a parser in an unsupported format."""


class LyricsParseError(ProviderError):
    """A provider returned lyrics text with no parseable timed lines."""
