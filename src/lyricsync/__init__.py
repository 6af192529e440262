"""LyricSync: synchronized lyrics for whatever is playing."""

__version__ = "0.1.0"
