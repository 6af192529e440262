"""Configuration system for LyricSync.

Layered config loading (lowest to highest priority):
1. config/default.toml (shipped with package)
2. ~/.config/lyricsync/config.toml (user-level)
3. ./lyricsync.toml (project-level)
4. Environment variables (LSYNC_SYNC__PROGRESS_INTERVAL, etc.)
5. CLI flags
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent.parent.parent
_DEFAULT_CONFIG = _PACKAGE_ROOT / "config" / "default.toml"
_USER_CONFIG = Path.home() / ".config" / "lyricsync" / "config.toml"
_PROJECT_CONFIG = Path("lyricsync.toml")


class SyncConfig(BaseModel):
    line_poll_interval: float = 0.1  # seconds, used when no next line is known
    min_line_sleep: float = 0.05  # floor for the wait until the next line
    progress_interval: float = 0.033  # ~30 progress updates per second
    assumed_line_duration: float = 3.0  # last line, no word marks


class SearchConfig(BaseModel):
    providers: list[str] = ["netease", "qqmusic"]
    timeout: float = 10.0
    max_results: int = 5
    user_agent: str = "Mozilla/5.0"


class CacheConfig(BaseModel):
    cache_dir: Path = Path.home() / ".local" / "share" / "lyricsync"


class PlayerConfig(BaseModel):
    backend: str = "mpv"
    poll_interval: float = 0.5


class LyricSyncConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LSYNC_",
        env_nested_delimiter="__",
    )

    sync: SyncConfig = SyncConfig()
    search: SearchConfig = SearchConfig()
    cache: CacheConfig = CacheConfig()
    player: PlayerConfig = PlayerConfig()
    log_level: str = "WARNING"


def _load_toml(path: Path) -> dict:
    """Load a TOML file if it exists, return empty dict otherwise."""
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(**cli_overrides: object) -> LyricSyncConfig:
    """Load configuration from all layers and merge.

    Args:
        **cli_overrides: Direct overrides from CLI flags. Keys can be
            dot-separated (e.g. sync.progress_interval=0.05).
    """
    config_data: dict = {}
    for path in (_DEFAULT_CONFIG, _USER_CONFIG, _PROJECT_CONFIG):
        layer = _load_toml(path)
        config_data = _deep_merge(config_data, layer)

    # Flatten 'general' section into top-level
    if "general" in config_data:
        general = config_data.pop("general")
        config_data = _deep_merge(config_data, general)

    for key, value in cli_overrides.items():
        if value is None:
            continue
        parts = key.split(".")
        target = config_data
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value

    # Env vars are handled by Pydantic BaseSettings
    return LyricSyncConfig(**config_data)
