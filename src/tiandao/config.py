"""Configuration loading from environment variables and tiandao.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".tiandao" / "data"
_CONFIG_FILENAME = "tiandao.toml"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class CacheConfig:
    """Analysis cache limits. Sizes are approximate bytes, ttl is in seconds."""

    max_entries: int = 100
    max_size: int = 10 * 1024 * 1024
    ttl: float = 30 * 60
    enable_persistence: bool = True


@dataclass
class MemoryConfig:
    """Tiered memory configuration."""

    max_recent_chapters: int = 10


@dataclass
class TiandaoConfig:
    """Top-level configuration."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    data_dir: Path = _DEFAULT_DATA_DIR
    log_level: str = "INFO"


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def load_config(config_path: Path | None = None) -> TiandaoConfig:
    """Load configuration from environment variables and optional tiandao.toml.

    Priority: environment variables > tiandao.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    else:
        # Search current dir and ~/.tiandao/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".tiandao" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text(encoding="utf-8"))
                break

    cache_data = file_data.get("cache", {})
    memory_data = file_data.get("memory", {})
    defaults = CacheConfig()

    config = TiandaoConfig(
        cache=CacheConfig(
            max_entries=int(
                os.getenv("TIANDAO_CACHE_MAX_ENTRIES", cache_data.get("max_entries", defaults.max_entries))
            ),
            max_size=int(os.getenv("TIANDAO_CACHE_MAX_SIZE", cache_data.get("max_size", defaults.max_size))),
            ttl=float(os.getenv("TIANDAO_CACHE_TTL", cache_data.get("ttl", defaults.ttl))),
            enable_persistence=_as_bool(
                os.getenv(
                    "TIANDAO_CACHE_PERSIST",
                    cache_data.get("enable_persistence", defaults.enable_persistence),
                )
            ),
        ),
        memory=MemoryConfig(
            max_recent_chapters=int(
                os.getenv(
                    "TIANDAO_MAX_RECENT_CHAPTERS",
                    memory_data.get("max_recent_chapters", MemoryConfig.max_recent_chapters),
                )
            ),
        ),
        data_dir=Path(
            os.getenv("TIANDAO_DATA_DIR", file_data.get("data_dir", str(_DEFAULT_DATA_DIR)))
        ).expanduser(),
        log_level=os.getenv("TIANDAO_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
