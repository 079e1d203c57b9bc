"""Named collection of analysis caches with bulk maintenance and reporting."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from tiandao.cache.content import CacheStats, ContentCache
from tiandao.config import CacheConfig
from tiandao.persistence import ByteStore

logger = logging.getLogger(__name__)

ANALYZER_CACHES = ("comprehensive", "style", "tension", "emotion")


class CacheRegistry:
    """Holds one ContentCache per analyzer."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._caches: dict[str, ContentCache] = {}
        self._clock = clock

    def register(self, name: str, cache: ContentCache) -> ContentCache:
        if name in self._caches:
            logger.warning("Replacing registered cache %s", name)
        self._caches[name] = cache
        return cache

    def get(self, name: str) -> ContentCache:
        try:
            return self._caches[name]
        except KeyError:
            raise KeyError(f"Cache '{name}' not registered. Available: {list(self._caches)}") from None

    def names(self) -> list[str]:
        return list(self._caches)

    def __contains__(self, name: object) -> bool:
        return name in self._caches

    def clear_all(self) -> None:
        for cache in self._caches.values():
            cache.clear()

    def all_stats(self) -> dict[str, CacheStats]:
        return {name: cache.stats() for name, cache in self._caches.items()}

    def clean_all_expired(self) -> dict[str, int]:
        cleaned = {name: cache.clean_expired() for name, cache in self._caches.items()}
        total = sum(cleaned.values())
        if total:
            logger.info("Cleaned %d expired cache entries", total)
        return cleaned

    def report(self) -> str:
        """Markdown report of every cache's statistics."""
        now = self._clock()
        lines = ["# 分析缓存报告\n"]
        for name, stat in self.all_stats().items():
            lines.append(f"## {name} 缓存")
            lines.append(f"- 条目数: {stat.total_entries}")
            lines.append(f"- 总大小: {stat.total_size / 1024:.2f} KB")
            lines.append(f"- 命中次数: {stat.hit_count}")
            lines.append(f"- 未命中次数: {stat.miss_count}")
            lines.append(f"- 命中率: {stat.hit_rate * 100:.2f}%")
            if stat.oldest_entry > 0:
                age_minutes = int((now - stat.oldest_entry) // 60)
                lines.append(f"- 最旧条目: {age_minutes} 分钟前")
            lines.append("")
        return "\n".join(lines)


def build_default_registry(
    config: CacheConfig | None = None,
    byte_store: ByteStore | None = None,
    clock: Callable[[], float] = time.time,
) -> CacheRegistry:
    """Registry with one cache per built-in analyzer, each under its own storage key."""
    registry = CacheRegistry(clock=clock)
    for name in ANALYZER_CACHES:
        registry.register(
            name,
            ContentCache(
                config,
                byte_store=byte_store,
                storage_key=f"analysis-cache-{name}",
                clock=clock,
            ),
        )
    return registry
