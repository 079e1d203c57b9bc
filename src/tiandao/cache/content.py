"""Content-addressed analysis cache with LRU, TTL and size-bounded eviction.

Lookup keys are ``"{prefix}:{rolling_hash(content)}"``. The rolling hash is
cheap and may collide, so every entry also stores the SHA-256 of the content
it was computed from; ``get`` re-checks it and discards the entry on mismatch.

Entry sizes are an approximation: the length of the value's JSON encoding
times two (UTF-16 code units), not an exact byte count.

Values must be JSON-serializable to survive a snapshot; ``with_cache`` stores
dataclass results as dicts.

Usage::

    cache = ContentCache(CacheConfig(max_entries=200))
    analyze_style = with_cache(cache, "style", analyze_style)
    outcome = analyze_style(chapter_text)
    outcome.result, outcome.from_cache
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import math
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Generic, TypeVar

from tiandao.config import CacheConfig
from tiandao.persistence import (
    ByteStore,
    SnapshotError,
    SnapshotPersistence,
    decode_snapshot,
    encode_snapshot,
    register_migration,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SNAPSHOT_KIND = "content-cache"

_MISS = object()
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def rolling_hash(content: str) -> str:
    """32-bit ``h * 31 + c`` string hash in base 36."""
    h = 0
    for ch in content:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    h = abs(h)
    if h == 0:
        return "0"
    digits = []
    while h:
        h, rem = divmod(h, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def estimate_size(value: Any) -> int:
    """Approximate size in bytes of ``value`` once serialized."""
    try:
        return len(json.dumps(value, ensure_ascii=False, default=str)) * 2
    except (TypeError, ValueError):
        return 0


def _finite(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {type(value).__name__}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite, got {value}")
    return number


def _count(value: Any, name: str) -> int:
    number = _finite(value, name)
    if number < 0 or not number.is_integer():
        raise ValueError(f"{name} must be a non-negative whole number, got {value}")
    return int(number)


@dataclass
class CacheEntry(Generic[T]):
    key: str
    value: T
    content_hash: str
    created_at: float
    last_accessed_at: float
    access_count: int = 1
    size_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> CacheEntry:
        if not isinstance(data, dict):
            raise ValueError(f"cache entry must be an object, got {type(data).__name__}")
        missing = {"key", "value", "content_hash", "created_at"} - data.keys()
        if missing:
            raise ValueError(f"cache entry is missing {sorted(missing)}")
        if not isinstance(data["key"], str) or not isinstance(data["content_hash"], str):
            raise ValueError("cache entry key and content_hash must be strings")
        try:
            created_at = _finite(data["created_at"], "created_at")
            return cls(
                key=data["key"],
                value=data["value"],
                content_hash=data["content_hash"],
                created_at=created_at,
                last_accessed_at=_finite(data.get("last_accessed_at", created_at), "last_accessed_at"),
                access_count=_count(data.get("access_count", 1), "access_count"),
                size_bytes=_count(data.get("size_bytes", 0), "size_bytes"),
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError(f"cache entry {data['key']!r}: {e}") from e


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    total_size: int
    hit_count: int
    miss_count: int
    hit_rate: float
    evictions: int
    oldest_entry: float
    newest_entry: float


@dataclass
class CachedResult(Generic[T]):
    result: T
    from_cache: bool
    analysis_time: float  # seconds


class ContentCache(Generic[T]):
    """Single-threaded LRU + TTL + size-bounded cache keyed by content."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        byte_store: ByteStore | None = None,
        storage_key: str = "analysis-cache",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        # least recently accessed first
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._total_size = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._persistence: SnapshotPersistence | None = None
        if self.config.enable_persistence and byte_store is not None:
            self._persistence = SnapshotPersistence(byte_store, storage_key)
            self._persistence.restore(self)

    # ── Keys ─────────────────────────────────────────────────

    def generate_key(self, prefix: str, content: str) -> str:
        return f"{prefix}:{rolling_hash(content)}"

    # ── Lookups ──────────────────────────────────────────────

    def get(self, key: str, content: str, default: Any = None) -> T | Any:
        """Return the cached value for ``key`` if it was computed from ``content``."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default

        if entry.content_hash != content_hash(content):
            self._discard(key)
            self._misses += 1
            logger.debug("Cache entry %s discarded: content changed", key)
            return default

        now = self._clock()
        if self._expired(entry, now):
            self._discard(key)
            self._misses += 1
            logger.debug("Cache entry %s discarded: expired", key)
            return default

        entry.access_count += 1
        entry.last_accessed_at = now
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value

    def has(self, key: str) -> bool:
        """True if ``key`` holds an unexpired entry. Does not affect LRU order."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._expired(entry, self._clock()):
            self._discard(key)
            return False
        return True

    # ── Writes ───────────────────────────────────────────────

    def set(self, key: str, value: T, content: str) -> None:
        self._insert(key, value, content)
        self._save()

    def warmup(self, items: Iterable[tuple[str, T, str]]) -> None:
        """Bulk insert ``(key, value, content)`` triples with a single save."""
        for key, value, content in items:
            self._insert(key, value, content)
        self._save()

    def delete(self, key: str) -> bool:
        if self._discard(key) is None:
            return False
        self._save()
        return True

    def clear(self) -> None:
        """Drop every entry and reset the counters."""
        self._entries.clear()
        self._total_size = 0
        self._hits = self._misses = self._evictions = 0
        if self._persistence:
            self._persistence.discard()

    def clean_expired(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            self._discard(key)
        if expired:
            logger.debug("Cleaned %d expired cache entries", len(expired))
            self._save()
        return len(expired)

    def _insert(self, key: str, value: T, content: str) -> None:
        now = self._clock()
        size = estimate_size(value)
        self._discard(key)
        while self._entries and (
            self._total_size + size > self.config.max_size
            or len(self._entries) >= self.config.max_entries
        ):
            self._evict_lru()
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            content_hash=content_hash(content),
            created_at=now,
            last_accessed_at=now,
            size_bytes=size,
        )
        self._total_size += size

    def _evict_lru(self) -> None:
        key, entry = self._entries.popitem(last=False)
        self._total_size -= entry.size_bytes
        self._evictions += 1
        logger.debug("Evicted cache entry %s (%d bytes)", key, entry.size_bytes)

    def _discard(self, key: str) -> CacheEntry[T] | None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_size -= entry.size_bytes
        return entry

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at >= self.config.ttl

    def _save(self) -> None:
        if self._persistence:
            self._persistence.save(self)

    # ── Introspection ────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[CacheEntry[T]]:
        """Entries from least to most recently accessed."""
        return list(self._entries.values())

    def top_entries(self, limit: int = 10) -> list[CacheEntry[T]]:
        return sorted(self._entries.values(), key=lambda e: e.access_count, reverse=True)[:limit]

    def size_mb(self) -> float:
        return self._total_size / (1024 * 1024)

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        created = [e.created_at for e in self._entries.values()]
        return CacheStats(
            total_entries=len(self._entries),
            total_size=self._total_size,
            hit_count=self._hits,
            miss_count=self._misses,
            hit_rate=self._hits / total if total else 0.0,
            evictions=self._evictions,
            oldest_entry=min(created, default=0.0),
            newest_entry=max(created, default=0.0),
        )

    # ── Snapshot ─────────────────────────────────────────────

    def export(self) -> str:
        return encode_snapshot(
            SNAPSHOT_KIND,
            {
                "entries": [e.to_dict() for e in self._entries.values()],
                "hit_count": self._hits,
                "miss_count": self._misses,
                "evictions": self._evictions,
            },
        )

    def import_data(self, blob: str | bytes) -> None:
        """Replace the cache contents with a snapshot, dropping expired entries.

        Raises SnapshotError on malformed input without touching current state.
        """
        payload = decode_snapshot(blob, SNAPSHOT_KIND)
        raw_entries = payload.get("entries")
        if not isinstance(raw_entries, list):
            raise SnapshotError("cache snapshot entries must be a list")
        counters = {}
        for name in ("hit_count", "miss_count", "evictions"):
            value = payload.get(name, 0)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise SnapshotError(f"cache snapshot {name} must be a non-negative integer")
            counters[name] = value

        entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        try:
            for item in raw_entries:
                entry = CacheEntry.from_dict(item)
                entries.pop(entry.key, None)
                entries[entry.key] = entry
        except ValueError as e:
            raise SnapshotError(f"invalid cache snapshot: {e}") from e

        now = self._clock()
        for key in [k for k, e in entries.items() if self._expired(e, now)]:
            del entries[key]

        total_size = sum(e.size_bytes for e in entries.values())
        evictions = counters["evictions"]
        while entries and (
            total_size > self.config.max_size or len(entries) > self.config.max_entries
        ):
            _, entry = entries.popitem(last=False)
            total_size -= entry.size_bytes
            evictions += 1

        self._entries = entries
        self._total_size = total_size
        self._hits = counters["hit_count"]
        self._misses = counters["miss_count"]
        self._evictions = evictions
        logger.info("Imported cache snapshot: %d entries", len(entries))


@register_migration(SNAPSHOT_KIND, 0)
def _migrate_legacy_cache(data: Any) -> dict:
    """Legacy entries carry only the 32-bit hash of their content, which cannot
    be checked against a SHA-256 digest. Only the counters carry over."""
    if isinstance(data, list):
        dropped, stats = len(data), {}
    elif isinstance(data, dict) and isinstance(data.get("entries"), list):
        dropped, stats = len(data["entries"]), data.get("stats") or {}
        if not isinstance(stats, dict):
            raise SnapshotError("legacy cache stats must be an object")
    else:
        raise SnapshotError("legacy cache snapshot must be an entry list or an object with entries")

    def counter(*names: str) -> int:
        for name in names:
            value = stats.get(name)
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                return value
        return 0

    if dropped:
        logger.info("Dropped %d legacy cache entries with unverifiable content hashes", dropped)
    return {
        "entries": [],
        "hit_count": counter("hitCount", "hits"),
        "miss_count": counter("missCount", "misses"),
        "evictions": counter("evictions"),
    }


def with_cache(
    cache: ContentCache[T],
    prefix: str,
    analyze: Callable[..., T],
) -> Callable[..., CachedResult[T]]:
    """Wrap ``analyze(content, *args, **kwargs)`` so repeated content is served from ``cache``.

    Only ``prefix`` and ``content`` form the cache key; extra arguments are
    passed through on a miss but do not distinguish entries. Dataclass results
    are converted with ``asdict`` so hits and misses return the same shape.
    """

    @functools.wraps(analyze)
    def wrapper(content: str, *args: Any, **kwargs: Any) -> CachedResult[T]:
        start = time.perf_counter()
        key = cache.generate_key(prefix, content)
        hit = cache.get(key, content, _MISS)
        if hit is not _MISS:
            return CachedResult(result=hit, from_cache=True, analysis_time=time.perf_counter() - start)

        result = analyze(content, *args, **kwargs)
        if is_dataclass(result) and not isinstance(result, type):
            result = asdict(result)
        cache.set(key, result, content)
        return CachedResult(result=result, from_cache=False, analysis_time=time.perf_counter() - start)

    return wrapper


def cached(cache: ContentCache[T], prefix: str) -> Callable[[Callable[..., T]], Callable[..., CachedResult[T]]]:
    """Decorator form of ``with_cache``."""

    def decorator(analyze: Callable[..., T]) -> Callable[..., CachedResult[T]]:
        return with_cache(cache, prefix, analyze)

    return decorator
