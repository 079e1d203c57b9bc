"""Tiered memory store: core facts, a window of recent chapters, a long-term archive.

Core memory (characters, world settings, main plot, power system) is written
explicitly and never evicted. Recent memory keeps the newest
``max_recent_chapters`` chapters; anything older is archived into long-term
memory with derived keywords and a fixed importance score. Archival is
one-way. All three tiers are searched by keyword overlap.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from tiandao.memory.models import (
    CharacterInfo,
    CoreMemory,
    LongTermMemory,
    MemorySearchResult,
    PlotPoint,
    PowerSystemInfo,
    RecentMemory,
    WorldSetting,
)
from tiandao.memory.relevance import calculate_relevance
from tiandao.persistence import (
    SnapshotError,
    decode_snapshot,
    encode_snapshot,
    register_migration,
    snake_case_keys,
)

logger = logging.getLogger(__name__)

SNAPSHOT_KIND = "memory"

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_MIN_RELEVANCE = 0.3
RECENT_WEIGHT = 1.2
CORE_SEARCH_TYPES = ("character", "world", "plot")

BASE_IMPORTANCE = 50
EVENT_BONUS = 5
EVENT_BONUS_CAP = 20
MAIN_CHARACTER_BONUS = 10
MAX_IMPORTANCE = 100
KEYWORD_EVENTS = 3


def archive_importance(memory: RecentMemory, main_characters: set[str]) -> int:
    """Importance of a chapter at archival time (0-100)."""
    score = BASE_IMPORTANCE
    score += min(len(memory.key_events) * EVENT_BONUS, EVENT_BONUS_CAP)
    score += MAIN_CHARACTER_BONUS * sum(1 for name in memory.characters if name in main_characters)
    return min(score, MAX_IMPORTANCE)


def archive(memory: RecentMemory, main_characters: set[str]) -> LongTermMemory:
    """Convert an evicted recent-memory entry into a long-term record."""
    return LongTermMemory(
        chapter_number=memory.chapter_number,
        summary=memory.summary,
        keywords=tuple(memory.characters + memory.locations + memory.key_events[:KEYWORD_EVENTS]),
        importance=archive_importance(memory, main_characters),
    )


class TieredMemoryStore:
    """Three-tier memory for one novel project."""

    def __init__(
        self,
        max_recent_chapters: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_recent_chapters < 1:
            raise ValueError(f"max_recent_chapters must be positive, got {max_recent_chapters}")
        self.max_recent_chapters = max_recent_chapters
        self._clock = clock
        self._core = CoreMemory(last_updated=clock())
        # chapter → entry, kept ordered newest chapter first
        self._recent: dict[int, RecentMemory] = {}
        # chapter → record, in archival order
        self._long_term: dict[int, LongTermMemory] = {}

    # ── Core memory ──────────────────────────────────────────

    def add_character(self, character: CharacterInfo) -> None:
        self._core.characters[character.name] = character
        self._touch()

    def add_world_setting(self, setting: WorldSetting) -> None:
        self._core.world_settings[setting.name] = setting
        self._touch()

    def add_plot_point(self, plot_point: PlotPoint) -> None:
        """Upsert by (chapter, description); the plot stays sorted by chapter."""
        plot = self._core.main_plot
        for i, existing in enumerate(plot):
            if existing.identity == plot_point.identity:
                plot[i] = plot_point
                break
        else:
            plot.append(plot_point)
        plot.sort(key=lambda p: p.chapter_number)
        self._touch()

    def set_power_system(self, power_system: PowerSystemInfo) -> None:
        self._core.power_system = power_system
        self._touch()

    def _touch(self) -> None:
        self._core.last_updated = self._clock()

    # ── Recent / long-term memory ────────────────────────────

    def add_recent_memory(self, memory: RecentMemory) -> list[LongTermMemory]:
        """Upsert a chapter into recent memory, archiving overflow.

        Returns the long-term records created by this call, oldest chapter first.
        """
        self._recent[memory.chapter_number] = memory
        self._recent = dict(sorted(self._recent.items(), reverse=True))
        return _archive_overflow(
            self._recent, self._long_term, self._core, self.max_recent_chapters
        )

    # ── Accessors ────────────────────────────────────────────

    @property
    def core_memory(self) -> CoreMemory:
        return self._core

    @property
    def recent_memory(self) -> list[RecentMemory]:
        """Recent chapters, newest first."""
        return list(self._recent.values())

    @property
    def long_term_memory(self) -> list[LongTermMemory]:
        """Archived chapters in archival order."""
        return list(self._long_term.values())

    def get_stats(self) -> dict[str, int]:
        return {
            "total_characters": len(self._core.characters),
            "total_world_settings": len(self._core.world_settings),
            "total_plot_points": len(self._core.main_plot),
            "recent_chapters": len(self._recent),
            "long_term_chapters": len(self._long_term),
            "total_memory_size": len(self._recent) + len(self._long_term),
        }

    def clear(self) -> None:
        self._core = CoreMemory(last_updated=self._clock())
        self._recent = {}
        self._long_term = {}

    # ── Search ───────────────────────────────────────────────

    def search(
        self,
        query: str,
        type: str | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        min_relevance: float = DEFAULT_MIN_RELEVANCE,
    ) -> list[MemorySearchResult]:
        """Rank memories against ``query`` by keyword overlap.

        A specific ``type`` (character / world / plot) only consults that part
        of core memory; recent and long-term memory are untyped and are only
        searched when ``type`` is None or ``"all"``. Unknown types match nothing.
        """
        full = type is None or type == "all"
        if not full and type not in CORE_SEARCH_TYPES:
            logger.debug("Unknown memory search type %r", type)
            return []

        results: list[MemorySearchResult] = []
        core = self._core

        if full or type == "character":
            for char in core.characters.values():
                relevance = calculate_relevance(
                    query, [char.name, *char.personality, char.background, *char.abilities]
                )
                if relevance >= min_relevance:
                    results.append(
                        MemorySearchResult(
                            tier="core",
                            content=(
                                f"角色：{char.name}\n"
                                f"性格：{'、'.join(char.personality)}\n"
                                f"背景：{char.background}"
                            ),
                            relevance=relevance,
                            metadata={"character": char},
                        )
                    )

        if full or type == "world":
            for setting in core.world_settings.values():
                relevance = calculate_relevance(query, [setting.name, setting.description])
                if relevance >= min_relevance:
                    results.append(
                        MemorySearchResult(
                            tier="core",
                            content=f"设定：{setting.name}\n{setting.description}",
                            relevance=relevance,
                            metadata={"world_setting": setting},
                        )
                    )

        if full or type == "plot":
            for plot in core.main_plot:
                relevance = calculate_relevance(query, [plot.description, *plot.related_characters])
                if relevance >= min_relevance:
                    results.append(
                        MemorySearchResult(
                            tier="core",
                            content=f"第{plot.chapter_number}章 - {plot.type}：{plot.description}",
                            relevance=relevance,
                            chapter_number=plot.chapter_number,
                            metadata={"plot_point": plot},
                        )
                    )

        if full:
            for memory in self._recent.values():
                relevance = calculate_relevance(
                    query,
                    [memory.summary, *memory.key_events, *memory.characters, *memory.locations],
                )
                if relevance >= min_relevance:
                    results.append(
                        MemorySearchResult(
                            tier="recent",
                            content=f"第{memory.chapter_number}章：{memory.summary}",
                            relevance=relevance * RECENT_WEIGHT,
                            chapter_number=memory.chapter_number,
                            metadata={"recent_memory": memory},
                        )
                    )

            for record in self._long_term.values():
                relevance = calculate_relevance(query, [record.summary, *record.keywords])
                if relevance >= min_relevance:
                    results.append(
                        MemorySearchResult(
                            tier="longterm",
                            content=f"第{record.chapter_number}章：{record.summary}",
                            relevance=relevance * (record.importance / 100),
                            chapter_number=record.chapter_number,
                            metadata={"long_term_memory": record},
                        )
                    )

        results.sort(key=lambda r: r.relevance, reverse=True)
        return results[: max(limit, 0)]

    # ── Derived views ────────────────────────────────────────

    def generate_relationship_graph(self) -> dict[str, list[str]]:
        """Directed graph: each character → the names in its own relationships."""
        return {name: list(char.relationships) for name, char in self._core.characters.items()}

    def generate_smart_summary(self, chapter_range: tuple[int, int] | None = None) -> str:
        """Markdown digest of the main cast, top settings and the latest chapters.

        ``chapter_range`` is an inclusive (start, end) filter on recent chapters.
        """
        core = self._core
        lines: list[str] = ["## 核心记忆"]

        lines.append(f"\n### 主要角色 ({len(core.characters)})")
        main_cast = sorted(
            (c for c in core.characters.values() if c.is_main),
            key=lambda c: c.importance,
            reverse=True,
        )
        for char in main_cast:
            lines.append(f"- **{char.name}** ({char.role}): {'、'.join(char.personality[:3])}")

        lines.append(f"\n### 世界设定 ({len(core.world_settings)})")
        top_settings = sorted(core.world_settings.values(), key=lambda s: s.importance, reverse=True)
        for setting in top_settings[:5]:
            description = setting.description
            if len(description) > 50:
                description = description[:50] + "..."
            lines.append(f"- **{setting.name}**: {description}")

        if core.power_system.levels:
            lines.append("\n### 力量体系")
            lines.append(" → ".join(core.power_system.levels))

        recent = self.recent_memory
        if chapter_range is not None:
            start, end = chapter_range
            recent = [m for m in recent if start <= m.chapter_number <= end]
        if recent:
            lines.append(f"\n## 近期剧情 (最近{len(recent)}章)")
            for memory in recent[:5]:
                lines.append(f"\n### 第{memory.chapter_number}章")
                lines.append(memory.summary)
                if memory.key_events:
                    lines.append(f"关键事件：{'、'.join(memory.key_events[:3])}")

        return "\n".join(lines)

    # ── Snapshot ─────────────────────────────────────────────

    def export(self) -> str:
        return encode_snapshot(
            SNAPSHOT_KIND,
            {
                "core": self._core.to_dict(),
                "recent": [m.to_dict() for m in self._recent.values()],
                "longterm": [r.to_dict() for r in self._long_term.values()],
            },
        )

    def import_data(self, blob: str | bytes) -> None:
        """Replace all three tiers with a snapshot. Raises SnapshotError; never half-applies."""
        payload = decode_snapshot(blob, SNAPSHOT_KIND)
        try:
            core = CoreMemory.from_dict(payload.get("core"))
            recent_items = _list(payload, "recent")
            longterm_items = _list(payload, "longterm")
            recent: dict[int, RecentMemory] = {}
            for item in recent_items:
                memory = RecentMemory.from_dict(item)
                if memory.chapter_number in recent:
                    raise ValueError(f"duplicate recent chapter {memory.chapter_number}")
                recent[memory.chapter_number] = memory
            long_term: dict[int, LongTermMemory] = {}
            for item in longterm_items:
                record = LongTermMemory.from_dict(item)
                long_term[record.chapter_number] = record
        except ValueError as e:
            raise SnapshotError(f"导入记忆数据失败：{e}") from e

        recent = dict(sorted(recent.items(), reverse=True))
        _archive_overflow(recent, long_term, core, self.max_recent_chapters)

        self._core = core
        self._recent = recent
        self._long_term = long_term
        logger.info(
            "Imported memory snapshot: %d characters, %d recent, %d long-term",
            len(core.characters),
            len(recent),
            len(long_term),
        )


def _list(payload: dict[str, Any], name: str) -> list:
    value = payload.get(name)
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list")
    return value


def _archive_overflow(
    recent: dict[int, RecentMemory],
    long_term: dict[int, LongTermMemory],
    core: CoreMemory,
    capacity: int,
) -> list[LongTermMemory]:
    """Pop the oldest chapters of a newest-first ``recent`` map until it fits."""
    archived: list[LongTermMemory] = []
    if len(recent) <= capacity:
        return archived
    main_characters = core.main_character_names()
    while len(recent) > capacity:
        _, memory = recent.popitem()
        record = archive(memory, main_characters)
        long_term[record.chapter_number] = record
        archived.append(record)
        logger.debug(
            "Archived chapter %d to long-term memory (importance=%d)",
            record.chapter_number,
            record.importance,
        )
    return archived


# ── Legacy (unversioned) snapshots ───────────────────────────


def _legacy_seconds(value: Any) -> Any:
    """Legacy snapshots stored epoch milliseconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 1e11:
        try:
            return value / 1000
        except OverflowError:
            return value
    return value


@register_migration(SNAPSHOT_KIND, 0)
def _migrate_legacy_memory(data: Any) -> dict:
    if not isinstance(data, dict):
        raise SnapshotError("legacy memory snapshot must be a JSON object")
    if not {"core", "recent", "longterm"} & data.keys():
        raise SnapshotError("legacy memory snapshot has none of core/recent/longterm")

    core = data.get("core") or {}
    if not isinstance(core, dict):
        raise SnapshotError("legacy memory core must be an object")
    core = snake_case_keys(core)

    def records(value: Any, name: str) -> list:
        if not isinstance(value, list):
            raise SnapshotError(f"legacy memory {name} must be a list")
        return [snake_case_keys(item) for item in value]

    recent = records(data.get("recent", []), "recent")
    for item in recent:
        if isinstance(item, dict) and "timestamp" in item:
            item["timestamp"] = _legacy_seconds(item["timestamp"])
    longterm = records(data.get("longterm", []), "longterm")
    for item in longterm:
        if isinstance(item, dict):
            item.pop("embedding", None)

    return {
        "core": {
            "characters": records(core.get("characters", []), "core.characters"),
            "world_settings": records(core.get("world_settings", []), "core.world_settings"),
            "main_plot": records(core.get("main_plot", []), "core.main_plot"),
            "power_system": core.get("power_system", {}),
            "last_updated": _legacy_seconds(core.get("last_updated", 0.0)),
        },
        "recent": recent,
        "longterm": longterm,
    }
