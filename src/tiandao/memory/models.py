"""Record types for the three memory tiers.

``from_dict`` validates structure and raises ``ValueError`` on anything it
cannot interpret; the store turns that into a ``SnapshotError`` on import.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

CharacterRole = Literal["protagonist", "antagonist", "supporting", "minor"]
SettingType = Literal["geography", "organization", "rule", "history"]
PlotType = Literal["setup", "conflict", "climax", "resolution", "twist"]
Tier = Literal["core", "recent", "longterm"]

MAIN_ROLES = ("protagonist", "antagonist")


def _field(data: Any, name: str, kind: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"{kind} must be an object, got {type(data).__name__}")
    if name not in data:
        raise ValueError(f"{kind} is missing field {name!r}")
    return data[name]


def _str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    return value


def _str_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list, got {type(value).__name__}")
    return [_str(v, name) for v in value]


def _float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {type(value).__name__}")
    try:
        number = float(value)
    except OverflowError:
        raise ValueError(f"{name} is out of range") from None
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite, got {value}")
    return number


def _int(value: Any, name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = _float(value, name)
    if not number.is_integer():
        raise ValueError(f"{name} must be a whole number, got {value}")
    return int(number)


@dataclass
class CharacterInfo:
    name: str
    role: CharacterRole = "minor"
    personality: list[str] = field(default_factory=list)
    relationships: dict[str, str] = field(default_factory=dict)  # other name → relation
    abilities: list[str] = field(default_factory=list)
    background: str = ""
    first_appearance: int = 0
    importance: float = 0

    @property
    def is_main(self) -> bool:
        return self.role in MAIN_ROLES

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> CharacterInfo:
        name = _str(_field(data, "name", "character"), "character.name")
        relationships = data.get("relationships", {})
        if not isinstance(relationships, dict):
            raise ValueError("character.relationships must be an object")
        return cls(
            name=name,
            role=_str(data.get("role", "minor"), "character.role"),
            personality=_str_list(data.get("personality", []), "character.personality"),
            relationships={
                _str(k, "character.relationships"): _str(v, "character.relationships")
                for k, v in relationships.items()
            },
            abilities=_str_list(data.get("abilities", []), "character.abilities"),
            background=_str(data.get("background", ""), "character.background"),
            first_appearance=_int(data.get("first_appearance", 0), "character.first_appearance"),
            importance=_float(data.get("importance", 0), "character.importance"),
        )


@dataclass
class WorldSetting:
    name: str
    type: SettingType = "rule"
    description: str = ""
    related_chapters: list[int] = field(default_factory=list)
    importance: float = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> WorldSetting:
        name = _str(_field(data, "name", "world_setting"), "world_setting.name")
        chapters = data.get("related_chapters", [])
        if not isinstance(chapters, list):
            raise ValueError("world_setting.related_chapters must be a list")
        return cls(
            name=name,
            type=_str(data.get("type", "rule"), "world_setting.type"),
            description=_str(data.get("description", ""), "world_setting.description"),
            related_chapters=[_int(c, "world_setting.related_chapters") for c in chapters],
            importance=_float(data.get("importance", 0), "world_setting.importance"),
        )


@dataclass
class PlotPoint:
    chapter_number: int
    description: str
    type: PlotType = "setup"
    related_characters: list[str] = field(default_factory=list)
    importance: float = 0

    @property
    def identity(self) -> tuple[int, str]:
        return (self.chapter_number, self.description)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> PlotPoint:
        return cls(
            chapter_number=_int(_field(data, "chapter_number", "plot_point"), "plot_point.chapter_number"),
            description=_str(_field(data, "description", "plot_point"), "plot_point.description"),
            type=_str(data.get("type", "setup"), "plot_point.type"),
            related_characters=_str_list(
                data.get("related_characters", []), "plot_point.related_characters"
            ),
            importance=_float(data.get("importance", 0), "plot_point.importance"),
        )


@dataclass
class PowerSystemInfo:
    levels: list[str] = field(default_factory=list)
    rules: list[str] = field(default_factory=list)
    limitations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> PowerSystemInfo:
        if not isinstance(data, dict):
            raise ValueError("power_system must be an object")
        return cls(
            levels=_str_list(data.get("levels", []), "power_system.levels"),
            rules=_str_list(data.get("rules", []), "power_system.rules"),
            limitations=_str_list(data.get("limitations", []), "power_system.limitations"),
        )


@dataclass
class CoreMemory:
    """Permanent facts. Characters and settings are indexed by name."""

    characters: dict[str, CharacterInfo] = field(default_factory=dict)
    world_settings: dict[str, WorldSetting] = field(default_factory=dict)
    main_plot: list[PlotPoint] = field(default_factory=list)
    power_system: PowerSystemInfo = field(default_factory=PowerSystemInfo)
    last_updated: float = 0.0

    def main_character_names(self) -> set[str]:
        return {c.name for c in self.characters.values() if c.is_main}

    def to_dict(self) -> dict[str, Any]:
        return {
            "characters": [c.to_dict() for c in self.characters.values()],
            "world_settings": [s.to_dict() for s in self.world_settings.values()],
            "main_plot": [p.to_dict() for p in self.main_plot],
            "power_system": self.power_system.to_dict(),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Any) -> CoreMemory:
        characters = _field(data, "characters", "core")
        settings = _field(data, "world_settings", "core")
        plot = _field(data, "main_plot", "core")
        for name, value in (("characters", characters), ("world_settings", settings), ("main_plot", plot)):
            if not isinstance(value, list):
                raise ValueError(f"core.{name} must be a list")
        core = cls(
            power_system=PowerSystemInfo.from_dict(data.get("power_system", {})),
            last_updated=_float(data.get("last_updated", 0.0), "core.last_updated"),
        )
        for item in characters:
            c = CharacterInfo.from_dict(item)
            core.characters[c.name] = c
        for item in settings:
            s = WorldSetting.from_dict(item)
            core.world_settings[s.name] = s
        core.main_plot = sorted((PlotPoint.from_dict(p) for p in plot), key=lambda p: p.chapter_number)
        return core


@dataclass
class RecentMemory:
    chapter_number: int
    summary: str = ""
    key_events: list[str] = field(default_factory=list)
    characters: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> RecentMemory:
        return cls(
            chapter_number=_int(_field(data, "chapter_number", "recent"), "recent.chapter_number"),
            summary=_str(data.get("summary", ""), "recent.summary"),
            key_events=_str_list(data.get("key_events", []), "recent.key_events"),
            characters=_str_list(data.get("characters", []), "recent.characters"),
            locations=_str_list(data.get("locations", []), "recent.locations"),
            timestamp=_float(data.get("timestamp", 0.0), "recent.timestamp"),
        )


@dataclass(frozen=True)
class LongTermMemory:
    """Archived chapter. Importance is fixed at archival time."""

    chapter_number: int
    summary: str
    keywords: tuple[str, ...] = ()
    importance: float = 50

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapter_number": self.chapter_number,
            "summary": self.summary,
            "keywords": list(self.keywords),
            "importance": self.importance,
        }

    @classmethod
    def from_dict(cls, data: Any) -> LongTermMemory:
        chapter_number = _int(_field(data, "chapter_number", "longterm"), "longterm.chapter_number")
        importance = _float(data.get("importance", 50), "longterm.importance")
        if not 0 <= importance <= 100:
            raise ValueError(f"longterm.importance must be within 0-100, got {importance}")
        return cls(
            chapter_number=chapter_number,
            summary=_str(data.get("summary", ""), "longterm.summary"),
            keywords=tuple(_str_list(data.get("keywords", []), "longterm.keywords")),
            importance=importance,
        )


@dataclass
class MemorySearchResult:
    tier: Tier
    content: str
    relevance: float
    chapter_number: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
