"""Heuristic extraction of a recent-memory entry from raw chapter text."""

from __future__ import annotations

import re
import time
from collections.abc import Callable

from tiandao.memory.models import RecentMemory

_SPEAKER_PATTERN = re.compile(
    r"([^\s，。！？：；、\n\"“”「『]{2,4})(说道?|问道?|(?<!回)答道?|笑道?|怒道?|叹道?)(?=[：:，。！？\s\"“「]|$)"
)
_ANSWER_PATTERN = re.compile(r"([^\s，。！？：；、\n\"“”「『]{2,4})回答")
_LOCATION_PATTERN = re.compile(
    r"(?:在|到|去|来到|进入|离开)([^\s，。！？：；、]{2,6}(?:城|山|谷|殿|宫|楼|阁|院|室|洞|府))"
)
_PARTICLE_SUFFIX = re.compile(r"[的了着过]$")

ACTION_WORDS = ("战斗", "修炼", "突破", "发现", "遇到", "击败", "获得", "离开", "到达")

MAX_KEY_EVENTS = 5
MAX_EVENT_LENGTH = 100
SUMMARY_LINES = 3
SUMMARY_LENGTH = 200


def _speakers(text: str) -> list[str]:
    names: dict[str, None] = {}
    for pattern in (_SPEAKER_PATTERN, _ANSWER_PATTERN):
        for match in pattern.finditer(text):
            name = match.group(1)
            if not _PARTICLE_SUFFIX.search(name):
                names.setdefault(name)
    return list(names)


def extract_memory_from_chapter(
    chapter_number: int,
    chapter_text: str,
    clock: Callable[[], float] = time.time,
) -> RecentMemory:
    """Build a RecentMemory from chapter text.

    Speakers come from "XX说/道/问道…" and "XX回答" patterns, locations from
    movement verbs followed by a place suffix, key events from short lines
    containing an action word. The summary is the first three lines.
    """
    lines = [line.strip() for line in chapter_text.splitlines() if line.strip()]

    locations: dict[str, None] = {}
    for match in _LOCATION_PATTERN.finditer(chapter_text):
        locations.setdefault(match.group(1))

    key_events = [
        line
        for line in lines
        if len(line) < MAX_EVENT_LENGTH and any(word in line for word in ACTION_WORDS)
    ]

    return RecentMemory(
        chapter_number=chapter_number,
        summary="".join(lines[:SUMMARY_LINES])[:SUMMARY_LENGTH],
        key_events=key_events[:MAX_KEY_EVENTS],
        characters=_speakers(chapter_text),
        locations=list(locations),
        timestamp=clock(),
    )
