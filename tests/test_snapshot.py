"""Tests for the markdown summary file."""

from __future__ import annotations

from pathlib import Path

import frontmatter
import pytest

from tiandao.memory.models import CharacterInfo, RecentMemory
from tiandao.memory.snapshot import read_summary_metadata, render_summary, write_summary
from tiandao.memory.store import TieredMemoryStore


@pytest.fixture
def store(clock) -> TieredMemoryStore:
    store = TieredMemoryStore(max_recent_chapters=2, clock=clock)
    store.add_character(CharacterInfo(name="张三", role="protagonist", personality=["坚毅"]))
    for n in (1, 2, 3):
        store.add_recent_memory(RecentMemory(chapter_number=n, summary=f"第{n}章摘要"))
    return store


class TestRenderSummary:
    def test_frontmatter(self, store: TieredMemoryStore):
        post = frontmatter.loads(render_summary(store))
        assert post.metadata["type"] == "summary"
        assert post.metadata["characters"] == 1
        assert post.metadata["recent_chapters"] == 2
        assert post.metadata["long_term_chapters"] == 1
        assert post.metadata["latest_chapter"] == 3
        assert "updated" in post.metadata

    def test_body(self, store: TieredMemoryStore):
        post = frontmatter.loads(render_summary(store))
        assert post.content.startswith("# 记忆摘要")
        assert "**张三**" in post.content
        assert "### 第3章" in post.content

    def test_chapter_range(self, store: TieredMemoryStore):
        post = frontmatter.loads(render_summary(store, (3, 3)))
        assert "### 第3章" in post.content
        assert "### 第2章" not in post.content

    def test_empty_store(self, clock):
        post = frontmatter.loads(render_summary(TieredMemoryStore(clock=clock)))
        assert post.metadata["latest_chapter"] is None


class TestWriteSummary:
    def test_write_and_read_back(self, store: TieredMemoryStore, tmp_path: Path):
        path = write_summary(store, tmp_path / "out" / "summary.md")
        assert path.exists()
        meta = read_summary_metadata(path)
        assert meta["latest_chapter"] == 3
        assert meta["type"] == "summary"

    def test_read_missing_file(self, tmp_path: Path):
        assert read_summary_metadata(tmp_path / "missing.md") == {}
