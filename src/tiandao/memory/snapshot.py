"""Write the smart summary as a markdown file with YAML frontmatter.

The file is meant for people and external summarizers; the JSON snapshot in
``tiandao.persistence`` remains the machine-readable format.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import frontmatter

from tiandao.memory.store import TieredMemoryStore

logger = logging.getLogger(__name__)


def render_summary(store: TieredMemoryStore, chapter_range: tuple[int, int] | None = None) -> str:
    """Render the summary document (frontmatter + markdown body)."""
    stats = store.get_stats()
    recent = store.recent_memory
    post = frontmatter.Post(
        f"# 记忆摘要\n\n{store.generate_smart_summary(chapter_range)}\n",
        type="summary",
        updated=datetime.now().isoformat(timespec="seconds"),
        characters=stats["total_characters"],
        recent_chapters=stats["recent_chapters"],
        long_term_chapters=stats["long_term_chapters"],
        latest_chapter=recent[0].chapter_number if recent else None,
    )
    return frontmatter.dumps(post)


def write_summary(
    store: TieredMemoryStore,
    path: Path,
    chapter_range: tuple[int, int] | None = None,
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_summary(store, chapter_range), encoding="utf-8")
    logger.info("Wrote memory summary to %s", path)
    return path


def read_summary_metadata(path: Path) -> dict:
    """Parse the frontmatter of a summary file; {} when missing or unreadable."""
    try:
        post = frontmatter.load(str(path))
        return dict(post.metadata)
    except Exception:
        return {}
