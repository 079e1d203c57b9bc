"""Entry point: python -m tiandao <command>

Commands:
    ingest CHAPTER [FILE]  – Extract chapter memory from FILE (or stdin) and store it.
    search QUERY           – Search the tiered memory.
    summary                – Print (or write) the smart summary.
    graph                  – Print the character relationship graph.
    stats                  – Print memory statistics.
    cache-report           – Print analysis cache statistics.
    cache-clean            – Remove expired analysis cache entries.

State lives in ``data_dir`` (see tiandao.toml / TIANDAO_DATA_DIR).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from tiandao.cache.registry import build_default_registry
from tiandao.config import TiandaoConfig, load_config
from tiandao.memory.extract import extract_memory_from_chapter
from tiandao.memory.snapshot import write_summary
from tiandao.memory.store import TieredMemoryStore
from tiandao.persistence import FileByteStore, SnapshotPersistence

MEMORY_KEY = "memory"


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tiandao",
        description="Tiered novel memory and analysis cache.",
    )
    parser.add_argument("--config", type=Path, default=None, metavar="PATH", help="Path to tiandao.toml.")

    sub = parser.add_subparsers(dest="command", required=True)

    p_ingest = sub.add_parser("ingest", help="Extract and store memory for a chapter.")
    p_ingest.add_argument("chapter", type=int, help="Chapter number.")
    p_ingest.add_argument("file", nargs="?", type=Path, help="Chapter text file (reads stdin if omitted).")

    p_search = sub.add_parser("search", help="Search memory.")
    p_search.add_argument("query", help="Space-separated keywords.")
    p_search.add_argument("--type", default=None, choices=["all", "character", "plot", "world"])
    p_search.add_argument("--limit", type=int, default=10, metavar="N")
    p_search.add_argument("--min-relevance", type=float, default=0.3, metavar="SCORE")
    p_search.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON.")

    p_summary = sub.add_parser("summary", help="Print the smart summary.")
    p_summary.add_argument("--start", type=int, default=None, help="First recent chapter to include.")
    p_summary.add_argument("--end", type=int, default=None, help="Last recent chapter to include.")
    p_summary.add_argument("--write", type=Path, default=None, metavar="PATH", help="Write a markdown file instead.")

    sub.add_parser("graph", help="Print the relationship graph as JSON.")
    sub.add_parser("stats", help="Print memory statistics.")
    sub.add_parser("cache-report", help="Print analysis cache statistics.")
    sub.add_parser("cache-clean", help="Remove expired analysis cache entries.")

    return parser


def _open_memory(config: TiandaoConfig) -> tuple[TieredMemoryStore, SnapshotPersistence]:
    store = TieredMemoryStore(max_recent_chapters=config.memory.max_recent_chapters)
    persistence = SnapshotPersistence(FileByteStore(config.data_dir), MEMORY_KEY)
    persistence.restore(store)
    return store, persistence


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = load_config(args.config)
    _setup_logging(config.log_level)

    if args.command in ("cache-report", "cache-clean"):
        registry = build_default_registry(config.cache, FileByteStore(config.data_dir))
        if args.command == "cache-report":
            print(registry.report())
        else:
            cleaned = registry.clean_all_expired()
            for name, count in cleaned.items():
                print(f"{name}: {count}")
        return 0

    store, persistence = _open_memory(config)

    if args.command == "ingest":
        text = args.file.read_text(encoding="utf-8") if args.file else sys.stdin.read()
        if not text.strip():
            print("Error: no chapter text provided.", file=sys.stderr)
            return 1
        memory = extract_memory_from_chapter(args.chapter, text)
        archived = store.add_recent_memory(memory)
        persistence.save(store)
        print(f"第{memory.chapter_number}章已记录：{len(memory.key_events)} 个关键事件，"
              f"{len(memory.characters)} 个角色，{len(memory.locations)} 个地点")
        for record in archived:
            print(f"第{record.chapter_number}章已归档（重要度 {record.importance:.0f}）")

    elif args.command == "search":
        results = store.search(
            args.query, type=args.type, limit=args.limit, min_relevance=args.min_relevance
        )
        if not results:
            print("No memories found.")
            return 0
        if args.as_json:
            simplified = [
                {
                    "tier": r.tier,
                    "content": r.content,
                    "relevance": round(r.relevance, 4),
                    "chapter_number": r.chapter_number,
                }
                for r in results
            ]
            print(json.dumps(simplified, ensure_ascii=False, indent=2))
        else:
            for i, r in enumerate(results, 1):
                print(f"[{i}] ({r.tier}, relevance={r.relevance:.3f})")
                print(f"    {r.content.replace(chr(10), ' / ')[:200]}")

    elif args.command == "summary":
        chapter_range = None
        if args.start is not None or args.end is not None:
            chapter_range = (
                args.start if args.start is not None else 0,
                args.end if args.end is not None else sys.maxsize,
            )
        if args.write:
            write_summary(store, args.write, chapter_range)
            print(f"Wrote {args.write}")
        else:
            print(store.generate_smart_summary(chapter_range))

    elif args.command == "graph":
        print(json.dumps(store.generate_relationship_graph(), ensure_ascii=False, indent=2))

    elif args.command == "stats":
        for name, value in store.get_stats().items():
            print(f"{name}: {value}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
