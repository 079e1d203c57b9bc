"""Tiered memory for a long-running novel project.

Tiers:
    core      - characters, world settings, main plot, power system (never evicted)
    recent    - the newest N chapters, newest first (default N = 10)
    longterm  - chapters archived out of recent memory, with fixed importance

Modules:
    models     - record dataclasses for every tier
    relevance  - keyword-overlap scoring used by search
    store      - TieredMemoryStore (upserts, archival, search, summary, snapshot)
    extract    - heuristic RecentMemory extraction from chapter text
    snapshot   - markdown + frontmatter summary files
"""
