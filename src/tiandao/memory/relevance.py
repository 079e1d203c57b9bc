"""Keyword-overlap relevance scoring shared by memory search.

Relevance of a record is the best fraction of query tokens found, as
case-insensitive substrings, inside any single one of the record's text fields.
"""

from __future__ import annotations

from collections.abc import Iterable


def tokenize(query: str) -> list[str]:
    """Lowercase ``query`` and split it on whitespace."""
    return [word for word in query.lower().split() if word]


def calculate_relevance(query: str, texts: Iterable[str | None]) -> float:
    """Return the relevance of ``texts`` to ``query`` in [0.0, 1.0]."""
    words = tokenize(query)
    if not words:
        return 0.0

    best = 0.0
    for text in texts:
        if not text:
            continue
        lowered = text.lower()
        matched = sum(1 for word in words if word in lowered)
        best = max(best, matched / len(words))
        if best == 1.0:
            break
    return best
