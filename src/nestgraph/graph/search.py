"""Text matching and search state for the graph model.

Matching is case-insensitive and combines three strategies, best first:

1. Exact substring containment. Every occurrence is recorded as a
   ``(start, end)`` range, overlapping occurrences included.
2. Fuzzy subsequence: every query character appears in order. Only
   tried for queries longer than three characters; each matched
   character gets its own single-character range.
3. Semantic tag containment on nodes and edges. An edge tag match
   surfaces both endpoint nodes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from nestgraph.graph.models import EntityKind, MatchKind, SearchResult

logger = logging.getLogger(__name__)

MAX_HISTORY = 10
MIN_FUZZY_QUERY_LENGTH = 4


def find_matches(text: str, query: str) -> tuple[MatchKind, list[tuple[int, int]]] | None:
    """Match a lowercased query against a label.

    Args:
        text: Label to search in
        query: Query, already trimmed and lowercased

    Returns:
        ``(match_kind, ranges)`` or None when nothing matches
    """
    if not query or not text:
        return None
    text_lower = text.lower()

    ranges: list[tuple[int, int]] = []
    start = text_lower.find(query)
    while start != -1:
        ranges.append((start, start + len(query)))
        start = text_lower.find(query, start + 1)
    if ranges:
        return MatchKind.EXACT, ranges

    if len(query) < MIN_FUZZY_QUERY_LENGTH:
        return None

    fuzzy: list[tuple[int, int]] = []
    qi = 0
    for i, ch in enumerate(text_lower):
        if qi == len(query):
            break
        if ch == query[qi]:
            fuzzy.append((i, i + 1))
            qi += 1
    if qi == len(query):
        return MatchKind.FUZZY, fuzzy
    return None


def tag_matches(tags: list[str], query: str) -> str | None:
    """Return the first tag containing the lowercased query."""
    for tag in tags:
        if query in tag.lower():
            return tag
    return None


class ResultCollector:
    """Collects matches keeping the best match per entity.

    Results are ordered by rank, ties broken by entity insertion order.
    """

    def __init__(self, order: dict[str, int]):
        self._order = order
        self._best: dict[str, SearchResult] = {}

    def offer(self, result: SearchResult) -> None:
        current = self._best.get(result.id)
        if current is None or result.rank < current.rank:
            self._best[result.id] = result

    def results(self) -> list[SearchResult]:
        return sorted(
            self._best.values(),
            key=lambda r: (r.rank, self._order.get(r.id, len(self._order))),
        )


@dataclass
class SearchState:
    """Search state owned by a GraphModel."""

    query: str = ""
    results: list[SearchResult] = field(default_factory=list)
    active: bool = False
    history: list[str] = field(default_factory=list)
    expanded_containers: set[str] = field(default_factory=set)

    def record(self, query: str) -> None:
        """Push a query to the front of history, unique and capped."""
        if query in self.history:
            self.history.remove(query)
        self.history.insert(0, query)
        del self.history[MAX_HISTORY:]

    def reset(self) -> None:
        """Clear the current search while keeping history."""
        self.query = ""
        self.results = []
        self.active = False
        self.expanded_containers.clear()

    @property
    def highlighted_ids(self) -> frozenset[str]:
        return frozenset(r.id for r in self.results)


def normalize_query(query: str) -> str:
    return (query or "").strip()


def label_result(entity_id: str, label: str, kind: EntityKind, query: str) -> SearchResult | None:
    """Build a label match result for one entity, or None."""
    match = find_matches(label, query)
    if match is None:
        return None
    match_kind, ranges = match
    return SearchResult(
        id=entity_id,
        label=label,
        kind=kind,
        match_kind=match_kind,
        match_ranges=ranges,
    )
