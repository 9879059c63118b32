"""Entity models for the graph state engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EntityKind(str, Enum):
    """Kind of entity an id refers to."""

    NODE = "node"
    EDGE = "edge"
    CONTAINER = "container"


class LayoutPhase(str, Enum):
    """Where the model is in the layout/render cycle."""

    INITIAL = "initial"
    LAYING_OUT = "laying_out"
    READY = "ready"
    RENDERING = "rendering"
    DISPLAYED = "displayed"
    ERROR = "error"


class BatchAction(str, Enum):
    """Action applied to one container inside a batch."""

    EXPAND = "expand"
    COLLAPSE = "collapse"
    TOGGLE = "toggle"


class MatchKind(str, Enum):
    """How a search result matched the query, best first."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    TAG = "tag"


MATCH_RANK = {MatchKind.EXACT: 0, MatchKind.FUZZY: 1, MatchKind.TAG: 2}


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Dimensions:
    width: float
    height: float

    def to_dict(self) -> dict[str, float]:
        return {"width": self.width, "height": self.height}


@dataclass
class GraphNode:
    """A leaf entity of the graph."""

    id: str
    label: str = ""
    long_label: str | None = None
    type: str = "default"
    semantic_tags: list[str] = field(default_factory=list)
    hidden: bool = False
    position: Position | None = None
    dimensions: Dimensions | None = None
    showing_long_label: bool = False

    @property
    def display_label(self) -> str:
        """Label currently shown for the node."""
        if self.showing_long_label and self.long_label:
            return self.long_label
        return self.label or self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "long_label": self.long_label,
            "type": self.type,
            "semantic_tags": list(self.semantic_tags),
            "hidden": self.hidden,
            "position": self.position.to_dict() if self.position else None,
            "dimensions": self.dimensions.to_dict() if self.dimensions else None,
            "showing_long_label": self.showing_long_label,
        }


@dataclass
class GraphEdge:
    """A directed edge between two nodes or containers."""

    id: str
    source: str
    target: str
    type: str = "default"
    semantic_tags: list[str] = field(default_factory=list)
    hidden: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "semantic_tags": list(self.semantic_tags),
            "hidden": self.hidden,
        }


@dataclass
class Container:
    """A collapsible group of nodes and nested containers.

    ``children`` keeps insertion order and holds no duplicates.
    """

    id: str
    label: str = ""
    children: list[str] = field(default_factory=list)
    collapsed: bool = False
    hidden: bool = False
    position: Position | None = None
    dimensions: Dimensions | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "children": list(self.children),
            "collapsed": self.collapsed,
            "hidden": self.hidden,
            "position": self.position.to_dict() if self.position else None,
            "dimensions": self.dimensions.to_dict() if self.dimensions else None,
        }


@dataclass
class AggregatedEdge:
    """Synthetic edge standing in for edges that cross a collapsed boundary."""

    id: str
    source: str
    target: str
    type: str = "aggregated"
    semantic_tags: list[str] = field(default_factory=list)
    original_edge_ids: list[str] = field(default_factory=list)

    @property
    def multiplicity(self) -> int:
        return len(self.original_edge_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "semantic_tags": list(self.semantic_tags),
            "original_edge_ids": list(self.original_edge_ids),
            "multiplicity": self.multiplicity,
        }


def aggregated_edge_id(source: str, target: str) -> str:
    return f"agg:{source}->{target}"


@dataclass
class LayoutState:
    """Layout lifecycle state of a model."""

    phase: LayoutPhase = LayoutPhase.INITIAL
    layout_count: int = 0
    last_error: str | None = None
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class SearchResult:
    """A single ranked search match.

    match_ranges holds ``(start, end)`` character ranges within ``label``
    for highlighting; tag matches carry no ranges.
    """

    id: str
    label: str
    kind: EntityKind
    match_kind: MatchKind
    match_ranges: list[tuple[int, int]] = field(default_factory=list)
    matched_tag: str | None = None

    @property
    def rank(self) -> int:
        return MATCH_RANK[self.match_kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind.value,
            "match_kind": self.match_kind.value,
            "match_ranges": [list(r) for r in self.match_ranges],
            "matched_tag": self.matched_tag,
        }


@dataclass(frozen=True)
class GraphSnapshot:
    """Read-only view of the visible subgraph.

    Entities are copies; mutating them has no effect on the model.
    Containers are ordered parents before children.
    """

    revision: int
    nodes: tuple[GraphNode, ...]
    edges: tuple[GraphEdge, ...]
    containers: tuple[Container, ...]
    aggregated_edges: tuple[AggregatedEdge, ...]
    parents: dict[str, str]
    highlighted: frozenset[str] = frozenset()

    @property
    def entity_count(self) -> int:
        return len(self.nodes) + len(self.containers)
