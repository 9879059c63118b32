"""Graph state engine: entities, hierarchy, visibility and search."""

from nestgraph.graph.invariants import Violation, assert_invariants, find_violations
from nestgraph.graph.model import GraphModel, VisibleSets
from nestgraph.graph.models import (
    AggregatedEdge,
    BatchAction,
    Container,
    Dimensions,
    EntityKind,
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    LayoutPhase,
    LayoutState,
    MatchKind,
    Position,
    SearchResult,
)
from nestgraph.graph.search import SearchState
from nestgraph.graph.smart_collapse import expansion_cost, plan_smart_collapse

__all__ = [
    "AggregatedEdge",
    "BatchAction",
    "Container",
    "Dimensions",
    "EntityKind",
    "GraphEdge",
    "GraphModel",
    "GraphNode",
    "GraphSnapshot",
    "LayoutPhase",
    "LayoutState",
    "MatchKind",
    "Position",
    "SearchResult",
    "SearchState",
    "Violation",
    "VisibleSets",
    "assert_invariants",
    "expansion_cost",
    "find_violations",
    "plan_smart_collapse",
]
