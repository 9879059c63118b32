"""Tests for graph entity models."""

import pytest

from nestgraph.graph.models import (
    AggregatedEdge,
    Container,
    Dimensions,
    EntityKind,
    GraphNode,
    LayoutPhase,
    LayoutState,
    MatchKind,
    Position,
    SearchResult,
    aggregated_edge_id,
)


class TestGraphNode:
    """Tests for GraphNode dataclass."""

    def test_default_values(self):
        """Test default values are set correctly."""
        node = GraphNode(id="n1")

        assert node.label == ""
        assert node.type == "default"
        assert node.semantic_tags == []
        assert node.hidden is False
        assert node.position is None
        assert node.showing_long_label is False

    def test_display_label(self):
        """Test the shown label follows the long-label flag."""
        node = GraphNode(id="n1", label="parse", long_label="parse(input: str) -> Tree")
        assert node.display_label == "parse"

        node.showing_long_label = True
        assert node.display_label == "parse(input: str) -> Tree"

    def test_display_label_without_long_label(self):
        """Test the short label is used when there is no long label."""
        node = GraphNode(id="n1", label="parse", showing_long_label=True)
        assert node.display_label == "parse"
        assert GraphNode(id="bare").display_label == "bare"

    def test_to_dict(self):
        """Test serialization includes geometry."""
        node = GraphNode(
            id="n1",
            label="Source",
            semantic_tags=["Network"],
            position=Position(10.0, 20.0),
            dimensions=Dimensions(180.0, 60.0),
        )

        data = node.to_dict()

        assert data["id"] == "n1"
        assert data["semantic_tags"] == ["Network"]
        assert data["position"] == {"x": 10.0, "y": 20.0}
        assert data["dimensions"] == {"width": 180.0, "height": 60.0}


class TestContainer:
    """Tests for Container dataclass."""

    def test_default_values(self):
        container = Container(id="c1")
        assert container.children == []
        assert container.collapsed is False
        assert container.hidden is False

    def test_children_not_shared(self):
        """Test each container gets its own children list."""
        a = Container(id="a")
        b = Container(id="b")
        a.children.append("n1")
        assert b.children == []


class TestAggregatedEdge:
    """Tests for AggregatedEdge."""

    def test_multiplicity(self):
        """Test multiplicity counts the underlying edges."""
        agg = AggregatedEdge(id="agg:c1->x", source="c1", target="x", original_edge_ids=["e1", "e2"])

        assert agg.multiplicity == 2
        assert agg.type == "aggregated"
        assert agg.to_dict()["multiplicity"] == 2

    def test_id_format(self):
        assert aggregated_edge_id("c1", "x") == "agg:c1->x"


class TestSearchResult:
    """Tests for SearchResult."""

    @pytest.mark.parametrize(
        "match_kind,rank",
        [(MatchKind.EXACT, 0), (MatchKind.FUZZY, 1), (MatchKind.TAG, 2)],
    )
    def test_rank(self, match_kind, rank):
        result = SearchResult(id="n1", label="x", kind=EntityKind.NODE, match_kind=match_kind)
        assert result.rank == rank

    def test_to_dict(self):
        result = SearchResult(
            id="n1",
            label="JavaScript Function",
            kind=EntityKind.NODE,
            match_kind=MatchKind.EXACT,
            match_ranges=[(0, 10)],
        )

        data = result.to_dict()

        assert data["kind"] == "node"
        assert data["match_kind"] == "exact"
        assert data["match_ranges"] == [[0, 10]]
        assert data["matched_tag"] is None


class TestLayoutState:
    """Tests for LayoutState."""

    def test_defaults(self):
        state = LayoutState()
        assert state.phase == LayoutPhase.INITIAL
        assert state.layout_count == 0
        assert state.last_error is None

    def test_phase_accepts_string_values(self):
        assert LayoutPhase("laying_out") is LayoutPhase.LAYING_OUT
