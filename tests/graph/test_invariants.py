"""Tests for the invariant audit."""

import pytest

from nestgraph.exceptions import InvariantViolation
from nestgraph.graph.invariants import Violation, assert_invariants, find_violations


def rules(model):
    return {v.rule for v in find_violations(model)}


class TestFindViolations:
    """Tests for find_violations."""

    def test_healthy_model(self, nested_model):
        nested_model.collapse_container("inner")
        assert find_violations(nested_model) == []

    def test_hidden_flag_mismatch(self, simple_model):
        """Test a node hidden without a collapsed ancestor is reported."""
        simple_model.get_node("x").hidden = True
        assert "visibility_mismatch" in rules(simple_model)

    def test_hidden_expanded_container(self, simple_model):
        """Test a hidden container must be collapsed."""
        simple_model.get_container("c1").hidden = True

        found = rules(simple_model)

        assert "hidden_expanded_container" in found
        assert "visible_under_hidden_ancestor" in found

    def test_visible_child_of_collapsed(self, simple_model):
        simple_model.get_container("c1").collapsed = True
        assert "visible_descendant_of_collapsed" in rules(simple_model)

    def test_expanded_descendant_of_collapsed(self, nested_model):
        nested_model.collapse_container("outer")
        nested_model.get_container("inner").collapsed = False
        assert "expanded_descendant_of_collapsed" in rules(nested_model)

    def test_stale_visible_cache(self, simple_model):
        """Test the cached visible sets are compared with the flags."""
        simple_model.get_visible_ids()
        simple_model.get_node("x").hidden = True
        assert "stale_visible_set" in rules(simple_model)

    def test_stale_aggregated_edges(self, simple_model):
        simple_model.collapse_container("c1")
        simple_model._aggregated.clear()
        assert "aggregated_edge_mismatch" in rules(simple_model)

    def test_edge_visibility_mismatch(self, simple_model):
        simple_model.get_edge("e1").hidden = True
        assert "edge_visibility_mismatch" in rules(simple_model)

    def test_violation_str(self):
        violation = Violation("dangling_edge", "e1", "endpoint does not exist")
        assert str(violation) == "[dangling_edge] e1: endpoint does not exist"


class TestAssertInvariants:
    """Tests for assert_invariants."""

    def test_raises_with_violations(self, simple_model):
        simple_model.get_node("x").hidden = True

        with pytest.raises(InvariantViolation) as exc_info:
            assert_invariants(simple_model)

        assert exc_info.value.violations
        assert "visibility_mismatch" in str(exc_info.value)

    def test_validate_invariants_passes(self, nested_model):
        nested_model.collapse_all()
        nested_model.validate_invariants()
