"""Audit pass over the visibility invariants of a GraphModel.

The audit recomputes visibility and edge aggregation independently
from the containment tree and compares the result with the model's
flags and caches. It only reads the model.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nestgraph.exceptions import InvariantViolation

if TYPE_CHECKING:
    from nestgraph.graph.model import GraphModel


@dataclass(frozen=True)
class Violation:
    """A single broken invariant."""

    rule: str
    entity_id: str
    message: str

    def __str__(self) -> str:
        return f"[{self.rule}] {self.entity_id}: {self.message}"


def _ancestors(model: GraphModel, entity_id: str, limit: int) -> tuple[list[str], bool]:
    """Walk up the hierarchy; the flag is True when a cycle was found."""
    seen = {entity_id}
    chain = []
    current = model.get_parent(entity_id)
    while current is not None:
        if current in seen or len(chain) > limit:
            return chain, True
        seen.add(current)
        chain.append(current)
        current = model.get_parent(current)
    return chain, False


def find_violations(model: GraphModel) -> list[Violation]:
    """Collect every invariant violation in the model."""
    violations: list[Violation] = []
    containers = {c.id: c for c in model.containers}
    entities = {n.id: n for n in model.nodes}
    entities.update(containers)
    limit = len(entities)

    expected_visible: dict[str, bool] = {}
    for entity_id in entities:
        chain, cyclic = _ancestors(model, entity_id, limit)
        if cyclic:
            violations.append(Violation("containment_cycle", entity_id, "entity is its own ancestor"))
            expected_visible[entity_id] = not entities[entity_id].hidden
            continue
        expected_visible[entity_id] = all(not containers[a].collapsed for a in chain)
        for ancestor_id in chain:
            if containers[ancestor_id].hidden and not entities[entity_id].hidden:
                violations.append(
                    Violation(
                        "visible_under_hidden_ancestor",
                        entity_id,
                        f"visible while ancestor {ancestor_id} is hidden",
                    )
                )
                break

    for container in containers.values():
        if container.hidden and not container.collapsed:
            violations.append(
                Violation("hidden_expanded_container", container.id, "expanded while hidden")
            )
        if not container.collapsed:
            continue
        for descendant_id in model.get_descendants(container.id):
            descendant = entities[descendant_id]
            if not descendant.hidden:
                violations.append(
                    Violation(
                        "visible_descendant_of_collapsed",
                        descendant_id,
                        f"visible inside collapsed container {container.id}",
                    )
                )
            if descendant_id in containers and not containers[descendant_id].collapsed:
                violations.append(
                    Violation(
                        "expanded_descendant_of_collapsed",
                        descendant_id,
                        f"expanded inside collapsed container {container.id}",
                    )
                )

    for entity_id, entity in entities.items():
        if entity.hidden == expected_visible[entity_id]:
            violations.append(
                Violation(
                    "visibility_mismatch",
                    entity_id,
                    f"hidden={entity.hidden} but expected visible={expected_visible[entity_id]}",
                )
            )

    visible = model.get_visible_ids()
    for kind, ids, pool in (
        ("node", visible.nodes, model.nodes),
        ("container", visible.containers, model.containers),
        ("edge", visible.edges, model.edges),
    ):
        expected = {e.id for e in pool if not e.hidden}
        if set(ids) != expected:
            violations.append(
                Violation("stale_visible_set", kind, "cached visible set differs from hidden flags")
            )

    violations.extend(_edge_violations(model, entities))
    return violations


def _nearest_visible(model: GraphModel, entities: dict, entity_id: str) -> str | None:
    current: str | None = entity_id
    while current is not None and entities[current].hidden:
        current = model.get_parent(current)
    return current


def _edge_violations(model: GraphModel, entities: dict) -> list[Violation]:
    violations = []
    expected: Counter[tuple[str, str]] = Counter()
    for edge in model.edges:
        if edge.source not in entities or edge.target not in entities:
            violations.append(Violation("dangling_edge", edge.id, "endpoint does not exist"))
            continue
        should_hide = entities[edge.source].hidden or entities[edge.target].hidden
        if edge.hidden != should_hide:
            violations.append(
                Violation("edge_visibility_mismatch", edge.id, f"hidden={edge.hidden}")
            )
        if not should_hide:
            continue
        source = _nearest_visible(model, entities, edge.source)
        target = _nearest_visible(model, entities, edge.target)
        if source is not None and target is not None and source != target:
            expected[(source, target)] += 1

    actual: Counter[tuple[str, str]] = Counter()
    for agg in model.get_aggregated_edges():
        actual[(agg.source, agg.target)] += agg.multiplicity
        for endpoint in (agg.source, agg.target):
            if endpoint not in entities or entities[endpoint].hidden:
                violations.append(
                    Violation("aggregated_edge_endpoint", agg.id, f"endpoint {endpoint} not visible")
                )
    if actual != expected:
        violations.append(
            Violation(
                "aggregated_edge_mismatch",
                "aggregated_edges",
                f"expected {dict(expected)}, found {dict(actual)}",
            )
        )
    return violations


def assert_invariants(model: GraphModel) -> None:
    """Raise InvariantViolation if the model breaks any invariant."""
    violations = find_violations(model)
    if violations:
        raise InvariantViolation(violations)
