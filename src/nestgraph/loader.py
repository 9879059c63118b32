"""Graph description loader.

Reads the JSON interchange format:

    {
      "nodes": [{"id": "n1", "shortLabel": "map", "fullLabel": "map(|x| x + 1)",
                 "nodeType": "Transform", "semanticTags": ["Bounded"]}],
      "edges": [{"id": "e1", "source": "n1", "target": "n2",
                 "semanticTags": ["Network"]}],
      "hierarchyChoices": [{"id": "location", "name": "Location",
                            "children": [{"id": "loc_0", "name": "P1", "children": []}]}],
      "nodeAssignments": {"location": {"n1": "loc_0"}},
      "edgeStyleConfig": {...}
    }

The whole document is validated before the model is touched, so a
rejected document never produces a partially populated model.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiofiles

from nestgraph.exceptions import GraphDataError, StructuralError
from nestgraph.graph.model import GraphModel

logger = logging.getLogger(__name__)

# UI state that belongs to the model, never to the document
FORBIDDEN_FIELDS = ("collapsed", "hidden", "style")


@dataclass
class GroupingOption:
    id: str
    name: str


@dataclass
class ParseResult:
    """A populated model plus document metadata."""

    model: GraphModel
    selected_grouping: str | None
    groupings: list[GroupingOption] = field(default_factory=list)
    node_count: int = 0
    edge_count: int = 0
    container_count: int = 0
    edge_style_config: dict[str, Any] | None = None
    warnings: list[str] = field(default_factory=list)


def _decode(data: dict[str, Any] | str) -> dict[str, Any]:
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise GraphDataError("Graph data is not valid JSON", cause=e)
    if not isinstance(data, dict):
        raise GraphDataError("Graph data must be a JSON object")
    return data


def get_available_groupings(data: dict[str, Any] | str) -> list[GroupingOption]:
    data = _decode(data)
    choices = data.get("hierarchyChoices") or []
    if not isinstance(choices, list):
        return []
    return [
        GroupingOption(id=c["id"], name=c.get("name") or c["id"])
        for c in choices
        if isinstance(c, dict) and isinstance(c.get("id"), str)
    ]


def validate_graph_data(data: dict[str, Any] | str) -> list[str]:
    """Check a document, returning warnings.

    Raises:
        GraphDataError: Listing every error found
    """
    data = _decode(data)
    errors: list[str] = []
    warnings: list[str] = []

    nodes = data.get("nodes")
    node_ids: set[str] = set()
    if not isinstance(nodes, list):
        errors.append("Missing or invalid nodes array")
        nodes = []
    for i, node in enumerate(nodes):
        if not isinstance(node, dict):
            errors.append(f"Node at index {i} is not an object")
            continue
        node_id = node.get("id")
        if not isinstance(node_id, str) or not node_id:
            errors.append(f"Node at index {i} missing or invalid id")
            continue
        if node_id in node_ids:
            errors.append(f"Duplicate node id '{node_id}'")
        node_ids.add(node_id)
        errors.extend(_check_entity(node, f"Node '{node_id}'"))
        if not isinstance(node.get("shortLabel") or node.get("label"), str):
            warnings.append(f"Node '{node_id}' has no label")

    edges = data.get("edges")
    edge_ids: set[str] = set()
    if not isinstance(edges, list):
        errors.append("Missing or invalid edges array")
        edges = []
    for i, edge in enumerate(edges):
        if not isinstance(edge, dict):
            errors.append(f"Edge at index {i} is not an object")
            continue
        edge_id = edge.get("id")
        if not isinstance(edge_id, str) or not edge_id:
            errors.append(f"Edge at index {i} missing or invalid id")
            continue
        if edge_id in edge_ids or edge_id in node_ids:
            errors.append(f"Duplicate edge id '{edge_id}'")
        edge_ids.add(edge_id)
        for end in ("source", "target"):
            endpoint = edge.get(end)
            if not isinstance(endpoint, str) or endpoint not in node_ids:
                errors.append(f"Edge '{edge_id}' references unknown {end} '{endpoint}'")
        errors.extend(_check_entity(edge, f"Edge '{edge_id}'"))
        if "edgeProperties" in edge and not isinstance(edge["edgeProperties"], list):
            errors.append(f"Edge '{edge_id}' has invalid edgeProperties")

    node_assignments = data.get("nodeAssignments")
    if node_assignments is None:
        node_assignments = {}
    elif not isinstance(node_assignments, dict):
        errors.append("Invalid nodeAssignments, expected an object")
        node_assignments = {}

    choices = data.get("hierarchyChoices") or []
    if not isinstance(choices, list):
        errors.append("Invalid hierarchyChoices, expected an array")
        choices = []

    for choice in choices:
        if not isinstance(choice, dict) or not isinstance(choice.get("id"), str):
            errors.append("Hierarchy choice missing or invalid id")
            continue
        seen: set[str] = set()
        _check_hierarchy(choice.get("children") or [], choice["id"], seen, node_ids | edge_ids, errors)
        assignments = node_assignments.get(choice["id"]) or {}
        if not isinstance(assignments, dict):
            errors.append(f"Grouping '{choice['id']}' has invalid nodeAssignments, expected an object")
            continue
        for node_id, container_id in assignments.items():
            if node_id not in node_ids:
                errors.append(f"Grouping '{choice['id']}' assigns unknown node '{node_id}'")
            if not isinstance(container_id, str):
                errors.append(
                    f"Grouping '{choice['id']}' assigns '{node_id}' to invalid container id {container_id!r}"
                )
            elif container_id not in seen:
                errors.append(
                    f"Grouping '{choice['id']}' assigns '{node_id}' to unknown container '{container_id}'"
                )

    if errors:
        raise GraphDataError(f"Invalid graph data: {'; '.join(errors[:10])}")
    return warnings


def _check_entity(entity: dict[str, Any], name: str) -> list[str]:
    errors = [
        f"{name} contains UI state field '{key}'" for key in FORBIDDEN_FIELDS if key in entity
    ]
    tags = entity.get("semanticTags")
    if tags is not None and (
        not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)
    ):
        errors.append(f"{name} has invalid semanticTags")
    return errors


def _check_hierarchy(
    items: list[Any],
    choice_id: str,
    seen: set[str],
    taken: set[str],
    errors: list[str],
) -> None:
    if not isinstance(items, list):
        errors.append(f"Grouping '{choice_id}' has invalid children, expected an array")
        return
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("id"), str):
            errors.append(f"Container in grouping '{choice_id}' missing or invalid id")
            continue
        container_id = item["id"]
        if container_id in seen or container_id in taken:
            errors.append(f"Duplicate container id '{container_id}' in grouping '{choice_id}'")
        seen.add(container_id)
        errors.extend(_check_entity(item, f"Container '{container_id}'"))
        _check_hierarchy(item.get("children") or [], choice_id, seen, taken, errors)


def parse_graph_data(
    data: dict[str, Any] | str,
    grouping: str | None = None,
    *,
    audit: bool = False,
) -> ParseResult:
    """Validate a document and build a populated model.

    Args:
        data: Parsed document or JSON text
        grouping: Hierarchy choice id; defaults to the first one with
            node assignments
        audit: Enable the invariant audit on the resulting model

    Raises:
        GraphDataError: If the document is malformed or the grouping is unknown
    """
    data = _decode(data)
    warnings = validate_graph_data(data)
    groupings = get_available_groupings(data)
    assignments = data.get("nodeAssignments") or {}

    if grouping is None:
        grouping = next((g.id for g in groupings if assignments.get(g.id)), None)
    elif grouping not in {g.id for g in groupings}:
        raise GraphDataError(f"Unknown grouping: {grouping}")

    model = GraphModel(audit=audit)
    container_count = 0
    try:
        for node in data["nodes"]:
            model.add_node(
                node["id"],
                node.get("shortLabel") or node.get("label") or node["id"],
                long_label=node.get("fullLabel") or node.get("longLabel"),
                type=node.get("nodeType") or node.get("type") or "default",
                semantic_tags=node.get("semanticTags") or [],
            )
        for edge in data["edges"]:
            model.add_edge(
                edge["id"],
                edge["source"],
                edge["target"],
                type=edge.get("type") or "default",
                semantic_tags=edge.get("semanticTags") or edge.get("edgeProperties") or [],
            )
        if grouping is not None:
            choice = next(c for c in data["hierarchyChoices"] if c.get("id") == grouping)
            container_count = _build_hierarchy(model, choice.get("children") or [], None)
            for node_id, container_id in (assignments.get(grouping) or {}).items():
                model.assign_to_container(node_id, container_id)
    except StructuralError as e:
        raise GraphDataError("Graph data violates graph structure", cause=e)

    logger.info(
        f"Loaded graph: {len(data['nodes'])} nodes, {len(data['edges'])} edges, "
        f"{container_count} containers (grouping={grouping})"
    )
    return ParseResult(
        model=model,
        selected_grouping=grouping,
        groupings=groupings,
        node_count=len(data["nodes"]),
        edge_count=len(data["edges"]),
        container_count=container_count,
        edge_style_config=data.get("edgeStyleConfig"),
        warnings=warnings,
    )


def _build_hierarchy(model: GraphModel, items: list[dict[str, Any]], parent: str | None) -> int:
    count = 0
    for item in items:
        model.add_container(item["id"], item.get("name") or item["id"])
        if parent is not None:
            model.assign_to_container(item["id"], parent)
        count += 1 + _build_hierarchy(model, item.get("children") or [], item["id"])
    return count


async def load_graph_file(
    path: str | Path,
    grouping: str | None = None,
    *,
    audit: bool = False,
) -> ParseResult:
    """Read and parse a graph description file.

    Raises:
        GraphDataError: If the file cannot be read or is malformed
    """
    path = Path(path)
    try:
        async with aiofiles.open(path, "r") as f:
            text = await f.read()
    except OSError as e:
        raise GraphDataError(f"Failed to read graph file {path}", path=str(path), cause=e)
    logger.debug(f"Read {len(text)} bytes from {path}")
    return parse_graph_data(text, grouping, audit=audit)
