"""Default layout engine built on networkx.

Each container level is laid out independently, innermost first, so an
expanded container can be sized to fit its children before its own
level is placed. Edges are projected onto each level by mapping every
endpoint to the item at that level that contains it.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

import networkx as nx

from nestgraph.bridges.layout import LayoutEdge, LayoutGraph, LayoutItem
from nestgraph.config import LayoutAlgorithm, LayoutConfig, LayoutDirection

logger = logging.getLogger(__name__)

# Space reserved above children for a container's label
CONTAINER_LABEL_HEIGHT = 30.0


class NetworkXLayoutEngine:
    """Layered, tree, force, stress and radial layouts via networkx.

    Computation is CPU-bound and runs in a worker thread.
    """

    def __init__(self, label_height: float = CONTAINER_LABEL_HEIGHT):
        self.label_height = label_height

    async def compute(self, graph: LayoutGraph) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.compute_sync, graph)

    def compute_sync(self, graph: LayoutGraph) -> list[dict[str, Any]]:
        return self._layout_level(graph.children, graph.edges, graph.config)

    # =========================================================================
    # Levels
    # =========================================================================

    def _layout_level(
        self,
        items: list[LayoutItem],
        edges: list[LayoutEdge],
        config: LayoutConfig,
    ) -> list[dict[str, Any]]:
        if not items:
            return []

        entries: dict[str, dict[str, Any]] = {}
        sizes: dict[str, tuple[float, float]] = {}
        for item in items:
            entry: dict[str, Any] = {"id": item.id}
            width, height = item.width, item.height
            if item.children:
                padding = item.options.get("padding", config.container_padding)
                children = self._layout_level(item.children, edges, config)
                inner_width = max(c["x"] + c["width"] for c in children)
                inner_height = max(c["y"] + c["height"] for c in children)
                for child in children:
                    child["x"] += padding
                    child["y"] += padding + self.label_height
                entry["children"] = children
                width = inner_width + 2 * padding
                height = inner_height + 2 * padding + self.label_height
            sizes[item.id] = (width, height)
            entries[item.id] = entry

        graph = self._project(items, edges)
        positions = self._place(graph, sizes, config)

        result = []
        for item in items:
            entry = entries[item.id]
            x, y = positions[item.id]
            width, height = sizes[item.id]
            entry.update(x=x, y=y, width=width, height=height)
            result.append(entry)
        return result

    @staticmethod
    def _project(items: list[LayoutItem], edges: list[LayoutEdge]) -> nx.DiGraph:
        owner: dict[str, str] = {}
        for item in items:
            for entity_id in item.iter_ids():
                owner[entity_id] = item.id

        graph = nx.DiGraph()
        graph.add_nodes_from(item.id for item in items)
        for edge in edges:
            source = owner.get(edge.source)
            target = owner.get(edge.target)
            if source is None or target is None or source == target:
                continue
            if graph.has_edge(source, target):
                graph[source][target]["weight"] += edge.weight
            else:
                graph.add_edge(source, target, weight=edge.weight)
        return graph

    def _place(
        self,
        graph: nx.DiGraph,
        sizes: dict[str, tuple[float, float]],
        config: LayoutConfig,
    ) -> dict[str, tuple[float, float]]:
        algorithm = config.algorithm
        if algorithm is LayoutAlgorithm.LAYERED:
            return _place_layers(graph, layered_layers(graph), sizes, config)
        if algorithm is LayoutAlgorithm.TREE:
            return _place_layers(graph, tree_layers(graph), sizes, config)

        if len(graph) == 1:
            return {next(iter(graph)): (0.0, 0.0)}
        if algorithm is LayoutAlgorithm.FORCE:
            centers = nx.spring_layout(graph, seed=config.seed, weight="weight")
        elif algorithm is LayoutAlgorithm.STRESS:
            centers = nx.kamada_kawai_layout(graph.to_undirected(), weight=None)
        else:
            layers = tree_layers(graph)
            shells: dict[int, list[str]] = {}
            for node in graph:
                shells.setdefault(layers[node], []).append(node)
            centers = nx.shell_layout(graph, nlist=[shells[d] for d in sorted(shells)])
        return _scale_centers(centers, sizes, config)


# =============================================================================
# Layer assignment
# =============================================================================


def layered_layers(graph: nx.DiGraph) -> dict[str, int]:
    """Longest-path layering over the condensation, so cycles share a layer."""
    condensed = nx.condensation(graph)
    members = condensed.graph["mapping"]
    scc_layer = {}
    for depth, generation in enumerate(nx.topological_generations(condensed)):
        for scc in generation:
            scc_layer[scc] = depth
    return {node: scc_layer[members[node]] for node in graph}


def tree_layers(graph: nx.DiGraph) -> dict[str, int]:
    """Breadth-first depth from the roots; unreached parts start new trees."""
    layers: dict[str, int] = {}
    roots = [n for n in graph if graph.in_degree(n) == 0] or list(graph)[:1]
    while roots:
        for depth, layer in enumerate(nx.bfs_layers(graph, roots)):
            for node in layer:
                layers.setdefault(node, depth)
        roots = [n for n in graph if n not in layers][:1]
    return layers


# =============================================================================
# Placement
# =============================================================================


def _place_layers(
    graph: nx.DiGraph,
    layer_of: dict[str, int],
    sizes: dict[str, tuple[float, float]],
    config: LayoutConfig,
) -> dict[str, tuple[float, float]]:
    layer_count = max(layer_of.values(), default=-1) + 1
    layers: list[list[str]] = [[] for _ in range(layer_count)]
    for node in graph:
        layers[layer_of[node]].append(node)

    # Barycenter ordering against the previous layer
    index: dict[str, int] = {}
    for depth, layer in enumerate(layers):
        if depth > 0:
            def barycenter(node: str) -> float:
                neighbors = [index[p] for p in graph.predecessors(node) if p in index]
                return sum(neighbors) / len(neighbors) if neighbors else math.inf

            layer.sort(key=barycenter)
        for i, node in enumerate(layer):
            index[node] = i

    direction = config.direction
    if direction in (LayoutDirection.UP, LayoutDirection.LEFT):
        layers.reverse()
    horizontal = direction in (LayoutDirection.LEFT, LayoutDirection.RIGHT)

    positions: dict[str, tuple[float, float]] = {}
    along = 0.0
    for layer in layers:
        across = 0.0
        thickness = 0.0
        for node in layer:
            width, height = sizes[node]
            depth_size, breadth_size = (width, height) if horizontal else (height, width)
            positions[node] = (along, across) if horizontal else (across, along)
            across += breadth_size + config.node_spacing
            thickness = max(thickness, depth_size)
        along += thickness + config.layer_spacing
    return positions


def _scale_centers(
    centers: dict[str, Any],
    sizes: dict[str, tuple[float, float]],
    config: LayoutConfig,
) -> dict[str, tuple[float, float]]:
    """Scale unit-box centers to layout units and shift to the origin."""
    unit = max(max(w, h) for w, h in sizes.values()) + config.node_spacing
    scale = unit * math.sqrt(len(centers))
    positions = {
        node: (float(c[0]) * scale - sizes[node][0] / 2, float(c[1]) * scale - sizes[node][1] / 2)
        for node, c in centers.items()
    }
    min_x = min(x for x, _ in positions.values())
    min_y = min(y for _, y in positions.values())
    return {node: (x - min_x, y - min_y) for node, (x, y) in positions.items()}
