"""Layout bridge between the graph model and a layout engine.

The bridge turns a visible-subgraph snapshot into a nested LayoutGraph,
hands it to a LayoutEngine and writes the returned geometry back to the
model. Child positions are relative to their parent container.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from nestgraph.config import LayoutConfig
from nestgraph.graph.model import GraphModel
from nestgraph.graph.models import Container, EntityKind, GraphNode, GraphSnapshot

logger = logging.getLogger(__name__)

# Label length at which a node starts growing wider
LABEL_WIDTH_CHARS = 20
MAX_WIDTH_MULTIPLIER = 2.0

# Per-child growth used for the initial size estimate of expanded containers
EXPANDED_WIDTH_PER_CHILD = 30.0
EXPANDED_HEIGHT_PER_CHILD = 20.0


# =============================================================================
# Layout input
# =============================================================================


@dataclass
class LayoutItem:
    """A node or container handed to the layout engine."""

    id: str
    kind: EntityKind
    width: float
    height: float
    collapsed: bool = False
    children: list[LayoutItem] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)

    def iter_ids(self) -> Iterable[str]:
        """Yield this item's id and every nested id."""
        yield self.id
        for child in self.children:
            yield from child.iter_ids()


@dataclass
class LayoutEdge:
    id: str
    source: str
    target: str
    weight: int = 1
    aggregated: bool = False


@dataclass
class LayoutGraph:
    """Nested layout input for one visible subgraph."""

    children: list[LayoutItem]
    edges: list[LayoutEdge]
    config: LayoutConfig
    options: dict[str, Any] = field(default_factory=dict)
    revision: int = 0

    def iter_items(self) -> Iterable[LayoutItem]:
        stack = list(reversed(self.children))
        while stack:
            item = stack.pop()
            yield item
            stack.extend(reversed(item.children))


@runtime_checkable
class LayoutEngine(Protocol):
    """Computes geometry for a LayoutGraph.

    ``compute`` returns one mapping per top-level item with ``id``, ``x``,
    ``y``, ``width``, ``height`` and, for containers, a nested
    ``children`` list whose coordinates are relative to the container.
    """

    async def compute(self, graph: LayoutGraph) -> list[dict[str, Any]]: ...


@dataclass
class PerformanceHints:
    """Size profile of the visible subgraph."""

    node_count: int
    edge_count: int
    container_count: int
    max_depth: int
    complexity: str
    recommendations: list[str] = field(default_factory=list)

    @property
    def is_large(self) -> bool:
        return self.complexity in ("high", "very_high")


# =============================================================================
# Bridge
# =============================================================================


class LayoutBridge:
    """Converts model snapshots to layout input and applies results."""

    def __init__(
        self,
        model: GraphModel,
        engine: LayoutEngine | None = None,
        config: LayoutConfig | None = None,
    ):
        """Initialize the layout bridge.

        Args:
            model: Model to read snapshots from and write positions to
            engine: Layout engine; defaults to NetworkXLayoutEngine
            config: Layout configuration
        """
        if engine is None:
            from nestgraph.bridges.engines import NetworkXLayoutEngine

            engine = NetworkXLayoutEngine()
        self.model = model
        self.engine = engine
        self.config = config or LayoutConfig()
        self.last_revision: int | None = None

    def update_config(self, **changes: Any) -> bool:
        """Replace layout options.

        Returns:
            True if the new options require a new layout pass

        Raises:
            ConfigurationError: If an option is unknown or out of range
        """
        updated = self.config.with_updates(**changes)
        changed = updated != self.config
        self.config = updated
        if changed:
            logger.debug(f"Layout config updated: {sorted(changes)}")
        return changed

    def engine_options(self) -> dict[str, Any]:
        config = self.config
        options: dict[str, Any] = {
            "algorithm": config.algorithm.value,
            "direction": config.direction.value,
            "spacing.node": config.node_spacing,
            "spacing.layer": config.layer_spacing,
            "spacing.edge": config.edge_spacing,
            "padding": config.container_padding,
        }
        options.update(config.engine_options)
        return options

    def node_size(self, node: GraphNode) -> tuple[float, float]:
        """Default size of a node, widened for long labels."""
        label = node.display_label
        multiplier = max(1.0, min(MAX_WIDTH_MULTIPLIER, len(label) / LABEL_WIDTH_CHARS))
        return float(round(self.config.node_width * multiplier)), self.config.node_height

    def container_size(self, container: Container, child_count: int) -> tuple[float, float]:
        """Collapsed size, or an initial estimate for an expanded container."""
        config = self.config
        if container.collapsed:
            return config.collapsed_container_width, config.collapsed_container_height
        padding = config.container_padding
        return (
            config.collapsed_container_width + child_count * EXPANDED_WIDTH_PER_CHILD + 2 * padding,
            config.collapsed_container_height + child_count * EXPANDED_HEIGHT_PER_CHILD + 2 * padding,
        )

    def build_input(self, snapshot: GraphSnapshot | None = None) -> LayoutGraph:
        """Build nested layout input from the visible subgraph."""
        snapshot = snapshot or self.model.snapshot()
        items: dict[str, LayoutItem] = {}

        for node in snapshot.nodes:
            width, height = self.node_size(node)
            options = {}
            if "important" in node.semantic_tags:
                options["priority"] = 10
            items[node.id] = LayoutItem(
                id=node.id,
                kind=EntityKind.NODE,
                width=width,
                height=height,
                options=options,
            )

        visible_ids = set(items) | {c.id for c in snapshot.containers}
        for container in snapshot.containers:
            visible_children = [c for c in container.children if c in visible_ids]
            width, height = self.container_size(container, len(visible_children))
            items[container.id] = LayoutItem(
                id=container.id,
                kind=EntityKind.CONTAINER,
                width=width,
                height=height,
                collapsed=container.collapsed,
                options={"padding": self.config.container_padding},
            )

        # Containers arrive parents first, so children can be attached in order
        for container in snapshot.containers:
            if container.collapsed:
                continue
            parent_item = items[container.id]
            parent_item.children = [items[c] for c in container.children if c in items]

        roots = [
            items[c.id] for c in snapshot.containers if snapshot.parents.get(c.id) is None
        ] + [items[n.id] for n in snapshot.nodes if snapshot.parents.get(n.id) is None]

        edges = [LayoutEdge(id=e.id, source=e.source, target=e.target) for e in snapshot.edges]
        edges.extend(
            LayoutEdge(
                id=agg.id,
                source=agg.source,
                target=agg.target,
                weight=agg.multiplicity,
                aggregated=True,
            )
            for agg in snapshot.aggregated_edges
        )

        return LayoutGraph(
            children=roots,
            edges=edges,
            config=self.config,
            options=self.engine_options(),
            revision=snapshot.revision,
        )

    async def layout(self) -> int:
        """Run the engine on the current visible subgraph and apply the result.

        Returns:
            Number of entities positioned

        Raises:
            ValidationError: If the engine returned malformed geometry
        """
        graph = self.build_input()
        logger.debug(
            f"Layout pass: {len(graph.children)} top-level items, {len(graph.edges)} edges, "
            f"algorithm={self.config.algorithm.value}"
        )
        result = await self.engine.compute(graph)
        applied = self.apply_layout(result)
        self.last_revision = graph.revision
        logger.info(f"Layout applied to {applied} entities")
        return applied

    def apply_layout(self, result: Mapping[str, Any] | Iterable[Mapping[str, Any]]) -> int:
        """Flatten engine output and write it to the model.

        Accepts a single entry, a list of entries, or a root mapping with a
        ``children`` list. Nested ``children`` are flattened.

        Raises:
            ValidationError: If any entry is malformed
        """
        if isinstance(result, Mapping):
            entries = [result] if "id" in result else list(result.get("children") or [])
        else:
            entries = list(result)
        return self.model.apply_layout(flatten_layout(entries))

    def performance_hints(self) -> PerformanceHints:
        """Profile the visible subgraph to guide algorithm choice."""
        node_count = len(self.model.visible_nodes)
        edge_count = len(self.model.visible_edges) + len(self.model.get_aggregated_edges())
        containers = self.model.visible_containers
        max_depth = max(
            (self.model.get_container_depth(c.id) + 1 for c in containers),
            default=0,
        )

        recommendations = []
        if node_count > 500 or edge_count > 1000:
            complexity = "very_high"
            recommendations.append("Use the stress algorithm for very large graphs")
            recommendations.append("Collapse containers to reduce visible entities")
        elif node_count > 200 or edge_count > 400:
            complexity = "high"
            recommendations.append("Collapse containers to reduce visible entities")
        elif node_count > 50 or edge_count > 100:
            complexity = "medium"
        else:
            complexity = "low"
        if max_depth > 5:
            recommendations.append("Deep nesting; consider collapsing inner containers")

        return PerformanceHints(
            node_count=node_count,
            edge_count=edge_count,
            container_count=len(containers),
            max_depth=max_depth,
            complexity=complexity,
            recommendations=recommendations,
        )


def flatten_layout(entries: Iterable[Any]) -> list[Any]:
    """Flatten nested ``children`` lists, dropping the nesting key."""
    flat = []
    stack = list(reversed(list(entries)))
    while stack:
        entry = stack.pop()
        if isinstance(entry, Mapping) and entry.get("children"):
            flat.append({k: v for k, v in entry.items() if k != "children"})
            stack.extend(reversed(list(entry["children"])))
        else:
            flat.append(entry)
    return flat
