"""Render bridge: visible subgraph to renderer-ready descriptors.

Output order is stable: containers parents first, then nodes, then
original edges, then aggregated edges. Positions are relative to the
parent container, matching what the layout bridge writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from nestgraph.bridges.styling import (
    contrast_color,
    highlight_colors,
    palette_color,
    process_semantic_tags,
)
from nestgraph.config import LayoutConfig, StyleConfig
from nestgraph.graph.model import GraphModel
from nestgraph.graph.models import EntityKind, GraphSnapshot

logger = logging.getLogger(__name__)


@dataclass
class NodeDescriptor:
    """A node or container ready to draw."""

    id: str
    kind: EntityKind
    label: str
    x: float
    y: float
    width: float
    height: float
    parent_id: str | None = None
    style: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "position": {"x": self.x, "y": self.y},
            "width": self.width,
            "height": self.height,
            "parent_id": self.parent_id,
            "style": dict(self.style),
            "data": dict(self.data),
        }


@dataclass
class EdgeDescriptor:
    """An original or aggregated edge ready to draw."""

    id: str
    source: str
    target: str
    edge_style: str
    aggregated: bool = False
    style: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "edge_style": self.edge_style,
            "aggregated": self.aggregated,
            "style": dict(self.style),
            "data": dict(self.data),
        }


@dataclass
class RenderData:
    revision: int
    nodes: list[NodeDescriptor] = field(default_factory=list)
    edges: list[EdgeDescriptor] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "revision": self.revision,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


class RenderBridge:
    """Produces render data from the model without mutating it."""

    def __init__(
        self,
        model: GraphModel,
        style: StyleConfig | None = None,
        layout: LayoutConfig | None = None,
    ):
        self.model = model
        self.style = style or StyleConfig()
        self.layout = layout or LayoutConfig()

    def update_style(self, **changes: Any) -> bool:
        """Replace style options, returning True if anything changed.

        Raises:
            ConfigurationError: If an option is unknown or out of range
        """
        updated = self.style.with_updates(**changes)
        changed = updated != self.style
        self.style = updated
        return changed

    def to_render_data(self, snapshot: GraphSnapshot | None = None) -> RenderData:
        snapshot = snapshot or self.model.snapshot()
        style = self.style
        highlight = highlight_colors(style.color_palette)
        visible = {c.id for c in snapshot.containers} | {n.id for n in snapshot.nodes}

        # Collapsed containers that hide a search match
        holding_match: set[str] = set()
        for match_id in snapshot.highlighted - visible:
            current = snapshot.parents.get(match_id)
            while current is not None and current not in visible:
                current = snapshot.parents.get(current)
            if current is not None:
                holding_match.add(current)

        data = RenderData(revision=snapshot.revision)
        for container in snapshot.containers:
            width, height = (
                (container.dimensions.width, container.dimensions.height)
                if container.dimensions
                else (self.layout.collapsed_container_width, self.layout.collapsed_container_height)
            )
            position = container.position
            highlighted = container.id in snapshot.highlighted
            node_style: dict[str, Any] = {"border": "#9ca3af", "background": "#f9fafb"}
            if highlighted or container.id in holding_match:
                node_style.update(background=highlight["background"], border=highlight["border"])
            data.nodes.append(
                NodeDescriptor(
                    id=container.id,
                    kind=EntityKind.CONTAINER,
                    label=container.label,
                    x=position.x if position else 0.0,
                    y=position.y if position else 0.0,
                    width=width,
                    height=height,
                    parent_id=snapshot.parents.get(container.id),
                    style=node_style,
                    data={
                        "collapsed": container.collapsed,
                        "child_count": len(container.children),
                        "highlighted": highlighted,
                        "contains_match": container.id in holding_match,
                    },
                )
            )

        for node in snapshot.nodes:
            width, height = (
                (node.dimensions.width, node.dimensions.height)
                if node.dimensions
                else (self.layout.node_width, self.layout.node_height)
            )
            color = palette_color(node.type, style.color_palette)
            node_style = {"background": color.primary, "border": color.primary}
            node_style.update(style.node_type_styles.get(node.type, {}))
            tag_style = process_semantic_tags(node.semantic_tags, style)
            node_style.update(tag_style.properties)
            highlighted = node.id in snapshot.highlighted
            if highlighted:
                node_style.update(background=highlight["background"], border=highlight["border"])
            node_style["color"] = contrast_color(node_style["background"])

            showing_long = node.showing_long_label or style.show_full_labels
            label = node.long_label if showing_long and node.long_label else node.label
            data.nodes.append(
                NodeDescriptor(
                    id=node.id,
                    kind=EntityKind.NODE,
                    label=label,
                    x=node.position.x if node.position else 0.0,
                    y=node.position.y if node.position else 0.0,
                    width=width,
                    height=height,
                    parent_id=snapshot.parents.get(node.id),
                    style=node_style,
                    data={
                        "node_type": node.type,
                        "short_label": node.label,
                        "long_label": node.long_label,
                        "showing_long_label": showing_long,
                        "semantic_tags": list(node.semantic_tags),
                        "applied_tags": tag_style.applied_tags,
                        "highlighted": highlighted,
                    },
                )
            )

        base_edge_style = {
            "stroke_width": style.edge_width,
            "dashed": style.edge_dashed,
            "animated": style.edge_animated,
        }
        for edge in snapshot.edges:
            tag_style = process_semantic_tags(edge.semantic_tags, style)
            data.edges.append(
                EdgeDescriptor(
                    id=edge.id,
                    source=edge.source,
                    target=edge.target,
                    edge_style=style.edge_style.value,
                    style={**base_edge_style, **tag_style.properties},
                    data={
                        "edge_type": edge.type,
                        "semantic_tags": list(edge.semantic_tags),
                        "applied_tags": tag_style.applied_tags,
                    },
                )
            )
        for agg in snapshot.aggregated_edges:
            tag_style = process_semantic_tags(agg.semantic_tags, style)
            data.edges.append(
                EdgeDescriptor(
                    id=agg.id,
                    source=agg.source,
                    target=agg.target,
                    edge_style=style.edge_style.value,
                    aggregated=True,
                    style={
                        **base_edge_style,
                        **tag_style.properties,
                        "stroke_width": style.edge_width + min(agg.multiplicity - 1, 4),
                    },
                    data={
                        "edge_type": agg.type,
                        "semantic_tags": list(agg.semantic_tags),
                        "applied_tags": tag_style.applied_tags,
                        "multiplicity": agg.multiplicity,
                        "original_edge_ids": list(agg.original_edge_ids),
                    },
                )
            )

        logger.debug(
            f"Render data revision {snapshot.revision}: {len(data.nodes)} nodes, {len(data.edges)} edges"
        )
        return data
