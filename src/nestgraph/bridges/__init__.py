"""Layout and render bridges."""

from nestgraph.bridges.layout import (
    LayoutBridge,
    LayoutEdge,
    LayoutEngine,
    LayoutGraph,
    LayoutItem,
    PerformanceHints,
)
from nestgraph.bridges.engines import NetworkXLayoutEngine
from nestgraph.bridges.render import EdgeDescriptor, NodeDescriptor, RenderBridge, RenderData
from nestgraph.bridges.styling import PALETTES, palette_color, process_semantic_tags

__all__ = [
    "EdgeDescriptor",
    "LayoutBridge",
    "LayoutEdge",
    "LayoutEngine",
    "LayoutGraph",
    "LayoutItem",
    "NetworkXLayoutEngine",
    "NodeDescriptor",
    "PALETTES",
    "PerformanceHints",
    "RenderBridge",
    "RenderData",
    "palette_color",
    "process_semantic_tags",
]
