"""nestgraph - hierarchical graph state engine.

nestgraph keeps a graph of nodes, edges and nested collapsible
containers, and serializes every change through one operation queue
that drives layout and render passes:
- Collapse/expand cascades that remember nested container state
- Aggregated edges across collapsed boundaries, with multiplicity
- Ranked search with history and jump-to-match
- Coalescing of redundant requests and a render acknowledgement gate

Example:
    from nestgraph import GraphModel, OperationCoordinator

    model = GraphModel()
    model.add_node("n1", "Parse")
    model.add_node("x", "Sink")
    model.add_container("c1", "Pipeline", children=["n1"])
    model.add_edge("e1", "n1", "x")

    coordinator = OperationCoordinator(model, on_render=draw)
    await coordinator.collapse_container("c1")
"""

__version__ = "0.1.0"

from nestgraph.bridges import LayoutBridge, NetworkXLayoutEngine, RenderBridge, RenderData
from nestgraph.config import (
    CoordinatorConfig,
    EdgeStyle,
    LayoutAlgorithm,
    LayoutConfig,
    LayoutDirection,
    NestGraphConfig,
    StyleConfig,
)
from nestgraph.coordination import (
    OperationCoordinator,
    OperationKind,
    OperationOutcome,
    OperationStatus,
)
from nestgraph.exceptions import (
    ConfigurationError,
    GraphDataError,
    GraphError,
    InvariantViolation,
    NestGraphError,
    NotFoundError,
    OperationError,
    ReentrantMutationError,
    StructuralError,
    ValidationError,
)
from nestgraph.graph import (
    AggregatedEdge,
    BatchAction,
    Container,
    GraphEdge,
    GraphModel,
    GraphNode,
    LayoutPhase,
    SearchResult,
)
from nestgraph.loader import load_graph_file, parse_graph_data

__all__ = [
    "__version__",
    "AggregatedEdge",
    "BatchAction",
    "ConfigurationError",
    "Container",
    "CoordinatorConfig",
    "EdgeStyle",
    "GraphDataError",
    "GraphEdge",
    "GraphError",
    "GraphModel",
    "GraphNode",
    "InvariantViolation",
    "LayoutAlgorithm",
    "LayoutBridge",
    "LayoutConfig",
    "LayoutDirection",
    "LayoutPhase",
    "NestGraphConfig",
    "NestGraphError",
    "NetworkXLayoutEngine",
    "NotFoundError",
    "OperationCoordinator",
    "OperationError",
    "OperationKind",
    "OperationOutcome",
    "OperationStatus",
    "ReentrantMutationError",
    "RenderBridge",
    "RenderData",
    "SearchResult",
    "StructuralError",
    "StyleConfig",
    "ValidationError",
    "load_graph_file",
    "parse_graph_data",
]
