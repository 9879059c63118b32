"""Pytest configuration for nestgraph tests."""

import asyncio
from typing import Any

import pytest

from nestgraph.bridges.layout import LayoutGraph, LayoutItem
from nestgraph.graph.model import GraphModel


@pytest.fixture
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


# =============================================================================
# Layout engine doubles
# =============================================================================


class GridLayoutEngine:
    """Layout engine that places items on a grid and records every call.

    Usage:
        engine = GridLayoutEngine()
        bridge = LayoutBridge(model, engine)
        await bridge.layout()
        assert engine.calls == 1
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.graphs: list[LayoutGraph] = []

    @property
    def calls(self) -> int:
        return len(self.graphs)

    async def compute(self, graph: LayoutGraph) -> list[dict[str, Any]]:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.graphs.append(graph)
        return [self._place(item, i) for i, item in enumerate(graph.children)]

    def _place(self, item: LayoutItem, index: int) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "id": item.id,
            "x": float(index * 250),
            "y": 0.0,
            "width": item.width,
            "height": item.height,
        }
        if item.children:
            entry["children"] = [self._place(c, i) for i, c in enumerate(item.children)]
        return entry


class BrokenLayoutEngine:
    """Layout engine that returns geometry with a missing field."""

    def __init__(self):
        self.calls = 0

    async def compute(self, graph: LayoutGraph) -> list[dict[str, Any]]:
        self.calls += 1
        return [{"id": item.id} for item in graph.children]


@pytest.fixture
def grid_engine():
    return GridLayoutEngine()


# =============================================================================
# Model fixtures
# =============================================================================


@pytest.fixture
def model():
    """Empty model with the invariant audit enabled."""
    return GraphModel(audit=True)


@pytest.fixture
def simple_model():
    """Container c1 holding n1 and n2, plus an outside node x.

    Edges: n1 -> x, n2 -> x, n1 -> n2
    """
    m = GraphModel(audit=True)
    m.add_node("n1", "Alpha Source")
    m.add_node("n2", "Beta Map")
    m.add_node("x", "Sink")
    m.add_container("c1", "Pipeline", children=["n1", "n2"])
    m.add_edge("e1", "n1", "x")
    m.add_edge("e2", "n2", "x")
    m.add_edge("e3", "n1", "n2")
    return m


@pytest.fixture
def nested_model():
    """Two levels of nesting.

    outer
      inner
        a, b
      c
    x (top level)

    Edges: a -> x, b -> x, c -> a, a -> b
    """
    m = GraphModel(audit=True)
    for node_id in ("a", "b", "c", "x"):
        m.add_node(node_id, f"Node {node_id.upper()}")
    m.add_container("inner", "Inner", children=["a", "b"])
    m.add_container("outer", "Outer", children=["inner", "c"])
    m.add_edge("ax", "a", "x")
    m.add_edge("bx", "b", "x")
    m.add_edge("ca", "c", "a")
    m.add_edge("ab", "a", "b")
    return m


@pytest.fixture
def slow_engine():
    return GridLayoutEngine(delay=0.05)


@pytest.fixture
def broken_engine():
    return BrokenLayoutEngine()
