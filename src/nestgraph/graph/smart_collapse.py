"""Initial collapse planning for large graphs.

Plans a batch that collapses every container and then re-expands the
cheapest ones, top-down, while the added screen area stays within a
budget. Cost of expanding a container is the growth of its footprint:
the area of its direct children (child containers counted at their
collapsed size) plus padding, minus its own collapsed area.
"""

from __future__ import annotations

import heapq
import logging
from typing import TYPE_CHECKING

from nestgraph.config import LayoutConfig
from nestgraph.graph.models import BatchAction, EntityKind

if TYPE_CHECKING:
    from nestgraph.graph.model import GraphModel

logger = logging.getLogger(__name__)


def expansion_cost(model: GraphModel, container_id: str, config: LayoutConfig) -> float:
    """Net area added by expanding one container."""
    collapsed_area = config.collapsed_container_width * config.collapsed_container_height
    node_area = config.node_width * config.node_height
    children_area = 0.0
    for child_id in model.get_children(container_id):
        if model.get_entity_kind(child_id) is EntityKind.CONTAINER:
            children_area += collapsed_area
        else:
            children_area += node_area
    expanded_area = children_area + 2 * config.container_padding
    return max(0.0, expanded_area - collapsed_area)


def plan_smart_collapse(
    model: GraphModel,
    config: LayoutConfig | None = None,
    budget: float | None = None,
) -> list[tuple[str, BatchAction]]:
    """Plan an ordered batch of collapse/expand actions.

    Args:
        model: Model to plan for; it is not mutated
        config: Layout sizes used for cost estimates
        budget: Area budget; defaults to ``config.smart_collapse_budget``

    Returns:
        Batch items suitable for ``GraphModel.apply_batch``
    """
    config = config or LayoutConfig()
    budget = config.smart_collapse_budget if budget is None else budget

    # Deepest first, so every container is collapsed while still visible
    all_ids = [c.id for c in model.containers]
    by_depth = sorted(all_ids, key=lambda cid: -model.get_container_depth(cid))
    plan: list[tuple[str, BatchAction]] = [(cid, BatchAction.COLLAPSE) for cid in by_depth]

    order = {cid: i for i, cid in enumerate(all_ids)}
    candidates: list[tuple[float, int, str]] = []
    for cid in model.get_top_level_containers():
        heapq.heappush(candidates, (expansion_cost(model, cid, config), order[cid], cid))

    spent = 0.0
    while candidates:
        cost, _, cid = heapq.heappop(candidates)
        if spent + cost > budget:
            break
        plan.append((cid, BatchAction.EXPAND))
        spent += cost
        for child_id in model.get_children(cid):
            if child_id in order:
                heapq.heappush(
                    candidates,
                    (expansion_cost(model, child_id, config), order[child_id], child_id),
                )

    expanded = len(plan) - len(by_depth)
    logger.debug(
        f"Smart collapse plan: {len(by_depth)} collapsed, {expanded} re-expanded, "
        f"area {spent:.0f}/{budget:.0f}"
    )
    return plan
