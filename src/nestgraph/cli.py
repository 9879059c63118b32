"""Command-line interface for nestgraph.

Usage:
    # Summarize a graph file after laying it out
    nestgraph summarize graph.json

    # Pick a grouping, collapse everything and use a force layout
    nestgraph summarize graph.json --grouping location --collapse-all --algorithm force

    # Plan the initial collapse within the default area budget
    nestgraph summarize graph.json --smart-collapse
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from nestgraph.bridges.layout import LayoutBridge
from nestgraph.bridges.render import RenderBridge
from nestgraph.config import LayoutAlgorithm, NestGraphConfig
from nestgraph.coordination.coordinator import OperationCoordinator
from nestgraph.exceptions import NestGraphError
from nestgraph.loader import load_graph_file


async def summarize(args: argparse.Namespace) -> dict[str, Any]:
    """Load, lay out and render a graph file, returning a summary."""
    config = NestGraphConfig.from_file(args.config) if args.config else NestGraphConfig.from_env()
    layout_config = config.layout
    if args.algorithm:
        layout_config = layout_config.with_updates(algorithm=args.algorithm)

    parsed = await load_graph_file(args.file, args.grouping, audit=config.audit)
    model = parsed.model
    coordinator = OperationCoordinator(
        model,
        layout_bridge=LayoutBridge(model, config=layout_config),
        render_bridge=RenderBridge(model, style=config.style, layout=layout_config),
        config=config.coordinator,
    )

    if args.smart_collapse:
        outcome = await coordinator.smart_collapse()
    elif args.collapse_all:
        outcome = await coordinator.collapse_all()
    else:
        outcome = await coordinator.relayout(force=True)
    if not outcome.layout_ran:
        await coordinator.relayout(force=True)
    if args.search:
        await coordinator.search(args.search)

    render = coordinator.last_render
    summary: dict[str, Any] = {
        "file": str(args.file),
        "grouping": parsed.selected_grouping,
        "groupings": [g.id for g in parsed.groupings],
        "model": model.summary(),
        "render": {
            "nodes": len(render.nodes) if render else 0,
            "edges": len(render.edges) if render else 0,
        },
        "hints": vars(coordinator.layout_bridge.performance_hints()),
        "errors": [e.message for e in coordinator.errors],
    }
    if args.search:
        summary["search"] = [r.to_dict() for r in model.get_search_results()]
    if args.render:
        summary["render_data"] = render.to_dict() if render else None
    return summary


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="nestgraph",
        description="Hierarchical graph layout and render pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    summarize_parser = subparsers.add_parser("summarize", help="Lay out a graph file and summarize it")
    summarize_parser.add_argument("file", help="Graph JSON file")
    summarize_parser.add_argument("--grouping", help="Hierarchy choice to group nodes by")
    summarize_parser.add_argument("--config", help="YAML configuration file")
    summarize_parser.add_argument(
        "--algorithm",
        choices=[a.value for a in LayoutAlgorithm],
        help="Layout algorithm",
    )
    summarize_parser.add_argument("--collapse-all", action="store_true", help="Collapse all containers")
    summarize_parser.add_argument(
        "--smart-collapse", action="store_true", help="Collapse to fit the area budget"
    )
    summarize_parser.add_argument("--search", help="Run a search and include the matches")
    summarize_parser.add_argument("--render", action="store_true", help="Include full render data")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        summary = asyncio.run(summarize(args))
    except NestGraphError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
