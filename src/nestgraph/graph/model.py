"""Graph state engine.

GraphModel owns every node, edge and container of a graph, the
containment hierarchy, visibility, the aggregated-edge cache, search
state and layout phase.

Two API surfaces are kept apart:

- The public query API (``get_node``, ``get_children``, ...) raises
  NotFoundError for unknown ids.
- The coordinator-facing mutation API (``collapse_container``,
  ``apply_batch``, ...) treats unknown ids as a benign no-op and returns
  whether anything visible changed.

Entities are stored in flat dicts keyed by id with an explicit
child -> parent index; traversal always goes through id lookups.
"""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from nestgraph.exceptions import (
    NotFoundError,
    ReentrantMutationError,
    StructuralError,
    ValidationError,
)
from nestgraph.graph.models import (
    AggregatedEdge,
    BatchAction,
    Container,
    Dimensions,
    EntityKind,
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    LayoutPhase,
    LayoutState,
    MatchKind,
    Position,
    SearchResult,
    aggregated_edge_id,
)
from nestgraph.graph.search import (
    ResultCollector,
    SearchState,
    label_result,
    normalize_query,
    tag_matches,
)

logger = logging.getLogger(__name__)

LAYOUT_FIELDS = ("x", "y", "width", "height")


@dataclass(frozen=True)
class VisibleSets:
    """Ids of visible entities in insertion order."""

    nodes: tuple[str, ...]
    edges: tuple[str, ...]
    containers: tuple[str, ...]


class GraphModel:
    """Hierarchical graph with collapsible containers.

    Example:
        model = GraphModel()
        model.add_node("n1", "Parse")
        model.add_node("n2", "Emit")
        model.add_container("c1", "Pipeline", children=["n1", "n2"])
        model.add_node("x", "Sink")
        model.add_edge("e1", "n1", "x")
        model.collapse_container("c1")
        model.get_aggregated_edges()  # one edge c1 -> x
    """

    def __init__(self, audit: bool = False):
        """Initialize an empty model.

        Args:
            audit: Run the invariant audit after every mutation and raise
                InvariantViolation when it finds a problem
        """
        self.audit = audit

        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[str, GraphEdge] = {}
        self._containers: dict[str, Container] = {}
        self._parent: dict[str, str] = {}
        self._order: dict[str, int] = {}

        # Collapsed value each hidden container had before an ancestor hid it
        self._collapse_memory: dict[str, bool] = {}

        self._aggregated: dict[tuple[str, str], AggregatedEdge] = {}
        self._visible: VisibleSets | None = None

        self._active_mutation: str | None = None
        self._touched = False
        self._visibility_dirty = False

        # Incremented by every change that can affect layout
        self.revision = 0
        self.aggregation_passes = 0

        self.search_state = SearchState()
        self.layout_state = LayoutState()

    # =========================================================================
    # Mutation guard
    # =========================================================================

    @contextmanager
    def _mutation(self, name: str) -> Iterator[None]:
        if self._active_mutation is not None:
            raise ReentrantMutationError(
                f"Cannot start '{name}' while '{self._active_mutation}' is in progress"
            )
        self._active_mutation = name
        self._touched = False
        self._visibility_dirty = False
        try:
            yield
        finally:
            try:
                if self._visibility_dirty:
                    self._refresh_derived()
                if self._touched:
                    self.revision += 1
                    self._visible = None
            finally:
                self._active_mutation = None

        if self.audit and self._touched:
            self.validate_invariants()

    @property
    def is_mutating(self) -> bool:
        return self._active_mutation is not None

    def _mark_changed(self, visibility: bool = True) -> None:
        self._touched = True
        if visibility:
            self._visibility_dirty = True

    # =========================================================================
    # Construction
    # =========================================================================

    def _check_new_id(self, entity_id: str) -> None:
        if not isinstance(entity_id, str) or not entity_id:
            raise StructuralError(f"Entity id must be a non-empty string, got {entity_id!r}")
        if entity_id in self._order:
            raise StructuralError(f"Duplicate entity id: {entity_id}")

    def _register(self, entity_id: str) -> None:
        self._order[entity_id] = len(self._order)

    def add_node(
        self,
        node_id: str,
        label: str = "",
        *,
        long_label: str | None = None,
        type: str = "default",
        semantic_tags: Iterable[str] | None = None,
    ) -> GraphNode:
        """Add a node.

        Raises:
            StructuralError: If the id is already used
        """
        self._check_new_id(node_id)
        with self._mutation("add_node"):
            node = GraphNode(
                id=node_id,
                label=label or node_id,
                long_label=long_label,
                type=type,
                semantic_tags=list(semantic_tags or []),
            )
            self._nodes[node_id] = node
            self._register(node_id)
            self._mark_changed()
        return node

    def add_edge(
        self,
        edge_id: str,
        source: str,
        target: str,
        *,
        type: str = "default",
        semantic_tags: Iterable[str] | None = None,
    ) -> GraphEdge:
        """Add an edge between two existing nodes or containers.

        Raises:
            StructuralError: If the id is already used or an endpoint is unknown
        """
        self._check_new_id(edge_id)
        for endpoint in (source, target):
            if endpoint not in self._nodes and endpoint not in self._containers:
                raise StructuralError(f"Edge {edge_id} references unknown endpoint: {endpoint}")
        with self._mutation("add_edge"):
            edge = GraphEdge(
                id=edge_id,
                source=source,
                target=target,
                type=type,
                semantic_tags=list(semantic_tags or []),
            )
            self._edges[edge_id] = edge
            self._register(edge_id)
            self._mark_changed()
        return edge

    def add_container(
        self,
        container_id: str,
        label: str = "",
        *,
        children: Iterable[str] | None = None,
        collapsed: bool = False,
    ) -> Container:
        """Add a container, optionally assigning existing children to it.

        Raises:
            StructuralError: If the id is already used or a child assignment
                is invalid
        """
        self._check_new_id(container_id)
        with self._mutation("add_container"):
            container = Container(id=container_id, label=label or container_id)
            self._containers[container_id] = container
            self._register(container_id)
            self._mark_changed()
        for child_id in children or ():
            self.assign_to_container(child_id, container_id)
        if collapsed:
            self.collapse_container(container_id)
        return container

    def assign_to_container(self, child_id: str, container_id: str) -> None:
        """Make ``child_id`` a direct child of ``container_id``.

        A child already inside another container is moved. A child placed
        into a collapsed or hidden container becomes hidden along with its
        subtree.

        Raises:
            StructuralError: If either id is unknown or the assignment would
                create a containment cycle
        """
        if child_id not in self._nodes and child_id not in self._containers:
            raise StructuralError(f"Cannot assign unknown entity: {child_id}")
        if child_id in self._edges:
            raise StructuralError(f"Edges cannot be assigned to containers: {child_id}")
        parent = self._containers.get(container_id)
        if parent is None:
            raise StructuralError(f"Cannot assign to unknown container: {container_id}")
        if child_id == container_id or child_id in self._ancestor_ids(container_id):
            raise StructuralError(
                f"Assigning {child_id} to {container_id} would create a containment cycle"
            )

        with self._mutation("assign_to_container"):
            previous = self._parent.get(child_id)
            if previous == container_id:
                return
            if previous is not None:
                self._containers[previous].children.remove(child_id)
            self._parent[child_id] = container_id
            parent.children.append(child_id)

            if parent.hidden or parent.collapsed:
                self._hide_subtree(child_id)
            else:
                self._reveal(child_id)
            self._mark_changed()

    # =========================================================================
    # Public query API
    # =========================================================================

    def get_node(self, node_id: str) -> GraphNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFoundError(node_id, "node") from None

    def get_edge(self, edge_id: str) -> GraphEdge:
        try:
            return self._edges[edge_id]
        except KeyError:
            raise NotFoundError(edge_id, "edge") from None

    def get_container(self, container_id: str) -> Container:
        try:
            return self._containers[container_id]
        except KeyError:
            raise NotFoundError(container_id, "container") from None

    def get_entity_kind(self, entity_id: str) -> EntityKind:
        if entity_id in self._nodes:
            return EntityKind.NODE
        if entity_id in self._edges:
            return EntityKind.EDGE
        if entity_id in self._containers:
            return EntityKind.CONTAINER
        raise NotFoundError(entity_id)

    def has_entity(self, entity_id: str) -> bool:
        return entity_id in self._order

    def get_parent(self, entity_id: str) -> str | None:
        """Return the id of the containing container, or None at top level."""
        if entity_id not in self._nodes and entity_id not in self._containers:
            raise NotFoundError(entity_id)
        return self._parent.get(entity_id)

    def get_children(self, container_id: str) -> list[str]:
        return list(self.get_container(container_id).children)

    def get_ancestors(self, entity_id: str) -> list[str]:
        """Return ancestor container ids, nearest first."""
        if entity_id not in self._nodes and entity_id not in self._containers:
            raise NotFoundError(entity_id)
        return self._ancestor_ids(entity_id)

    def get_descendants(self, container_id: str) -> list[str]:
        """Return every descendant id in depth-first pre-order."""
        self.get_container(container_id)
        return list(self._iter_descendants(container_id))

    def get_top_level_containers(self) -> list[str]:
        return [cid for cid in self._containers if cid not in self._parent]

    def get_container_depth(self, container_id: str) -> int:
        """Depth of a container, 0 for top-level containers."""
        self.get_container(container_id)
        return len(self._ancestor_ids(container_id))

    @property
    def nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    @property
    def containers(self) -> list[Container]:
        return list(self._containers.values())

    @property
    def visible_nodes(self) -> list[GraphNode]:
        return [self._nodes[i] for i in self._visible_sets().nodes]

    @property
    def visible_edges(self) -> list[GraphEdge]:
        return [self._edges[i] for i in self._visible_sets().edges]

    @property
    def visible_containers(self) -> list[Container]:
        return [self._containers[i] for i in self._visible_sets().containers]

    def get_visible_ids(self) -> VisibleSets:
        return self._visible_sets()

    def get_aggregated_edges(self) -> list[AggregatedEdge]:
        return list(self._aggregated.values())

    def get_search_query(self) -> str:
        return self.search_state.query

    def get_search_results(self) -> list[SearchResult]:
        return list(self.search_state.results)

    def get_search_history(self) -> list[str]:
        return list(self.search_state.history)

    def get_search_expanded_containers(self) -> list[str]:
        return sorted(self.search_state.expanded_containers, key=self._order.__getitem__)

    def is_search_active(self) -> bool:
        return self.search_state.active

    def get_search_suggestions(self, partial_query: str, limit: int = 5) -> list[str]:
        """Suggest completions from entity labels, then search history."""
        query = normalize_query(partial_query).lower()
        if not query:
            return []
        suggestions: dict[str, None] = {}
        for entity in (*self._nodes.values(), *self._containers.values()):
            if query in entity.label.lower():
                suggestions.setdefault(entity.label)
        for item in self.search_state.history:
            if query in item.lower():
                suggestions.setdefault(item)
        return list(suggestions)[:limit]

    def snapshot(self) -> GraphSnapshot:
        """Copy the visible subgraph for the layout and render bridges."""
        visible = self._visible_sets()
        containers = [
            copy.deepcopy(self._containers[cid])
            for cid in self._containers_top_down()
            if not self._containers[cid].hidden
        ]
        return GraphSnapshot(
            revision=self.revision,
            nodes=tuple(copy.deepcopy(self._nodes[i]) for i in visible.nodes),
            edges=tuple(copy.deepcopy(self._edges[i]) for i in visible.edges),
            containers=tuple(containers),
            aggregated_edges=tuple(copy.deepcopy(a) for a in self._aggregated.values()),
            parents=dict(self._parent),
            highlighted=self.search_state.highlighted_ids,
        )

    def summary(self) -> dict[str, Any]:
        visible = self._visible_sets()
        return {
            "revision": self.revision,
            "nodes": len(self._nodes),
            "edges": len(self._edges),
            "containers": len(self._containers),
            "visible_nodes": len(visible.nodes),
            "visible_edges": len(visible.edges),
            "visible_containers": len(visible.containers),
            "aggregated_edges": len(self._aggregated),
            "layout_phase": self.layout_state.phase.value,
        }

    def validate_invariants(self) -> None:
        """Run the invariant audit.

        Raises:
            InvariantViolation: If any invariant does not hold
        """
        from nestgraph.graph.invariants import assert_invariants

        assert_invariants(self)

    # =========================================================================
    # Coordinator-facing mutations
    # =========================================================================

    def collapse_container(self, container_id: str) -> bool:
        """Collapse a container, hiding its whole subtree.

        Returns:
            True if visible state changed
        """
        with self._mutation("collapse_container"):
            return self._collapse(container_id)

    def expand_container(self, container_id: str) -> bool:
        """Expand a container, revealing its direct children.

        Returns:
            True if visible state changed
        """
        with self._mutation("expand_container"):
            return self._expand(container_id)

    def toggle_container(self, container_id: str) -> bool:
        with self._mutation("toggle_container"):
            return self._toggle(container_id)

    def collapse_all(self) -> bool:
        """Collapse every top-level container with a single recompute."""
        with self._mutation("collapse_all"):
            changed = False
            for cid in self.get_top_level_containers():
                changed = self._collapse(cid) or changed
            return changed

    def expand_all(self) -> bool:
        """Expand every container top-down with a single recompute."""
        with self._mutation("expand_all"):
            changed = False
            for cid in self._containers_top_down():
                if self._containers[cid].collapsed:
                    changed = self._expand(cid) or changed
            return changed

    def apply_batch(self, items: Iterable[tuple[str, BatchAction | str]]) -> bool:
        """Apply ordered ``(container_id, action)`` pairs with one recompute.

        Unknown container ids are skipped.

        Raises:
            ValueError: If an action is not a BatchAction value
        """
        actions = [(cid, BatchAction(action)) for cid, action in items]
        with self._mutation("apply_batch"):
            changed = False
            for cid, action in actions:
                if action is BatchAction.EXPAND:
                    changed = self._expand(cid) or changed
                elif action is BatchAction.COLLAPSE:
                    changed = self._collapse(cid) or changed
                else:
                    changed = self._toggle(cid) or changed
            return changed

    def expand_container_for_search(self, entity_id: str) -> bool:
        """Reveal an entity by expanding its collapsed ancestors.

        A container target keeps its own collapsed value. Expanded
        ancestors are remembered in the search state.

        Returns:
            True if visible state changed
        """
        if entity_id not in self._nodes and entity_id not in self._containers:
            logger.debug(f"Ignoring search expansion of unknown entity: {entity_id}")
            return False
        with self._mutation("expand_container_for_search"):
            target = self._containers.get(entity_id)
            if target is not None and target.hidden:
                self._collapse_memory[entity_id] = target.collapsed
            changed = False
            for ancestor_id in reversed(self._ancestor_ids(entity_id)):
                if self._containers[ancestor_id].collapsed:
                    changed = self._expand(ancestor_id) or changed
                    self.search_state.expanded_containers.add(ancestor_id)
            return changed

    def toggle_node_label(self, node_id: str) -> bool:
        """Switch a node between its short and long label."""
        node = self._nodes.get(node_id)
        if node is None:
            return False
        return self.set_node_label_state(node_id, not node.showing_long_label)

    def set_node_label_state(self, node_id: str, show_long_label: bool) -> bool:
        node = self._nodes.get(node_id)
        if node is None or node.showing_long_label == show_long_label:
            return False
        with self._mutation("set_node_label_state"):
            node.showing_long_label = show_long_label
            self._mark_changed(visibility=False)
        return True

    def set_all_node_labels(self, show_long_label: bool) -> bool:
        with self._mutation("set_all_node_labels"):
            changed = False
            for node in self._nodes.values():
                if node.long_label and node.showing_long_label != show_long_label:
                    node.showing_long_label = show_long_label
                    changed = True
            if changed:
                self._mark_changed(visibility=False)
            return changed

    def search(self, query: str) -> list[SearchResult]:
        """Run a case-insensitive search over labels and semantic tags.

        An empty or whitespace-only query clears results and marks the
        search inactive without touching history.
        """
        normalized = normalize_query(query)
        with self._mutation("search"):
            state = self.search_state
            if not normalized:
                state.query = ""
                state.results = []
                state.active = False
                return []

            q = normalized.lower()
            collector = ResultCollector(self._order)
            for node in self._nodes.values():
                result = label_result(node.id, node.label, EntityKind.NODE, q)
                if result is not None:
                    collector.offer(result)
                tag = tag_matches(node.semantic_tags, q)
                if tag is not None:
                    collector.offer(self._tag_result(node.id, tag))
            for container in self._containers.values():
                result = label_result(container.id, container.label, EntityKind.CONTAINER, q)
                if result is not None:
                    collector.offer(result)
            for edge in self._edges.values():
                tag = tag_matches(edge.semantic_tags, q)
                if tag is None:
                    continue
                for endpoint in (edge.source, edge.target):
                    collector.offer(self._tag_result(endpoint, tag))

            state.query = normalized
            state.results = collector.results()
            state.active = True
            state.record(normalized)
            logger.debug(f"Search '{normalized}' matched {len(state.results)} entities")
            return list(state.results)

    def search_by_kind(self, query: str, kind: EntityKind | str) -> list[SearchResult]:
        kind = EntityKind(kind)
        return [r for r in self.search(query) if r.kind is kind]

    def clear_search(self) -> None:
        """Reset query, results and active flag, keeping history."""
        with self._mutation("clear_search"):
            self.search_state.reset()

    def clear_search_history(self) -> None:
        with self._mutation("clear_search_history"):
            self.search_state.history.clear()

    def set_layout_phase(self, phase: LayoutPhase | str, error: str | None = None) -> None:
        phase = LayoutPhase(phase)
        self.layout_state.phase = phase
        self.layout_state.updated_at = datetime.now()
        if phase is LayoutPhase.ERROR:
            self.layout_state.last_error = error
        logger.debug(f"Layout phase -> {phase.value}")

    def apply_layout(self, entries: Iterable[Mapping[str, Any]]) -> int:
        """Write computed positions and sizes.

        Entries for unknown or hidden ids are ignored. Every remaining
        entry needs finite ``x``, ``y``, ``width`` and ``height`` with
        strictly positive sizes. The whole batch is validated before any
        position is written.

        Returns:
            Number of entities updated

        Raises:
            ValidationError: If an entry is malformed; the layout phase
                becomes ``error`` and existing positions are kept
        """
        with self._mutation("apply_layout"):
            try:
                validated = self._validate_layout(entries)
            except ValidationError as e:
                self.set_layout_phase(LayoutPhase.ERROR, error=str(e))
                logger.warning(f"Rejected layout result: {e}")
                raise

            for entity, position, dimensions in validated:
                entity.position = position
                entity.dimensions = dimensions
            self.layout_state.layout_count += 1
            self.layout_state.last_error = None
            self.set_layout_phase(LayoutPhase.READY)
            logger.debug(f"Applied layout to {len(validated)} entities")
            return len(validated)

    # =========================================================================
    # Internals
    # =========================================================================

    def _validate_layout(
        self, entries: Iterable[Mapping[str, Any]]
    ) -> list[tuple[GraphNode | Container, Position, Dimensions]]:
        validated = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                raise ValidationError(f"Layout entry must be a mapping, got {type(entry).__name__}")
            entity_id = entry.get("id")
            if not isinstance(entity_id, str):
                continue
            entity = self._nodes.get(entity_id) or self._containers.get(entity_id)
            if entity is None or entity.hidden:
                continue

            values = {}
            for key in LAYOUT_FIELDS:
                value = entry.get(key)
                if value is None:
                    raise ValidationError(
                        f"Layout for {entity_id} is missing '{key}'",
                        entity_id=entity_id,
                        field_name=key,
                    )
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValidationError(
                        f"Layout field '{key}' for {entity_id} is not a number: {value!r}",
                        entity_id=entity_id,
                        field_name=key,
                    )
                if not math.isfinite(value):
                    raise ValidationError(
                        f"Layout field '{key}' for {entity_id} is not finite: {value!r}",
                        entity_id=entity_id,
                        field_name=key,
                    )
                values[key] = float(value)
            for key in ("width", "height"):
                if values[key] <= 0:
                    raise ValidationError(
                        f"Layout field '{key}' for {entity_id} must be positive: {values[key]}",
                        entity_id=entity_id,
                        field_name=key,
                    )
            validated.append(
                (
                    entity,
                    Position(values["x"], values["y"]),
                    Dimensions(values["width"], values["height"]),
                )
            )
        return validated

    def _tag_result(self, entity_id: str, tag: str) -> SearchResult:
        kind = EntityKind.CONTAINER if entity_id in self._containers else EntityKind.NODE
        entity = self._containers.get(entity_id) or self._nodes[entity_id]
        return SearchResult(
            id=entity_id,
            label=entity.label,
            kind=kind,
            match_kind=MatchKind.TAG,
            matched_tag=tag,
        )

    def _collapse(self, container_id: str) -> bool:
        container = self._containers.get(container_id)
        if container is None:
            logger.debug(f"Ignoring collapse of unknown container: {container_id}")
            return False
        if container.hidden:
            # Record intent; the container is already collapsed while hidden
            self._collapse_memory[container_id] = True
            return False
        if container.collapsed:
            return False
        container.collapsed = True
        for child_id in container.children:
            self._hide_subtree(child_id)
        self._mark_changed()
        return True

    def _expand(self, container_id: str) -> bool:
        container = self._containers.get(container_id)
        if container is None:
            logger.debug(f"Ignoring expand of unknown container: {container_id}")
            return False
        if container.hidden:
            self._collapse_memory[container_id] = False
            return False
        if not container.collapsed:
            return False
        container.collapsed = False
        self._reveal_children(container)
        self._mark_changed()
        return True

    def _toggle(self, container_id: str) -> bool:
        container = self._containers.get(container_id)
        if container is None:
            return False
        if container.hidden:
            remembered = self._collapse_memory.get(container_id, True)
            self._collapse_memory[container_id] = not remembered
            return False
        if container.collapsed:
            return self._expand(container_id)
        return self._collapse(container_id)

    def _hide_subtree(self, entity_id: str) -> None:
        """Hide an entity and its descendants, forcing containers collapsed."""
        stack = [entity_id]
        while stack:
            current = stack.pop()
            node = self._nodes.get(current)
            if node is not None:
                node.hidden = True
                continue
            container = self._containers[current]
            if not container.hidden:
                self._collapse_memory[current] = container.collapsed
            container.hidden = True
            container.collapsed = True
            stack.extend(container.children)

    def _reveal(self, entity_id: str) -> None:
        """Show an entity placed under a visible, expanded parent."""
        node = self._nodes.get(entity_id)
        if node is not None:
            node.hidden = False
            return
        container = self._containers[entity_id]
        if container.hidden:
            container.hidden = False
            container.collapsed = self._collapse_memory.pop(entity_id, True)
        if not container.collapsed:
            self._reveal_children(container)

    def _reveal_children(self, container: Container) -> None:
        stack = [container]
        while stack:
            current = stack.pop()
            for child_id in current.children:
                node = self._nodes.get(child_id)
                if node is not None:
                    node.hidden = False
                    continue
                child = self._containers[child_id]
                if child.hidden:
                    child.hidden = False
                    child.collapsed = self._collapse_memory.pop(child_id, True)
                if not child.collapsed:
                    stack.append(child)

    def _is_hidden(self, entity_id: str) -> bool:
        entity = self._nodes.get(entity_id) or self._containers.get(entity_id)
        return entity is None or entity.hidden

    def _nearest_visible(self, entity_id: str) -> str | None:
        current: str | None = entity_id
        while current is not None and self._is_hidden(current):
            current = self._parent.get(current)
        return current

    def _refresh_derived(self) -> None:
        """Recompute edge visibility and aggregated edges from hidden flags."""
        aggregated: dict[tuple[str, str], AggregatedEdge] = {}
        for edge in self._edges.values():
            edge.hidden = self._is_hidden(edge.source) or self._is_hidden(edge.target)
            if not edge.hidden:
                continue
            source = self._nearest_visible(edge.source)
            target = self._nearest_visible(edge.target)
            if source is None or target is None or source == target:
                continue
            key = (source, target)
            agg = aggregated.get(key)
            if agg is None:
                agg = AggregatedEdge(
                    id=aggregated_edge_id(source, target),
                    source=source,
                    target=target,
                )
                aggregated[key] = agg
            agg.original_edge_ids.append(edge.id)
            for tag in edge.semantic_tags:
                if tag not in agg.semantic_tags:
                    agg.semantic_tags.append(tag)
        self._aggregated = aggregated
        self._visible = None
        self.aggregation_passes += 1

    def _visible_sets(self) -> VisibleSets:
        if self._visible is None:
            self._visible = VisibleSets(
                nodes=tuple(i for i, n in self._nodes.items() if not n.hidden),
                edges=tuple(i for i, e in self._edges.items() if not e.hidden),
                containers=tuple(i for i, c in self._containers.items() if not c.hidden),
            )
        return self._visible

    def _ancestor_ids(self, entity_id: str) -> list[str]:
        ancestors = []
        current = self._parent.get(entity_id)
        while current is not None:
            ancestors.append(current)
            current = self._parent.get(current)
        return ancestors

    def _iter_descendants(self, container_id: str) -> Iterator[str]:
        stack = list(reversed(self._containers[container_id].children))
        while stack:
            current = stack.pop()
            yield current
            child = self._containers.get(current)
            if child is not None:
                stack.extend(reversed(child.children))

    def _containers_top_down(self) -> list[str]:
        """All container ids, parents before children, roots in insertion order."""
        ordered = []
        stack = list(reversed(self.get_top_level_containers()))
        while stack:
            current = stack.pop()
            ordered.append(current)
            children = [c for c in self._containers[current].children if c in self._containers]
            stack.extend(reversed(children))
        return ordered
