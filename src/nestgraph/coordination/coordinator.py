"""Serialized operation pipeline for a GraphModel.

OperationCoordinator is the single gateway through which callers mutate
a model. Requests are queued and consumed by one worker task:

    enqueue -> queued -> executing -> awaiting_render_ack -> complete
                                   \\-> failed (logged, queue continues)
    queued -> superseded | cancelled

Coalescable operations (search updates, config updates, relayout)
supersede any still-queued operation of the same class. Layout-affecting
operations run the layout bridge, hand render data to the renderer and
wait for ``notify_render_complete`` (bounded by a timeout) before the
next operation starts.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable

from nestgraph.bridges.layout import LayoutBridge
from nestgraph.bridges.render import RenderBridge, RenderData
from nestgraph.config import CoordinatorConfig
from nestgraph.coordination.models import (
    CoordinatorState,
    Operation,
    OperationErrorRecord,
    OperationKind,
    OperationOutcome,
    OperationStatus,
    QueueStatus,
)
from nestgraph.exceptions import OperationError
from nestgraph.graph.model import GraphModel
from nestgraph.graph.models import BatchAction, LayoutPhase
from nestgraph.graph.smart_collapse import plan_smart_collapse

logger = logging.getLogger(__name__)

RenderCallback = Callable[[RenderData], Awaitable[None] | None]
ErrorCallback = Callable[[OperationErrorRecord], Awaitable[None] | None]


class OperationCoordinator:
    """Queues, coalesces and executes operations against one model.

    Example:
        coordinator = OperationCoordinator(model, on_render=renderer.draw)
        outcome = await coordinator.expand_container("c1")

    The renderer calls ``coordinator.notify_render_complete()`` once the
    render data it received has settled.
    """

    def __init__(
        self,
        model: GraphModel,
        layout_bridge: LayoutBridge | None = None,
        render_bridge: RenderBridge | None = None,
        config: CoordinatorConfig | None = None,
        on_render: RenderCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        """Initialize the coordinator.

        Args:
            model: The model this coordinator owns mutation of
            layout_bridge: Layout bridge; defaults to one on the networkx engine
            render_bridge: Render bridge; defaults to default styling sharing
                the layout bridge's size configuration
            config: Timeouts and error log size
            on_render: Receives render data after every render pass. When
                unset there is no renderer to wait for and the render
                acknowledgement step is skipped.
            on_error: Receives each error log entry
        """
        self.model = model
        self.layout_bridge = layout_bridge or LayoutBridge(model)
        self.render_bridge = render_bridge or RenderBridge(model, layout=self.layout_bridge.config)
        self.config = config or CoordinatorConfig()
        self._on_render = on_render
        self._on_error = on_error

        self._queue: deque[Operation] = deque()
        self._worker: asyncio.Task | None = None
        self._in_flight: Operation | None = None
        self._state = CoordinatorState.IDLE
        self._render_ack: asyncio.Event | None = None
        self._idle = asyncio.Event()
        self._idle.set()

        self._errors: deque[OperationErrorRecord] = deque(maxlen=self.config.max_error_log)
        self._completed = 0
        self._failed = 0
        self._superseded = 0
        self._cancelled = 0
        self._last_layout_revision: int | None = None

        self.last_render: RenderData | None = None

    # =========================================================================
    # Queue management
    # =========================================================================

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def errors(self) -> list[OperationErrorRecord]:
        return list(self._errors)

    def clear_errors(self) -> None:
        self._errors.clear()

    def enqueue(
        self,
        kind: OperationKind | str,
        target: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Operation:
        """Queue an operation and return it immediately.

        Must be called from within a running event loop. Await
        ``operation.wait()`` for the outcome.
        """
        loop = asyncio.get_running_loop()
        operation = Operation(kind=OperationKind(kind), target=target, payload=dict(payload or {}))
        operation.future = loop.create_future()

        coalesce_class = operation.coalesce_class
        if coalesce_class is not None:
            for queued in [op for op in self._queue if op.coalesce_class is coalesce_class]:
                self._queue.remove(queued)
                if queued.kind is OperationKind.RELAYOUT and queued.payload.get("force"):
                    # A superseded forced relayout still forces its replacement
                    operation.payload["force"] = True
                self._superseded += 1
                queued.resolve(
                    OperationOutcome(queued.operation_id, queued.kind, OperationStatus.SUPERSEDED)
                )
                logger.debug(f"Operation {queued.operation_id} superseded by {operation.operation_id}")

        self._queue.append(operation)
        self._idle.clear()
        logger.debug(
            f"Enqueued {operation.kind.value} ({operation.operation_id}), depth={len(self._queue)}"
        )
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())
        return operation

    def cancel(self, operation_id: str) -> bool:
        """Cancel a queued operation. Executing operations cannot be cancelled.

        Returns:
            True if the operation was still queued and is now cancelled
        """
        for operation in self._queue:
            if operation.operation_id == operation_id:
                self._queue.remove(operation)
                self._cancel(operation)
                return True
        return False

    def clear_queue(self) -> int:
        """Cancel every queued operation, returning how many were cancelled."""
        count = len(self._queue)
        while self._queue:
            self._cancel(self._queue.popleft())
        return count

    def _cancel(self, operation: Operation) -> None:
        self._cancelled += 1
        operation.resolve(
            OperationOutcome(operation.operation_id, operation.kind, OperationStatus.CANCELLED)
        )
        logger.debug(f"Cancelled operation {operation.operation_id}")

    def notify_render_complete(self) -> bool:
        """Confirm that the last render pass has settled.

        Returns:
            True if an operation was waiting for the confirmation
        """
        if self._render_ack is None or self._render_ack.is_set():
            logger.debug("Render acknowledgement with nothing pending")
            return False
        self._render_ack.set()
        return True

    async def wait_idle(self) -> None:
        """Wait until the queue is drained and nothing is executing."""
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel queued operations and wait for the in-flight one to finish."""
        self.clear_queue()
        if self._worker is not None and not self._worker.done():
            await self._worker

    def get_status(self) -> QueueStatus:
        return QueueStatus(
            state=self._state,
            queue_depth=len(self._queue),
            in_flight=self._in_flight,
            completed=self._completed,
            failed=self._failed,
            superseded=self._superseded,
            cancelled=self._cancelled,
            errors=list(self._errors),
        )

    # =========================================================================
    # Convenience API
    # =========================================================================

    async def _submit(
        self,
        kind: OperationKind,
        target: str | None = None,
        **payload: Any,
    ) -> OperationOutcome:
        return await self.enqueue(kind, target, payload).wait()

    async def expand_container(self, container_id: str) -> OperationOutcome:
        return await self._submit(OperationKind.EXPAND_CONTAINER, container_id)

    async def collapse_container(self, container_id: str) -> OperationOutcome:
        return await self._submit(OperationKind.COLLAPSE_CONTAINER, container_id)

    async def toggle_container(self, container_id: str) -> OperationOutcome:
        return await self._submit(OperationKind.TOGGLE_CONTAINER, container_id)

    async def expand_all(self) -> OperationOutcome:
        return await self._submit(OperationKind.EXPAND_ALL)

    async def collapse_all(self) -> OperationOutcome:
        return await self._submit(OperationKind.COLLAPSE_ALL)

    async def batch(self, items: Iterable[tuple[str, BatchAction | str]]) -> OperationOutcome:
        """Apply ordered ``(container_id, action)`` pairs with one layout pass."""
        return await self._submit(OperationKind.BATCH, items=list(items))

    async def navigate_to(self, entity_id: str) -> OperationOutcome:
        """Expand the ancestors of a search match so it becomes visible."""
        return await self._submit(OperationKind.NAVIGATE, entity_id)

    async def search(self, query: str) -> OperationOutcome:
        return await self._submit(OperationKind.SEARCH, query=query)

    async def clear_search(self) -> OperationOutcome:
        return await self._submit(OperationKind.CLEAR_SEARCH)

    async def toggle_node_label(self, node_id: str) -> OperationOutcome:
        return await self._submit(OperationKind.TOGGLE_NODE_LABEL, node_id)

    async def update_layout_config(self, **changes: Any) -> OperationOutcome:
        return await self._submit(OperationKind.LAYOUT_CONFIG, **changes)

    async def update_style(self, **changes: Any) -> OperationOutcome:
        return await self._submit(OperationKind.STYLE_CONFIG, **changes)

    async def relayout(self, force: bool = False) -> OperationOutcome:
        """Lay out again; a no-op when nothing changed since the last layout."""
        return await self._submit(OperationKind.RELAYOUT, force=force)

    async def smart_collapse(self, budget: float | None = None) -> OperationOutcome:
        return await self._submit(OperationKind.SMART_COLLAPSE, budget=budget)

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run(self) -> None:
        try:
            while self._queue:
                await self._execute(self._queue.popleft())
        finally:
            self._state = CoordinatorState.IDLE
            self._in_flight = None
            if not self._queue:
                self._idle.set()

    async def _execute(self, operation: Operation) -> None:
        operation.status = OperationStatus.EXECUTING
        operation.started_at = datetime.now()
        self._in_flight = operation
        self._state = CoordinatorState.EXECUTING
        outcome = OperationOutcome(operation.operation_id, operation.kind, OperationStatus.COMPLETE)
        logger.debug(f"Executing {operation.kind.value} ({operation.operation_id})")

        try:
            outcome.changed, outcome.result = self._apply(operation)
            if not outcome.changed:
                logger.debug(f"Operation {operation.operation_id} was a no-op")
            elif operation.affects_layout:
                await self._layout(outcome)
                self._render_ack = asyncio.Event()
                await self._render(outcome)
                if self._on_render is not None:
                    operation.status = OperationStatus.AWAITING_RENDER_ACK
                    self._state = CoordinatorState.AWAITING_RENDER_ACK
                    await self._await_render_ack(operation, outcome)
                self.model.set_layout_phase(LayoutPhase.DISPLAYED)
            else:
                await self._render(outcome)
            self._completed += 1
        except asyncio.CancelledError:
            outcome.status = OperationStatus.CANCELLED
            self._cancelled += 1
            raise
        except Exception as e:
            await self._record_failure(operation, outcome, e)
        finally:
            self._render_ack = None
            self._in_flight = None
            self._state = CoordinatorState.IDLE
            operation.resolve(outcome)

    def _apply(self, operation: Operation) -> tuple[bool, Any]:
        """Apply the model mutation for an operation.

        Returns:
            ``(changed, result)`` where ``changed`` says whether a layout or
            render pass is needed
        """
        model = self.model
        kind = operation.kind
        target = operation.target
        payload = operation.payload

        if kind is OperationKind.EXPAND_CONTAINER:
            return model.expand_container(target), None
        if kind is OperationKind.COLLAPSE_CONTAINER:
            return model.collapse_container(target), None
        if kind is OperationKind.TOGGLE_CONTAINER:
            return model.toggle_container(target), None
        if kind is OperationKind.EXPAND_ALL:
            return model.expand_all(), None
        if kind is OperationKind.COLLAPSE_ALL:
            return model.collapse_all(), None
        if kind is OperationKind.BATCH:
            return model.apply_batch(payload.get("items", [])), None
        if kind is OperationKind.NAVIGATE:
            return model.expand_container_for_search(target), None
        if kind is OperationKind.SEARCH:
            return True, model.search(payload.get("query", ""))
        if kind is OperationKind.CLEAR_SEARCH:
            model.clear_search()
            return True, None
        if kind is OperationKind.TOGGLE_NODE_LABEL:
            return model.toggle_node_label(target), None
        if kind is OperationKind.LAYOUT_CONFIG:
            changed = self.layout_bridge.update_config(**payload)
            # Render fallback sizes follow the layout sizes
            self.render_bridge.layout = self.layout_bridge.config
            return changed, None
        if kind is OperationKind.STYLE_CONFIG:
            return self.render_bridge.update_style(**payload), None
        if kind is OperationKind.RELAYOUT:
            stale = self._last_layout_revision != model.revision
            return bool(payload.get("force")) or stale, None
        if kind is OperationKind.SMART_COLLAPSE:
            plan = plan_smart_collapse(model, self.layout_bridge.config, payload.get("budget"))
            return model.apply_batch(plan), plan
        raise ValueError(f"Unsupported operation kind: {kind}")

    async def _layout(self, outcome: OperationOutcome) -> None:
        self.model.set_layout_phase(LayoutPhase.LAYING_OUT)
        layout_pass = self.layout_bridge.layout()
        timeout = self.config.layout_timeout
        if timeout is None:
            await layout_pass
        else:
            await asyncio.wait_for(layout_pass, timeout)
        self._last_layout_revision = self.model.revision
        outcome.layout_ran = True

    async def _render(self, outcome: OperationOutcome) -> None:
        data = self.render_bridge.to_render_data()
        self.last_render = data
        outcome.render_ran = True
        if outcome.layout_ran:
            self.model.set_layout_phase(LayoutPhase.RENDERING)
        if self._on_render is not None:
            result = self._on_render(data)
            if inspect.isawaitable(result):
                await result

    async def _await_render_ack(self, operation: Operation, outcome: OperationOutcome) -> None:
        try:
            await asyncio.wait_for(self._render_ack.wait(), self.config.render_ack_timeout)
        except asyncio.TimeoutError:
            outcome.ack_timed_out = True
            logger.warning(
                f"No render acknowledgement for {operation.kind.value} ({operation.operation_id}) "
                f"within {self.config.render_ack_timeout}s, continuing"
            )

    async def _record_failure(
        self,
        operation: Operation,
        outcome: OperationOutcome,
        error: Exception,
    ) -> None:
        wrapped = OperationError(
            f"Operation {operation.kind.value} failed",
            operation_id=operation.operation_id,
            kind=operation.kind.value,
            cause=error,
        )
        record = OperationErrorRecord(
            operation_id=operation.operation_id,
            kind=operation.kind,
            target=operation.target,
            message=str(wrapped),
            error=wrapped,
        )
        self._errors.append(record)
        self._failed += 1
        outcome.status = OperationStatus.FAILED
        outcome.error = wrapped
        logger.error(f"Operation {operation.operation_id} ({operation.kind.value}) failed: {error}")

        if self.model.layout_state.phase in (LayoutPhase.LAYING_OUT, LayoutPhase.RENDERING):
            self.model.set_layout_phase(LayoutPhase.ERROR, error=str(error))

        if self._on_error is not None:
            try:
                result = self._on_error(record)
                if inspect.isawaitable(result):
                    await result
            except Exception as hook_error:
                logger.warning(f"on_error hook failed: {hook_error}")
