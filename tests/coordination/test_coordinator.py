"""Tests for OperationCoordinator."""

import asyncio
import logging
from unittest.mock import AsyncMock, Mock

import pytest

from nestgraph.bridges.layout import LayoutBridge
from nestgraph.config import CoordinatorConfig, LayoutAlgorithm, LayoutConfig
from nestgraph.coordination.coordinator import OperationCoordinator
from nestgraph.coordination.models import (
    CoordinatorState,
    Operation,
    OperationKind,
    OperationStatus,
)
from nestgraph.exceptions import ConfigurationError, OperationError, ValidationError
from nestgraph.graph.models import LayoutPhase


async def wait_for_status(operation, status, timeout=1.0):
    """Poll until an operation reaches a status."""

    async def poll():
        while operation.status is not status:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def coordinator(simple_model, grid_engine):
    return OperationCoordinator(simple_model, layout_bridge=LayoutBridge(simple_model, grid_engine))


class TestContainerOperations:
    """Tests for container operations through the queue."""

    @pytest.mark.asyncio
    async def test_collapse_runs_layout_and_render(self, coordinator, simple_model, grid_engine):
        """Test a state change triggers one layout and one render pass."""
        outcome = await coordinator.collapse_container("c1")

        assert outcome.ok
        assert outcome.changed is True
        assert outcome.layout_ran is True
        assert outcome.render_ran is True
        assert grid_engine.calls == 1
        assert simple_model.get_container("c1").collapsed is True
        assert simple_model.layout_state.phase is LayoutPhase.DISPLAYED
        assert [e.id for e in coordinator.last_render.edges] == ["agg:c1->x"]

    @pytest.mark.asyncio
    async def test_expand_expanded_is_verified_noop(self, coordinator, simple_model, grid_engine):
        """Test an already-reached target state skips layout and render."""
        revision = simple_model.revision

        outcome = await coordinator.expand_container("c1")

        assert outcome.ok
        assert outcome.changed is False
        assert outcome.layout_ran is False
        assert outcome.render_ran is False
        assert grid_engine.calls == 0
        assert simple_model.revision == revision

    @pytest.mark.asyncio
    async def test_unknown_container_is_noop(self, coordinator):
        outcome = await coordinator.collapse_container("ghost")
        assert outcome.ok
        assert outcome.changed is False

    @pytest.mark.asyncio
    async def test_repeated_expand_applies_once(self, coordinator, simple_model, grid_engine):
        """Test three rapid expand requests mutate exactly once."""
        await coordinator.collapse_container("c1")
        revision = simple_model.revision

        operations = [coordinator.enqueue(OperationKind.EXPAND_CONTAINER, "c1") for _ in range(3)]
        outcomes = [await op.wait() for op in operations]

        assert [o.status for o in outcomes] == [OperationStatus.COMPLETE] * 3
        assert [o.changed for o in outcomes] == [True, False, False]
        assert simple_model.revision == revision + 1
        assert grid_engine.calls == 2

    @pytest.mark.asyncio
    async def test_container_operations_not_coalesced(self, coordinator, simple_model):
        first = coordinator.enqueue("collapse_container", "c1")
        second = coordinator.enqueue("toggle_container", "c1")

        assert (await first.wait()).changed is True
        assert (await second.wait()).changed is True
        assert simple_model.get_container("c1").collapsed is False

    @pytest.mark.asyncio
    async def test_bulk_operations(self, nested_model, grid_engine):
        coordinator = OperationCoordinator(nested_model, layout_bridge=LayoutBridge(nested_model, grid_engine))

        assert (await coordinator.collapse_all()).changed is True
        assert (await coordinator.expand_all()).changed is True
        outcome = await coordinator.batch([("inner", "collapse"), ("outer", "collapse")])

        assert outcome.changed is True
        assert grid_engine.calls == 3
        assert nested_model.get_container("outer").collapsed is True

    @pytest.mark.asyncio
    async def test_navigate_reveals_node(self, coordinator, simple_model):
        await coordinator.collapse_container("c1")

        outcome = await coordinator.navigate_to("n2")

        assert outcome.changed is True
        assert outcome.layout_ran is True
        assert simple_model.get_node("n2").hidden is False
        assert simple_model.get_search_expanded_containers() == ["c1"]

    @pytest.mark.asyncio
    async def test_smart_collapse(self, nested_model, grid_engine):
        """Test the planned batch is applied and returned as the result."""
        coordinator = OperationCoordinator(nested_model, layout_bridge=LayoutBridge(nested_model, grid_engine))

        outcome = await coordinator.smart_collapse(budget=0)

        assert outcome.changed is True
        assert [cid for cid, _ in outcome.result] == ["inner", "outer"]
        assert nested_model.get_container("outer").collapsed is True

    @pytest.mark.asyncio
    async def test_toggle_node_label_relayouts(self, model, grid_engine):
        model.add_node("n1", "f", long_label="f(x: int) -> int")
        coordinator = OperationCoordinator(model, layout_bridge=LayoutBridge(model, grid_engine))

        outcome = await coordinator.toggle_node_label("n1")

        assert outcome.layout_ran is True
        assert coordinator.last_render.nodes[0].label == "f(x: int) -> int"


class TestSearchOperations:
    """Tests for search through the queue."""

    @pytest.mark.asyncio
    async def test_search_is_render_only(self, coordinator, simple_model, grid_engine):
        outcome = await coordinator.search("sink")

        assert outcome.ok
        assert outcome.render_ran is True
        assert outcome.layout_ran is False
        assert grid_engine.calls == 0
        assert [r.id for r in outcome.result] == ["x"]
        rendered = {n.id: n for n in coordinator.last_render.nodes}
        assert rendered["x"].data["highlighted"] is True

    @pytest.mark.asyncio
    async def test_search_updates_coalesce(self, coordinator, simple_model):
        """Test only the newest queued search executes."""
        operations = [
            coordinator.enqueue(OperationKind.SEARCH, payload={"query": q}) for q in ("a", "ab", "abc")
        ]
        outcomes = [await op.wait() for op in operations]

        assert [o.status for o in outcomes] == [
            OperationStatus.SUPERSEDED,
            OperationStatus.SUPERSEDED,
            OperationStatus.COMPLETE,
        ]
        assert outcomes[0].changed is False
        assert simple_model.get_search_query() == "abc"
        assert simple_model.get_search_history() == ["abc"]
        assert coordinator.get_status().superseded == 2

    @pytest.mark.asyncio
    async def test_clear_search_supersedes_search(self, coordinator, simple_model):
        search = coordinator.enqueue("search", payload={"query": "alpha"})
        clear = coordinator.enqueue("clear_search")

        assert (await search.wait()).status is OperationStatus.SUPERSEDED
        assert (await clear.wait()).ok
        assert simple_model.is_search_active() is False
        assert simple_model.get_search_history() == []


class TestConfigOperations:
    """Tests for configuration updates."""

    @pytest.mark.asyncio
    async def test_layout_config_triggers_layout(self, coordinator, grid_engine):
        outcome = await coordinator.update_layout_config(algorithm="tree")

        assert outcome.layout_ran is True
        assert grid_engine.graphs[-1].config.algorithm is LayoutAlgorithm.TREE

        again = await coordinator.update_layout_config(algorithm="tree")
        assert again.changed is False
        assert grid_engine.calls == 1

    @pytest.mark.asyncio
    async def test_invalid_layout_config_fails(self, coordinator):
        outcome = await coordinator.update_layout_config(node_spacing=-5)

        assert outcome.status is OperationStatus.FAILED
        assert isinstance(outcome.error.cause, ConfigurationError)

    @pytest.mark.asyncio
    async def test_style_update_is_render_only(self, coordinator, grid_engine):
        outcome = await coordinator.update_style(color_palette="Dark2")

        assert outcome.render_ran is True
        assert outcome.layout_ran is False
        assert grid_engine.calls == 0
        assert coordinator.render_bridge.style.color_palette == "Dark2"

    @pytest.mark.asyncio
    async def test_config_updates_coalesce(self, coordinator, grid_engine):
        first = coordinator.enqueue("layout_config", payload={"algorithm": "force"})
        second = coordinator.enqueue("layout_config", payload={"algorithm": "stress"})

        assert (await first.wait()).status is OperationStatus.SUPERSEDED
        assert (await second.wait()).ok
        assert coordinator.layout_bridge.config.algorithm is LayoutAlgorithm.STRESS
        assert grid_engine.calls == 1

    def test_default_render_bridge_shares_layout_sizes(self, simple_model, grid_engine):
        layout_bridge = LayoutBridge(simple_model, grid_engine, LayoutConfig(node_width=300.0))

        coordinator = OperationCoordinator(simple_model, layout_bridge=layout_bridge)

        assert coordinator.render_bridge.layout.node_width == 300.0

    @pytest.mark.asyncio
    async def test_layout_config_reaches_render_bridge(self, coordinator):
        """Test render fallback sizes follow a layout size update."""
        outcome = await coordinator.update_layout_config(node_width=240.0)

        assert outcome.ok
        assert coordinator.layout_bridge.config.node_width == 240.0
        assert coordinator.render_bridge.layout is coordinator.layout_bridge.config


class TestRelayout:
    """Tests for relayout suppression."""

    @pytest.mark.asyncio
    async def test_first_relayout_runs(self, coordinator, grid_engine):
        outcome = await coordinator.relayout()
        assert outcome.layout_ran is True
        assert grid_engine.calls == 1

    @pytest.mark.asyncio
    async def test_relayout_without_changes_is_noop(self, coordinator, grid_engine):
        """Test a resize-triggered relayout does not loop when nothing changed."""
        await coordinator.collapse_container("c1")

        outcome = await coordinator.relayout()

        assert outcome.ok
        assert outcome.changed is False
        assert outcome.layout_ran is False
        assert grid_engine.calls == 1

    @pytest.mark.asyncio
    async def test_forced_relayout(self, coordinator, grid_engine):
        await coordinator.collapse_container("c1")

        outcome = await coordinator.relayout(force=True)

        assert outcome.layout_ran is True
        assert grid_engine.calls == 2

    @pytest.mark.asyncio
    async def test_relayout_requests_coalesce(self, coordinator, grid_engine):
        operations = [coordinator.enqueue("relayout", payload={"force": True}) for _ in range(4)]
        outcomes = [await op.wait() for op in operations]

        assert sum(o.status is OperationStatus.COMPLETE for o in outcomes) == 1
        assert grid_engine.calls == 1

    @pytest.mark.asyncio
    async def test_superseded_force_carries_over(self, coordinator, grid_engine):
        """Test a plain relayout replacing a queued forced one still lays out."""
        await coordinator.collapse_container("c1")

        forced = coordinator.enqueue("relayout", payload={"force": True})
        plain = coordinator.enqueue("relayout")

        assert (await forced.wait()).status is OperationStatus.SUPERSEDED
        outcome = await plain.wait()
        assert plain.payload["force"] is True
        assert outcome.layout_ran is True
        assert grid_engine.calls == 2


class TestRenderAcknowledgement:
    """Tests for the render-completion handshake."""

    @pytest.mark.asyncio
    async def test_next_operation_waits_for_ack(self, simple_model, grid_engine):
        """Test queued operations start only after the renderer confirms."""
        rendered = []
        coordinator = OperationCoordinator(
            simple_model,
            layout_bridge=LayoutBridge(simple_model, grid_engine),
            config=CoordinatorConfig(render_ack_timeout=5.0),
            on_render=rendered.append,
        )

        first = coordinator.enqueue("collapse_container", "c1")
        second = coordinator.enqueue("expand_container", "c1")
        await wait_for_status(first, OperationStatus.AWAITING_RENDER_ACK)

        assert coordinator.state is CoordinatorState.AWAITING_RENDER_ACK
        assert len(rendered) == 1
        await asyncio.sleep(0.01)
        assert second.status is OperationStatus.QUEUED

        assert coordinator.notify_render_complete() is True
        outcome = await first.wait()
        assert outcome.ack_timed_out is False

        await wait_for_status(second, OperationStatus.AWAITING_RENDER_ACK)
        coordinator.notify_render_complete()
        assert (await second.wait()).changed is True
        assert len(rendered) == 2

    @pytest.mark.asyncio
    async def test_ack_timeout_continues(self, simple_model, grid_engine, caplog):
        """Test a missing acknowledgement is logged and the queue moves on."""
        coordinator = OperationCoordinator(
            simple_model,
            layout_bridge=LayoutBridge(simple_model, grid_engine),
            config=CoordinatorConfig(render_ack_timeout=0.05),
            on_render=Mock(),
        )

        with caplog.at_level(logging.WARNING):
            outcome = await coordinator.collapse_container("c1")

        assert outcome.ok
        assert outcome.ack_timed_out is True
        assert "No render acknowledgement" in caplog.text

    @pytest.mark.asyncio
    async def test_async_renderer_ack_inside_callback(self, simple_model, grid_engine):
        on_render = AsyncMock(side_effect=lambda data: coordinator.notify_render_complete())
        coordinator = OperationCoordinator(
            simple_model,
            layout_bridge=LayoutBridge(simple_model, grid_engine),
            config=CoordinatorConfig(render_ack_timeout=5.0),
            on_render=on_render,
        )

        outcome = await coordinator.collapse_container("c1")

        assert outcome.ack_timed_out is False
        on_render.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_render_only_does_not_wait(self, simple_model, grid_engine):
        renderer = Mock()
        coordinator = OperationCoordinator(
            simple_model,
            layout_bridge=LayoutBridge(simple_model, grid_engine),
            config=CoordinatorConfig(render_ack_timeout=5.0),
            on_render=renderer,
        )

        outcome = await asyncio.wait_for(coordinator.search("alpha"), 1.0)

        assert outcome.ok
        renderer.assert_called_once()

    def test_ack_with_nothing_pending(self, coordinator):
        assert coordinator.notify_render_complete() is False


class TestErrorIsolation:
    """Tests for failures inside operations."""

    @pytest.mark.asyncio
    async def test_layout_failure_is_logged_and_queue_continues(self, simple_model, broken_engine):
        """Test a failed operation is recorded and the next one still runs."""
        on_error = Mock()
        coordinator = OperationCoordinator(
            simple_model,
            layout_bridge=LayoutBridge(simple_model, broken_engine),
            on_error=on_error,
        )

        failed = coordinator.enqueue("collapse_container", "c1")
        search = coordinator.enqueue("search", payload={"query": "sink"})
        failed_outcome = await failed.wait()
        search_outcome = await search.wait()

        assert failed_outcome.status is OperationStatus.FAILED
        assert isinstance(failed_outcome.error, OperationError)
        assert isinstance(failed_outcome.error.cause, ValidationError)
        assert search_outcome.ok
        assert simple_model.layout_state.phase is LayoutPhase.ERROR

        assert len(coordinator.errors) == 1
        record = coordinator.errors[0]
        assert record.operation_id == failed.operation_id
        assert record.kind is OperationKind.COLLAPSE_CONTAINER
        on_error.assert_called_once_with(record)
        assert coordinator.get_status().failed == 1

    @pytest.mark.asyncio
    async def test_failing_error_hook_is_contained(self, simple_model, broken_engine, caplog):
        coordinator = OperationCoordinator(
            simple_model,
            layout_bridge=LayoutBridge(simple_model, broken_engine),
            on_error=Mock(side_effect=RuntimeError("hook down")),
        )

        with caplog.at_level(logging.WARNING):
            outcome = await coordinator.collapse_container("c1")

        assert outcome.status is OperationStatus.FAILED
        assert "on_error hook failed" in caplog.text

    @pytest.mark.asyncio
    async def test_invalid_batch_action(self, coordinator, simple_model):
        outcome = await coordinator.batch([("c1", "explode")])

        assert outcome.status is OperationStatus.FAILED
        assert isinstance(outcome.error.cause, ValueError)
        assert simple_model.get_container("c1").collapsed is False

    @pytest.mark.asyncio
    async def test_layout_timeout(self, simple_model, slow_engine):
        coordinator = OperationCoordinator(
            simple_model,
            layout_bridge=LayoutBridge(simple_model, slow_engine),
            config=CoordinatorConfig(layout_timeout=0.01),
        )

        outcome = await coordinator.collapse_container("c1")

        assert outcome.status is OperationStatus.FAILED
        assert isinstance(outcome.error.cause, asyncio.TimeoutError)
        assert simple_model.layout_state.phase is LayoutPhase.ERROR

    @pytest.mark.asyncio
    async def test_error_log_bounded(self, simple_model):
        coordinator = OperationCoordinator(simple_model, config=CoordinatorConfig(max_error_log=2))

        for _ in range(3):
            await coordinator.batch([("c1", "explode")])

        assert len(coordinator.errors) == 2
        assert coordinator.get_status().failed == 3
        coordinator.clear_errors()
        assert coordinator.errors == []


class TestQueueControl:
    """Tests for cancellation and status."""

    @pytest.mark.asyncio
    async def test_cancel_queued(self, coordinator, simple_model):
        first = coordinator.enqueue("collapse_container", "c1")
        second = coordinator.enqueue("expand_container", "c1")

        assert coordinator.cancel(second.operation_id) is True
        assert coordinator.cancel("op_missing") is False

        assert (await first.wait()).ok
        assert (await second.wait()).status is OperationStatus.CANCELLED
        assert simple_model.get_container("c1").collapsed is True
        assert coordinator.cancel(first.operation_id) is False

    @pytest.mark.asyncio
    async def test_clear_queue(self, coordinator, grid_engine):
        operations = [coordinator.enqueue("toggle_container", "c1") for _ in range(3)]

        assert coordinator.clear_queue() == 3
        outcomes = [await op.wait() for op in operations]

        assert all(o.status is OperationStatus.CANCELLED for o in outcomes)
        await coordinator.wait_idle()
        assert grid_engine.calls == 0
        assert coordinator.get_status().cancelled == 3

    @pytest.mark.asyncio
    async def test_status_and_wait_idle(self, coordinator):
        coordinator.enqueue("collapse_container", "c1")
        coordinator.enqueue("search", payload={"query": "sink"})

        status = coordinator.get_status()
        assert status.queue_depth == 2
        assert status.state is CoordinatorState.IDLE

        await coordinator.wait_idle()

        status = coordinator.get_status()
        assert status.queue_depth == 0
        assert status.in_flight is None
        assert status.completed == 2

    @pytest.mark.asyncio
    async def test_close_cancels_pending(self, coordinator):
        operation = coordinator.enqueue("collapse_container", "c1")

        await coordinator.close()

        assert (await operation.wait()).status is OperationStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unenqueued_operation_cannot_wait(self):
        with pytest.raises(RuntimeError):
            await Operation(kind=OperationKind.RELAYOUT).wait()

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.enqueue("explode")
