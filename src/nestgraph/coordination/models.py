"""Operation coordination models and data classes."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class OperationKind(Enum):
    """Kind of a queued operation."""

    EXPAND_CONTAINER = "expand_container"
    COLLAPSE_CONTAINER = "collapse_container"
    TOGGLE_CONTAINER = "toggle_container"
    EXPAND_ALL = "expand_all"
    COLLAPSE_ALL = "collapse_all"
    BATCH = "batch"
    NAVIGATE = "navigate"  # Expand ancestors to reveal a search match
    SEARCH = "search"
    CLEAR_SEARCH = "clear_search"
    TOGGLE_NODE_LABEL = "toggle_node_label"
    LAYOUT_CONFIG = "layout_config"
    STYLE_CONFIG = "style_config"
    RELAYOUT = "relayout"
    SMART_COLLAPSE = "smart_collapse"


class CoalesceClass(Enum):
    """Operations in the same class supersede each other while queued."""

    SEARCH = "search"
    LAYOUT_CONFIG = "layout_config"
    STYLE_CONFIG = "style_config"
    RELAYOUT = "relayout"


COALESCE_CLASSES: dict[OperationKind, CoalesceClass] = {
    OperationKind.SEARCH: CoalesceClass.SEARCH,
    OperationKind.CLEAR_SEARCH: CoalesceClass.SEARCH,
    OperationKind.LAYOUT_CONFIG: CoalesceClass.LAYOUT_CONFIG,
    OperationKind.STYLE_CONFIG: CoalesceClass.STYLE_CONFIG,
    OperationKind.RELAYOUT: CoalesceClass.RELAYOUT,
}

# Operations that never change positions
RENDER_ONLY_KINDS = frozenset(
    {OperationKind.SEARCH, OperationKind.CLEAR_SEARCH, OperationKind.STYLE_CONFIG}
)


class OperationStatus(Enum):
    """Lifecycle status of a queued operation."""

    QUEUED = "queued"
    EXECUTING = "executing"
    AWAITING_RENDER_ACK = "awaiting_render_ack"
    COMPLETE = "complete"
    FAILED = "failed"
    SUPERSEDED = "superseded"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in (
            OperationStatus.COMPLETE,
            OperationStatus.FAILED,
            OperationStatus.SUPERSEDED,
            OperationStatus.CANCELLED,
        )


class CoordinatorState(Enum):
    IDLE = "idle"
    EXECUTING = "executing"
    AWAITING_RENDER_ACK = "awaiting_render_ack"


@dataclass
class OperationOutcome:
    """Result of a finished operation.

    ``changed`` is False for verified no-ops and for operations that never
    executed (superseded or cancelled).
    """

    operation_id: str
    kind: OperationKind
    status: OperationStatus
    changed: bool = False
    layout_ran: bool = False
    render_ran: bool = False
    ack_timed_out: bool = False
    result: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status is OperationStatus.COMPLETE


@dataclass
class Operation:
    """A request queued on the coordinator."""

    kind: OperationKind
    target: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    operation_id: str = field(default_factory=lambda: f"op_{uuid.uuid4().hex[:12]}")
    status: OperationStatus = OperationStatus.QUEUED
    enqueued_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    future: asyncio.Future | None = field(default=None, repr=False)

    @property
    def coalesce_class(self) -> CoalesceClass | None:
        return COALESCE_CLASSES.get(self.kind)

    @property
    def affects_layout(self) -> bool:
        return self.kind not in RENDER_ONLY_KINDS

    def resolve(self, outcome: OperationOutcome) -> None:
        self.status = outcome.status
        self.finished_at = datetime.now()
        if self.future is not None and not self.future.done():
            self.future.set_result(outcome)

    async def wait(self) -> OperationOutcome:
        """Wait for the outcome; never raises for operation failures."""
        if self.future is None:
            raise RuntimeError(f"Operation {self.operation_id} was never enqueued")
        return await asyncio.shield(self.future)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "target": self.target,
            "status": self.status.value,
            "enqueued_at": self.enqueued_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class OperationErrorRecord:
    """Entry in the coordinator's error log."""

    operation_id: str
    kind: OperationKind
    target: str | None
    message: str
    error: Exception = field(repr=False)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class QueueStatus:
    """Point-in-time view of the coordinator."""

    state: CoordinatorState
    queue_depth: int
    in_flight: Operation | None
    completed: int
    failed: int
    superseded: int
    cancelled: int
    errors: list[OperationErrorRecord] = field(default_factory=list)
