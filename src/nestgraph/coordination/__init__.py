"""Serialized operation pipeline."""

from nestgraph.coordination.coordinator import OperationCoordinator
from nestgraph.coordination.models import (
    CoalesceClass,
    CoordinatorState,
    Operation,
    OperationErrorRecord,
    OperationKind,
    OperationOutcome,
    OperationStatus,
    QueueStatus,
)

__all__ = [
    "CoalesceClass",
    "CoordinatorState",
    "Operation",
    "OperationCoordinator",
    "OperationErrorRecord",
    "OperationKind",
    "OperationOutcome",
    "OperationStatus",
    "QueueStatus",
]
