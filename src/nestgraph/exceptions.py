"""Standard exception hierarchy for nestgraph.

All nestgraph exceptions inherit from NestGraphError, making it easy
to catch every library-specific error at once.

Exception Hierarchy:
    NestGraphError (base)
    ├── ConfigurationError - Unknown or out-of-range configuration
    ├── GraphError - Base for graph model errors
    │   ├── StructuralError - Duplicate ids, unknown endpoints, cycles
    │   ├── NotFoundError - Public query on an unknown entity id
    │   ├── ValidationError - Malformed layout result
    │   ├── InvariantViolation - Audit found a broken visibility invariant
    │   └── ReentrantMutationError - Mutation started during another mutation
    ├── GraphDataError - Malformed graph description data
    └── OperationError - Failure while executing a queued operation
"""

from __future__ import annotations

from typing import Any


class NestGraphError(Exception):
    """Base exception for all nestgraph errors.

    Catch this to handle any library-specific exception:
        try:
            await coordinator.expand_container("c1")
        except NestGraphError as e:
            logger.error(f"nestgraph error: {e}")
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{super().__str__()} (caused by: {self.cause})"
        return super().__str__()


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(NestGraphError):
    """Invalid configuration.

    Raised when a config object receives an unrecognized key, a value
    outside its allowed range, or an unknown enumerated option.
    """

    def __init__(
        self,
        message: str,
        key: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.key = key


# =============================================================================
# Graph Model Errors
# =============================================================================


class GraphError(NestGraphError):
    """Base exception for graph model errors."""

    pass


class StructuralError(GraphError):
    """The requested insertion would break the graph structure.

    Raised when:
    - An id is already used by another entity
    - An edge references an unknown endpoint
    - A container assignment would create a containment cycle
    """

    pass


class NotFoundError(GraphError):
    """A public query referenced an entity id that does not exist."""

    def __init__(self, entity_id: str, kind: str = "entity"):
        super().__init__(f"Unknown {kind}: {entity_id}")
        self.entity_id = entity_id
        self.kind = kind


class ValidationError(GraphError):
    """Layout result failed validation.

    Raised when a position/dimension field is missing, not a finite
    number, or (for width/height) not strictly positive.
    """

    def __init__(
        self,
        message: str,
        entity_id: str | None = None,
        field_name: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.entity_id = entity_id
        self.field_name = field_name


class InvariantViolation(GraphError):
    """The visibility audit found one or more broken invariants."""

    def __init__(self, violations: list[Any]):
        summary = "; ".join(str(v) for v in violations[:5])
        more = f" (+{len(violations) - 5} more)" if len(violations) > 5 else ""
        super().__init__(f"{len(violations)} invariant violation(s): {summary}{more}")
        self.violations = list(violations)


class ReentrantMutationError(GraphError):
    """A mutation was started while another mutation was still running."""

    pass


# =============================================================================
# Ingestion Errors
# =============================================================================


class GraphDataError(NestGraphError):
    """Graph description data is malformed.

    Raised before any entity reaches the model, so a rejected document
    never leaves a half-populated graph behind.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.path = path


# =============================================================================
# Coordination Errors
# =============================================================================


class OperationError(NestGraphError):
    """An exception raised while executing a queued operation.

    The original exception is available as ``cause``.
    """

    def __init__(
        self,
        message: str,
        operation_id: str | None = None,
        kind: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.operation_id = operation_id
        self.kind = kind
