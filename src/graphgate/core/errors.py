"""
Error taxonomy for query and mutation dispatch.

Every failure the dispatcher reports is a typed exception carrying an
``ErrorCategory``. The GraphQL layer copies ``extensions`` into the error
payload and masks anything that is not client safe.

Example:
    try:
        dispatcher.resolve_mutation(args, ctx, "Widget", ActionMethod.DELETE)
    except PermissionDenied as e:
        print(e.extensions)  # {"category": "authorization", ...}
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from graphgate.core.methods import ActionMethod


class ErrorCategory(Enum):
    """High-level error categories for routing and handling.

    - AUTHORIZATION: caller's scopes do not grant the operation
    - VALIDATION: malformed or incomplete input
    - NOT_FOUND: update/delete target does not exist
    - INTERNAL: collaborator inconsistency; logged, never shown verbatim
    """

    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class GraphGateError(Exception):
    """Base class for dispatch errors."""

    category: ErrorCategory = ErrorCategory.INTERNAL
    client_safe: bool = True

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def extensions(self) -> dict[str, Any]:
        """GraphQL error extensions (graphql-core copies these onto the error)."""
        extensions: dict[str, Any] = {"category": self.category.value}
        if self.client_safe:
            extensions.update(self.details)
        return extensions


class PermissionDenied(GraphGateError):
    """Raised when the caller's scopes do not grant a method on an entity.

    States the entity and method only, never which scopes were checked.
    """

    category = ErrorCategory.AUTHORIZATION

    def __init__(self, entity: str, method: ActionMethod = ActionMethod.GET) -> None:
        self.entity = entity
        self.method = method
        super().__init__(
            f"Permission to perform action {method.value} on entity {entity} denied",
            details={"entity": entity, "method": method.value},
        )


class InvalidInput(GraphGateError):
    """Raised for missing required fields or malformed arguments."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message, details={"field": field} if field else None)


class EntityNotFound(GraphGateError):
    """Raised when an update or delete targets an id with no stored entity.

    Queries never raise this; they return an empty result instead.
    """

    category = ErrorCategory.NOT_FOUND

    def __init__(self, entity: str, identifier: Any) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            f"{entity} with ID {identifier} not found",
            details={"entity": entity, "id": str(identifier)},
        )


class InternalError(GraphGateError):
    """Raised for collaborator-layer inconsistencies (e.g. dangling relations)."""

    category = ErrorCategory.INTERNAL
    client_safe = False


def is_client_safe(error: BaseException | None) -> bool:
    """Whether an exception's message may be shown to the caller as-is."""
    return isinstance(error, GraphGateError) and error.client_safe
