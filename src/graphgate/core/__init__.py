"""
Resolver dispatch and permission gating.

Framework-agnostic: nothing in this package imports the GraphQL layer.
"""

from graphgate.core.context import CallerContext, create_anonymous_context, create_system_context
from graphgate.core.dispatcher import OperationDispatcher
from graphgate.core.entity import EntityRef, EntityRegistry, GraphEntity
from graphgate.core.errors import (
    EntityNotFound,
    ErrorCategory,
    GraphGateError,
    InternalError,
    InvalidInput,
    PermissionDenied,
)
from graphgate.core.evaluator import Decision, PermissionEvaluator
from graphgate.core.fetch_plan import DEFAULT_RESULT_LIMIT, FetchPlan
from graphgate.core.memory_repository import InMemoryRepository
from graphgate.core.methods import ActionMethod, PermissionLevel
from graphgate.core.mutation import (
    ArgShape,
    MutationBuilder,
    MutationDescriptor,
    MutationEntry,
    MutationRegistry,
    ResultShape,
)
from graphgate.core.permissions import PermissionTable
from graphgate.core.repository import QueryBuilder, Repository

__all__ = [
    "ActionMethod",
    "ArgShape",
    "CallerContext",
    "DEFAULT_RESULT_LIMIT",
    "Decision",
    "EntityNotFound",
    "EntityRef",
    "EntityRegistry",
    "ErrorCategory",
    "FetchPlan",
    "GraphEntity",
    "GraphGateError",
    "InMemoryRepository",
    "InternalError",
    "InvalidInput",
    "MutationBuilder",
    "MutationDescriptor",
    "MutationEntry",
    "MutationRegistry",
    "OperationDispatcher",
    "PermissionDenied",
    "PermissionEvaluator",
    "PermissionLevel",
    "PermissionTable",
    "QueryBuilder",
    "Repository",
    "ResultShape",
    "create_anonymous_context",
    "create_system_context",
]
