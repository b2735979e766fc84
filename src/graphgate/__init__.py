"""
graphgate - permission-gated GraphQL API generation for declared entities.

This package provides:
- Entity contract: declare fields with an EntitySpec, implement has_permission
- Permission gating: scope tables evaluated before every query and mutation
- Dispatch: list queries plus generated create/update/delete mutations
- Schema: Strawberry schema mounted on FastAPI
"""

from graphgate._version import get_version as _get_version

__version__ = _get_version()

from graphgate.config import GraphGateConfig, load_config
from graphgate.core import (
    ActionMethod,
    CallerContext,
    EntityRef,
    GraphEntity,
    InMemoryRepository,
    PermissionLevel,
    PermissionTable,
)
from graphgate.graphql import EntitySchemaBuilder
from graphgate.specs import EntitySpec, FieldSpec, FieldType

__all__ = [
    "ActionMethod",
    "CallerContext",
    "EntityRef",
    "EntitySchemaBuilder",
    "EntitySpec",
    "FieldSpec",
    "FieldType",
    "GraphEntity",
    "GraphGateConfig",
    "InMemoryRepository",
    "PermissionLevel",
    "PermissionTable",
    "load_config",
]
