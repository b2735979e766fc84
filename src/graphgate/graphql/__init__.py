"""
GraphQL layer: Strawberry types, schema finalization and FastAPI mounting.
"""

from graphgate.graphql.integration import (
    create_context_from_request,
    create_graphql_app,
    mount_graphql,
)
from graphgate.graphql.schema_builder import EntitySchemaBuilder, OperationParams
from graphgate.graphql.type_registry import StrawberryTypeRegistry, TypeRegistry

__all__ = [
    "EntitySchemaBuilder",
    "OperationParams",
    "StrawberryTypeRegistry",
    "TypeRegistry",
    "create_context_from_request",
    "create_graphql_app",
    "mount_graphql",
]
