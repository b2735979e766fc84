"""
Entity specification types.
"""

from graphgate.specs.entity import (
    IDENTIFIER_FIELD,
    EntitySpec,
    FieldSpec,
    FieldType,
    ScalarType,
)

__all__ = [
    "IDENTIFIER_FIELD",
    "EntitySpec",
    "FieldSpec",
    "FieldType",
    "ScalarType",
]
