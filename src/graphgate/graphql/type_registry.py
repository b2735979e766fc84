"""
Type Registry - derive Strawberry types from entity specs.

For every registered entity this produces:
- ``<Entity>``: output type (``identifier: ID!`` plus declared fields)
- ``<Entity>Input``: create input, required fields non-null
- ``<Entity>PartialInput``: update input, every field optional
- ``<Entity>Filter``: ``field`` / ``field__op`` filter keys
- ``<Entity>Sorting``: ``field: <Entity>SortField!``, ``order: SortOrder``

Types are built lazily on first request and cached, since Strawberry
requires type names to be unique within a schema.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import strawberry
from strawberry import ID
from strawberry.scalars import JSON

from graphgate.core.query import SortOrder
from graphgate.specs.entity import IDENTIFIER_FIELD, FieldSpec, ScalarType

if TYPE_CHECKING:
    from graphgate.core.entity import EntityRegistry, GraphEntity


@strawberry.enum(name="SortOrder", description="Sort direction")
class GraphQLSortOrder(Enum):
    ASC = SortOrder.ASC.value
    DESC = SortOrder.DESC.value


_SCALARS: dict[ScalarType, Any] = {
    ScalarType.STR: str,
    ScalarType.TEXT: str,
    ScalarType.INT: int,
    ScalarType.FLOAT: float,
    ScalarType.DECIMAL: Decimal,
    ScalarType.BOOL: bool,
    ScalarType.DATE: date,
    ScalarType.DATETIME: datetime,
    ScalarType.UUID: ID,
    ScalarType.EMAIL: str,
    ScalarType.URL: str,
    ScalarType.JSON: JSON,
}

_ORDERED = {
    ScalarType.STR,
    ScalarType.TEXT,
    ScalarType.INT,
    ScalarType.FLOAT,
    ScalarType.DECIMAL,
    ScalarType.DATE,
    ScalarType.DATETIME,
    ScalarType.EMAIL,
    ScalarType.URL,
}

_TEXTUAL = {ScalarType.STR, ScalarType.TEXT, ScalarType.EMAIL, ScalarType.URL}


class TypeRegistry(Protocol):
    """Produces the schema types for one entity."""

    def get_output(self, entity_name: str) -> Any: ...

    def get_input(self, entity_name: str) -> Any: ...

    def get_partial_input(self, entity_name: str) -> Any: ...

    def get_filter(self, entity_name: str) -> Any: ...

    def get_sorting(self, entity_name: str) -> Any: ...


class StrawberryTypeRegistry:
    """
    Build and cache Strawberry types for registered entities.

    Example:
        types = StrawberryTypeRegistry(registry)
        widget_type = types.get_output("Widget")
    """

    def __init__(self, entities: EntityRegistry) -> None:
        self.entities = entities
        self._outputs: dict[str, type] = {}
        self._inputs: dict[str, type] = {}
        self._partial_inputs: dict[str, type] = {}
        self._filters: dict[str, type] = {}
        self._sortings: dict[str, type] = {}
        self._enums: dict[str, type] = {}

    @property
    def outputs(self) -> dict[str, type]:
        """Output types built so far, by entity name."""
        return dict(self._outputs)

    # =========================================================================
    # Public API
    # =========================================================================

    def get_output(self, entity_name: str) -> type:
        if entity_name not in self._outputs:
            self._outputs[entity_name] = self._build_output(self.entities.require(entity_name))
        return self._outputs[entity_name]

    def get_input(self, entity_name: str) -> type:
        if entity_name not in self._inputs:
            self._inputs[entity_name] = self._build_input(
                self.entities.require(entity_name), partial=False
            )
        return self._inputs[entity_name]

    def get_partial_input(self, entity_name: str) -> type:
        if entity_name not in self._partial_inputs:
            self._partial_inputs[entity_name] = self._build_input(
                self.entities.require(entity_name), partial=True
            )
        return self._partial_inputs[entity_name]

    def get_filter(self, entity_name: str) -> type:
        if entity_name not in self._filters:
            self._filters[entity_name] = self._build_filter(self.entities.require(entity_name))
        return self._filters[entity_name]

    def get_sorting(self, entity_name: str) -> type:
        if entity_name not in self._sortings:
            self._sortings[entity_name] = self._build_sorting(self.entities.require(entity_name))
        return self._sortings[entity_name]

    # =========================================================================
    # Builders
    # =========================================================================

    def _build_output(self, entity_cls: type[GraphEntity]) -> type:
        spec = entity_cls.entity_spec
        annotations: dict[str, Any] = {IDENTIFIER_FIELD: ID}
        namespace: dict[str, Any] = {}

        for field in spec.fields:
            py_type = self._field_type(spec.name, field)
            if field.type.kind == "ref":
                namespace[field.name] = strawberry.field(
                    resolver=_related_identifier(field.name),
                    graphql_type=ID | None,
                    description=field.description,
                )
            elif field.type.kind == "enum":
                namespace[field.name] = strawberry.field(
                    resolver=_enum_member(field.name, py_type),
                    graphql_type=py_type | None,
                    description=field.description,
                )
            else:
                namespace[field.name] = strawberry.field(description=field.description)
            annotations[field.name] = py_type | None

        namespace["__annotations__"] = annotations
        output = type(spec.name, (), namespace)
        return strawberry.type(output, description=spec.description or f"{spec.name} entity")

    def _build_input(self, entity_cls: type[GraphEntity], partial: bool) -> type:
        spec = entity_cls.entity_spec
        name = f"{spec.name}PartialInput" if partial else f"{spec.name}Input"
        annotations: dict[str, Any] = {}
        namespace: dict[str, Any] = {}

        # Required fields first so the generated dataclass has no
        # default-before-non-default ordering
        fields = sorted(spec.fields, key=lambda f: 0 if f.required and not partial else 1)
        for field in fields:
            py_type = ID if field.type.kind == "ref" else self._field_type(spec.name, field)
            if field.required and not partial:
                annotations[field.name] = py_type
            else:
                annotations[field.name] = py_type | None
                namespace[field.name] = strawberry.field(
                    default=strawberry.UNSET, description=field.description
                )

        namespace["__annotations__"] = annotations
        return strawberry.input(type(name, (), namespace))

    def _build_filter(self, entity_cls: type[GraphEntity]) -> type:
        spec = entity_cls.entity_spec
        annotations: dict[str, Any] = {
            IDENTIFIER_FIELD: ID | None,
            f"{IDENTIFIER_FIELD}__in": list[ID] | None,
        }

        for field in spec.fields:
            if field.type.scalar_type == ScalarType.JSON:
                continue
            py_type = ID if field.type.kind == "ref" else self._field_type(spec.name, field)
            for key, annotation in _filter_keys(field, py_type).items():
                annotations[key] = annotation

        namespace: dict[str, Any] = {key: strawberry.UNSET for key in annotations}
        namespace["__annotations__"] = annotations
        return strawberry.input(type(f"{spec.name}Filter", (), namespace))

    def _build_sorting(self, entity_cls: type[GraphEntity]) -> type:
        spec = entity_cls.entity_spec
        sortable = [IDENTIFIER_FIELD] + [
            f.name for f in spec.fields if f.type.scalar_type != ScalarType.JSON
        ]
        sort_field = strawberry.enum(
            Enum(f"{spec.name}SortField", {name.upper(): name for name in sortable}),
            description=f"Sortable fields of {spec.name}",
        )

        namespace: dict[str, Any] = {
            "__annotations__": {"field": sort_field, "order": GraphQLSortOrder},
            "order": GraphQLSortOrder.ASC,
        }
        return strawberry.input(type(f"{spec.name}Sorting", (), namespace))

    def _field_type(self, entity_name: str, field: FieldSpec) -> Any:
        """Convert a field's type to a Python type annotation."""
        match field.type.kind:
            case "scalar":
                return _SCALARS.get(field.type.scalar_type or ScalarType.STR, str)
            case "enum":
                return self._enum_type(entity_name, field)
            case "ref":
                return ID
            case _:
                raise ValueError(f"Unknown field kind: {field.type.kind}")

    def _enum_type(self, entity_name: str, field: FieldSpec) -> type:
        enum_name = f"{entity_name}{_pascal_case(field.name)}Enum"
        if enum_name not in self._enums:
            values = field.type.enum_values or []
            members = {v.upper(): v for v in values}
            self._enums[enum_name] = strawberry.enum(Enum(enum_name, members))
        return self._enums[enum_name]


def _filter_keys(field: FieldSpec, py_type: Any) -> dict[str, Any]:
    """Filter keys offered for one field, by field kind."""
    keys: dict[str, Any] = {
        field.name: py_type | None,
        f"{field.name}__ne": py_type | None,
        f"{field.name}__in": list[py_type] | None,
        f"{field.name}__not_in": list[py_type] | None,
        f"{field.name}__isnull": bool | None,
    }
    scalar = field.type.scalar_type
    if field.type.kind == "scalar" and scalar in _ORDERED:
        for op in ("gt", "gte", "lt", "lte"):
            keys[f"{field.name}__{op}"] = py_type | None
    if field.type.kind == "scalar" and scalar in _TEXTUAL:
        for op in ("contains", "icontains", "startswith", "endswith"):
            keys[f"{field.name}__{op}"] = str | None
    return keys


def _related_identifier(field_name: str) -> Any:
    def resolve(root: Any) -> Any:
        related = getattr(root, field_name, None)
        if related is None:
            return None
        return getattr(related, IDENTIFIER_FIELD, related)

    resolve.__annotations__ = {"root": Any, "return": Any}
    return resolve


def _enum_member(field_name: str, enum_type: Any) -> Any:
    def resolve(root: Any) -> Any:
        value = getattr(root, field_name, None)
        if value is None or isinstance(value, enum_type):
            return value
        return enum_type(value.value if isinstance(value, Enum) else value)

    resolve.__annotations__ = {"root": Any, "return": Any}
    return resolve


def _pascal_case(name: str) -> str:
    """Convert snake_case to PascalCase."""
    return "".join(word.capitalize() for word in name.split("_"))
