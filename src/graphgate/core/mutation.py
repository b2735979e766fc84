"""
Mutation registry.

Lets integrators declare mutations beyond the generated CRUD triplets
(custom workflow actions, bulk operations...) that still go through the
same permission gate. Mutations are registered with a fluent builder
before the schema is finalized and are immutable afterwards.

Example:
    registry = MutationRegistry()
    (
        registry.register("publishWidget")
        .set_entity(Widget)
        .set_args({"id": ArgShape.ID})
        .set_handler(publish_widget)
        .set_description("Mark a widget as published")
    )
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from graphgate.core.methods import ActionMethod

if TYPE_CHECKING:
    from graphgate.core.context import CallerContext
    from graphgate.core.dispatcher import OperationDispatcher
    from graphgate.core.entity import GraphEntity

MutationHandler = Callable[[dict[str, Any], "CallerContext"], Any]
Resolver = Callable[["OperationDispatcher", dict[str, Any], "CallerContext"], Any]


class ArgShape(StrEnum):
    """Entity-relative argument shapes, materialized by the type registry."""

    ID = "id"  # ID!
    INPUT = "input"  # <Entity>Input!
    PARTIAL_INPUT = "partial_input"  # <Entity>PartialInput


class ResultShape(StrEnum):
    """Entity-relative result shapes, materialized by the type registry."""

    ENTITY_LIST = "entity_list"  # [<Entity>]
    ID = "id"  # ID


@dataclass(frozen=True)
class MutationEntry:
    """
    A finalized mutation field: argument shape, result shape and a resolver
    called as ``handler(dispatcher, args, context)``.

    ``resolve`` runs on the dispatcher the entry was built with unless another
    one is passed, e.g. one bound to a per-request repository.
    """

    name: str
    entity: str
    args: Mapping[str, Any]
    handler: Resolver
    dispatcher: OperationDispatcher
    result_type: Any = ResultShape.ENTITY_LIST
    description: str = ""

    def resolve(
        self,
        args: dict[str, Any],
        context: CallerContext | None,
        dispatcher: OperationDispatcher | None = None,
    ) -> Any:
        return self.handler(dispatcher or self.dispatcher, args, context)


@dataclass(frozen=True)
class MutationDescriptor:
    """
    A registered custom mutation.

    Attributes:
        name: Mutation field name
        entity: Short name of the entity it acts on
        handler: Called as ``handler(args, context)`` once the gate passes
        args: Argument name -> ``ArgShape`` or a schema type annotation
        result_type: ``ResultShape`` or a schema type annotation
        method: Method checked against the permission table
        description: Field description
        permissions: Whether the permission gate runs at all
    """

    name: str
    entity: str
    handler: MutationHandler
    args: Mapping[str, Any] = field(default_factory=dict)
    result_type: Any = ResultShape.ENTITY_LIST
    method: ActionMethod = ActionMethod.UPDATE
    description: str = ""
    permissions: bool = True

    def get_mutator(self, dispatcher: OperationDispatcher) -> MutationEntry:
        """Materialize into a dispatch entry bound to ``dispatcher``."""

        def resolve(
            bound: OperationDispatcher, args: dict[str, Any], context: CallerContext
        ) -> Any:
            return bound.resolve_custom(self, args, context)

        return MutationEntry(
            name=self.name,
            entity=self.entity,
            args=dict(self.args),
            handler=resolve,
            dispatcher=dispatcher,
            result_type=self.result_type,
            description=self.description,
        )


class MutationBuilder:
    """Accumulates one mutation's settings; see ``MutationRegistry.register``."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._entity: str | None = None
        self._handler: MutationHandler | None = None
        self._args: dict[str, Any] = {}
        self._result_type: Any = ResultShape.ENTITY_LIST
        self._method = ActionMethod.UPDATE
        self._description = ""
        self._permissions = True

    @property
    def name(self) -> str:
        return self._name

    def set_entity(self, entity: type[GraphEntity] | str) -> MutationBuilder:
        self._entity = entity if isinstance(entity, str) else entity.short_name()
        return self

    def set_handler(self, handler: MutationHandler) -> MutationBuilder:
        self._handler = handler
        return self

    def set_args(self, args: Mapping[str, Any]) -> MutationBuilder:
        self._args = dict(args)
        return self

    def set_type(self, result_type: Any) -> MutationBuilder:
        """Override the result type (defaults to a list of the entity)."""
        self._result_type = ResultShape.ENTITY_LIST if result_type is None else result_type
        return self

    def set_method(self, method: ActionMethod | str) -> MutationBuilder:
        self._method = ActionMethod(method)
        return self

    def set_description(self, description: str) -> MutationBuilder:
        self._description = description
        return self

    def set_permissions(self, enabled: bool) -> MutationBuilder:
        self._permissions = enabled
        return self

    def build(self) -> MutationDescriptor:
        if self._entity is None:
            raise ValueError(f"Mutation '{self._name}' has no entity")
        if self._handler is None:
            raise ValueError(f"Mutation '{self._name}' has no handler")
        return MutationDescriptor(
            name=self._name,
            entity=self._entity,
            handler=self._handler,
            args=dict(self._args),
            result_type=self._result_type,
            method=self._method,
            description=self._description,
            permissions=self._permissions,
        )


class MutationRegistry:
    """Holds mutation builders until the schema is finalized."""

    def __init__(self) -> None:
        self._builders: dict[str, MutationBuilder] = {}
        self._finalized = False

    def register(self, name: str) -> MutationBuilder:
        if self._finalized:
            raise RuntimeError(f"Cannot register mutation '{name}' after the schema is built")
        if not name.isidentifier():
            raise ValueError(f"Mutation name '{name}' must be a valid identifier")
        if name in self._builders:
            raise ValueError(f"Mutation '{name}' is already registered")
        builder = MutationBuilder(name)
        self._builders[name] = builder
        return builder

    def finalize(self) -> list[MutationDescriptor]:
        """Build every registered mutation and close the registry."""
        descriptors = [builder.build() for builder in self._builders.values()]
        self._finalized = True
        return descriptors

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def names(self) -> list[str]:
        return list(self._builders)

    def __len__(self) -> int:
        return len(self._builders)
