"""
Entity Schema Builder - finalize entities and mutations into a Strawberry schema.

One list query field per entity collection and a create/update/delete
triplet per entity, plus any mutations registered through ``mutation()``.
Every field resolves through the ``OperationDispatcher``; the caller context
is read from the execution context of each request.

Example:
    builder = EntitySchemaBuilder(repo, {"widgets": Widget, "users": User})
    builder.mutation("publishWidget").set_entity(Widget).set_handler(publish)
    schema = builder.build()

    result = schema.execute_sync(
        "{ widgets(limit: 10) { identifier name } }",
        context_value=CallerContext.create(scopes=["reader"], user_id="u1"),
    )
"""

from __future__ import annotations

import dataclasses
import inspect
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Annotated, Any

import strawberry
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from strawberry.extensions import MaskErrors
from strawberry.schema.config import StrawberryConfig

from graphgate.config import GraphGateConfig
from graphgate.core.context import CallerContext
from graphgate.core.dispatcher import OperationDispatcher
from graphgate.core.entity import EntityRegistry
from graphgate.core.errors import InvalidInput, is_client_safe
from graphgate.core.evaluator import PermissionEvaluator
from graphgate.core.mutation import (
    ArgShape,
    MutationBuilder,
    MutationEntry,
    MutationRegistry,
    ResultShape,
)
from graphgate.graphql.type_registry import StrawberryTypeRegistry, TypeRegistry
from graphgate.logging import get_logger

if TYPE_CHECKING:
    from graphql import GraphQLError

    from graphgate.core.entity import GraphEntity
    from graphgate.core.permissions import PermissionTable
    from graphgate.core.repository import Repository

logger = get_logger("schema")

FILTER_DOC = "Filter results by field values, e.g. {name__icontains: \"bolt\"}"
SORTING_DOC = "Sort results by one or more fields, applied in order"
ID_DOC = "Fetch a single result by its identifier - shorthand for filter: {identifier: $id}"
LIMIT_DOC = (
    "Limits the amount of results returned - %d by default. If you require more "
    "results, paginate your requests using limit and offset"
)
OFFSET_DOC = "Skip this many results before returning - 0 by default"


class OperationParams(BaseModel):
    """A GraphQL operation as posted by a client."""

    query: str
    variables: dict[str, Any] | None = None
    operation_name: str | None = Field(default=None, alias="operationName")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def caller_context(info: strawberry.Info) -> CallerContext | None:
    """
    Extract the CallerContext from a resolver's execution context.

    Accepts the context itself (``execute_sync(context_value=ctx)``) or a
    mapping/object carrying it under ``caller`` (FastAPI integration).
    """
    context = info.context
    if context is None or isinstance(context, CallerContext):
        return context
    if isinstance(context, Mapping):
        return context.get("caller")
    return getattr(context, "caller", None)


def request_repository(info: strawberry.Info) -> Repository | None:
    """The repository an execution context carries under ``repository``, if any."""
    context = info.context
    if isinstance(context, Mapping):
        return context.get("repository")
    return getattr(context, "repository", None)


def to_plain(value: Any) -> Any:
    """Convert Strawberry input objects and enums into dicts and plain values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_plain(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if getattr(value, f.name) is not strawberry.UNSET
        }
    return value


class EntitySchemaBuilder:
    """
    Build a Strawberry schema over registered entities.

    The schema is finalized on the first ``build()`` (or ``schema`` access);
    no mutations may be registered afterwards.
    """

    def __init__(
        self,
        repository: Repository | None,
        entities: Mapping[str, type[GraphEntity] | str],
        *,
        permissions: PermissionTable | None = None,
        user_entity: type[GraphEntity] | None = None,
        config: GraphGateConfig | None = None,
        result_limit: int | None = None,
        type_registry: TypeRegistry | None = None,
        repository_factory: Callable[[], Repository] | None = None,
    ) -> None:
        """
        Args:
            repository: Storage used when an execution brings none of its own;
                may be None when ``repository_factory`` is given
            entities: Query field name (plural) -> entity class or dotted path
            permissions: Scope table; defaults to ``config.permissions``
            user_entity: Entity type callers' user ids refer to
            config: Configuration; defaults are used when omitted
            result_limit: Overrides ``config.result_limit``
            type_registry: Overrides the Strawberry type registry
            repository_factory: Opens a repository per operation (see
                ``create_context``)
        """
        if repository is None:
            if repository_factory is None:
                raise ValueError("A repository or a repository_factory is required")
            repository = repository_factory()
        self.config = config or GraphGateConfig()
        self.repository = repository
        self.repository_factory = repository_factory
        self.registry = EntityRegistry()
        self._collections: dict[str, str] = {}
        self._targets: list[type[GraphEntity] | str] = []

        for field_name, target in entities.items():
            name = self.registry.register(target)
            if name is None:
                continue
            self._collections[field_name] = name
            self._targets.append(target)

        table = permissions if permissions is not None else self.config.permissions
        self.result_limit = result_limit or self.config.result_limit
        evaluator = PermissionEvaluator(table, repository, self.registry, user_entity)
        self._dispatcher = OperationDispatcher(
            repository, self.registry, evaluator, self.result_limit
        )
        self._types: TypeRegistry = type_registry or StrawberryTypeRegistry(self.registry)
        self._mutations = MutationRegistry()
        self._schema: strawberry.Schema | None = None

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def dispatcher(self) -> OperationDispatcher:
        return self._dispatcher

    @property
    def types(self) -> TypeRegistry:
        return self._types

    @property
    def schema(self) -> strawberry.Schema:
        return self.build()

    @property
    def collections(self) -> dict[str, str]:
        """Query field name -> entity short name."""
        return dict(self._collections)

    def list_of_type(self, entity_name: str) -> Any:
        """The ``[<Entity>]`` output type of an entity."""
        return list[self._types.get_output(entity_name)]  # type: ignore[misc]

    def create_context(self, caller: CallerContext | None) -> dict[str, Any]:
        """
        Execution context for one operation.

        Carries the caller under ``caller`` and, when a repository factory is
        set, a freshly opened repository under ``repository``.
        """
        context: dict[str, Any] = {"caller": caller}
        if self.repository_factory is not None:
            context["repository"] = self.repository_factory()
        return context

    def dispatcher_for(self, info: strawberry.Info) -> OperationDispatcher:
        repository = request_repository(info)
        if repository is None or repository is self.repository:
            return self._dispatcher
        return self._dispatcher.bind(repository)

    def mutation(self, name: str) -> MutationBuilder:
        """Register a custom mutation; only allowed before the schema is built."""
        return self._mutations.register(name)

    # =========================================================================
    # Schema Finalization
    # =========================================================================

    def build(self) -> strawberry.Schema:
        if self._schema is not None:
            return self._schema

        entries: list[MutationEntry] = []
        for target in self._targets:
            entries.extend(self._dispatcher.generate_crud_mutations(target))
        for descriptor in self._mutations.finalize():
            self.registry.require(descriptor.entity)
            entries.append(descriptor.get_mutator(self._dispatcher))

        query_type = self._create_query_type()
        mutation_type = self._create_mutation_type(entries) if entries else None

        extensions: list[Any] = []
        if self.config.mask_internal_errors:
            extensions.append(MaskErrors(should_mask_error=_should_mask))

        self._schema = strawberry.Schema(
            query=query_type,
            mutation=mutation_type,
            config=StrawberryConfig(auto_camel_case=False),
            extensions=extensions,
        )
        logger.info(
            "Schema built: %d entities, %d mutations",
            len(self._collections),
            len(entries),
        )
        return self._schema

    def _create_query_type(self) -> type:
        class_dict: dict[str, Any] = {}
        annotations: dict[str, Any] = {}

        for field_name, entity_name in self._collections.items():
            list_type = self.list_of_type(entity_name) | None
            class_dict[field_name] = strawberry.field(
                resolver=self._make_query_resolver(entity_name),
                description=f"List {entity_name} entities",
                graphql_type=list_type,
            )
            annotations[field_name] = list_type

        class_dict["__annotations__"] = annotations
        return strawberry.type(type("Query", (), class_dict))

    def _create_mutation_type(self, entries: list[MutationEntry]) -> type:
        class_dict: dict[str, Any] = {}
        annotations: dict[str, Any] = {}

        for entry in entries:
            if entry.name in class_dict:
                raise ValueError(f"Mutation '{entry.name}' is defined more than once")
            result_type = self._result_type(entry)
            class_dict[entry.name] = strawberry.mutation(
                resolver=self._make_mutation_resolver(entry),
                description=entry.description or None,
                graphql_type=result_type,
            )
            annotations[entry.name] = result_type

        class_dict["__annotations__"] = annotations
        return strawberry.type(type("Mutation", (), class_dict))

    def _make_query_resolver(self, entity_name: str) -> Callable[..., Any]:
        def resolve_list(
            info: strawberry.Info,
            filter: Any = None,
            sorting: Any = None,
            id: Any = None,
            limit: Any = None,
            offset: Any = None,
        ) -> Any:
            args = {
                "filter": to_plain(filter) if filter else None,
                "sorting": to_plain(sorting) if sorting else None,
                "id": id,
                "limit": limit,
                "offset": offset,
            }
            dispatcher = self.dispatcher_for(info)
            return dispatcher.resolve_query(args, entity_name, context=caller_context(info))

        filter_type = self._types.get_filter(entity_name)
        sorting_type = self._types.get_sorting(entity_name)
        resolve_list.__annotations__ = {
            "info": strawberry.Info,
            "filter": Annotated[filter_type | None, strawberry.argument(description=FILTER_DOC)],
            "sorting": Annotated[
                list[sorting_type] | None,  # type: ignore[valid-type]
                strawberry.argument(description=SORTING_DOC),
            ],
            "id": Annotated[strawberry.ID | None, strawberry.argument(description=ID_DOC)],
            "limit": Annotated[
                int | None, strawberry.argument(description=LIMIT_DOC % self.result_limit)
            ],
            "offset": Annotated[int | None, strawberry.argument(description=OFFSET_DOC)],
            "return": Any,
        }
        return resolve_list

    def _make_mutation_resolver(self, entry: MutationEntry) -> Callable[..., Any]:
        parameters = [
            inspect.Parameter("info", inspect.Parameter.KEYWORD_ONLY, annotation=strawberry.Info)
        ]
        for arg_name, shape in entry.args.items():
            annotation, required = self._arg_type(entry.entity, shape)
            parameters.append(
                inspect.Parameter(
                    arg_name,
                    inspect.Parameter.KEYWORD_ONLY,
                    annotation=annotation,
                    default=inspect.Parameter.empty if required else None,
                )
            )

        def resolve_mutation(info: strawberry.Info, **kwargs: Any) -> Any:
            args = {key: to_plain(value) for key, value in kwargs.items()}
            return entry.resolve(args, caller_context(info), self.dispatcher_for(info))

        resolve_mutation.__signature__ = inspect.Signature(parameters)  # type: ignore[attr-defined]
        resolve_mutation.__annotations__ = {p.name: p.annotation for p in parameters}
        resolve_mutation.__annotations__["return"] = Any
        return resolve_mutation

    def _arg_type(self, entity_name: str, shape: Any) -> tuple[Any, bool]:
        """Map an argument shape to (annotation, required)."""
        match shape:
            case ArgShape.ID:
                return strawberry.ID, True
            case ArgShape.INPUT:
                return self._types.get_input(entity_name), True
            case ArgShape.PARTIAL_INPUT:
                return self._types.get_partial_input(entity_name) | None, False
            case _:
                return shape, True

    def _result_type(self, entry: MutationEntry) -> Any:
        match entry.result_type:
            case ResultShape.ENTITY_LIST:
                return self.list_of_type(entry.entity) | None
            case ResultShape.ID:
                return strawberry.ID | None
            case _:
                return entry.result_type

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(
        self,
        payload: Mapping[str, Any] | str | bytes,
        context: CallerContext | None = None,
    ) -> dict[str, Any]:
        """
        Execute a JSON operation (``query``, ``variables``, ``operationName``).

        Returns:
            The GraphQL response as a dict with ``data`` and, when any field
            failed, ``errors``

        Raises:
            InvalidInput: The payload is not a valid operation
        """
        try:
            if isinstance(payload, (str, bytes)):
                params = OperationParams.model_validate_json(payload)
            else:
                params = OperationParams.model_validate(payload)
        except ValidationError as e:
            raise InvalidInput(f"Malformed operation: {e.errors()[0]['msg']}") from e

        result = self.schema.execute_sync(
            params.query,
            variable_values=params.variables,
            context_value=self.create_context(context),
            operation_name=params.operation_name,
        )
        response: dict[str, Any] = {"data": result.data}
        if result.errors:
            response["errors"] = [error.formatted for error in result.errors]
        return response


def _should_mask(error: GraphQLError) -> bool:
    """Mask errors raised by resolvers unless they are client safe."""
    return error.original_error is not None and not is_client_safe(error.original_error)
