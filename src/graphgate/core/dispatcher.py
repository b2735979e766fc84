"""
Operation dispatcher.

Resolver core shared by every generated query and mutation field:

- Query path: permission gate (GET), fetch plan, repository query
- Mutation path: PERMISSION_CHECK -> CREATE | UPDATE | DELETE -> RESOLVE_RESULT
- Custom mutations registered through ``MutationRegistry``
- Generation of the create/update/delete triplet per entity

The caller context is passed into every call and never stored. Concurrent
requests each need their own repository unit of work; ``bind`` derives a
dispatcher for one.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from graphgate.core.entity import EntityRef, GraphEntity, entity_short_name
from graphgate.core.errors import (
    EntityNotFound,
    GraphGateError,
    InternalError,
    InvalidInput,
    PermissionDenied,
)
from graphgate.core.evaluator import Decision, PermissionEvaluator
from graphgate.core.fetch_plan import DEFAULT_RESULT_LIMIT, FetchPlan
from graphgate.core.methods import ActionMethod
from graphgate.core.mutation import ArgShape, MutationEntry, ResultShape
from graphgate.logging import get_logger
from graphgate.specs.entity import IDENTIFIER_FIELD

if TYPE_CHECKING:
    from graphgate.core.context import CallerContext
    from graphgate.core.entity import EntityRegistry
    from graphgate.core.mutation import MutationDescriptor
    from graphgate.core.repository import Repository

logger = get_logger("dispatcher")


def _query_target(args: Mapping[str, Any]) -> Any | None:
    """The single entity a list query targets: ``id``, or an ``identifier`` filter."""
    if args.get("id") not in (None, ""):
        return args["id"]
    filters = args.get("filter")
    if isinstance(filters, Mapping):
        return filters.get(IDENTIFIER_FIELD)
    return None


class MutationState(StrEnum):
    """States a mutation passes through; logged at debug level."""

    PERMISSION_CHECK = "permission_check"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RESOLVE_RESULT = "resolve_result"
    SUCCESS = "success"
    DENIED = "denied"
    FAILED = "failed"


class OperationDispatcher:
    """
    Resolve queries and mutations for registered entities.

    Example:
        dispatcher = OperationDispatcher(repo, registry, evaluator)
        dispatcher.resolve_query({"limit": 10}, "Widget", context=ctx)
        dispatcher.resolve_mutation(
            {"input": {"name": "Bolt"}}, ctx, "Widget", ActionMethod.CREATE
        )
    """

    def __init__(
        self,
        repository: Repository,
        entities: EntityRegistry,
        evaluator: PermissionEvaluator | None = None,
        result_limit: int = DEFAULT_RESULT_LIMIT,
    ) -> None:
        self.repository = repository
        self.entities = entities
        self.evaluator = evaluator or PermissionEvaluator(None, repository, entities)
        self.result_limit = result_limit

    def bind(self, repository: Repository) -> OperationDispatcher:
        """A dispatcher over the same entities and table working on ``repository``."""
        return OperationDispatcher(
            repository, self.entities, self.evaluator.bind(repository), self.result_limit
        )

    # =========================================================================
    # Permission Gate
    # =========================================================================

    def check_permission(
        self,
        context: CallerContext | None,
        entity_name: str,
        method: ActionMethod,
        target_id: Any | None = None,
    ) -> None:
        """
        Raises:
            PermissionDenied: The caller's scopes do not grant ``method``
        """
        if self.evaluator.evaluate(context, entity_name, method, target_id) == Decision.DENY:
            raise PermissionDenied(entity_name, method)

    # =========================================================================
    # Query Path
    # =========================================================================

    def resolve_query(
        self,
        args: Mapping[str, Any],
        entity_name: str,
        pinned: GraphEntity | None = None,
        context: CallerContext | None = None,
    ) -> list[GraphEntity]:
        """
        Resolve a list query.

        Args:
            args: ``filter``, ``sorting``, ``id``, ``limit`` and ``offset``
            entity_name: Short name of the queried entity
            pinned: Restrict to this entity and skip the permission check
                (used when a mutation re-resolves its own result)
            context: Caller context

        Returns:
            Matching entities; an empty list when nothing matches
        """
        args = dict(args)
        if pinned is not None:
            args["id"] = pinned.get_identifier()
        elif context is not None:
            self.check_permission(context, entity_name, ActionMethod.GET, _query_target(args))

        entity_type = self.entities.require(entity_name)
        plan = FetchPlan.from_args(args, self.result_limit)

        query = self.repository.build_filtered_query(entity_type, plan.filters, plan.sorting)
        if plan.identifier is not None:
            query = query.where_identifier(plan.identifier)
        return query.offset(plan.offset).limit(plan.limit).execute()

    # =========================================================================
    # Mutation Path
    # =========================================================================

    def resolve_mutation(
        self,
        args: Mapping[str, Any],
        context: CallerContext | None,
        entity_name: str,
        method: ActionMethod,
    ) -> list[GraphEntity] | str:
        """
        Run a create, update or delete mutation.

        Returns:
            The affected entity as a one-element list (create/update), or
            the deleted identifier (delete)

        Raises:
            PermissionDenied: The gate denied ``method``
            InvalidInput: Missing required field or missing ``id``
            EntityNotFound: Update/delete target does not exist
            InternalError: Any collaborator failure (unit of work rolled back)
        """
        args = dict(args)
        self._trace(MutationState.PERMISSION_CHECK, entity_name, context)
        try:
            self.check_permission(context, entity_name, method, args.get("id"))
        except PermissionDenied:
            self._trace(MutationState.DENIED, entity_name, context)
            raise

        entity_type = self.entities.require(entity_name)
        try:
            match method:
                case ActionMethod.CREATE:
                    self._trace(MutationState.CREATE, entity_name, context)
                    pinned = self._create(entity_type, args)
                case ActionMethod.UPDATE:
                    self._trace(MutationState.UPDATE, entity_name, context)
                    pinned = self._update(entity_type, args)
                case ActionMethod.DELETE:
                    self._trace(MutationState.DELETE, entity_name, context)
                    deleted = self._delete(entity_type, args)
                    self._trace(MutationState.SUCCESS, entity_name, context)
                    return deleted
                case ActionMethod.GET:
                    raise InvalidInput("get is not a mutation method")
                case _:
                    raise ValueError(f"Unknown method: {method}")
        except GraphGateError:
            self.repository.rollback()
            self._trace(MutationState.FAILED, entity_name, context)
            raise
        except Exception as e:
            self.repository.rollback()
            self._trace(MutationState.FAILED, entity_name, context)
            logger.exception("%s on %s failed", method.value, entity_name)
            raise InternalError(f"Failed to {method.value} {entity_name}") from e

        self._trace(MutationState.RESOLVE_RESULT, entity_name, context)
        result = self.resolve_query({}, entity_name, pinned=pinned, context=context)
        self._trace(MutationState.SUCCESS, entity_name, context)
        return result

    def _create(self, entity_type: type[GraphEntity], args: Mapping[str, Any]) -> GraphEntity:
        data = self.prepare_input(entity_type, args.get("input") or {})
        entity = entity_type.build_from_input(self.repository, data)
        self.repository.persist(entity)
        self.repository.flush()
        return entity

    def _update(self, entity_type: type[GraphEntity], args: Mapping[str, Any]) -> GraphEntity:
        entity = self._require_existing(entity_type, args)
        entity.before_update(self.repository, args)
        entity.update(self.repository, self.prepare_input(entity_type, args.get("input") or {}))
        self.repository.flush()
        return entity

    def _delete(self, entity_type: type[GraphEntity], args: Mapping[str, Any]) -> str:
        entity = self._require_existing(entity_type, args)
        entity.before_delete(self.repository, args)
        identifier = str(entity.get_identifier())
        self.repository.remove(entity)
        self.repository.flush()
        return identifier

    def _require_existing(
        self, entity_type: type[GraphEntity], args: Mapping[str, Any]
    ) -> GraphEntity:
        identifier = args.get("id")
        if identifier in (None, ""):
            raise InvalidInput("id is required", field="id")
        entity = self.repository.find(entity_type, identifier)
        if entity is None:
            raise EntityNotFound(entity_type.short_name(), identifier)
        return entity

    def prepare_input(
        self, entity_type: type[GraphEntity], data: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Wrap raw ids supplied for relation fields in ``EntityRef``s."""
        prepared = dict(data)
        for field in entity_type.entity_spec.relation_fields:
            value = prepared.get(field.name)
            if value is None or isinstance(value, (EntityRef, GraphEntity)):
                continue
            assert field.type.ref_entity is not None
            prepared[field.name] = EntityRef(
                self.entities.require(field.type.ref_entity), str(value)
            )
        return prepared

    def _trace(
        self, state: MutationState, entity_name: str, context: CallerContext | None
    ) -> None:
        logger.debug(
            "%s -> %s",
            entity_name,
            state.value,
            extra={"context": {"request_id": context.request_id if context else None}},
        )

    # =========================================================================
    # Custom Mutations
    # =========================================================================

    def resolve_custom(
        self,
        descriptor: MutationDescriptor,
        args: Mapping[str, Any],
        context: CallerContext | None,
    ) -> Any:
        """
        Run a registered mutation's handler behind the permission gate.

        A handler that returns a single entity for a list-of-entity result
        is re-resolved through the query path.
        """
        args = dict(args)
        if descriptor.permissions:
            self.check_permission(context, descriptor.entity, descriptor.method, args.get("id"))

        try:
            result = descriptor.handler(args, context)
        except GraphGateError:
            self.repository.rollback()
            raise
        except Exception as e:
            self.repository.rollback()
            logger.exception("Mutation %s failed", descriptor.name)
            raise InternalError(f"Mutation {descriptor.name} failed") from e

        if descriptor.result_type is ResultShape.ENTITY_LIST and isinstance(result, GraphEntity):
            return self.resolve_query({}, descriptor.entity, pinned=result, context=context)
        return result

    # =========================================================================
    # CRUD Generation
    # =========================================================================

    def generate_crud_mutations(self, target: type[GraphEntity] | str) -> list[MutationEntry]:
        """
        Build ``create<Entity>``, ``update<Entity>`` and ``delete<Entity>``.

        Returns an empty list (and logs a warning) when the entity's short
        name cannot be derived.
        """
        name = entity_short_name(target)
        if name is None:
            logger.warning("Could not derive short name for %r; no mutations generated", target)
            return []
        self.entities.require(name)

        def resolver(method: ActionMethod):
            def resolve(
                dispatcher: OperationDispatcher,
                args: dict[str, Any],
                context: CallerContext | None,
            ) -> Any:
                return dispatcher.resolve_mutation(args, context, name, method)

            return resolve

        return [
            MutationEntry(
                name=f"create{name}",
                entity=name,
                args={"input": ArgShape.INPUT},
                handler=resolver(ActionMethod.CREATE),
                dispatcher=self,
                description=f"Create a new {name}",
            ),
            MutationEntry(
                name=f"update{name}",
                entity=name,
                args={"id": ArgShape.ID, "input": ArgShape.PARTIAL_INPUT},
                handler=resolver(ActionMethod.UPDATE),
                dispatcher=self,
                description=f"Update an existing {name}; omitted fields are left unchanged",
            ),
            MutationEntry(
                name=f"delete{name}",
                entity=name,
                args={"id": ArgShape.ID},
                handler=resolver(ActionMethod.DELETE),
                dispatcher=self,
                result_type=ResultShape.ID,
                description=f"Delete a {name} and return its ID",
            ),
        ]
