"""
Permission evaluation.

Decides whether a caller may perform a method on an entity:

1. No table configured, no user id or no scopes: ALLOW. A caller without
   identity gets open access; attach identity to every context to enforce
   the table.
2. Otherwise each scope is consulted in turn and the first grant wins:
   - ALL grants immediately
   - PERMISSIVE grants if the target entity's ``has_permission`` returns True
   - NONE moves on
3. No scope granted: DENY.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from graphgate.core.methods import ActionMethod, PermissionLevel
from graphgate.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from graphgate.core.context import CallerContext
    from graphgate.core.entity import EntityRegistry, GraphEntity
    from graphgate.core.permissions import PermissionTable
    from graphgate.core.repository import Repository

logger = get_logger("permissions")


class Decision(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


class PermissionEvaluator:
    """
    Evaluate a caller's scopes against a permission table.

    Nothing is cached: every call reads the current table and context.
    """

    def __init__(
        self,
        table: PermissionTable | None,
        repository: Repository,
        entities: EntityRegistry,
        user_entity: type[GraphEntity] | None = None,
    ) -> None:
        """
        Args:
            table: Scope table; None disables permission checking
            repository: Used to load the user and target for PERMISSIVE grants
            entities: Registry used to resolve entity names
            user_entity: Entity type of callers; when None the raw user id is
                handed to ``has_permission``
        """
        self.table = table
        self.repository = repository
        self.entities = entities
        self.user_entity = user_entity

    def bind(self, repository: Repository) -> PermissionEvaluator:
        """The same table and entities, loading users and targets from ``repository``."""
        return PermissionEvaluator(self.table, repository, self.entities, self.user_entity)

    def is_enforced(self, context: CallerContext | None) -> bool:
        return self.table is not None and context is not None and context.has_identity

    def evaluate(
        self,
        context: CallerContext | None,
        entity_name: str,
        method: ActionMethod,
        target_id: Any | None = None,
    ) -> Decision:
        """
        Decide ALLOW or DENY for ``method`` on ``entity_name``.

        Args:
            context: Caller context (None is treated as anonymous)
            entity_name: Short name of the target entity type
            method: Method being attempted
            target_id: Identifier of the targeted entity, if any; required for
                PERMISSIVE grants to apply
        """
        if not self.is_enforced(context):
            return Decision.ALLOW
        assert self.table is not None and context is not None

        for scope in context.scopes:
            level = self.table.get_permission(scope, entity_name, method)

            if level == PermissionLevel.ALL:
                return Decision.ALLOW

            if level == PermissionLevel.PERMISSIVE and self._owns(
                context, entity_name, method, target_id
            ):
                return Decision.ALLOW

        log_with_context(
            logger,
            logging.INFO,
            f"Denied {method.value} on {entity_name}",
            request_id=context.request_id,
            user_id=context.user_id,
        )
        return Decision.DENY

    def is_permitted(
        self,
        context: CallerContext | None,
        entity_name: str,
        method: ActionMethod = ActionMethod.GET,
        target_id: Any | None = None,
    ) -> bool:
        return self.evaluate(context, entity_name, method, target_id) == Decision.ALLOW

    def _owns(
        self,
        context: CallerContext,
        entity_name: str,
        method: ActionMethod,
        target_id: Any | None,
    ) -> bool:
        """Run the target entity's ownership predicate for a PERMISSIVE grant."""
        if target_id is None:
            return False

        entity_type = self.entities.get(entity_name)
        if entity_type is None:
            return False

        target = self.repository.find(entity_type, target_id)
        if target is None:
            return False

        user: Any = context.user_id
        if self.user_entity is not None:
            user = self.repository.find(self.user_entity, context.user_id)
            if user is None:
                return False

        return bool(target.has_permission(self.repository, user, context, method))
