"""
Scope permission table.

Maps a scope identifier to the (entity, method) pairs it grants and the
level at which each is granted.

Table shape::

    {
        "readonly-scope": {"Widget": {"get": "all"}},
        "owner-scope": {"Widget": {"get": "all", "update": "permissive"}},
        "admin": ["*"],
    }

A scope whose entry is ``["*"]`` grants every method on every entity, as
does the wildcard scope identifier ``"*"`` held by a caller. Any lookup
that is not covered resolves to ``PermissionLevel.NONE``; lookups never
raise.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ConfigDict, RootModel, field_validator

from graphgate.core.context import WILDCARD_SCOPE
from graphgate.core.methods import ActionMethod, PermissionLevel

EntityGrants = dict[str, dict[ActionMethod, PermissionLevel]]


class PermissionTable(RootModel[dict[str, list[str] | EntityGrants]]):
    """
    Immutable scope -> entity -> method -> level table.

    Method names and level strings are validated when the table is built,
    so a typo in configuration fails at load time rather than silently
    denying at request time.
    """

    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def validate_wildcard_entries(
        cls, v: dict[str, list[str] | EntityGrants]
    ) -> dict[str, list[str] | EntityGrants]:
        """List entries are only meaningful as the ``["*"]`` wildcard."""
        for scope, entry in v.items():
            if isinstance(entry, list) and (not entry or entry[0] != WILDCARD_SCOPE):
                raise ValueError(
                    f"Scope '{scope}' must map entities to methods or be ['{WILDCARD_SCOPE}']"
                )
        return v

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> PermissionTable:
        """Build a table from a plain mapping (e.g. parsed JSON or TOML)."""
        return cls.model_validate(dict(mapping))

    @property
    def scopes(self) -> list[str]:
        return list(self.root)

    def scope_exists(self, scope: str) -> bool:
        return scope == WILDCARD_SCOPE or scope in self.root

    def grants_everything(self, scope: str) -> bool:
        """True for the wildcard scope and for scopes whose entry is ``["*"]``."""
        if scope == WILDCARD_SCOPE:
            return True
        entry = self.root.get(scope)
        return isinstance(entry, list) and bool(entry) and entry[0] == WILDCARD_SCOPE

    def get_permission(self, scope: str, entity: str, method: ActionMethod) -> PermissionLevel:
        """
        Look up the level a scope grants for (entity, method).

        Args:
            scope: Scope identifier held by the caller
            entity: Entity short name (e.g. "Widget")
            method: Method being attempted

        Returns:
            The granted level, NONE when the scope, entity or method is unlisted
        """
        if not self.scope_exists(scope):
            return PermissionLevel.NONE

        if self.grants_everything(scope):
            return PermissionLevel.ALL

        entry = self.root[scope]
        if not isinstance(entry, dict):
            return PermissionLevel.NONE

        methods = entry.get(entity)
        if not methods:
            return PermissionLevel.NONE

        return methods.get(method, PermissionLevel.NONE)
