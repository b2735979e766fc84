"""
Closed vocabularies for permission checks and mutation dispatch.
"""

from enum import StrEnum


class ActionMethod(StrEnum):
    """Operations that can be granted on an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    GET = "get"


class PermissionLevel(StrEnum):
    """
    How much a scope grants for one (entity, method) pair.

    - NONE: never granted
    - PERMISSIVE: granted only when the target entity's ownership check passes
    - ALL: always granted

    Levels are not combined by strictness; evaluation takes the first scope
    that grants.
    """

    NONE = "none"
    PERMISSIVE = "permissive"
    ALL = "all"
