"""
Caller context for a single query or mutation.

The context is created once per incoming operation and passed explicitly
through every dispatcher call. Nothing about the caller is stored on the
schema builder or dispatcher.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

WILDCARD_SCOPE = "*"


@dataclass(frozen=True)
class CallerContext:
    """
    Identity and permission envelope for one operation.

    Attributes:
        scopes: Scope identifiers granted to the caller (may be empty)
        user_id: Identifier of the caller's user entity; None means anonymous
        request_id: Unique request identifier for tracing
        session: Additional data supplied by the transport layer

    Example:
        ctx = CallerContext.create(scopes=["readonly-scope"], user_id="u-1")
        dispatcher.resolve_query({}, "Widget", context=ctx)
    """

    scopes: frozenset[str] = field(default_factory=frozenset)
    user_id: str | None = None
    request_id: str | None = None
    session: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        scopes: Iterable[str] = (),
        user_id: Any | None = None,
        request_id: str | None = None,
        session: dict[str, Any] | None = None,
    ) -> CallerContext:
        """Build a context, normalising scopes to a frozenset and ids to str."""
        if isinstance(scopes, str):
            scopes = [scopes]
        return cls(
            scopes=frozenset(scopes),
            user_id=str(user_id) if user_id is not None else None,
            request_id=request_id or str(uuid.uuid4()),
            session=session or {},
        )

    @property
    def is_anonymous(self) -> bool:
        """Check if this is an anonymous request."""
        return self.user_id is None

    @property
    def has_identity(self) -> bool:
        """True when both a user binding and at least one scope are present."""
        return self.user_id is not None and bool(self.scopes)

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


def create_anonymous_context(request_id: str | None = None) -> CallerContext:
    """
    Create an anonymous context for unauthenticated requests.

    Anonymous callers are not permission checked.
    """
    return CallerContext.create(request_id=request_id)


def create_system_context(request_id: str | None = None) -> CallerContext:
    """
    Create a context for internal operations (background jobs, seeding).

    Carries the wildcard scope, so it is granted everything even when a
    permission table is configured.
    """
    return CallerContext.create(
        scopes=[WILDCARD_SCOPE],
        user_id="system",
        request_id=request_id,
        session={"is_system": True},
    )
