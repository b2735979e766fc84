"""
Repository collaborator interfaces.

The dispatcher never owns storage. It reads and writes through a
``Repository`` that is expected to be request scoped: staged changes
(``persist``/``remove``/attribute changes on found entities) become visible
to readers only on ``flush``, and ``rollback`` discards them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from graphgate.core.entity import GraphEntity
    from graphgate.core.query import SortField


@runtime_checkable
class QueryBuilder(Protocol):
    """A filtered, sorted query restricted to one entity type."""

    def where_identifier(self, identifier: str) -> QueryBuilder:
        """Add an equality predicate on ``identifier``."""
        ...

    def offset(self, offset: int) -> QueryBuilder:
        ...

    def limit(self, limit: int) -> QueryBuilder:
        ...

    def execute(self) -> list[GraphEntity]:
        ...


@runtime_checkable
class Repository(Protocol):
    """Storage operations the dispatcher depends on."""

    def find(self, entity_type: type[GraphEntity], identifier: Any) -> GraphEntity | None:
        ...

    def persist(self, entity: GraphEntity) -> None:
        ...

    def remove(self, entity: GraphEntity) -> None:
        ...

    def flush(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def build_filtered_query(
        self,
        entity_type: type[GraphEntity],
        filters: Mapping[str, Any] | None,
        sorting: Sequence[SortField],
    ) -> QueryBuilder:
        ...
