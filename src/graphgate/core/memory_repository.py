"""
In-memory repository - reference implementation of the Repository protocol.

Keeps committed rows per entity type in insertion order and stages writes in
a unit of work:

- ``find`` returns a working copy tracked by the unit of work
- ``persist`` / ``remove`` stage inserts and deletes
- ``flush`` applies staged work atomically; ``rollback`` discards it

Working copies and committed rows never share mutable field values, and
identifiers are stored as strings whatever the id factory returns.

Queries only ever read committed rows, so a failure between ``persist`` and
``flush`` never exposes a half-written entity.
"""

from __future__ import annotations

import copy
import threading
import uuid
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from graphgate.core.entity import GraphEntity
from graphgate.core.errors import InvalidInput
from graphgate.core.query import (
    FilterCondition,
    FilterOperator,
    SortField,
    comparable,
    parse_filters,
)
from graphgate.specs.entity import IDENTIFIER_FIELD

_Key = tuple[str, str]


def _default_id_factory() -> str:
    return str(uuid.uuid4())


def _detached(entity: GraphEntity) -> GraphEntity:
    """Deep copy of an entity whose relation fields still point at the same rows."""
    memo: dict[int, Any] = {}
    for field in entity.entity_spec.relation_fields:
        related = getattr(entity, field.name, None)
        if related is not None:
            memo[id(related)] = related
    return copy.deepcopy(entity, memo)


class InMemoryRepository:
    """
    Dictionary-backed repository with unit-of-work staging.

    Example:
        repo = InMemoryRepository()
        widget = Widget(name="Bolt")
        repo.persist(widget)
        repo.flush()
        repo.find(Widget, widget.identifier)
    """

    def __init__(self, id_factory: Callable[[], Any] | None = None) -> None:
        self._id_factory = id_factory or _default_id_factory
        self._rows: dict[str, dict[str, GraphEntity]] = {}
        self._loaded: dict[_Key, GraphEntity] = {}
        self._new: dict[_Key, GraphEntity] = {}
        self._removed: dict[_Key, GraphEntity] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _key(entity_type: type[GraphEntity], identifier: Any) -> _Key:
        return entity_type.short_name(), str(identifier)

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    def find(self, entity_type: type[GraphEntity], identifier: Any) -> GraphEntity | None:
        """Return a tracked working copy of a stored entity, or None."""
        if identifier is None:
            return None
        key = self._key(entity_type, identifier)

        with self._lock:
            if key in self._removed:
                return None
            if key in self._new:
                return self._new[key]
            if key in self._loaded:
                return self._loaded[key]

            stored = self._rows.get(key[0], {}).get(key[1])
            if stored is None or not isinstance(stored, entity_type):
                return None
            working = _detached(stored)
            self._loaded[key] = working
            return working

    def persist(self, entity: GraphEntity) -> None:
        """Stage a new entity, assigning an identifier when it has none."""
        with self._lock:
            if entity.identifier is None:
                entity.identifier = self._id_factory()
            entity.identifier = str(entity.identifier)
            key = self._key(type(entity), entity.identifier)
            self._removed.pop(key, None)
            if key not in self._loaded:
                self._new[key] = entity

    def remove(self, entity: GraphEntity) -> None:
        with self._lock:
            key = self._key(type(entity), entity.identifier)
            if self._new.pop(key, None) is not None and key[1] not in self._rows.get(key[0], {}):
                return
            self._loaded.pop(key, None)
            self._removed[key] = entity

    def flush(self) -> None:
        """Apply staged inserts, updates and deletes."""
        with self._lock:
            touched: list[GraphEntity] = []

            for (name, identifier), entity in [*self._new.items(), *self._loaded.items()]:
                table = self._rows.setdefault(name, {})
                stored = table.get(identifier)
                if stored is None:
                    stored = _detached(entity)
                    table[identifier] = stored
                else:
                    vars(stored).update(vars(_detached(entity)))
                touched.append(stored)

            for name, identifier in self._removed:
                self._rows.get(name, {}).pop(identifier, None)

            # Relations must point at committed rows, not working copies
            for stored in touched:
                for field in stored.entity_spec.relation_fields:
                    related = getattr(stored, field.name, None)
                    if isinstance(related, GraphEntity) and related.identifier is not None:
                        canonical = self._rows.get(related.short_name(), {}).get(
                            str(related.identifier)
                        )
                        if canonical is not None:
                            setattr(stored, field.name, canonical)

            self._clear()

    def rollback(self) -> None:
        """Discard all staged work."""
        with self._lock:
            self._clear()

    def _clear(self) -> None:
        self._loaded.clear()
        self._new.clear()
        self._removed.clear()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def build_filtered_query(
        self,
        entity_type: type[GraphEntity],
        filters: Mapping[str, Any] | None,
        sorting: Sequence[SortField],
    ) -> InMemoryQuery:
        conditions = parse_filters(filters)
        spec = entity_type.entity_spec
        for name in [c.field for c in conditions] + [s.field for s in sorting]:
            if name != IDENTIFIER_FIELD and spec.get_field(name) is None:
                raise InvalidInput(f"{spec.name} has no field '{name}'", field=name)
        return InMemoryQuery(self, entity_type, conditions, list(sorting))

    def committed(self, entity_type: type[GraphEntity]) -> list[GraphEntity]:
        """Committed rows of one entity type in insertion order."""
        with self._lock:
            return [
                row
                for row in self._rows.get(entity_type.short_name(), {}).values()
                if isinstance(row, entity_type)
            ]

    def count(self, entity_type: type[GraphEntity]) -> int:
        return len(self.committed(entity_type))


class InMemoryQuery:
    """Query over an InMemoryRepository's committed rows."""

    def __init__(
        self,
        repository: InMemoryRepository,
        entity_type: type[GraphEntity],
        conditions: list[FilterCondition],
        sorting: list[SortField],
    ) -> None:
        self._repository = repository
        self._entity_type = entity_type
        self._conditions = conditions
        self._sorting = sorting
        self._offset = 0
        self._limit: int | None = None

    def where_identifier(self, identifier: str) -> InMemoryQuery:
        self._conditions.append(
            FilterCondition(IDENTIFIER_FIELD, FilterOperator.EQ, str(identifier))
        )
        return self

    def offset(self, offset: int) -> InMemoryQuery:
        self._offset = offset
        return self

    def limit(self, limit: int) -> InMemoryQuery:
        self._limit = limit
        return self

    def _matching(self) -> list[GraphEntity]:
        rows = [
            row
            for row in self._repository.committed(self._entity_type)
            if all(condition.matches(row) for condition in self._conditions)
        ]

        # Stable sorts applied last-key-first give multi-key ordering
        for sort in reversed(self._sorting):
            present = [r for r in rows if getattr(r, sort.field, None) is not None]
            missing = [r for r in rows if getattr(r, sort.field, None) is None]
            try:
                present.sort(
                    key=lambda r, f=sort.field: comparable(getattr(r, f)),
                    reverse=sort.descending,
                )
            except TypeError:
                raise InvalidInput(
                    f"Field '{sort.field}' holds values that cannot be ordered",
                    field=sort.field,
                ) from None
            rows = present + missing

        return rows

    def count(self) -> int:
        return len(self._matching())

    def execute(self) -> list[GraphEntity]:
        rows = self._matching()
        end = None if self._limit is None else self._offset + self._limit
        return rows[self._offset : end]
