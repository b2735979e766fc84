"""
Filter and sort primitives shared by fetch plans and repositories.

Filter keys use ``field`` or ``field__operator``:

    {"status": "active"}                 -> status == "active"
    {"priority__gte": 5}                 -> priority >= 5
    {"name__icontains": "bolt"}          -> "bolt" in name.lower()
    {"owner": "u-1"}                     -> owner.identifier == "u-1"

Sort entries are ``"field"`` / ``"-field"`` strings or
``{"field": "name", "order": "DESC"}`` mappings.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from graphgate.core.errors import InvalidInput


class FilterOperator(str, Enum):
    """Supported filter operators."""

    EQ = "eq"  # Equal (default)
    NE = "ne"  # Not equal
    GT = "gt"  # Greater than
    GTE = "gte"  # Greater than or equal
    LT = "lt"  # Less than
    LTE = "lte"  # Less than or equal
    CONTAINS = "contains"  # Contains substring
    ICONTAINS = "icontains"  # Case-insensitive contains
    STARTSWITH = "startswith"  # Starts with
    ENDSWITH = "endswith"  # Ends with
    IN = "in"  # In list
    NOT_IN = "not_in"  # Not in list
    ISNULL = "isnull"  # Is null / is not null


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


def comparable(value: Any) -> Any:
    """Reduce entity references to their identifier for comparisons."""
    identifier = getattr(value, "identifier", None)
    if identifier is not None and not isinstance(value, (str, bytes)):
        return identifier
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class FilterCondition:
    """A single filter condition."""

    field: str
    operator: FilterOperator
    value: Any

    @classmethod
    def parse(cls, key: str, value: Any) -> FilterCondition:
        """
        Parse a filter key-value pair into a FilterCondition.

        Examples:
            - ("status", "active") -> FilterCondition(field="status", op=EQ, value="active")
            - ("created_at__gt", d) -> FilterCondition(field="created_at", op=GT, value=d)
        """
        field_name, sep, op = key.partition("__")
        if not field_name:
            raise InvalidInput(f"Invalid filter key '{key}'", field=key)
        if not sep:
            return cls(field=field_name, operator=FilterOperator.EQ, value=value)
        try:
            operator = FilterOperator(op.lower())
        except ValueError:
            raise InvalidInput(f"Unknown filter operator '{op}'", field=key) from None
        return cls(field=field_name, operator=operator, value=value)

    def matches(self, record: Any) -> bool:
        """Evaluate this condition against an entity (or any attribute bag)."""
        actual = comparable(getattr(record, self.field, None))
        expected = self.value

        if self.operator == FilterOperator.ISNULL:
            return (actual is None) == bool(expected)

        if self.operator in (FilterOperator.IN, FilterOperator.NOT_IN):
            if isinstance(expected, (str, bytes)) or not isinstance(expected, Iterable):
                expected = [expected]
            candidates = {comparable(v) for v in expected}
            found = actual in candidates
            return found if self.operator == FilterOperator.IN else not found

        expected = comparable(expected)

        if self.operator == FilterOperator.EQ:
            return actual == expected
        if self.operator == FilterOperator.NE:
            return actual != expected

        if actual is None or expected is None:
            return False

        if self.operator in (
            FilterOperator.CONTAINS,
            FilterOperator.ICONTAINS,
            FilterOperator.STARTSWITH,
            FilterOperator.ENDSWITH,
        ):
            haystack, needle = str(actual), str(expected)
            if self.operator == FilterOperator.ICONTAINS:
                return needle.lower() in haystack.lower()
            if self.operator == FilterOperator.CONTAINS:
                return needle in haystack
            if self.operator == FilterOperator.STARTSWITH:
                return haystack.startswith(needle)
            return haystack.endswith(needle)

        try:
            if self.operator == FilterOperator.GT:
                return actual > expected
            if self.operator == FilterOperator.GTE:
                return actual >= expected
            if self.operator == FilterOperator.LT:
                return actual < expected
            return actual <= expected
        except TypeError:
            raise InvalidInput(
                f"Cannot compare field '{self.field}' with {expected!r}", field=self.field
            ) from None


def parse_filters(filters: Mapping[str, Any] | None) -> list[FilterCondition]:
    """Parse a filter mapping, skipping keys whose value is None."""
    if not filters:
        return []
    return [
        FilterCondition.parse(key, value)
        for key, value in filters.items()
        if value is not None or key.endswith("__isnull")
    ]


@dataclass(frozen=True)
class SortField:
    """A single sort field."""

    field: str
    descending: bool = False

    @classmethod
    def parse(cls, spec: str | Mapping[str, Any]) -> SortField:
        """
        Parse a sort entry into a SortField.

        Examples:
            - "created_at" -> SortField(field="created_at", descending=False)
            - "-created_at" -> SortField(field="created_at", descending=True)
            - {"field": "name", "order": "DESC"} -> SortField(field="name", descending=True)
        """
        if isinstance(spec, str):
            descending = spec.startswith("-")
            name = spec[1:] if descending else spec
        elif isinstance(spec, Mapping):
            name = comparable(spec.get("field"))
            order = comparable(spec.get("order")) or SortOrder.ASC.value
            try:
                descending = SortOrder(str(order).upper()) == SortOrder.DESC
            except ValueError:
                raise InvalidInput(f"Unknown sort order '{order}'", field="sorting") from None
        else:
            raise InvalidInput(f"Invalid sort entry {spec!r}", field="sorting")

        if not name or not isinstance(name, str):
            raise InvalidInput(f"Invalid sort entry {spec!r}", field="sorting")
        return cls(field=name, descending=descending)


def parse_sorting(sorting: Iterable[str | Mapping[str, Any]] | None) -> list[SortField]:
    if not sorting:
        return []
    if isinstance(sorting, (str, Mapping)):
        sorting = [sorting]
    return [SortField.parse(entry) for entry in sorting]
