"""
Fetch plans for list queries.

A plan is derived from the query arguments on every call and never cached.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from graphgate.core.errors import InvalidInput
from graphgate.core.query import SortField, parse_sorting

DEFAULT_RESULT_LIMIT = 50


@dataclass(frozen=True)
class FetchPlan:
    """
    Filter, sort and pagination for one list query.

    Attributes:
        identifier: Shorthand single-id filter (``id`` argument)
        filters: Structured filter (``filter`` argument)
        sorting: Parsed sort fields (``sorting`` argument)
        limit: Page size, clamped to the configured ceiling
        offset: Index of the first row returned, inclusive
    """

    identifier: str | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    sorting: tuple[SortField, ...] = ()
    limit: int = DEFAULT_RESULT_LIMIT
    offset: int = 0

    @classmethod
    def from_args(
        cls,
        args: Mapping[str, Any],
        result_limit: int = DEFAULT_RESULT_LIMIT,
    ) -> FetchPlan:
        """
        Build a plan from query arguments.

        ``limit`` defaults to ``result_limit`` and never exceeds it; ``offset``
        defaults to 0. Negative values are rejected.
        """
        limit = args.get("limit")
        offset = args.get("offset")
        limit = result_limit if limit is None else int(limit)
        offset = 0 if offset is None else int(offset)

        if limit < 0:
            raise InvalidInput("limit must not be negative", field="limit")
        if offset < 0:
            raise InvalidInput("offset must not be negative", field="offset")

        identifier = args.get("id")
        filters = args.get("filter") or {}
        if not isinstance(filters, Mapping):
            raise InvalidInput("filter must be an object", field="filter")

        return cls(
            identifier=str(identifier) if identifier not in (None, "") else None,
            filters=dict(filters),
            sorting=tuple(parse_sorting(args.get("sorting"))),
            limit=min(limit, result_limit),
            offset=offset,
        )
