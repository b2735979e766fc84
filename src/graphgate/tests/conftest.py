"""Shared fixtures: an in-memory repository, registered sample entities and users."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from typing import Any

import pytest

from graphgate.core.context import CallerContext
from graphgate.core.dispatcher import OperationDispatcher
from graphgate.core.entity import EntityRegistry
from graphgate.core.evaluator import PermissionEvaluator
from graphgate.core.memory_repository import InMemoryRepository
from graphgate.core.permissions import PermissionTable
from graphgate.tests.sample_entities import Gadget, User, Widget

OWNER_TABLE = {
    "readonly-scope": {"Widget": {"get": "all"}},
    "owner-scope": {
        "Widget": {"get": "permissive", "update": "permissive", "delete": "permissive"},
    },
    "creator-scope": {"Widget": {"create": "all", "get": "all"}},
    "admin": ["*"],
}


@pytest.fixture
def repo() -> InMemoryRepository:
    counter = itertools.count(1)
    return InMemoryRepository(id_factory=lambda: f"id-{next(counter)}")


@pytest.fixture
def registry() -> EntityRegistry:
    registry = EntityRegistry()
    for entity in (User, Widget, Gadget):
        registry.register(entity)
    return registry


@pytest.fixture
def table() -> PermissionTable:
    return PermissionTable.from_mapping(OWNER_TABLE)


@pytest.fixture
def users(repo: InMemoryRepository) -> dict[str, User]:
    alice = User(name="Alice", email="alice@example.com")
    bob = User(name="Bob")
    repo.persist(alice)
    repo.persist(bob)
    repo.flush()
    return {"alice": alice, "bob": bob}


@pytest.fixture
def make_dispatcher(
    repo: InMemoryRepository, registry: EntityRegistry
) -> Callable[..., OperationDispatcher]:
    def factory(
        table: PermissionTable | None = None,
        result_limit: int = 50,
        user_entity: Any = User,
    ) -> OperationDispatcher:
        evaluator = PermissionEvaluator(table, repo, registry, user_entity)
        return OperationDispatcher(repo, registry, evaluator, result_limit=result_limit)

    return factory


@pytest.fixture
def caller() -> Callable[..., CallerContext]:
    def factory(*scopes: str, user_id: str | None = "id-1") -> CallerContext:
        return CallerContext.create(scopes=scopes, user_id=user_id)

    return factory
