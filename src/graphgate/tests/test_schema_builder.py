"""
Tests for the generated Strawberry schema.

Documents are executed with ``schema.execute_sync`` and the caller context
passed as the execution context.
"""

from __future__ import annotations

import pytest

from graphgate.config import GraphGateConfig
from graphgate.core.errors import InvalidInput
from graphgate.core.memory_repository import InMemoryRepository
from graphgate.core.mutation import ArgShape
from graphgate.graphql.schema_builder import EntitySchemaBuilder
from graphgate.tests.sample_entities import Broken, Gadget, User, Widget

ENTITIES = {
    "users": User,
    "widgets": Widget,
    "gadgets": Gadget,
    "broken": Broken,
}


@pytest.fixture
def builder(repo, table, users) -> EntitySchemaBuilder:
    builder = EntitySchemaBuilder(repo, ENTITIES, permissions=table, user_entity=User)

    def publish(args, context):
        widget = repo.find(Widget, args["id"])
        widget.status = "published"
        repo.flush()
        return widget

    (
        builder.mutation("publishWidget")
        .set_entity(Widget)
        .set_args({"id": ArgShape.ID})
        .set_handler(publish)
        .set_description("Mark a widget as published")
    )
    return builder


def run(builder, document, context=None, variables=None):
    return builder.schema.execute_sync(
        document, variable_values=variables, context_value=context
    )


def create_widget(builder, **fields) -> dict:
    result = run(
        builder,
        """
        mutation Create($input: WidgetInput!) {
            createWidget(input: $input) { identifier name quantity status owner }
        }
        """,
        variables={"input": fields},
    )
    assert result.errors is None
    return result.data["createWidget"][0]


# =============================================================================
# Schema Shape
# =============================================================================


class TestSchemaShape:
    """Tests for the generated fields and types."""

    def test_fields_generated_per_entity(self, builder) -> None:
        sdl = str(builder.schema)

        for name in ("users", "widgets", "gadgets"):
            assert f"{name}(" in sdl
        for entity in ("User", "Widget", "Gadget"):
            for verb in ("create", "update", "delete"):
                assert f"{verb}{entity}(" in sdl
        assert "publishWidget(" in sdl
        assert "type WidgetSorting" not in sdl
        assert "input WidgetSorting" in sdl
        assert "input WidgetPartialInput" in sdl

    def test_uninspectable_entity_skipped(self, builder) -> None:
        """Test an entity whose short name cannot be derived gets no fields."""
        sdl = str(builder.schema)

        assert "broken" not in builder.collections
        assert "broken(" not in sdl
        assert "Broken" not in sdl

    def test_limit_description_states_default(self, repo) -> None:
        builder = EntitySchemaBuilder(
            repo, {"gadgets": Gadget}, config=GraphGateConfig(result_limit=25)
        )

        assert "25 by default" in str(builder.schema)

    def test_schema_built_once(self, builder) -> None:
        assert builder.build() is builder.schema

    def test_no_mutations_after_build(self, builder) -> None:
        builder.build()

        with pytest.raises(RuntimeError):
            builder.mutation("late")

    def test_list_of_type(self, builder) -> None:
        list_type = builder.list_of_type("Widget")

        assert list_type.__args__[0] is builder.types.get_output("Widget")


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    """Tests for list query fields."""

    def test_filter_sort_and_paginate(self, builder) -> None:
        for name, quantity in [("a", 3), ("b", 1), ("c", 2), ("d", 5)]:
            create_widget(builder, name=name, quantity=quantity)

        result = run(
            builder,
            """
            {
                widgets(
                    filter: {quantity__gte: 2}
                    sorting: [{field: QUANTITY, order: DESC}]
                    limit: 2
                    offset: 1
                ) { name quantity }
            }
            """,
        )

        assert result.errors is None
        assert result.data == {
            "widgets": [{"name": "a", "quantity": 3}, {"name": "c", "quantity": 2}]
        }

    def test_id_shorthand(self, builder) -> None:
        result = run(builder, '{ users(id: "id-2") { identifier name email } }')

        assert result.data == {"users": [{"identifier": "id-2", "name": "Bob", "email": None}]}

    def test_unknown_id_is_empty(self, builder) -> None:
        result = run(builder, '{ users(id: "nope") { identifier } }')

        assert result.errors is None
        assert result.data == {"users": []}

    def test_enum_filter(self, builder) -> None:
        create_widget(builder, name="draft")
        create_widget(builder, name="live", status="PUBLISHED")

        result = run(builder, "{ widgets(filter: {status: PUBLISHED}) { name status } }")

        assert result.data == {"widgets": [{"name": "live", "status": "PUBLISHED"}]}

    def test_denied_field_does_not_abort_siblings(self, builder, caller) -> None:
        """Test a denied field is null with an error while siblings resolve."""
        result = run(builder, "{ widgets { name } gadgets { label } }", caller("readonly-scope"))

        assert result.data == {"widgets": [], "gadgets": None}
        [error] = result.errors
        assert error.message == "Permission to perform action get on entity Gadget denied"
        assert error.extensions["category"] == "authorization"
        assert error.path == ["gadgets"]


# =============================================================================
# Mutations
# =============================================================================


class TestMutations:
    """Tests for generated and custom mutation fields."""

    def test_create_with_relation(self, builder) -> None:
        created = create_widget(builder, name="Bolt", quantity=3, owner="id-1")

        assert created["name"] == "Bolt"
        assert created["quantity"] == 3
        assert created["status"] == "DRAFT"
        assert created["owner"] == "id-1"

    def test_partial_update(self, builder) -> None:
        created = create_widget(builder, name="Bolt", quantity=3)

        result = run(
            builder,
            """
            mutation Update($id: ID!) {
                updateWidget(id: $id, input: {quantity: 9}) { name quantity revision }
            }
            """,
            variables={"id": created["identifier"]},
        )

        assert result.errors is None
        assert result.data == {"updateWidget": [{"name": "Bolt", "quantity": 9, "revision": 1}]}

    def test_delete_returns_id(self, builder) -> None:
        created = create_widget(builder, name="Bolt")

        result = run(
            builder,
            "mutation Delete($id: ID!) { deleteWidget(id: $id) }",
            variables={"id": created["identifier"]},
        )

        assert result.data == {"deleteWidget": created["identifier"]}

    def test_custom_mutation(self, builder) -> None:
        created = create_widget(builder, name="Bolt")

        result = run(
            builder,
            "mutation Publish($id: ID!) { publishWidget(id: $id) { name status } }",
            variables={"id": created["identifier"]},
        )

        assert result.errors is None
        assert result.data == {"publishWidget": [{"name": "Bolt", "status": "PUBLISHED"}]}

    def test_create_denied(self, builder, caller) -> None:
        result = run(
            builder,
            'mutation { createWidget(input: {name: "Bolt"}) { identifier } }',
            caller("readonly-scope"),
        )

        assert result.data == {"createWidget": None}
        assert result.errors[0].extensions == {
            "category": "authorization",
            "entity": "Widget",
            "method": "create",
        }

    def test_owner_update_through_schema(self, builder, caller) -> None:
        created = create_widget(builder, name="Bolt", owner="id-1")
        document = """
            mutation Rename($id: ID!) {
                updateWidget(id: $id, input: {name: "Nut"}) { name }
            }
        """

        variables = {"id": created["identifier"]}

        denied = run(builder, document, caller("owner-scope", user_id="id-2"), variables)
        allowed = run(builder, document, caller("owner-scope", user_id="id-1"), variables)

        assert denied.data == {"updateWidget": None}
        assert allowed.data == {"updateWidget": [{"name": "Nut"}]}

    def test_invalid_input_reported(self, builder) -> None:
        result = run(
            builder, 'mutation { createGadget(input: {label: "", serial: 1}) { identifier } }'
        )

        [error] = result.errors
        assert error.message == "Field label is required but not provided"
        assert error.extensions["category"] == "validation"

    def test_update_missing_entity(self, builder) -> None:
        result = run(builder, 'mutation { updateWidget(id: "nope", input: {name: "x"}) { name } }')

        [error] = result.errors
        assert error.message == "Widget with ID nope not found"
        assert error.extensions["category"] == "not_found"

    def test_internal_error_masked(self, builder) -> None:
        """Test relation lookup failures are not shown to the caller verbatim."""
        result = run(
            builder,
            'mutation { createWidget(input: {name: "Bolt", owner: "ghost"}) { identifier } }',
        )

        [error] = result.errors
        assert error.message == "Unexpected error."
        assert "ghost" not in error.message


# =============================================================================
# JSON Execution
# =============================================================================


class TestExecute:
    """Tests for executing posted JSON operations."""

    def test_execute_payload(self, builder, caller) -> None:
        response = builder.execute(
            {
                "query": (
                    "query Named($id: ID) { users(id: $id) { name } } "
                    "query Other { gadgets { label } }"
                ),
                "variables": {"id": "id-1"},
                "operationName": "Named",
            },
            caller("admin"),
        )

        assert response == {"data": {"users": [{"name": "Alice"}]}}

    def test_execute_json_string(self, builder) -> None:
        response = builder.execute('{"query": "{ gadgets { label } }"}')

        assert response == {"data": {"gadgets": []}}

    def test_execute_reports_errors(self, builder, caller) -> None:
        response = builder.execute({"query": "{ gadgets { label } }"}, caller("readonly-scope"))

        assert response["data"] == {"gadgets": None}
        assert response["errors"][0]["extensions"]["category"] == "authorization"

    def test_malformed_payload(self, builder) -> None:
        with pytest.raises(InvalidInput):
            builder.execute({"variables": {}})


# =============================================================================
# Per-Operation Repositories
# =============================================================================


class TestRepositoryFactory:
    """Tests for opening a repository per executed operation."""

    @pytest.fixture
    def opened(self) -> list[InMemoryRepository]:
        return []

    @pytest.fixture
    def scoped(self, opened) -> EntitySchemaBuilder:
        def open_repository() -> InMemoryRepository:
            repository = InMemoryRepository()
            opened.append(repository)
            return repository

        return EntitySchemaBuilder(None, {"gadgets": Gadget}, repository_factory=open_repository)

    def test_each_operation_gets_its_own_repository(self, scoped, opened) -> None:
        created = scoped.execute(
            {"query": 'mutation { createGadget(input: {label: "a", serial: 1}) { label } }'}
        )
        listed = scoped.execute({"query": "{ gadgets { label } }"})

        assert created == {"data": {"createGadget": [{"label": "a"}]}}
        assert listed == {"data": {"gadgets": []}}
        default, for_create, for_list = opened
        assert default.count(Gadget) == 0
        assert [g.label for g in for_create.committed(Gadget)] == ["a"]
        assert for_list.count(Gadget) == 0

    def test_context_carries_caller_and_repository(self, scoped, opened, caller) -> None:
        ctx = caller("admin")

        context = scoped.create_context(ctx)

        assert context == {"caller": ctx, "repository": opened[-1]}

    def test_shared_repository_without_factory(self, builder, repo) -> None:
        assert builder.create_context(None) == {"caller": None}
        assert builder.dispatcher.repository is repo

    def test_repository_or_factory_required(self) -> None:
        with pytest.raises(ValueError):
            EntitySchemaBuilder(None, {"gadgets": Gadget})
