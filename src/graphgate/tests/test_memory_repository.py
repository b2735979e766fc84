"""
Tests for the in-memory repository and its unit of work.
"""

from __future__ import annotations

import itertools

import pytest

from graphgate.core.errors import InvalidInput
from graphgate.core.memory_repository import InMemoryRepository
from graphgate.core.query import SortField
from graphgate.core.repository import QueryBuilder, Repository
from graphgate.tests.sample_entities import Gadget, Tagged, User, Widget


@pytest.fixture
def twenty_gadgets(repo: InMemoryRepository) -> list[Gadget]:
    gadgets = [Gadget(label=f"g{n:02d}", serial=n) for n in range(1, 21)]
    for gadget in gadgets:
        repo.persist(gadget)
    repo.flush()
    return gadgets


class TestProtocols:
    def test_satisfies_repository_protocol(self, repo) -> None:
        assert isinstance(repo, Repository)
        assert isinstance(repo.build_filtered_query(Gadget, None, []), QueryBuilder)


class TestUnitOfWork:
    """Tests for staging, flush and rollback."""

    def test_persist_assigns_identifier(self, repo) -> None:
        """Test persist assigns an id from the factory."""
        gadget = Gadget(label="a", serial=1)
        repo.persist(gadget)

        assert gadget.identifier == "id-1"

    def test_preset_identifier_kept(self, repo) -> None:
        gadget = Gadget(identifier="custom", label="a", serial=1)
        repo.persist(gadget)
        repo.flush()

        assert repo.find(Gadget, "custom") is not None

    def test_staged_insert_invisible_until_flush(self, repo) -> None:
        """Test queries never see unflushed entities."""
        repo.persist(Gadget(label="a", serial=1))

        assert repo.build_filtered_query(Gadget, None, []).execute() == []

        repo.flush()
        assert len(repo.build_filtered_query(Gadget, None, []).execute()) == 1

    def test_rollback_discards_staged_insert(self, repo) -> None:
        gadget = Gadget(label="a", serial=1)
        repo.persist(gadget)
        repo.rollback()
        repo.flush()

        assert repo.count(Gadget) == 0
        assert repo.find(Gadget, gadget.identifier) is None

    def test_changes_to_found_entity_staged(self, repo, twenty_gadgets) -> None:
        """Test attribute changes on a found entity apply only on flush."""
        working = repo.find(Gadget, "id-1")
        working.label = "changed"

        assert repo.committed(Gadget)[0].label == "g01"

        repo.flush()
        assert repo.committed(Gadget)[0].label == "changed"

    def test_rollback_discards_changes(self, repo, twenty_gadgets) -> None:
        working = repo.find(Gadget, "id-1")
        working.label = "changed"
        repo.rollback()
        repo.flush()

        assert repo.committed(Gadget)[0].label == "g01"

    def test_find_returns_same_working_copy(self, repo, twenty_gadgets) -> None:
        """Test repeated finds in one unit of work share an instance."""
        assert repo.find(Gadget, "id-2") is repo.find(Gadget, "id-2")

    def test_find_missing(self, repo) -> None:
        assert repo.find(Gadget, "missing") is None
        assert repo.find(Gadget, None) is None

    def test_find_wrong_type(self, repo, twenty_gadgets) -> None:
        assert repo.find(Widget, "id-1") is None

    def test_remove(self, repo, twenty_gadgets) -> None:
        """Test removal is staged and applied on flush."""
        gadget = repo.find(Gadget, "id-3")
        repo.remove(gadget)

        assert repo.find(Gadget, "id-3") is None
        assert repo.count(Gadget) == 20

        repo.flush()
        assert repo.count(Gadget) == 19

    def test_remove_unflushed_entity(self, repo) -> None:
        gadget = Gadget(label="a", serial=1)
        repo.persist(gadget)
        repo.remove(gadget)
        repo.flush()

        assert repo.count(Gadget) == 0

    def test_relations_point_at_committed_rows(self, repo, users) -> None:
        """Test flushed relations reference the stored entity, not a working copy."""
        owner = repo.find(User, "id-1")
        repo.persist(Widget(name="Bolt", owner=owner))
        repo.flush()

        stored_widget = repo.committed(Widget)[0]
        stored_user = repo.committed(User)[0]
        assert stored_widget.owner is stored_user

    def test_in_place_change_discarded_on_rollback(self, repo) -> None:
        """Test mutable values on a working copy are not shared with the stored row."""
        repo.persist(Tagged(tags=["x"]))
        repo.flush()

        working = repo.find(Tagged, "id-1")
        working.tags.append("touched")

        assert repo.committed(Tagged)[0].tags == ["x"]

        repo.rollback()
        assert repo.find(Tagged, "id-1").tags == ["x"]

    def test_flushed_values_detached_from_working_copy(self, repo) -> None:
        tagged = Tagged(tags=["x"])
        repo.persist(tagged)
        repo.flush()

        tagged.tags.append("late")

        assert repo.committed(Tagged)[0].tags == ["x"]

    def test_identifier_stored_as_string(self) -> None:
        """Test non-string ids from the factory or preset are normalised."""
        repo = InMemoryRepository(id_factory=itertools.count(1).__next__)
        generated = Gadget(label="a", serial=1)
        preset = Gadget(identifier=42, label="b", serial=2)
        repo.persist(generated)
        repo.persist(preset)
        repo.flush()

        assert generated.identifier == "1"
        assert preset.identifier == "42"
        query = repo.build_filtered_query(Gadget, None, []).where_identifier("1")
        assert [g.label for g in query.execute()] == ["a"]
        assert repo.find(Gadget, 42) is not None


class TestQueries:
    """Tests for filtered, sorted and paginated queries."""

    def test_limit_and_offset(self, repo, twenty_gadgets) -> None:
        """Test limit=10, offset=5 over 20 rows returns rows 6-15."""
        rows = repo.build_filtered_query(Gadget, None, []).offset(5).limit(10).execute()

        assert [g.serial for g in rows] == list(range(6, 16))

    def test_offset_past_end(self, repo, twenty_gadgets) -> None:
        rows = repo.build_filtered_query(Gadget, None, []).offset(25).limit(10).execute()

        assert rows == []

    def test_filter(self, repo, twenty_gadgets) -> None:
        query = repo.build_filtered_query(Gadget, {"serial__gt": 15, "label__startswith": "g"}, [])

        assert [g.serial for g in query.execute()] == [16, 17, 18, 19, 20]
        assert query.count() == 5

    def test_where_identifier(self, repo, twenty_gadgets) -> None:
        rows = repo.build_filtered_query(Gadget, None, []).where_identifier("id-7").execute()

        assert [g.serial for g in rows] == [7]

    def test_sorting_descending(self, repo, twenty_gadgets) -> None:
        rows = (
            repo.build_filtered_query(Gadget, None, [SortField("serial", descending=True)])
            .limit(3)
            .execute()
        )

        assert [g.serial for g in rows] == [20, 19, 18]

    def test_multi_key_sort_with_missing_values_last(self, repo) -> None:
        """Test later sort keys break ties and None values sort last."""
        for name, price in [("b", 2.0), ("a", None), ("a", 1.0), ("c", 1.0)]:
            repo.persist(Widget(name=name, price=price))
        repo.flush()

        rows = repo.build_filtered_query(
            Widget, None, [SortField("price"), SortField("name", descending=True)]
        ).execute()

        assert [(w.name, w.price) for w in rows] == [
            ("c", 1.0),
            ("a", 1.0),
            ("b", 2.0),
            ("a", None),
        ]

    @pytest.mark.parametrize(
        ("filters", "sorting"),
        [({"colour": "red"}, []), (None, [SortField("colour")])],
    )
    def test_unknown_field_rejected(self, repo, filters, sorting) -> None:
        with pytest.raises(InvalidInput):
            repo.build_filtered_query(Gadget, filters, sorting)

    def test_empty_result_is_not_an_error(self, repo) -> None:
        assert repo.build_filtered_query(Gadget, {"label": "none"}, []).execute() == []
