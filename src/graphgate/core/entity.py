"""
Entity lifecycle contract.

Concrete entity types subclass ``GraphEntity``, declare an ``EntitySpec``
and implement ``has_permission``. The dispatcher only ever talks to
entities through the hooks defined here:

- ``build_from_input``: construct and hydrate a new instance (create)
- ``hydrate``: copy input onto an instance, strictly or partially
- ``before_update`` / ``before_delete``: side-effecting hooks that may abort
- ``has_permission``: ownership predicate for PERMISSIVE grants

Entity types are registered explicitly with an ``EntityRegistry`` at startup;
nothing is looked up by name at call time except through the registry.
"""

from __future__ import annotations

import copy
import importlib
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Self

from graphgate.core.errors import InternalError, InvalidInput
from graphgate.logging import get_logger
from graphgate.specs.entity import EntitySpec

if TYPE_CHECKING:
    from graphgate.core.context import CallerContext
    from graphgate.core.methods import ActionMethod
    from graphgate.core.repository import Repository

logger = get_logger("entity")


def _is_empty(value: Any) -> bool:
    """None and empty strings count as missing; 0 and False are values."""
    return value is None or value == ""


# =============================================================================
# Relation References
# =============================================================================


@dataclass(frozen=True)
class EntityRef:
    """
    An id supplied for a relation field, resolved to a live entity during
    hydration.
    """

    entity: type[GraphEntity]
    id: str

    def resolve(self, repository: Repository) -> GraphEntity | None:
        return repository.find(self.entity, self.id)


# =============================================================================
# Entity Base Class
# =============================================================================


class GraphEntity(ABC):
    """
    Base class for entities exposed through the generated API.

    Example:
        class Widget(GraphEntity):
            entity_spec = EntitySpec(
                name="Widget",
                fields=[
                    FieldSpec(name="name", type=FieldType.scalar("str"), required=True),
                    FieldSpec(name="owner", type=FieldType.ref("User")),
                ],
            )

            def has_permission(self, repository, user, context, method):
                return self.owner is user
    """

    entity_spec: ClassVar[EntitySpec]

    def __init__(self, **values: Any) -> None:
        self.identifier: str | None = values.pop("identifier", None)
        for field in self.entity_spec.fields:
            setattr(self, field.name, copy.copy(field.default))
        for key, value in values.items():
            if self.entity_spec.get_field(key) is None:
                raise TypeError(f"{type(self).__name__} has no field '{key}'")
            setattr(self, key, value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} identifier={self.identifier!r}>"

    def get_identifier(self) -> str | None:
        return self.identifier

    @classmethod
    def short_name(cls) -> str:
        return cls.entity_spec.name

    def hydrate(
        self,
        repository: Repository,
        data: Mapping[str, Any],
        partial: bool = False,
    ) -> None:
        """
        Copy input values onto this instance.

        In full mode every required field must end up with a value: either
        supplied in ``data`` or already held by the instance. In partial mode
        only the supplied keys are written and emptiness is not checked,
        because the stored values already satisfy the requirement.

        Keys that do not name a declared field are ignored.

        Raises:
            InvalidInput: A required field is missing (full mode only)
            InternalError: A relation id could not be resolved
        """
        data = dict(data)

        if not partial:
            for field in self.entity_spec.required_fields:
                value = data.pop(field.name, None)
                if not _is_empty(value):
                    self._hydrate_field(repository, field.name, value)
                elif _is_empty(getattr(self, field.name, None)):
                    raise InvalidInput(
                        f"Field {field.name} is required but not provided",
                        field=field.name,
                    )

        for key, value in data.items():
            if self.entity_spec.get_field(key) is not None:
                self._hydrate_field(repository, key, value)

    def update(self, repository: Repository, data: Mapping[str, Any]) -> None:
        self.hydrate(repository, data, partial=True)

    def _hydrate_field(self, repository: Repository, key: str, value: Any) -> None:
        """Set a field, resolving relation references to live entities."""
        if isinstance(value, EntityRef):
            resolved = value.resolve(repository)
            if resolved is None:
                raise InternalError(
                    f"Could not fetch {value.id} whilst mapping relations from "
                    f"{type(self).__name__} ID {self.identifier}"
                )
            value = resolved
        setattr(self, key, value)

    @classmethod
    def build_from_input(cls, repository: Repository, data: Mapping[str, Any]) -> Self:
        entity = cls()
        entity.hydrate(repository, data)
        return entity

    @abstractmethod
    def has_permission(
        self,
        repository: Repository,
        user: Any,
        context: CallerContext,
        method: ActionMethod,
    ) -> bool:
        """
        Ownership predicate consulted for PERMISSIVE grants.

        Args:
            repository: Repository for any further lookups
            user: The caller's user entity (or raw user id when no user
                entity type is configured)
            context: The caller context
            method: The method being attempted on this entity

        Returns:
            True if the caller may perform ``method`` on this entity
        """

    # Events - override if required

    def before_update(self, repository: Repository, args: Mapping[str, Any]) -> None:
        pass

    def before_delete(self, repository: Repository, args: Mapping[str, Any]) -> None:
        pass


# =============================================================================
# Entity Registry
# =============================================================================


def resolve_entity_class(target: type[GraphEntity] | str) -> type[GraphEntity] | None:
    """
    Resolve a class or dotted path (``"app.models.Widget"``) to an entity type.

    Returns None when the path cannot be imported or does not name a
    ``GraphEntity`` subclass with an ``entity_spec``.
    """
    if isinstance(target, str):
        module_name, _, attr = target.rpartition(".")
        if not module_name:
            return None
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            return None
        target = getattr(module, attr, None)

    if not (isinstance(target, type) and issubclass(target, GraphEntity)):
        return None
    if not isinstance(getattr(target, "entity_spec", None), EntitySpec):
        return None
    return target


def entity_short_name(target: type[GraphEntity] | str) -> str | None:
    """Short entity name used for type and mutation names, or None."""
    entity_cls = resolve_entity_class(target)
    if entity_cls is None:
        return None
    return entity_cls.short_name()


class EntityRegistry:
    """
    Explicit registry of entity types by short name.
    """

    def __init__(self) -> None:
        self._entities: dict[str, type[GraphEntity]] = {}

    def register(self, target: type[GraphEntity] | str) -> str | None:
        """
        Register an entity type.

        Returns:
            The entity's short name, or None if the target could not be
            introspected (logged, not raised)
        """
        entity_cls = resolve_entity_class(target)
        if entity_cls is None:
            logger.warning("Could not introspect entity %r; skipping", target)
            return None

        name = entity_cls.short_name()
        existing = self._entities.get(name)
        if existing is not None and existing is not entity_cls:
            raise ValueError(f"Entity name '{name}' is already registered to {existing!r}")
        self._entities[name] = entity_cls
        return name

    def get(self, name: str) -> type[GraphEntity] | None:
        return self._entities.get(name)

    def require(self, name: str) -> type[GraphEntity]:
        """Get an entity type, treating an unknown name as an internal error."""
        entity_cls = self._entities.get(name)
        if entity_cls is None:
            raise InternalError(f"Entity {name} is not registered")
        return entity_cls

    @property
    def names(self) -> list[str]:
        return list(self._entities)

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __iter__(self) -> Iterator[type[GraphEntity]]:
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)
