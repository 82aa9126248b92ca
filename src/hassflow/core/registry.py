import dataclasses
import typing
from collections.abc import Iterable, Iterator, Mapping
from logging import getLogger
from typing import Any

from hassflow.entities.protocols import EntityLike

if typing.TYPE_CHECKING:
    from hassflow.core.dispatcher import Dispatcher

LOGGER = getLogger(__name__)


def discover_entities(root: Any) -> list[EntityLike]:
    """Find every entity reachable from `root`.

    Walks dataclass instances (public fields only), lists, tuples and mappings. Anything that looks like an
    entity, including a light group, is collected and not walked into. Every other value is ignored.

    Args:
        root (Any): The object to search, usually a dataclass describing a home.

    Returns:
        list[EntityLike]: Each distinct entity once, in the order first found.
    """
    found: list[EntityLike] = []
    seen_entities: set[int] = set()
    visited: set[int] = set()

    def visit(value: Any) -> None:
        if isinstance(value, EntityLike):
            if id(value) not in seen_entities:
                seen_entities.add(id(value))
                found.append(value)
            return

        if id(value) in visited:
            return

        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            visited.add(id(value))
            for field in dataclasses.fields(value):
                if field.name.startswith("_"):
                    continue
                visit(getattr(value, field.name, None))
        elif isinstance(value, list | tuple):
            visited.add(id(value))
            for item in value:
                visit(item)
        elif isinstance(value, Mapping):
            visited.add(id(value))
            for item in _mapping_values(value):
                visit(item)

    visit(root)
    return found


def _mapping_values(mapping: Mapping[Any, Any]) -> list[Any]:
    try:
        keys = sorted(mapping)
    except TypeError:
        keys = list(mapping)
    return [mapping[key] for key in keys]


class EntityRegistry:
    """Entities by id. Registering an id again replaces the previous entity."""

    def __init__(self) -> None:
        self._entities: dict[str, EntityLike] = {}

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[EntityLike]:
        return iter(list(self._entities.values()))

    def get(self, entity_id: str) -> EntityLike | None:
        return self._entities.get(entity_id)

    def ids(self) -> list[str]:
        return list(self._entities)

    def register(self, entities: Iterable[EntityLike], dispatcher: "Dispatcher") -> None:
        """Bind each entity to `dispatcher` and store it under its id.

        Light groups are stored under their combined id, and their members under their own ids, so member
        notifications still reach the mirrored state. A group never replaces a single entity already registered
        under one of those ids.
        """
        for entity in entities:
            entity.bind_dispatcher(dispatcher)

            members = getattr(entity, "members", None) or []
            existing = self._entities.get(entity.entity_id)
            if members and existing is not None and not getattr(existing, "members", None):
                LOGGER.debug("Keeping registered entity '%s' over group %r", entity.entity_id, entity)
            else:
                self._store(entity)

            for member in members:
                if member.entity_id not in self._entities:
                    self._store(member)

    def _store(self, entity: EntityLike) -> None:
        entity_id = entity.entity_id
        existing = self._entities.get(entity_id)
        if existing is not None and existing is not entity:
            LOGGER.info("Replacing registered entity '%s' (%r -> %r)", entity_id, existing, entity)
        self._entities[entity_id] = entity
        LOGGER.debug("Registered entity '%s'", entity_id)
