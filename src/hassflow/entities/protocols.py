import typing
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from hassflow.models import State

if typing.TYPE_CHECKING:
    from hassflow.core.dispatcher import Dispatcher


@runtime_checkable
class EntityLike(Protocol):
    """Anything that mirrors a single Home Assistant entity, or a group acting as one."""

    @property
    def entity_id(self) -> str: ...

    @property
    def state(self) -> State: ...

    @state.setter
    def state(self, value: State) -> None: ...

    def bind_dispatcher(self, dispatcher: "Dispatcher") -> None: ...


@runtime_checkable
class LightLike(EntityLike, Protocol):
    """An entity that can be switched and dimmed like a light."""

    @property
    def brightness(self) -> float: ...

    @property
    def is_on(self) -> bool: ...

    async def turn_on(self, attributes: Mapping[str, Any] | None = None, **kwargs: Any) -> None: ...

    async def turn_off(self) -> None: ...


def member_entity_ids(entity: EntityLike) -> list[str]:
    """Return the ids of the Home Assistant entities behind `entity`.

    Groups expand to their members, anything else is its own id.
    """
    members = getattr(entity, "members", None)
    if members is None:
        return [entity.entity_id]
    ids: list[str] = []
    for member in members:
        ids.extend(member_entity_ids(member))
    return ids
