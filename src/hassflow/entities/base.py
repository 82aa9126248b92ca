import typing
from collections.abc import Mapping
from logging import getLogger
from typing import Any

from hassflow.exceptions import EntityNotRegisteredError
from hassflow.models import State

if typing.TYPE_CHECKING:
    from hassflow.core.dispatcher import Dispatcher

LOGGER = getLogger(__name__)


class Entity:
    """Local mirror of a Home Assistant entity.

    The mirrored state is only written by the dispatcher, from confirmed notifications or the initial sync.
    """

    domain: typing.ClassVar[str | None] = None
    """Service domain used for commands, e.g. 'light'. None for read-only entities."""

    def __init__(self, entity_id: str) -> None:
        self._entity_id = entity_id
        self._state = State(entity_id=entity_id)
        self._dispatcher: Dispatcher | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} entity_id={self._entity_id} state={self._state.value!r}>"

    @property
    def entity_id(self) -> str:
        return self._entity_id

    @property
    def state(self) -> State:
        return self._state

    @state.setter
    def state(self, value: State) -> None:
        self._state = value

    @property
    def attributes(self) -> dict[str, Any]:
        return self._state.attributes

    @property
    def is_registered(self) -> bool:
        return self._dispatcher is not None

    def bind_dispatcher(self, dispatcher: "Dispatcher") -> None:
        """Bind the entity to a dispatcher so it can issue commands."""
        self._dispatcher = dispatcher

    async def call_service(self, service: str, **attributes: Any) -> None:
        """Call a service on this entity's domain, targeting this entity.

        Raises:
            EntityNotRegisteredError: If the entity has not been bound to a dispatcher.
        """
        if self._dispatcher is None:
            LOGGER.error("Entity '%s' is not registered, cannot call %s", self._entity_id, service)
            raise EntityNotRegisteredError(self._entity_id)

        if self.domain is None:
            raise TypeError(f"{type(self).__name__} does not accept commands")

        await self._dispatcher.issue_command([self._entity_id], self.domain, service, **attributes)


class SwitchableEntity(Entity):
    """An entity with an on/off state that can be switched."""

    @property
    def is_on(self) -> bool:
        return self.state.value == "on"

    @property
    def is_off(self) -> bool:
        return self.state.value == "off"

    async def turn_on(self, attributes: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        """Turn the entity on, passing any attributes as service data."""
        LOGGER.debug("Turning on %s", self.entity_id)
        await self.call_service("turn_on", **{**(attributes or {}), **kwargs})

    async def turn_off(self) -> None:
        """Turn the entity off."""
        LOGGER.info("Turning off %s", self.entity_id)
        await self.call_service("turn_off")
