import typing
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from logging import getLogger
from typing import Any

from hassflow.entities.protocols import member_entity_ids
from hassflow.exceptions import ResourceNotReadyError
from hassflow.utils import maybe_await

if typing.TYPE_CHECKING:
    from hassflow.core.dispatcher import Dispatcher
    from hassflow.entities.protocols import EntityLike


class Automation(ABC):
    """A rule that reacts to state changes of one or more entities.

    The dispatcher looks automations up by entity id and awaits `action` with the entity whose state changed.
    Actions run while the dispatcher lock is held, so they see a consistent view of entity state.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = getLogger("hassflow.automations").getChild(name)
        self._dispatcher: Dispatcher | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name}>"

    @property
    def dispatcher(self) -> "Dispatcher":
        if self._dispatcher is None:
            raise ResourceNotReadyError(f"Automation '{self.name}' is not registered")
        return self._dispatcher

    def bind_dispatcher(self, dispatcher: "Dispatcher") -> None:
        """Called once when the automation is registered."""
        self._dispatcher = dispatcher

    @abstractmethod
    def trigger_entity_ids(self) -> list[str]:
        """Return the ids of the entities this automation reacts to."""

    @abstractmethod
    async def action(self, trigger: "EntityLike") -> None:
        """React to a state change of `trigger`."""


class FunctionAutomation(Automation):
    """Run a plain function or coroutine function whenever one of `entities` changes."""

    def __init__(
        self,
        name: str,
        entities: "Iterable[EntityLike]",
        action: Callable[["EntityLike"], Awaitable[Any] | Any],
    ) -> None:
        super().__init__(name)
        self.entities = list(entities)
        self._action = action

    def trigger_entity_ids(self) -> list[str]:
        return [entity_id for entity in self.entities for entity_id in member_entity_ids(entity)]

    async def action(self, trigger: "EntityLike") -> None:
        await maybe_await(self._action, trigger)
