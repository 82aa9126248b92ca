import typing
from collections.abc import Iterable, Iterator, Mapping
from logging import getLogger
from typing import Any

from hassflow.entities.base import SwitchableEntity
from hassflow.models import State

if typing.TYPE_CHECKING:
    from hassflow.core.dispatcher import Dispatcher
    from hassflow.entities.protocols import LightLike

LOGGER = getLogger(__name__)


class Light(SwitchableEntity):
    """A dimmable light."""

    domain = "light"

    @property
    def brightness(self) -> float:
        """Current brightness (0-255), or 0 if unknown."""
        value = self.attributes.get("brightness")
        if isinstance(value, bool) or not isinstance(value, int | float):
            return 0
        return float(value)


class LightGroup:
    """Several lights treated as one unit.

    State and brightness are read from the first member. The group only counts as on when every member is
    on. Commands go to every member, and one member failing does not stop the others.
    """

    def __init__(self, lights: "Iterable[LightLike]") -> None:
        self.members: list[LightLike] = list(lights)
        if not self.members:
            raise ValueError("LightGroup requires at least one light")

    def __repr__(self) -> str:
        return f"<LightGroup {self.entity_id}>"

    def __iter__(self) -> "Iterator[LightLike]":
        return iter(self.members)

    def __len__(self) -> int:
        return len(self.members)

    @property
    def entity_id(self) -> str:
        return ", ".join(light.entity_id for light in self.members)

    @property
    def state(self) -> State:
        return self.members[0].state

    @state.setter
    def state(self, value: State) -> None:
        for light in self.members:
            light.state = value

    @property
    def brightness(self) -> float:
        return self.members[0].brightness

    @property
    def is_on(self) -> bool:
        return all(light.is_on for light in self.members)

    def bind_dispatcher(self, dispatcher: "Dispatcher") -> None:
        for light in self.members:
            light.bind_dispatcher(dispatcher)

    async def turn_on(self, attributes: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        errors: list[Exception] = []
        for light in self.members:
            try:
                await light.turn_on(attributes, **kwargs)
            except Exception as e:
                LOGGER.error("Error turning on %s: %s", light.entity_id, e)
                errors.append(e)
        self._raise_errors("turn_on", errors)

    async def turn_off(self) -> None:
        errors: list[Exception] = []
        for light in self.members:
            try:
                await light.turn_off()
            except Exception as e:
                LOGGER.error("Error turning off %s: %s", light.entity_id, e)
                errors.append(e)
        self._raise_errors("turn_off", errors)

    def _raise_errors(self, service: str, errors: list[Exception]) -> None:
        if not errors:
            return
        if len(errors) == 1:
            raise errors[0]
        raise ExceptionGroup(f"{service} failed for {len(errors)} lights in {self.entity_id}", errors)
