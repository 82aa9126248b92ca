import typing

from whenever import Instant, TimeDelta

from hassflow.automations.base import Automation
from hassflow.entities.base import Entity

if typing.TYPE_CHECKING:
    from hassflow.core.dispatcher import Dispatcher
    from hassflow.entities.protocols import EntityLike

PRESS_TIMEOUT = TimeDelta(seconds=2)
"""Window for counting repeat presses."""


class Button(Entity, Automation):
    """An event entity for a physical button that counts repeat presses.

    Registers itself as an automation on its own entity id.
    """

    def __init__(self, entity_id: str) -> None:
        Entity.__init__(self, entity_id)
        Automation.__init__(self, entity_id)

        self.pressed_times = 0
        self._last_pressed: Instant | None = None

    def bind_dispatcher(self, dispatcher: "Dispatcher") -> None:
        Entity.bind_dispatcher(self, dispatcher)
        Automation.bind_dispatcher(self, dispatcher)

    def trigger_entity_ids(self) -> list[str]:
        return [self.entity_id]

    async def action(self, trigger: "EntityLike") -> None:
        if self.attributes.get("event_type") != "initial_press":
            return

        now = self.dispatcher.clock.now()
        if self._last_pressed is not None and now - self._last_pressed < PRESS_TIMEOUT:
            self.pressed_times += 1
        else:
            self.pressed_times = 1

        self.logger.info("Button pressed %d times", self.pressed_times)
        self._last_pressed = now
