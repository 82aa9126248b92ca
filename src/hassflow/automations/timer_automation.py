import typing
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from whenever import TimeDelta

from hassflow.automations.base import Automation
from hassflow.entities.protocols import member_entity_ids
from hassflow.utils import maybe_await

if typing.TYPE_CHECKING:
    from hassflow.core.timer import Timer
    from hassflow.entities.protocols import EntityLike

Condition = Callable[[], bool]


class TimerAutomation(Automation):
    """Run `action` once `duration` has passed since the last change of any of `entities`.

    Every change restarts the countdown, as long as all conditions hold.
    """

    def __init__(
        self,
        name: str,
        *,
        entities: "Iterable[EntityLike]",
        duration: TimeDelta,
        action: Callable[[], Awaitable[Any] | Any],
        conditions: Iterable[Condition] = (),
    ) -> None:
        super().__init__(name)
        self.entities = list(entities)
        self.duration = duration
        self.conditions = list(conditions)
        self._action = action
        self._timer: Timer | None = None

    def add_condition(self, condition: Condition) -> "TimerAutomation":
        """Add a condition that must be true for the timer to start."""
        self.conditions.append(condition)
        return self

    @property
    def timer(self) -> "Timer":
        if self._timer is None:
            self._timer = self.dispatcher.create_timer(self.name)
        return self._timer

    def trigger_entity_ids(self) -> list[str]:
        return [entity_id for entity in self.entities for entity_id in member_entity_ids(entity)]

    async def action(self, trigger: "EntityLike") -> None:
        for i, condition in enumerate(self.conditions):
            if not condition():
                self.logger.info("Condition %d not met, not starting timer", i)
                return

        self.logger.info("Starting timer for %s", self.duration)
        self.timer.start(self._run_action, self.duration)

    async def _run_action(self) -> None:
        self.logger.info("Timer elapsed, executing action")
        await maybe_await(self._action)
