import typing
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from typing_extensions import Self
from whenever import TimeDelta

from hassflow.automations.base import Automation
from hassflow.entities.protocols import member_entity_ids

if typing.TYPE_CHECKING:
    from hassflow.core.dispatcher import Dispatcher
    from hassflow.core.timer import Timer
    from hassflow.entities.protocols import EntityLike, LightLike

Condition = Callable[[], bool]

DEFAULT_BRIGHTNESS = 255
MIN_DIM_DELAY = TimeDelta(seconds=1)


@dataclass(frozen=True)
class ConditionScene:
    """Light attributes to apply when `condition` is true."""

    condition: Condition
    scene: Mapping[str, Any]


class SensorsTriggerLights(Automation):
    """Turn lights on when any sensor is on, and off again some time after all sensors are off.

    Optionally dims the lights shortly before turning them off, and backs off for a while when someone
    switches one of the lights by hand.
    """

    def __init__(
        self,
        *,
        name: str,
        sensors: "Iterable[EntityLike]",
        lights: "Iterable[LightLike] | None" = None,
        turns_on_lights: "Iterable[LightLike] | None" = None,
        turns_off_lights: "Iterable[LightLike] | None" = None,
        condition: Condition | None = None,
        scene: Mapping[str, Any] | None = None,
        condition_scenes: Iterable[ConditionScene] = (),
        brightness: float = DEFAULT_BRIGHTNESS,
        turns_off_after: TimeDelta | None = None,
        dim_lights_before: TimeDelta | None = None,
        human_override_for: TimeDelta | None = None,
    ) -> None:
        super().__init__(name)

        lights = list(lights) if lights is not None else []
        self.sensors: list[EntityLike] = list(sensors)
        self.turns_on_lights: list[LightLike] = list(turns_on_lights) if turns_on_lights is not None else lights
        self.turns_off_lights: list[LightLike] = list(turns_off_lights) if turns_off_lights is not None else lights

        self.condition = condition
        self.scene = scene
        self.condition_scenes: list[ConditionScene] = list(condition_scenes)
        self.brightness = brightness

        self.turns_off_after = turns_off_after
        self.dim_lights_before = dim_lights_before
        self.human_override_for = human_override_for

        self._sensor_ids = {entity_id for sensor in self.sensors for entity_id in member_entity_ids(sensor)}
        self._light_ids = {entity_id for light in self.turns_on_lights for entity_id in member_entity_ids(light)}

        self._turn_off_timer: Timer | None = None
        self._dim_timer: Timer | None = None
        self._override_timer: Timer | None = None

    def add_condition_scene(self, condition: Condition, scene: Mapping[str, Any]) -> Self:
        """Add a scene to use when `condition` is true. Later scenes win over earlier ones."""
        self.condition_scenes.append(ConditionScene(condition, scene))
        return self

    def bind_dispatcher(self, dispatcher: "Dispatcher") -> None:
        super().bind_dispatcher(dispatcher)
        self._turn_off_timer = dispatcher.create_timer(f"{self.name}:turn_off")
        self._dim_timer = dispatcher.create_timer(f"{self.name}:dim")
        self._override_timer = dispatcher.create_timer(f"{self.name}:human_override")

    @property
    def turn_off_timer(self) -> "Timer":
        self._require_bound()
        assert self._turn_off_timer is not None
        return self._turn_off_timer

    @property
    def dim_timer(self) -> "Timer":
        self._require_bound()
        assert self._dim_timer is not None
        return self._dim_timer

    @property
    def override_timer(self) -> "Timer":
        self._require_bound()
        assert self._override_timer is not None
        return self._override_timer

    def _require_bound(self) -> None:
        # raises if not registered
        _ = self.dispatcher

    def trigger_entity_ids(self) -> list[str]:
        ids: list[str] = []
        for entity in [*self.sensors, *self.turns_on_lights]:
            for entity_id in member_entity_ids(entity):
                if entity_id not in ids:
                    ids.append(entity_id)
        return ids

    async def action(self, trigger: "EntityLike") -> None:
        if trigger.entity_id in self._sensor_ids:
            await self._handle_sensor_trigger()
        elif trigger.entity_id in self._light_ids:
            self._handle_light_trigger()
        else:
            self.logger.debug("Ignoring trigger from %s", trigger.entity_id)

    # --------- sensor path
    async def _handle_sensor_trigger(self) -> None:
        if self.override_timer.is_running():
            self.logger.info("Human override active, ignoring sensors")
            return

        if self.condition is not None and not self.condition():
            self.logger.info("Condition not met, ignoring sensors")
            return

        if any(sensor.state.value == "on" for sensor in self.sensors):
            await self._on_sensors_triggered()
        else:
            self._on_sensors_cleared()

    async def _on_sensors_triggered(self) -> None:
        dimmed_from_timer = self.dimmed_from_timer()

        self.turn_off_timer.cancel()
        self.dim_timer.cancel()

        if any(light.is_on for light in self.turns_on_lights) and not dimmed_from_timer:
            self.logger.info("Sensor triggered, lights already on")
            return

        attributes = self.resolve_attributes()
        self.logger.info("Sensor triggered, turning on lights with %s", attributes)
        for light in self.turns_on_lights:
            try:
                await light.turn_on(attributes)
            except Exception as e:
                self.logger.error("Error turning on %s: %s", light.entity_id, e)

    def _on_sensors_cleared(self) -> None:
        if self.turns_off_after is None:
            return

        self.logger.info("Sensors cleared, turning off lights in %s", self.turns_off_after)
        self.turn_off_timer.start(self._turn_off_lights, self.turns_off_after)

        if self.dim_lights_before is None:
            return

        dim_after = self.turns_off_after - self.dim_lights_before
        if dim_after >= MIN_DIM_DELAY:
            self.dim_timer.start(self._dim_lights, dim_after)
        else:
            self.logger.debug("Dim offset %s leaves no time before turn off, not dimming", self.dim_lights_before)

    def dimmed_from_timer(self) -> bool:
        """Whether the lights were dimmed by the dim timer and are waiting to be turned off."""
        return (
            self.dim_lights_before is not None
            and not self.dim_timer.is_running()
            and self.turn_off_timer.is_running()
        )

    def resolve_attributes(self) -> dict[str, Any]:
        """Return the attributes to turn the lights on with.

        A fixed scene wins, then the last condition scene whose condition holds, then plain brightness.
        """
        if self.scene is not None:
            return dict(self.scene)

        # later registrations override earlier ones
        matched: Mapping[str, Any] | None = None
        for condition_scene in self.condition_scenes:
            if condition_scene.condition():
                matched = condition_scene.scene

        if matched is not None:
            return dict(matched)

        return {"brightness": self.brightness}

    # --------- timer fires
    async def _dim_lights(self) -> None:
        self.logger.info("Dimming lights before turning them off")
        for light in self.turns_off_lights:
            brightness = light.brightness
            if brightness < 2:
                continue
            try:
                await light.turn_on({"brightness": brightness / 2})
            except Exception as e:
                self.logger.error("Error dimming %s: %s", light.entity_id, e)

    async def _turn_off_lights(self) -> None:
        self.logger.info("Turning off lights")
        for light in self.turns_off_lights:
            try:
                await light.turn_off()
            except Exception as e:
                self.logger.error("Error turning off %s: %s", light.entity_id, e)

    # --------- light path
    def _handle_light_trigger(self) -> None:
        self.dim_timer.cancel()
        self.turn_off_timer.cancel()

        if self.human_override_for is None:
            return

        if any(light.is_on for light in self.turns_on_lights):
            self.logger.info("Lights changed by hand, pausing sensors for %s", self.human_override_for)
            self.override_timer.start(self._on_override_expired, self.human_override_for)
        else:
            self.override_timer.cancel()

    def _on_override_expired(self) -> None:
        self.logger.info("Human override expired")
