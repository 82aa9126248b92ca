import asyncio
from dataclasses import dataclass, field

from whenever import Instant, TimeDelta

from hassflow import BinarySensor, DaylightProvider, Hassflow, HassflowConfig, Light, LightGroup, SensorsTriggerLights


class FixedHours:
    """Treats 07:00 to 19:00 local time as daytime."""

    def is_daytime(self) -> bool:
        return 7 <= Instant.now().to_system_tz().hour < 19


@dataclass
class Hallway:
    motion: BinarySensor = field(default_factory=lambda: BinarySensor("binary_sensor.hallway_motion"))
    door: BinarySensor = field(default_factory=lambda: BinarySensor("binary_sensor.front_door"))
    lights: LightGroup = field(
        default_factory=lambda: LightGroup([Light("light.hallway_ceiling"), Light("light.hallway_lamp")])
    )


@dataclass
class Home:
    hallway: Hallway = field(default_factory=Hallway)


async def main() -> None:
    config = HassflowConfig()

    home = Home()
    hassflow = Hassflow(config)
    hassflow.discover_entities(home)
    daylight: DaylightProvider = FixedHours()

    night = SensorsTriggerLights(
        name="hallway",
        sensors=[home.hallway.motion, home.hallway.door],
        lights=[home.hallway.lights],
        brightness=180,
        turns_off_after=TimeDelta(minutes=3),
        dim_lights_before=TimeDelta(seconds=30),
        human_override_for=TimeDelta(minutes=30),
        condition=lambda: not daylight.is_daytime(),
    )
    night.add_condition_scene(lambda: home.hallway.door.is_on, {"brightness": 255})
    hassflow.register_automations(night)

    await hassflow.run_forever()


if __name__ == "__main__":
    asyncio.run(main())
