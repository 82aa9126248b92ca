from hassflow.entities.base import Entity, SwitchableEntity


class BinarySensor(Entity):
    """Any sensor with a state of "on" or "off", e.g. motion or presence."""

    @property
    def is_on(self) -> bool:
        return self.state.value == "on"

    @property
    def is_off(self) -> bool:
        return self.state.value == "off"


class LightSensor(Entity):
    """Illuminance sensor."""

    @property
    def level(self) -> int:
        """Current level as an integer, 0 when the state is not an integer."""
        try:
            return int(self.state.value or "")
        except ValueError:
            return 0


class InputBoolean(SwitchableEntity):
    """A virtual switch."""

    domain = "input_boolean"
