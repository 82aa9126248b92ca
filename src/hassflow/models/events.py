from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hassflow.models.states import Context, State


class StateChangedEvent(BaseModel):
    """A `state_changed` event from Home Assistant.

    Built from the `event` payload of a subscription frame, i.e. `frame["event"]`.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    event_type: str = Field(default="state_changed")
    """The type of the event, always 'state_changed' here."""

    entity_id: str = Field(...)
    """The entity whose state changed."""

    old_state: State | None = Field(default=None)
    """The state before the change, None if the entity was just added."""

    new_state: State | None = Field(default=None)
    """The state after the change, None if the entity was removed."""

    origin: str | None = Field(default=None)
    """Where the event originated, e.g. 'LOCAL'."""

    context: Context = Field(default_factory=Context, repr=False)
    """The context of the event."""

    @model_validator(mode="before")
    @classmethod
    def _flatten_data(cls, values: Any):
        if not isinstance(values, dict) or "data" not in values:
            return values

        values = dict(values)
        data = values.pop("data") or {}
        values.setdefault("entity_id", data.get("entity_id"))
        values.setdefault("old_state", data.get("old_state"))
        values.setdefault("new_state", data.get("new_state"))
        return values

    @classmethod
    def from_state(cls, new_state: State, old_state: State | None = None) -> "StateChangedEvent":
        """Build an event for a locally known state."""
        return cls(entity_id=new_state.entity_id, old_state=old_state, new_state=new_state)
