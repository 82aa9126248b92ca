from logging import getLogger
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from whenever import Instant, OffsetDateTime

LOGGER = getLogger(__name__)


class Context(BaseModel):
    """Represents the context of a Home Assistant event."""

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None)
    """The context ID of the event."""

    parent_id: str | None = Field(default=None)
    """The parent context ID of the event, if any."""

    user_id: str | None = Field(default=None)
    """The user ID for who triggered the event."""


class State(BaseModel):
    """Represents a Home Assistant state object."""

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True, frozen=True, validate_by_name=True)

    entity_id: str = Field(...)
    """The full entity ID, e.g. 'light.living_room'."""

    value: str | None = Field(default=None, validation_alias=AliasChoices("state", "value"))
    """The raw state value, e.g. 'on', 'off', '23.5'."""

    attributes: dict[str, Any] = Field(default_factory=dict)
    """The attributes of the state."""

    last_changed: Instant | None = Field(default=None)
    """Time the state changed in the state machine, not updated when only attributes change."""

    last_reported: Instant | None = Field(default=None)
    """Time the state was written to the state machine, updated regardless of any changes."""

    last_updated: Instant | None = Field(default=None)
    """Time the state or state attributes changed in the state machine."""

    context: Context = Field(default_factory=Context, repr=False)
    """The context of the state change."""

    @property
    def domain(self) -> str:
        """The domain of the entity, e.g. 'light', 'sensor', etc."""
        return self.entity_id.split(".")[0]

    @field_validator("value", mode="before")
    @classmethod
    def _validate_value(cls, value):
        # numeric states arrive unquoted from some integrations
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("attributes", mode="before")
    @classmethod
    def _validate_attributes(cls, value):
        if value is None:
            return {}
        return value

    @field_validator("last_changed", "last_reported", "last_updated", mode="before")
    @classmethod
    def _validate_datetime_fields(cls, value):
        if value is None:
            return None
        if isinstance(value, int | float):
            return Instant.from_timestamp(value)
        if isinstance(value, str):
            return OffsetDateTime.parse_iso(value).to_instant()

        return value

    def to_wire(self) -> dict[str, Any]:
        """Return the state as Home Assistant would send it."""
        data: dict[str, Any] = {
            "entity_id": self.entity_id,
            "state": self.value,
            "attributes": dict(self.attributes),
            "context": self.context.model_dump(),
        }
        for key in ("last_changed", "last_reported", "last_updated"):
            instant: Instant | None = getattr(self, key)
            # HA sends +00:00 offsets rather than Z
            data[key] = instant.to_fixed_offset().format_iso() if instant is not None else None
        return data
