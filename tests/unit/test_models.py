from whenever import Instant

from hassflow.models import State, StateChangedEvent

RAW_STATE = {
    "entity_id": "light.kitchen",
    "state": "on",
    "attributes": {"brightness": 128, "friendly_name": "Kitchen"},
    "last_changed": "2024-01-01T12:00:00.123456+00:00",
    "last_reported": "2024-01-01T12:00:00.123456+00:00",
    "last_updated": "2024-01-01T12:00:01+00:00",
    "context": {"id": "01HXYZ", "parent_id": None, "user_id": None},
}


def test_state_parses_home_assistant_payload() -> None:
    """A get_states entry is parsed into a State."""
    state = State.model_validate(RAW_STATE)

    assert state.entity_id == "light.kitchen"
    assert state.value == "on", "The 'state' key should populate value"
    assert state.domain == "light"
    assert state.attributes["brightness"] == 128
    assert state.last_updated == Instant.from_utc(2024, 1, 1, 12, 0, 1), f"Unexpected timestamp {state.last_updated}"
    assert state.context.id == "01HXYZ"


def test_state_wire_format_round_trips() -> None:
    """to_wire produces a payload that parses back to an equal State."""
    state = State.model_validate(RAW_STATE)

    assert State.model_validate(state.to_wire()) == state, "State should survive to_wire and back"


def test_numeric_state_values_become_strings() -> None:
    state = State.model_validate({"entity_id": "sensor.lux", "state": 42, "attributes": None})

    assert state.value == "42", f"Numeric state should be stored as a string, got {state.value!r}"
    assert state.attributes == {}, "Null attributes should become an empty dict"


def test_state_changed_event_flattens_data() -> None:
    """The event payload's data block is lifted onto the event."""
    event = StateChangedEvent.model_validate(
        {
            "event_type": "state_changed",
            "data": {"entity_id": "light.kitchen", "old_state": None, "new_state": RAW_STATE},
            "origin": "LOCAL",
            "time_fired": "2024-01-01T12:00:01+00:00",
            "context": {"id": "01HXYZ"},
        }
    )

    assert event.entity_id == "light.kitchen"
    assert event.old_state is None, "Missing old state should be None"
    assert event.new_state is not None and event.new_state.value == "on"
    assert event.origin == "LOCAL"


def test_event_from_state() -> None:
    new_state = State(entity_id="switch.fan", state="off")

    event = StateChangedEvent.from_state(new_state)

    assert event.entity_id == "switch.fan"
    assert event.new_state is new_state or event.new_state == new_state
