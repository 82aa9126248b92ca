import asyncio
from collections.abc import Callable
from typing import Any

from whenever import Instant

from hassflow.models import State, StateChangedEvent

SERVICE_STATES = {"turn_on": "on", "turn_off": "off"}


async def settle(rounds: int = 100) -> None:
    """Let every task that is ready to run do so."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_for(
    predicate: Callable[[], bool], *, timeout: float = 3.0, interval: float = 0.02, desc: str = "condition"
) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if predicate():
            return
        if loop.time() >= deadline:
            raise TimeoutError(f"Timed out waiting for {desc}")
        await asyncio.sleep(interval)


def make_state(entity_id: str, value: str | None, attributes: dict[str, Any] | None = None) -> State:
    return State(entity_id=entity_id, state=value, attributes=attributes or {})


def make_state_changed_event(
    entity_id: str,
    value: str | None,
    attributes: dict[str, Any] | None = None,
    *,
    old_state: State | None = None,
) -> StateChangedEvent:
    """Create a state change notification as the websocket client would decode it."""
    return StateChangedEvent(
        entity_id=entity_id, old_state=old_state, new_state=make_state(entity_id, value, attributes)
    )


def apply_service_call(
    entity_id: str, service: str, attributes: dict[str, Any], old_state: State | None = None
) -> State:
    """Return the state an entity ends up in after a service call, the way the fake hubs model it.

    `turn_on` and `turn_off` set the state to "on"/"off", and the service data becomes the attributes.
    """
    value = SERVICE_STATES.get(service, old_state.value if old_state else None)
    now = Instant.now()
    return State(
        entity_id=entity_id,
        state=value,
        attributes=dict(attributes),
        last_changed=now,
        last_reported=now,
        last_updated=now,
    )
