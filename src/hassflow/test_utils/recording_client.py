import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from hassflow.core.websocket_client import EventHandler
from hassflow.models import State, StateChangedEvent
from hassflow.utils import maybe_await

from .helpers import apply_service_call


@dataclass
class ServiceCall:
    domain: str
    service: str
    entity_ids: list[str]
    attributes: dict[str, Any] = field(default_factory=dict)


class _RecordingSubscription:
    def __init__(self, client: "RecordingClient") -> None:
        self.client = client

    async def close(self) -> None:
        self.client.handler = None


class RecordingClient:
    """In-memory stand-in for the websocket client.

    Records every service call. With `echo` enabled it behaves like the hub: after answering a call it sends a
    state change for each target entity to the subscribed handler, from a separate task.
    """

    def __init__(self, states: Iterable[State] = (), *, echo: bool = True) -> None:
        self.calls: list[ServiceCall] = []
        self.states: dict[str, State] = {state.entity_id: state for state in states}
        self.echo = echo
        self.fail_with: Exception | None = None
        self.handler: EventHandler | None = None
        self.connected = False

        self._closed = asyncio.Event()
        self._echo_tasks: set[asyncio.Task[None]] = set()

    async def connect(self) -> None:
        self.connected = True
        self._closed.clear()

    async def subscribe_events(self, event_type: str, handler: EventHandler) -> _RecordingSubscription:
        self.handler = handler
        return _RecordingSubscription(self)

    async def close(self) -> None:
        self.connected = False
        for task in list(self._echo_tasks):
            task.cancel()
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def get_states(self) -> list[State]:
        return list(self.states.values())

    async def call_service(self, domain: str, service: str, entity_ids: str | Iterable[str], **attributes: Any) -> Any:
        entity_ids = [entity_ids] if isinstance(entity_ids, str) else list(entity_ids)
        self.calls.append(ServiceCall(domain, service, entity_ids, dict(attributes)))

        if self.fail_with is not None:
            raise self.fail_with

        if self.echo:
            task = asyncio.get_running_loop().create_task(self._echo(entity_ids, service, attributes))
            self._echo_tasks.add(task)
            task.add_done_callback(self._echo_tasks.discard)

        return {"context": {"id": f"recorded-{len(self.calls)}"}}

    async def _echo(self, entity_ids: list[str], service: str, attributes: dict[str, Any]) -> None:
        for entity_id in entity_ids:
            old_state = self.states.get(entity_id)
            new_state = apply_service_call(entity_id, service, attributes, old_state)
            self.states[entity_id] = new_state
            await self.emit(StateChangedEvent(entity_id=entity_id, old_state=old_state, new_state=new_state))

    async def emit(self, event: StateChangedEvent) -> None:
        """Deliver a state change to the subscribed handler, as if it came from the hub."""
        if event.new_state is not None:
            self.states[event.entity_id] = event.new_state
        if self.handler is not None:
            await maybe_await(self.handler, event)

    def calls_for(self, entity_id: str, service: str | None = None) -> list[ServiceCall]:
        return [
            call
            for call in self.calls
            if entity_id in call.entity_ids and (service is None or call.service == service)
        ]

    def clear(self) -> None:
        self.calls.clear()
