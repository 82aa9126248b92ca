import typing
from collections import defaultdict
from collections.abc import Iterable
from typing import Any, Protocol

from fair_async_rlock import FairAsyncRLock

from hassflow.automations.base import Automation
from hassflow.core.registry import EntityRegistry
from hassflow.core.resources.base import Resource
from hassflow.core.timer import Timer
from hassflow.exceptions import ConnectionClosedError, FailedMessageError, ResourceNotReadyError

if typing.TYPE_CHECKING:
    from hassflow import Hassflow
    from hassflow.collaborators import StateRecorder
    from hassflow.core.clock import Clock
    from hassflow.entities.protocols import EntityLike
    from hassflow.models import State, StateChangedEvent

# no state_changed will follow a command that failed with one of these
UNDELIVERED_ERRORS = (FailedMessageError, ConnectionClosedError, ResourceNotReadyError)


class ServiceClient(Protocol):
    """The part of the websocket client the dispatcher depends on."""

    async def call_service(self, domain: str, service: str, entity_ids: str | Iterable[str], **attributes: Any) -> Any: ...

    async def get_states(self) -> "list[State]": ...


class Dispatcher(Resource):
    """Single point through which state notifications reach entities and automations.

    Every notification is handled under `lock` from start to finish. Commands sent through `issue_command`
    are remembered per entity, and the notification each one causes updates the mirrored state without
    firing automations again.
    """

    lock: FairAsyncRLock
    """Serializes notification handling and automation timer fires."""

    registry: EntityRegistry
    """Entities by id."""

    automations: dict[str, list[Automation]]
    """Automations by trigger entity id, in registration order."""

    expected_updates: dict[str, int]
    """Number of notifications still expected per entity because of commands we sent."""

    def __init__(
        self,
        hassflow: "Hassflow",
        client: ServiceClient,
        clock: "Clock",
        recorders: "Iterable[StateRecorder]" = (),
    ) -> None:
        super().__init__(hassflow)
        self.client = client
        self.clock = clock
        self.recorders = list(recorders)

        self.lock = FairAsyncRLock()
        self.registry = EntityRegistry()
        self.automations = defaultdict(list)
        self.expected_updates = defaultdict(int)

    def create_timer(self, name: str) -> Timer:
        """Create a Timer whose fires run under the dispatcher lock."""
        return Timer(self.clock, self.task_bucket, name=name, lock=self.lock)

    def add_recorder(self, recorder: "StateRecorder") -> None:
        self.recorders.append(recorder)

    # --------- registration
    def register_automations(self, *automations: Automation) -> None:
        """Bind each automation and index it under every entity id it reacts to."""
        for automation in automations:
            automation.bind_dispatcher(self)
            for entity_id in automation.trigger_entity_ids():
                registered = self.automations[entity_id]
                if any(existing is automation for existing in registered):
                    continue
                registered.append(automation)
            self.logger.debug("Registered automation '%s'", automation.name)

    def register_entities(self, *entities: "EntityLike") -> None:
        """Register entities. Entities that are also automations are registered as both."""
        self.registry.register(entities, self)
        for entity in entities:
            if isinstance(entity, Automation):
                self.register_automations(entity)

    # --------- inbound
    async def on_state_notification(self, event: "StateChangedEvent") -> None:
        """Apply a state change from Home Assistant and run the automations that react to it."""
        async with self.lock:
            entity_id = event.entity_id
            entity = self.registry.get(entity_id)
            if entity is None:
                self.logger.debug("Ignoring state change for unregistered entity '%s'", entity_id)
                return

            if event.new_state is not None:
                entity.state = event.new_state

            for recorder in self.recorders:
                self.task_bucket.spawn(recorder.record(entity_id, event.new_state), name="dispatcher:record_state")

            pending = self.expected_updates.get(entity_id, 0)
            if pending > 0:
                self.expected_updates[entity_id] = pending - 1
                self.logger.debug(
                    "Ignoring state change for '%s' caused by our own command (%d still expected)",
                    entity_id,
                    pending - 1,
                )
                return

            for automation in list(self.automations.get(entity_id, ())):
                self.logger.debug("Running automation '%s' for '%s'", automation.name, entity_id)
                try:
                    await automation.action(entity)
                except Exception:
                    self.logger.exception("Automation '%s' failed handling '%s'", automation.name, entity_id)

    async def sync_states(self) -> None:
        """Load the current state of every registered entity without running automations."""
        states = await self.client.get_states()

        synced = 0
        async with self.lock:
            for state in states:
                entity = self.registry.get(state.entity_id)
                if entity is None:
                    continue
                entity.state = state
                synced += 1

        self.logger.info("Synced state for %d of %d entities", synced, len(self.registry))

    # --------- outbound
    async def issue_command(
        self, entity_ids: str | Iterable[str], domain: str, service: str, **attributes: Any
    ) -> Any:
        """Call a service and expect one state change notification per target entity.

        Raises:
            FailedMessageError: If Home Assistant rejects the call.
            ResponseTimeoutError: If Home Assistant does not answer in time. The expected notifications are
                kept, since the change may still happen.
        """
        entity_ids = [entity_ids] if isinstance(entity_ids, str) else list(entity_ids)
        for entity_id in entity_ids:
            self.expected_updates[entity_id] += 1

        try:
            return await self.client.call_service(domain, service, entity_ids, **attributes)
        except UNDELIVERED_ERRORS:
            for entity_id in entity_ids:
                self.expected_updates[entity_id] = max(0, self.expected_updates[entity_id] - 1)
            raise
