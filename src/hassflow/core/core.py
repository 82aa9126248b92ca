import asyncio
import typing
from collections.abc import Iterable
from typing import Any, ClassVar, Protocol

from hassflow.config import HassflowConfig
from hassflow.enums import STATE_CHANGED, ResourceRole

from .clock import Clock, LoopClock
from .dispatcher import Dispatcher, ServiceClient
from .registry import discover_entities
from .resources.base import Resource
from .resources.tasks import TaskBucket
from .websocket_client import EventHandler, WebsocketClient

if typing.TYPE_CHECKING:
    from hassflow.automations import Automation
    from hassflow.collaborators import StateRecorder
    from hassflow.entities.protocols import EntityLike


class HassClient(ServiceClient, Protocol):
    """Everything hassflow needs from a connection to Home Assistant."""

    async def connect(self) -> None: ...

    async def subscribe_events(self, event_type: str, handler: EventHandler) -> Any: ...

    async def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


class Hassflow(Resource):
    """Main class for hassflow.

    Owns the connection to Home Assistant, the dispatcher and the clock. Entities and automations are
    registered before `start` or `run_forever`.
    """

    role: ClassVar[ResourceRole] = ResourceRole.CORE

    config: HassflowConfig
    """Configuration for this instance."""

    clock: Clock
    """Time source shared by every timer."""

    client: HassClient
    """Connection to Home Assistant."""

    dispatcher: Dispatcher
    """Routes state changes to entities and automations."""

    shutdown_event: asyncio.Event
    """Event set when shutdown has been requested."""

    def __init__(
        self,
        config: HassflowConfig,
        *,
        clock: Clock | None = None,
        client: HassClient | None = None,
        recorders: "Iterable[StateRecorder]" = (),
    ) -> None:
        """
        Initialize the Hassflow instance.

        Args:
            config (HassflowConfig): Loaded configuration.
            clock (Clock | None): Time source, defaults to the wall clock.
            client (HassClient | None): Connection to Home Assistant, defaults to a WebsocketClient.
            recorders (Iterable[StateRecorder]): Collaborators that receive every state change.
        """
        self.config = config

        super().__init__(self, unique_name_prefix="hassflow", task_bucket=TaskBucket(self, name="hassflow"))

        self.shutdown_event = asyncio.Event()
        self.clock = clock or LoopClock()
        self.client = client or WebsocketClient(self)
        self.dispatcher = Dispatcher(self, self.client, self.clock, recorders)
        self._subscription: Any = None

    # --------- registration
    def discover_entities(self, root: Any) -> "list[EntityLike]":
        """Find every entity in `root` and register it.

        Returns:
            list[EntityLike]: The entities that were found.
        """
        entities = discover_entities(root)
        self.logger.debug("Discovered %d entities", len(entities))
        self.dispatcher.register_entities(*entities)
        return entities

    def register_entities(self, *entities: "EntityLike") -> None:
        self.dispatcher.register_entities(*entities)

    def register_automations(self, *automations: "Automation") -> None:
        self.dispatcher.register_automations(*automations)

    # --------- lifecycle
    async def start(self) -> None:
        """Connect, subscribe to state changes and load the current states.

        Raises:
            FatalError: If Home Assistant cannot be reached or rejects the token.
            TimeoutError: If startup takes longer than `startup_timeout_seconds`.
        """
        await asyncio.wait_for(self.initialize(), timeout=self.config.startup_timeout_seconds)

    async def on_initialize(self) -> None:
        await self.client.connect()
        self._subscription = await self.client.subscribe_events(STATE_CHANGED, self.dispatcher.on_state_notification)
        await self.dispatcher.sync_states()
        self.mark_ready("connected and synced")

    def request_shutdown(self, reason: str | None = None) -> None:
        """Ask `run_forever` to stop."""
        self.logger.info("Shutdown requested: %s", reason or "no reason given")
        self.shutdown_event.set()

    async def run_forever(self) -> None:
        """Start hassflow and run until shutdown is requested or the connection is lost."""
        asyncio.get_running_loop().set_debug(self.config.dev_mode)

        try:
            await self.start()
        except Exception:
            self.logger.error("Hassflow failed to start, shutting down")
            await self.shutdown()
            raise

        self.logger.info("Hassflow is running.")

        waiters = [
            self.task_bucket.spawn(self.shutdown_event.wait(), name="hassflow:wait_shutdown"),
            self.task_bucket.spawn(self.client.wait_closed(), name="hassflow:wait_connection"),
        ]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            if not self.shutdown_event.is_set():
                self.logger.error("Connection to Home Assistant lost, shutting down")
        except asyncio.CancelledError:
            self.logger.debug("Hassflow run loop cancelled")
            raise
        finally:
            for waiter in waiters:
                waiter.cancel()
            await self.shutdown()

        self.logger.info("Hassflow stopped.")

    async def on_shutdown(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

        await self.dispatcher.shutdown()
        await self.client.close()
