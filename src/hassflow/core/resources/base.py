import asyncio
import typing
import uuid
from logging import Logger, getLogger
from typing import ClassVar, final

from hassflow.enums import ResourceRole, ResourceStatus

if typing.TYPE_CHECKING:
    from hassflow import Hassflow
    from hassflow.core.resources.tasks import TaskBucket


class _HassflowBase:
    unique_id: str
    """Unique identifier for the instance."""

    logger: Logger
    """Logger for the instance."""

    unique_name: str
    """Unique name for the instance."""

    class_name: typing.ClassVar[str]
    """Name of the class, set on subclassing."""

    role: typing.ClassVar[ResourceRole] = ResourceRole.BASE
    """Role of the resource, e.g. 'Core', 'Resource', etc."""

    hassflow: "Hassflow"
    """Reference to the Hassflow instance."""

    def __init_subclass__(cls) -> None:
        cls.class_name = cls.__name__

    def __init__(self, hassflow: "Hassflow", unique_name_prefix: str | None = None) -> None:
        """
        Initialize the class with a reference to the Hassflow instance.

        Args:
            hassflow (Hassflow): The Hassflow instance this resource belongs to.
            unique_name_prefix (str | None): Optional prefix for the unique name. If None, the class name is used.
        """
        self.unique_id = uuid.uuid4().hex
        self.unique_name = f"{unique_name_prefix or type(self).__name__}.{self.unique_id[:8]}"
        if unique_name_prefix == "hassflow":
            self.logger = getLogger("hassflow")
        else:
            self.logger = getLogger("hassflow").getChild(self.unique_name)

        self.hassflow = hassflow
        self.logger.debug("Creating instance of '%s'", self.class_name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} unique_name={self.unique_name}>"


class Resource(_HassflowBase):
    """Base class for long-lived hassflow components with a start/stop lifecycle."""

    role: ClassVar[ResourceRole] = ResourceRole.RESOURCE

    task_bucket: "TaskBucket"
    """Task bucket for managing tasks owned by this instance."""

    ready_event: asyncio.Event
    """Event to signal readiness of the instance."""

    _status: ResourceStatus = ResourceStatus.NOT_STARTED
    _shutting_down: bool = False
    _initializing: bool = False

    def __init__(
        self, hassflow: "Hassflow", unique_name_prefix: str | None = None, task_bucket: "TaskBucket | None" = None
    ) -> None:
        """
        Initialize the resource.

        Args:
            hassflow (Hassflow): The Hassflow instance this resource belongs to.
            unique_name_prefix (str | None): Optional prefix for the unique name. If None, the class name is used.
            task_bucket (TaskBucket | None): Optional TaskBucket for managing tasks. If None, a new one is created.
        """
        from hassflow.core.resources.tasks import TaskBucket

        super().__init__(hassflow, unique_name_prefix=unique_name_prefix)

        self.ready_event = asyncio.Event()
        self._status = ResourceStatus.NOT_STARTED
        self.task_bucket = task_bucket or TaskBucket(self.hassflow, name=self.unique_name)

    @property
    def status(self) -> ResourceStatus:
        return self._status

    # --------- readiness
    def mark_ready(self, reason: str | None = None) -> None:
        """Mark the instance as ready.

        Args:
            reason (str | None): Optional reason for readiness.
        """
        self.logger.debug("%s '%s' ready: %s", self.role, self.class_name, reason or "")
        self.ready_event.set()

    def mark_not_ready(self, reason: str | None = None) -> None:
        """Mark the instance as not ready.

        Args:
            reason (str | None): Optional reason for lack of readiness.
        """
        self.logger.debug("%s '%s' not ready: %s", self.role, self.class_name, reason or "")
        self.ready_event.clear()

    def is_ready(self) -> bool:
        """Check if the instance is ready."""
        return self.ready_event.is_set()

    async def wait_ready(self, timeout: float | None = None) -> None:
        """Wait until the instance is marked as ready.

        Args:
            timeout (float | None): Optional timeout in seconds to wait for readiness.
                                   If None, wait indefinitely.

        Raises:
            TimeoutError: If the timeout is reached before the instance is ready.
        """
        if timeout is None:
            await self.ready_event.wait()
        else:
            await asyncio.wait_for(self.ready_event.wait(), timeout)

    # --------- transitions
    def _set_status(self, status: ResourceStatus) -> None:
        if self._status == status:
            self.logger.debug("%s '%s' is already %s", self.role, self.class_name, status)
            return
        self.logger.debug("%s '%s' %s -> %s", self.role, self.class_name, self._status, status)
        self._status = status

    # --- developer-facing hooks (override as needed) -------------------
    async def before_initialize(self) -> None:
        """Optional: prepare to accept new work."""

    async def on_initialize(self) -> None:
        """Primary hook: perform your own initialization (sockets, subscriptions...)."""

    async def after_initialize(self) -> None:
        """Optional: finalize initialization, signal readiness, etc."""

    @final
    async def initialize(self) -> None:
        """Initialize the instance by calling the lifecycle hooks in order."""
        if self._initializing:
            return
        self._initializing = True

        self.logger.debug("Initializing '%s' %s", self.class_name, self.role)
        self._set_status(ResourceStatus.STARTING)

        try:
            for method in [self.before_initialize, self.on_initialize, self.after_initialize]:
                await method()
        except asyncio.CancelledError:
            self._set_status(ResourceStatus.FAILED)
            raise
        except Exception:
            self.logger.exception("%s '%s' failed to initialize", self.role, self.class_name)
            self._set_status(ResourceStatus.FAILED)
            self.mark_not_ready("Failed")
            raise
        else:
            self._set_status(ResourceStatus.RUNNING)
        finally:
            self._initializing = False

    async def before_shutdown(self) -> None:
        """Optional: stop accepting new work, signal loops to wind down, etc."""

    async def on_shutdown(self) -> None:
        """Primary hook: release your own stuff (sockets, subscriptions...)."""

    async def after_shutdown(self) -> None:
        """Optional: last-chance actions after on_shutdown, before cleanup."""

    @final
    async def shutdown(self) -> None:
        """Shutdown the instance by calling the lifecycle hooks in order."""
        if self._shutting_down:
            return
        self._shutting_down = True
        self.mark_not_ready("shutdown requested")

        try:
            for method in [self.before_shutdown, self.on_shutdown, self.after_shutdown]:
                try:
                    await method()
                except asyncio.CancelledError:
                    self.logger.warning(
                        "%s '%s' shutdown hook was cancelled, forcing cleanup", self.role, self.class_name
                    )
                    raise
                except Exception as e:
                    self.logger.exception("Error during shutdown of %s '%s': %s", self.role, self.class_name, e)
        finally:
            try:
                await self.cleanup()
            except Exception:
                self.logger.exception("Cleanup of %s '%s' failed", self.role, self.class_name)
            self._set_status(ResourceStatus.STOPPED)
            self._shutting_down = False

    async def cleanup(self) -> None:
        """Cancel tasks owned by the instance.

        This method is called during shutdown to ensure that all resources are properly released.
        """
        await self.task_bucket.cancel_all()
        self.logger.debug("Cleaned up resources for %s '%s'", self.role, self.class_name)
