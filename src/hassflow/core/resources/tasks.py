import asyncio
import typing
import weakref
from collections.abc import Coroutine
from typing import Any, TypeVar

from hassflow.core.resources.base import _HassflowBase

if typing.TYPE_CHECKING:
    from hassflow import Hassflow

T = TypeVar("T", covariant=True)

CoroLikeT = Coroutine[Any, Any, T]


class TaskBucket(_HassflowBase):
    """Track and clean up a set of tasks for a resource or automation."""

    def __init__(
        self,
        hassflow: "Hassflow",
        name: str,
        cancellation_timeout: int | float | None = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize the TaskBucket.

        Args:
            hassflow (Hassflow): The Hassflow instance this bucket is associated with.
            name (str): Name of the bucket, used for logging.
            cancellation_timeout (int | float | None): Timeout for task cancellation. If None, uses default from config.
            prefix (str | None): Optional prefix for task names, if provided task name is not namespaced.
        """

        super().__init__(hassflow, unique_name_prefix=f"{name}.bucket")

        self.name = name
        self.prefix = prefix
        self.logger.setLevel(self.hassflow.config.task_bucket_log_level)

        self.cancel_timeout = cancellation_timeout or self.hassflow.config.task_cancellation_timeout_seconds
        self._tasks: weakref.WeakSet[asyncio.Task[Any]] = weakref.WeakSet()

    def add(self, task: asyncio.Task[Any]) -> None:
        """Add a task to the bucket and attach exception logging."""
        self.logger.debug("Adding task %s to bucket %s", task.get_name(), self.unique_name)

        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            try:
                exc = t.exception()
            except asyncio.CancelledError:
                return
            if exc:
                self.logger.error("[%s] task %s crashed", self.unique_name, t.get_name(), exc_info=exc)

        task.add_done_callback(lambda t: self._tasks.discard(t))
        task.add_done_callback(_done)

    def spawn(self, coro: CoroLikeT, *, name: str | None = None) -> asyncio.Task[Any]:
        """Convenience: create and track a new task."""
        if name and ":" not in name:
            if self.prefix:
                name = f"{self.prefix}:{name}"
            else:
                self.logger.warning("Tasks should be namespaced with ':' or a prefix should be provided (%s)", name)

        task = asyncio.create_task(coro, name=name)
        self.add(task)
        return task

    async def cancel_all(self) -> None:
        """Cancel all tracked tasks, wait for them to finish, and log stragglers."""
        # snapshot, because self._tasks is weak
        current = asyncio.current_task()
        tasks = [t for t in list(self._tasks) if not t.done() and t is not current]

        if not tasks:
            self.logger.debug("No tasks to cancel in bucket %s", self.name)
            return

        self.logger.debug("Cancelling %d tasks in bucket %s", len(tasks), self.name)
        for t in tasks:
            t.cancel()

        done, pending = await asyncio.wait(tasks, timeout=self.cancel_timeout)
        self.logger.debug("%d tasks done, %d still pending in bucket %s", len(done), len(pending), self.name)

        for t in done:
            if t.cancelled():
                continue
            exc = t.exception()
            if exc:
                self.logger.warning("[%s] task %s errored during shutdown: %r", self.name, t.get_name(), exc)

        for t in pending:
            self.logger.warning(
                "[%s] task %s refused to die within %.1fs", self.name, t.get_name(), self.cancel_timeout
            )

    def __len__(self) -> int:
        return len(self._tasks)
