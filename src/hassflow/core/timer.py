import asyncio
import typing
from collections.abc import Awaitable, Callable
from logging import getLogger
from typing import Any

from whenever import Instant, TimeDelta

from hassflow.utils import maybe_await

if typing.TYPE_CHECKING:
    from fair_async_rlock import FairAsyncRLock

    from hassflow.core.clock import Clock
    from hassflow.core.resources.tasks import TaskBucket

LOGGER = getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any] | Any]

ZERO = TimeDelta()


class Timer:
    """A one-shot delayed callback that can be reset or cancelled.

    Each Timer owns at most one waiting task. Calling `start` again while a fire is pending moves the
    deadline and wakes the waiting task, it never schedules a second fire.

    When a lock is given, the fire acquires it and then checks again that it is still due, so a fire
    cannot interleave with work done under the same lock.
    """

    def __init__(
        self,
        clock: "Clock",
        task_bucket: "TaskBucket",
        *,
        name: str = "timer",
        lock: "FairAsyncRLock | None" = None,
    ) -> None:
        self.name = name
        self._clock = clock
        self._task_bucket = task_bucket
        self._lock = lock

        self._callback: TimerCallback | None = None
        self._deadline: Instant | None = None
        self._pending = False
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"<Timer name={self.name} running={self._pending} deadline={self._deadline}>"

    @property
    def deadline(self) -> Instant | None:
        """Instant the pending fire is due at, or None if nothing is pending."""
        return self._deadline if self._pending else None

    def is_running(self) -> bool:
        """Return True while a fire is pending."""
        return self._pending

    def start(self, callback: TimerCallback, duration: TimeDelta) -> None:
        """Arm the timer, replacing any pending fire.

        Args:
            callback (TimerCallback): Function or coroutine function to run when the timer fires.
            duration (TimeDelta): Delay from now until the fire.
        """
        self._callback = callback
        self._deadline = self._clock.now() + duration
        self._pending = True

        if self._task is None or self._task.done():
            self._wakeup.clear()
            self._task = self._task_bucket.spawn(self._run(), name=f"timer:{self.name}")
        else:
            self._wakeup.set()

    def cancel(self) -> None:
        """Drop the pending fire, if any."""
        if not self._pending:
            return

        self._pending = False
        self._deadline = None
        self._wakeup.set()

    def _remaining(self) -> TimeDelta:
        assert self._deadline is not None
        return self._deadline - self._clock.now()

    async def _run(self) -> None:
        while self._pending:
            remaining = self._remaining()
            if remaining > ZERO:
                self._wakeup.clear()
                await self._clock.wait(self._wakeup, remaining)
                continue

            if self._lock is None:
                await self._fire()
                continue

            async with self._lock:
                # cancelled or moved while we waited for the lock
                if self._pending and self._remaining() <= ZERO:
                    await self._fire()

    async def _fire(self) -> None:
        callback = self._callback
        self._pending = False
        self._deadline = None
        self._callback = None

        if callback is None:
            return

        try:
            await maybe_await(callback)
        except Exception:
            LOGGER.exception("Timer '%s' callback failed", self.name)
