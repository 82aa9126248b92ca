import asyncio
import itertools

from whenever import Instant, TimeDelta

from .helpers import settle

ZERO = TimeDelta()

_Sleeper = tuple[Instant, int, "asyncio.Future[None]"]


class FakeClock:
    """Clock that only moves when told to.

    Waiters registered through `wait` are released by `advance`, earliest deadline first, and the event loop
    is given a chance to run everything that becomes ready before time moves on.
    """

    def __init__(self, start: Instant | None = None) -> None:
        self._now = start or Instant.from_utc(2024, 1, 1, 12)
        self._sleepers: list[_Sleeper] = []
        self._seq = itertools.count()

    def now(self) -> Instant:
        return self._now

    @property
    def pending(self) -> int:
        """Number of waiters that have not been released yet."""
        return sum(1 for _, _, future in self._sleepers if not future.done())

    async def wait(self, event: asyncio.Event, timeout: TimeDelta) -> bool:
        if event.is_set():
            return True
        if timeout <= ZERO:
            return False

        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()
        sleeper: _Sleeper = (self._now + timeout, next(self._seq), future)
        self._sleepers.append(sleeper)

        event_task = loop.create_task(event.wait())
        try:
            await asyncio.wait([event_task, future], return_when=asyncio.FIRST_COMPLETED)
        finally:
            event_task.cancel()
            future.cancel()
            self._sleepers = [s for s in self._sleepers if s is not sleeper]

        return event.is_set()

    async def advance(self, delta: TimeDelta) -> None:
        """Move time forward by `delta`, releasing due waiters in order."""
        target = self._now + delta

        while True:
            await settle()
            due = [s for s in self._sleepers if s[0] <= target and not s[2].done()]
            if not due:
                break

            deadline, _, future = min(due, key=lambda s: (s[0], s[1]))
            if deadline > self._now:
                self._now = deadline
            future.set_result(None)

        self._now = target
        await settle()
