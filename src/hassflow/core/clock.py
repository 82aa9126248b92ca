import asyncio
import typing

from whenever import Instant, TimeDelta


@typing.runtime_checkable
class Clock(typing.Protocol):
    """Time source used by timers and automations.

    Everything that waits or reads the time takes a Clock, so tests can swap in a fake one.
    """

    def now(self) -> Instant:
        """Return the current instant."""
        ...

    async def wait(self, event: asyncio.Event, timeout: TimeDelta) -> bool:
        """Wait until `event` is set or `timeout` elapses.

        Returns:
            bool: True if the event was set, False if the timeout elapsed first.
        """
        ...


class LoopClock:
    """Clock backed by the wall clock and the running event loop."""

    def now(self) -> Instant:
        return Instant.now()

    async def wait(self, event: asyncio.Event, timeout: TimeDelta) -> bool:
        seconds = timeout.in_seconds()
        if seconds <= 0:
            return event.is_set()

        try:
            await asyncio.wait_for(event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True
