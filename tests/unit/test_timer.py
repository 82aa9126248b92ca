import logging

import pytest
from fair_async_rlock import FairAsyncRLock
from whenever import TimeDelta

from hassflow import Hassflow
from hassflow.core.timer import Timer
from hassflow.test_utils import FakeClock, settle


@pytest.fixture
def make_timer(hassflow_offline: Hassflow, fake_clock: FakeClock):
    def _make(name: str = "test", lock: FairAsyncRLock | None = None) -> Timer:
        return Timer(fake_clock, hassflow_offline.task_bucket, name=name, lock=lock)

    return _make


async def test_timer_fires_once_after_duration(make_timer, fake_clock: FakeClock) -> None:
    """A started timer fires exactly once when its duration has passed."""
    fired: list[int] = []
    timer = make_timer()

    timer.start(lambda: fired.append(1), TimeDelta(seconds=10))
    assert timer.is_running(), "Timer should be running right after start"
    assert timer.deadline == fake_clock.now() + TimeDelta(seconds=10), "Deadline should be now + duration"

    await fake_clock.advance(TimeDelta(seconds=9))
    assert fired == [], "Timer should not fire before its deadline"

    await fake_clock.advance(TimeDelta(seconds=1))
    assert fired == [1], f"Timer should fire exactly once, fired {len(fired)} times"
    assert not timer.is_running(), "Timer should not be running after firing"
    assert timer.deadline is None, "Deadline should be cleared after firing"

    await fake_clock.advance(TimeDelta(minutes=5))
    assert fired == [1], "Timer should not fire again without being restarted"


async def test_start_again_resets_instead_of_stacking(make_timer, fake_clock: FakeClock) -> None:
    """Starting an armed timer moves its deadline, it never schedules a second fire."""
    fired: list[str] = []
    timer = make_timer()

    timer.start(lambda: fired.append("first"), TimeDelta(seconds=10))
    await fake_clock.advance(TimeDelta(seconds=5))
    timer.start(lambda: fired.append("second"), TimeDelta(seconds=10))

    await fake_clock.advance(TimeDelta(seconds=6))
    assert fired == [], "Original deadline should have been replaced by the reset"
    assert timer.is_running(), "Timer should still be pending after the original deadline"

    await fake_clock.advance(TimeDelta(seconds=4))
    assert fired == ["second"], f"Only the latest callback should run once, got {fired}"
    assert fake_clock.pending == 0, "No waiters should be left behind"


async def test_is_running_false_inside_callback(make_timer, fake_clock: FakeClock) -> None:
    """The timer reports not running by the time its callback executes."""
    observed: list[bool] = []
    timer = make_timer()

    async def callback() -> None:
        observed.append(timer.is_running())

    timer.start(callback, TimeDelta(seconds=1))
    await fake_clock.advance(TimeDelta(seconds=1))

    assert observed == [False], f"Timer should not be running inside its callback, saw {observed}"


async def test_cancel_prevents_fire(make_timer, fake_clock: FakeClock) -> None:
    """A cancelled timer does not fire, and cancelling an idle timer is a no-op."""
    fired: list[int] = []
    timer = make_timer()

    timer.cancel()
    assert not timer.is_running(), "Cancelling an idle timer should leave it idle"

    timer.start(lambda: fired.append(1), TimeDelta(seconds=3))
    await fake_clock.advance(TimeDelta(seconds=1))
    timer.cancel()
    await fake_clock.advance(TimeDelta(seconds=10))

    assert fired == [], "Cancelled timer should not fire"
    assert not timer.is_running(), "Cancelled timer should not be running"


async def test_timer_can_be_restarted_after_firing(make_timer, fake_clock: FakeClock) -> None:
    """A timer that fired can be started again and fires again."""
    fired: list[int] = []
    timer = make_timer()

    timer.start(lambda: fired.append(1), TimeDelta(seconds=1))
    await fake_clock.advance(TimeDelta(seconds=1))
    timer.start(lambda: fired.append(2), TimeDelta(seconds=1))
    await fake_clock.advance(TimeDelta(seconds=1))

    assert fired == [1, 2], f"Timer should fire once per start, got {fired}"


async def test_fire_waits_for_lock_and_rechecks(make_timer, fake_clock: FakeClock) -> None:
    """A fire that becomes due while the lock is held is dropped if cancelled before it gets the lock."""
    fired: list[int] = []
    lock = FairAsyncRLock()
    timer = make_timer(lock=lock)

    timer.start(lambda: fired.append(1), TimeDelta(seconds=1))

    async with lock:
        await fake_clock.advance(TimeDelta(seconds=2))
        assert fired == [], "Timer should not fire while another task holds the lock"
        timer.cancel()

    await settle()
    assert fired == [], "Timer cancelled while waiting for the lock should not fire"


async def test_fire_waits_for_lock_then_runs(make_timer, fake_clock: FakeClock) -> None:
    """A due fire runs as soon as the lock is released."""
    fired: list[int] = []
    lock = FairAsyncRLock()
    timer = make_timer(lock=lock)

    timer.start(lambda: fired.append(1), TimeDelta(seconds=1))

    async with lock:
        await fake_clock.advance(TimeDelta(seconds=2))
        assert fired == [], "Timer should not fire while another task holds the lock"

    await settle()
    assert fired == [1], "Timer should fire once the lock is released"


async def test_failing_callback_is_logged(make_timer, fake_clock: FakeClock, caplog) -> None:
    """An exception from the callback is logged and does not break the timer."""
    caplog.set_level(logging.ERROR)
    timer = make_timer(name="exploder")

    def boom() -> None:
        raise RuntimeError("boom")

    timer.start(boom, TimeDelta(seconds=1))
    await fake_clock.advance(TimeDelta(seconds=1))

    messages = [record.getMessage() for record in caplog.records]
    assert any("exploder" in message and "failed" in message for message in messages), (
        f"Expected callback failure to be logged, logs were: {messages}"
    )

    fired: list[int] = []
    timer.start(lambda: fired.append(1), TimeDelta(seconds=1))
    await fake_clock.advance(TimeDelta(seconds=1))
    assert fired == [1], "Timer should still work after a failing callback"
