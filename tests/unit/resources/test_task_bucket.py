import asyncio
import contextlib
import logging

from hassflow.core.resources import TaskBucket


async def sleeper():
    try:
        await asyncio.sleep(10)  # long sleep; will be cancelled
    except asyncio.CancelledError:
        # simulate well-behaved cleanup
        await asyncio.sleep(0)
        raise


async def test_cancel_all_cancels_cooperative_tasks(bucket_fixture: TaskBucket):
    """cancel_all cooperatively stops tracked tasks."""
    cooperative_task = bucket_fixture.spawn(sleeper(), name="test:cooperative")
    await asyncio.sleep(0)  # let it start

    assert len(bucket_fixture) >= 1, f"bucket should track at least one task, tracks {len(bucket_fixture)}"

    await bucket_fixture.cancel_all()

    assert cooperative_task.done(), f"task should be done after cancel_all, is {cooperative_task._state}"
    assert cooperative_task.cancelled(), "task should be cancelled after cancel_all"


async def boom(event: asyncio.Event):
    await asyncio.sleep(0)
    event.set()
    raise RuntimeError("boom")


async def test_crash_is_logged(bucket_fixture: TaskBucket, caplog):
    """Task crashes are logged by the bucket."""
    task_started = asyncio.Event()
    caplog.set_level(logging.DEBUG, logger=bucket_fixture.logger.name)
    crashing_task = bucket_fixture.spawn(boom(task_started), name="test:exploder")

    await task_started.wait()
    await asyncio.sleep(0.05)  # let it crash and log

    log_messages = [record.getMessage() for record in caplog.records]

    if not any("exploder" in message and "crashed" in message for message in log_messages):
        raise AssertionError(f"No error log; logs were: {log_messages}")

    assert crashing_task.done(), f"task should be done after crash, is {crashing_task._state}"
    assert not crashing_task.cancelled(), "task should not be cancelled after crash"


async def stubborn(event: asyncio.Event):
    loop = asyncio.get_running_loop()
    end = loop.time() + 1  # longer than bucket timeout
    while loop.time() < end:
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.sleep(0.01)
    event.set()


async def test_warns_on_stubborn_tasks(bucket_fixture: TaskBucket, caplog):
    """Bucket logs a warning when tasks ignore cancellation."""
    stubborn_task_finished = asyncio.Event()
    caplog.set_level(logging.WARNING, logger=bucket_fixture.logger.name)
    stubborn_task_handle = bucket_fixture.spawn(stubborn(stubborn_task_finished), name="test:stubborn")

    await asyncio.sleep(0)

    await bucket_fixture.cancel_all()
    await stubborn_task_finished.wait()
    await asyncio.sleep(0)

    # the task may still be running (ignored cancel), but we should have warned
    warning_messages = [record.getMessage() for record in caplog.records if record.levelno == logging.WARNING]
    if not any("refused" in message for message in warning_messages):
        raise AssertionError(f"No stubborn warning; logs were: {warning_messages}")

    assert stubborn_task_handle.done(), f"task should be done after finishing, is {stubborn_task_handle._state}"
    assert not stubborn_task_handle.cancelled(), "task should not be cancelled after finishing"


async def test_unnamespaced_task_name_warns(bucket_fixture: TaskBucket, caplog):
    """Task names without a namespace are flagged."""
    caplog.set_level(logging.WARNING, logger=bucket_fixture.logger.name)

    task = bucket_fixture.spawn(sleeper(), name="plain")
    await bucket_fixture.cancel_all()

    assert task.get_name() == "plain", "Name should be kept as given"
    warning_messages = [record.getMessage() for record in caplog.records if record.levelno == logging.WARNING]
    assert any("namespaced" in message for message in warning_messages), f"Expected warning, got {warning_messages}"


async def test_prefix_namespaces_task_names(hassflow_offline):
    """A bucket with a prefix namespaces plain task names."""
    bucket = TaskBucket(hassflow_offline, name="prefixed", prefix="worker")

    task = bucket.spawn(sleeper(), name="job")
    await bucket.cancel_all()

    assert task.get_name() == "worker:job", f"Unexpected task name {task.get_name()}"
