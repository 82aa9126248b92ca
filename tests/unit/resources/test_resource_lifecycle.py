"""Tests for the Resource lifecycle hooks."""

import pytest

from hassflow import Hassflow
from hassflow.core.resources import Resource
from hassflow.enums import ResourceStatus


class RecordingResource(Resource):
    """Resource that records the hooks it runs."""

    def __init__(self, hassflow: Hassflow, fail_on: str | None = None) -> None:
        super().__init__(hassflow)
        self.calls: list[str] = []
        self.fail_on = fail_on

    async def _record(self, name: str) -> None:
        self.calls.append(name)
        if name == self.fail_on:
            raise RuntimeError(f"{name} failed")

    async def before_initialize(self) -> None:
        await self._record("before_initialize")

    async def on_initialize(self) -> None:
        await self._record("on_initialize")
        self.mark_ready("initialized")

    async def after_initialize(self) -> None:
        await self._record("after_initialize")

    async def before_shutdown(self) -> None:
        await self._record("before_shutdown")

    async def on_shutdown(self) -> None:
        await self._record("on_shutdown")

    async def after_shutdown(self) -> None:
        await self._record("after_shutdown")


async def test_hooks_run_in_order(hassflow_offline: Hassflow) -> None:
    """initialize and shutdown call their hooks in order and track status."""
    resource = RecordingResource(hassflow_offline)
    assert resource.status == ResourceStatus.NOT_STARTED

    await resource.initialize()
    assert resource.status == ResourceStatus.RUNNING, f"Expected RUNNING, got {resource.status}"
    assert resource.is_ready(), "Resource should be ready after on_initialize"

    await resource.shutdown()
    assert resource.status == ResourceStatus.STOPPED, f"Expected STOPPED, got {resource.status}"
    assert not resource.is_ready(), "Resource should not be ready after shutdown"
    assert resource.calls == [
        "before_initialize",
        "on_initialize",
        "after_initialize",
        "before_shutdown",
        "on_shutdown",
        "after_shutdown",
    ], f"Unexpected hook order {resource.calls}"


async def test_failed_initialize_reraises(hassflow_offline: Hassflow) -> None:
    """A failing hook marks the resource failed and propagates."""
    resource = RecordingResource(hassflow_offline, fail_on="on_initialize")

    with pytest.raises(RuntimeError, match="on_initialize failed"):
        await resource.initialize()

    assert resource.status == ResourceStatus.FAILED, f"Expected FAILED, got {resource.status}"
    assert not resource.is_ready(), "Failed resource should not be ready"
    assert "after_initialize" not in resource.calls, "Later hooks should not run after a failure"


async def test_failing_shutdown_hook_does_not_stop_the_rest(hassflow_offline: Hassflow) -> None:
    """Shutdown keeps going when a hook raises."""
    resource = RecordingResource(hassflow_offline, fail_on="on_shutdown")

    await resource.shutdown()

    assert resource.calls == ["before_shutdown", "on_shutdown", "after_shutdown"], f"Unexpected {resource.calls}"
    assert resource.status == ResourceStatus.STOPPED


async def test_logger_is_child_of_hassflow(hassflow_offline: Hassflow) -> None:
    """Resources log under a child of the hassflow logger named after the instance."""
    resource = RecordingResource(hassflow_offline)

    assert resource.logger.name == f"hassflow.{resource.unique_name}", f"Unexpected logger {resource.logger.name}"
    assert resource.unique_name.startswith("RecordingResource."), f"Unexpected name {resource.unique_name}"
    assert hassflow_offline.logger.name == "hassflow", "Hassflow itself logs on the root hassflow logger"


async def test_wait_ready(hassflow_offline: Hassflow) -> None:
    """wait_ready times out until the resource is marked ready."""
    resource = RecordingResource(hassflow_offline)

    with pytest.raises(TimeoutError):
        await resource.wait_ready(timeout=0.01)

    await resource.initialize()
    await resource.wait_ready(timeout=0.01)
    assert resource.is_ready(), "Resource should be ready after initialize"
