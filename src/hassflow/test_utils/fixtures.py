import contextlib
import typing
from typing import TYPE_CHECKING

import pytest

from hassflow import Hassflow

from .clock import FakeClock
from .hass_server import SimpleHassServer
from .recording_client import RecordingClient

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from hassflow import HassflowConfig


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_client() -> RecordingClient:
    return RecordingClient()


@pytest.fixture
async def hassflow_offline(
    test_config: "HassflowConfig", fake_clock: FakeClock, recording_client: RecordingClient
) -> "AsyncIterator[Hassflow]":
    """A Hassflow wired to a RecordingClient and a FakeClock, not yet started."""
    hassflow = Hassflow(test_config, clock=fake_clock, client=recording_client)
    try:
        yield hassflow
    finally:
        await hassflow.shutdown()


@pytest.fixture
async def hass_server(unused_tcp_port_factory, test_config: "HassflowConfig") -> "AsyncIterator[SimpleHassServer]":
    """A running SimpleHassServer that accepts the test token."""
    async with SimpleHassServer(port=unused_tcp_port_factory(), token=test_config.token.get_secret_value()) as server:
        yield server


@pytest.fixture
def server_config(
    hass_server: SimpleHassServer, test_config: "HassflowConfig"
) -> "HassflowConfig":
    """Test configuration pointing at `hass_server`."""
    return test_config.model_copy(update={"base_url": hass_server.base_url})


@pytest.fixture
def hassflow_factory(
    server_config: "HassflowConfig",
) -> "Callable[..., contextlib.AbstractAsyncContextManager[Hassflow]]":
    """Build a Hassflow connected to `hass_server`, shut down on exit."""

    @contextlib.asynccontextmanager
    async def _factory(**kwargs: typing.Any) -> "AsyncIterator[Hassflow]":
        hassflow = Hassflow(server_config, **kwargs)
        try:
            yield hassflow
        finally:
            await hassflow.shutdown()

    return _factory
