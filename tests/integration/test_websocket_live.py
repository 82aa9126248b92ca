"""WebsocketClient against a local fake Home Assistant server."""

import asyncio
import typing

import pytest

from hassflow import Hassflow, StateChangedEvent
from hassflow.core.websocket_client import WebsocketClient
from hassflow.exceptions import (
    ConnectionClosedError,
    CouldNotFindHomeAssistantError,
    FailedMessageError,
    InvalidAuthError,
    ProtocolError,
    ResponseTimeoutError,
)
from hassflow.test_utils import SimpleHassServer, wait_for

if typing.TYPE_CHECKING:
    from hassflow import HassflowConfig


@pytest.fixture
async def client(hassflow_factory) -> typing.AsyncIterator[WebsocketClient]:
    """A websocket client that is not connected yet."""
    async with hassflow_factory() as hassflow:
        assert isinstance(hassflow.client, WebsocketClient)
        yield hassflow.client


async def test_handshake_succeeds(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """Connecting authenticates with the configured token."""
    await client.connect()

    assert client.connected, "Client should be connected"
    assert client.is_ready(), "Client should be ready after authenticating"
    assert hass_server.connection_count == 1, f"Expected one connection, got {hass_server.connection_count}"
    assert hass_server.received[0] == {"type": "auth", "access_token": "test-token"}, (
        f"Unexpected auth message {hass_server.received[0]}"
    )


async def test_bad_token_raises_invalid_auth(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """A rejected token raises InvalidAuthError and leaves the client disconnected."""
    hass_server.token = "some-other-token"

    with pytest.raises(InvalidAuthError):
        await client.connect()

    assert not client.connected, "Client should not stay connected after a failed handshake"
    assert not client.is_ready(), "Client should not be ready"


async def test_unexpected_challenge_raises_protocol_error(
    client: WebsocketClient, hass_server: SimpleHassServer
) -> None:
    """A first frame other than auth_required is a protocol error."""
    hass_server.challenge_type = "hello"

    with pytest.raises(ProtocolError):
        await client.connect()


async def test_unreachable_host_raises(test_config: "HassflowConfig") -> None:
    """Nothing listening at base_url raises CouldNotFindHomeAssistantError."""
    hassflow = Hassflow(test_config)
    try:
        assert isinstance(hassflow.client, WebsocketClient)
        with pytest.raises(CouldNotFindHomeAssistantError):
            await hassflow.client.connect()
    finally:
        await hassflow.shutdown()


async def test_call_service_is_correlated_by_id(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """A service call gets the result sent back for its own id."""
    await client.connect()

    result = await client.call_service("light", "turn_on", ["light.kitchen"], brightness=120)

    sent = hass_server.messages_of_type("call_service")
    assert len(sent) == 1, f"Expected one call_service message, got {sent}"
    assert sent[0]["service_data"] == {"entity_id": ["light.kitchen"], "brightness": 120}, (
        f"Unexpected service data {sent[0]['service_data']}"
    )
    assert isinstance(sent[0]["id"], int), "Request should carry an integer id"
    assert "context" in result, f"Result payload should be returned, got {result}"
    assert hass_server.states["light.kitchen"].value == "on", "Server should have applied the call"


async def test_missing_response_times_out(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """A request that is never answered raises ResponseTimeoutError and cleans up."""
    await client.connect()
    hass_server.silent_types.add("call_service")

    with pytest.raises(ResponseTimeoutError) as exc_info:
        await client.call_service("light", "turn_on", "light.kitchen")

    assert exc_info.value.message_id == hass_server.messages_of_type("call_service")[0]["id"], (
        "Error should name the message that timed out"
    )
    assert client._listeners == {}, "No listener should be left behind"
    assert client.is_ready(), "A timeout should not break the connection"


async def test_failed_result_raises(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """success: false raises FailedMessageError."""
    await client.connect()
    hass_server.failing_services.add(("light", "turn_on"))

    with pytest.raises(FailedMessageError):
        await client.call_service("light", "turn_on", "light.kitchen")


async def test_get_states(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """get_states returns every state known to the server."""
    hass_server.set_state("light.kitchen", "on", {"brightness": 40})
    hass_server.set_state("sensor.lux", "12")
    await client.connect()

    states = {state.entity_id: state for state in await client.get_states()}

    assert set(states) == {"light.kitchen", "sensor.lux"}, f"Unexpected states {states}"
    assert states["light.kitchen"].attributes == {"brightness": 40}
    assert states["light.kitchen"].last_changed is not None, "Timestamps should be parsed"


async def test_subscription_delivers_in_order(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """Subscription handlers see events in arrival order."""
    await client.connect()
    seen: list[str | None] = []

    async def handler(event) -> None:
        assert isinstance(event, StateChangedEvent)
        seen.append(event.new_state.value if event.new_state else None)

    subscription = await client.subscribe_events("state_changed", handler)
    assert subscription.active, "Subscription task should be running"

    for value in ("1", "2", "3", "4"):
        await hass_server.push_state("sensor.counter", value)

    await wait_for(lambda: len(seen) == 4, desc="four events")
    assert seen == ["1", "2", "3", "4"], f"Events should arrive in order, got {seen}"

    await subscription.close()
    assert not subscription.active, "Subscription should stop after close"


async def test_slow_handler_does_not_block_calls(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """A handler that is still busy does not stop responses from reaching other callers."""
    await client.connect()
    release = asyncio.Event()
    started = asyncio.Event()

    async def slow_handler(event) -> None:
        started.set()
        await release.wait()

    await client.subscribe_events("state_changed", slow_handler)
    await hass_server.push_state("sensor.busy", "on")
    await asyncio.wait_for(started.wait(), timeout=2)

    result = await client.call_service("light", "turn_on", "light.kitchen")

    assert "context" in result, "Call should complete while the handler is blocked"
    release.set()


async def test_failing_handler_keeps_subscription(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """An exception in a handler is logged and later events still arrive."""
    await client.connect()
    seen: list[str] = []

    async def handler(event) -> None:
        seen.append(event.entity_id)
        if len(seen) == 1:
            raise RuntimeError("first one fails")

    await client.subscribe_events("state_changed", handler)
    await hass_server.push_state("sensor.a", "1")
    await hass_server.push_state("sensor.b", "2")

    await wait_for(lambda: len(seen) == 2, desc="both events")
    assert seen == ["sensor.a", "sensor.b"]


async def test_server_disconnect_is_noticed(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """When the server goes away the client stops being ready and wait_closed returns."""
    await client.connect()

    await hass_server.close_connections()
    await asyncio.wait_for(client.wait_closed(), timeout=2)

    assert not client.is_ready(), "Client should not be ready after losing the connection"
    with pytest.raises(ConnectionClosedError):
        await client.call_service("light", "turn_on", "light.kitchen")


async def test_close_fails_pending_calls(client: WebsocketClient, hass_server: SimpleHassServer) -> None:
    """Closing the client fails calls still waiting for a response."""
    await client.connect()
    hass_server.silent_types.add("call_service")

    pending = asyncio.create_task(client.call_service("light", "turn_on", "light.kitchen"))
    await wait_for(lambda: bool(hass_server.messages_of_type("call_service")), desc="call to reach the server")

    await client.close()
    await client.close()

    with pytest.raises(ConnectionClosedError):
        await pending
    assert not client.connected, "Client should be disconnected after close"
