import asyncio
import itertools
import json
import math
import typing
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import aiohttp
from aiohttp import WSMsgType
from aiohttp.client_exceptions import ClientConnectionResetError
from anyio import BrokenResourceError, ClosedResourceError, create_memory_object_stream
from pydantic import ValidationError

from hassflow.core.resources.base import Resource
from hassflow.enums import STATE_CHANGED, MessageType
from hassflow.exceptions import (
    ConnectionClosedError,
    CouldNotFindHomeAssistantError,
    FailedMessageError,
    InvalidAuthError,
    ProtocolError,
    ResourceNotReadyError,
    ResponseTimeoutError,
)
from hassflow.models import State, StateChangedEvent
from hassflow.utils import build_ws_url, maybe_await

if typing.TYPE_CHECKING:
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

    from hassflow import Hassflow

Frame = dict[str, Any]
EventHandler = Callable[[StateChangedEvent | Frame], Awaitable[Any] | Any]
Listener: typing.TypeAlias = "asyncio.Future[Frame] | MemoryObjectSendStream[Frame]"

CLOSED_MESSAGE_TYPES = (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR)


class Subscription:
    """Handle for an event subscription returned by `WebsocketClient.subscribe_events`."""

    def __init__(self, client: "WebsocketClient", message_id: int, event_type: str) -> None:
        self.client = client
        self.message_id = message_id
        self.event_type = event_type
        self.task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"<Subscription id={self.message_id} event_type={self.event_type}>"

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()

    async def close(self) -> None:
        """Stop delivering events to the handler.

        The hub side of the subscription ends with the connection.
        """
        await self.client._remove_listener(self.message_id)
        self.client._subscriptions.pop(self.message_id, None)
        if self.task is not None and not self.task.done():
            self.task.cancel()
            await asyncio.wait([self.task])


class WebsocketClient(Resource):
    """Client for the Home Assistant websocket API.

    Requests are correlated with responses by message id. A single read task routes every incoming frame
    to the listener registered for its id: a future for one-shot requests, or a memory stream for
    subscriptions.
    """

    def __init__(self, hassflow: "Hassflow") -> None:
        super().__init__(hassflow)

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._recv_task: asyncio.Task[None] | None = None

        self._seq = itertools.count(1)
        self._listeners: dict[int, Listener] = {}
        self._listener_lock = asyncio.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._closed_event = asyncio.Event()

    @property
    def url(self) -> str:
        """Websocket URL derived from the configured base URL."""
        return build_ws_url(self.hassflow.config)

    @property
    def connected(self) -> bool:
        """Whether the websocket is open."""
        return self._ws is not None and not self._ws.closed

    async def wait_closed(self) -> None:
        """Wait until the connection is lost or closed."""
        await self._closed_event.wait()

    def get_next_message_id(self) -> int:
        """Get the next message ID."""
        return next(self._seq)

    async def on_shutdown(self) -> None:
        await self.close()

    # --------- connection
    async def connect(self) -> None:
        """Open the websocket, authenticate and start the read task.

        Raises:
            CouldNotFindHomeAssistantError: If the host cannot be reached.
            InvalidAuthError: If Home Assistant rejects the token.
            ProtocolError: If the handshake does not follow the expected message flow.
        """
        if self.connected:
            self.logger.debug("Already connected to %s", self.url)
            return

        url = self.url
        config = self.hassflow.config
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, connect=config.websocket_connection_timeout_seconds)
        )

        try:
            self.logger.debug("Connecting to %s", url)
            try:
                self._ws = await self._session.ws_connect(url, heartbeat=config.websocket_heartbeat_interval_seconds)
            except aiohttp.WSServerHandshakeError as e:
                raise ProtocolError(f"Websocket handshake with {url} failed: {e.status} {e.message}") from e
            except (aiohttp.ClientConnectionError, TimeoutError) as e:
                raise CouldNotFindHomeAssistantError(config.base_url) from e

            try:
                await asyncio.wait_for(self.authenticate(), timeout=config.websocket_authentication_timeout_seconds)
            except TimeoutError as e:
                raise ProtocolError(
                    f"Authentication did not complete within {config.websocket_authentication_timeout_seconds}s"
                ) from e
        except BaseException:
            await self._close_transport()
            raise

        self._closed_event.clear()
        self._recv_task = self.task_bucket.spawn(self._recv_loop(), name="websocket:recv")
        self.mark_ready("connected and authenticated")
        self.logger.info("Connected to Home Assistant at %s", url)

    async def authenticate(self) -> None:
        """Authenticate with the Home Assistant WebSocket API."""
        msg = await self._receive_handshake_frame()
        if msg.get("type") != MessageType.AUTH_REQUIRED:
            raise ProtocolError(f"Expected '{MessageType.AUTH_REQUIRED}', got {msg.get('type')!r}")

        assert self._ws is not None
        await self._ws.send_json(
            {"type": MessageType.AUTH, "access_token": self.hassflow.config.token.get_secret_value()}
        )

        msg = await self._receive_handshake_frame()
        msg_type = msg.get("type")
        if msg_type == MessageType.AUTH_OK:
            self.logger.debug("Authenticated, Home Assistant version %s", msg.get("ha_version"))
            return
        if msg_type == MessageType.AUTH_INVALID:
            raise InvalidAuthError(msg.get("message") or "Authentication failed - invalid access token")

        raise ProtocolError(f"Unexpected authentication response {msg_type!r}")

    async def _receive_handshake_frame(self) -> Frame:
        assert self._ws is not None
        msg = await self._ws.receive()
        if msg.type != WSMsgType.TEXT:
            raise ProtocolError(f"Expected a text frame during authentication, got {msg.type!r}")

        try:
            data = json.loads(msg.data)
        except ValueError as e:
            raise ProtocolError("Received a non-JSON frame during authentication") from e

        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object during authentication, got {type(data).__name__}")
        return data

    async def close(self) -> None:
        """Stop the read task, fail pending calls and close the websocket. Safe to call repeatedly."""
        self.mark_not_ready("closing")

        if self._recv_task is not None and not self._recv_task.done():
            self._recv_task.cancel()
            await asyncio.wait([self._recv_task])
        self._recv_task = None

        for subscription in list(self._subscriptions.values()):
            await subscription.close()

        await self._fail_listeners(ConnectionClosedError("WebSocket client closed"))
        await self._close_transport()
        self._closed_event.set()

    async def _close_transport(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # --------- read task
    async def _recv_loop(self) -> None:
        assert self._ws is not None
        ws = self._ws
        reason = "connection closed by Home Assistant"

        try:
            while True:
                msg = await ws.receive()
                if msg.type in CLOSED_MESSAGE_TYPES:
                    self.logger.warning("WebSocket closed (type=%s)", msg.type.name)
                    break

                if msg.type != WSMsgType.TEXT:
                    self.logger.warning("Ignoring unexpected %s frame", msg.type.name)
                    continue

                try:
                    data = json.loads(msg.data)
                except ValueError:
                    self.logger.warning("Ignoring non-JSON frame: %r", msg.data)
                    continue

                # coalesced frames arrive as a list
                for frame in data if isinstance(data, list) else [data]:
                    await self._dispatch(frame)
        except asyncio.CancelledError:
            self.logger.debug("Read task cancelled")
            raise
        except Exception as e:
            reason = f"connection error: {e}"
            self.logger.error("WebSocket read failed: %s", e)

        self.mark_not_ready(reason)
        await self._fail_listeners(ConnectionClosedError(f"WebSocket {reason}"))
        self._closed_event.set()

    async def _dispatch(self, frame: Any) -> None:
        if not isinstance(frame, dict):
            self.logger.warning("Ignoring frame that is not a JSON object: %r", frame)
            return

        message_id = frame.get("id")
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            self.logger.warning("Ignoring frame without an integer id: %r", frame)
            return

        async with self._listener_lock:
            listener = self._listeners.get(message_id)
            if listener is None:
                self.logger.debug("No listener for message %d, dropping %s frame", message_id, frame.get("type"))
                return

            if isinstance(listener, asyncio.Future):
                if not listener.done():
                    listener.set_result(frame)
                return

            try:
                listener.send_nowait(frame)
            except (ClosedResourceError, BrokenResourceError):
                self.logger.debug("Subscription %d already closed, dropping frame", message_id)

    # --------- listeners
    async def _add_listener(self, message_id: int, listener: Listener) -> None:
        async with self._listener_lock:
            self._listeners[message_id] = listener

    async def _remove_listener(self, message_id: int) -> None:
        async with self._listener_lock:
            listener = self._listeners.pop(message_id, None)

        if listener is None:
            return
        if isinstance(listener, asyncio.Future):
            if not listener.done():
                listener.cancel()
        else:
            listener.close()

    async def _fail_listeners(self, exc: Exception) -> None:
        async with self._listener_lock:
            listeners = list(self._listeners.values())
            self._listeners.clear()

        for listener in listeners:
            if isinstance(listener, asyncio.Future):
                if not listener.done():
                    listener.set_exception(exc)
            else:
                listener.close()

    # --------- requests
    async def send_json(self, **data: Any) -> None:
        """Send a JSON-serializable message, adding a message id if missing.

        Raises:
            ResourceNotReadyError: If the client has not finished connecting.
            ConnectionClosedError: If the websocket is closed.
            FailedMessageError: If the message could not be sent.
        """
        if not self.connected:
            raise ConnectionClosedError("WebSocket connection is closed")

        if not self.is_ready():
            raise ResourceNotReadyError("WebSocket client is not ready")

        assert self._ws is not None
        if "id" not in data:
            data["id"] = self.get_next_message_id()

        self.logger.debug("Sending message: %s", data)
        try:
            await self._ws.send_json(data)
        except ClientConnectionResetError:
            self.logger.error("WebSocket connection reset while sending message")
            raise
        except Exception as e:
            raise FailedMessageError(f"Failed to send message {data.get('id')}: {e}") from e

    async def send_and_wait(self, **data: Any) -> Any:
        """Send a message and wait for the correlated result.

        Returns:
            Any: The `result` payload of the response.

        Raises:
            ResponseTimeoutError: If no response arrives within `websocket_response_timeout_seconds`.
            FailedMessageError: If Home Assistant reports `success: false`.
            ConnectionClosedError: If the connection is lost while waiting.
        """
        message_id = data["id"] = self.get_next_message_id()
        timeout = self.hassflow.config.websocket_response_timeout_seconds

        future: asyncio.Future[Frame] = asyncio.get_running_loop().create_future()
        await self._add_listener(message_id, future)
        try:
            await self.send_json(**data)
            try:
                response = await asyncio.wait_for(future, timeout=timeout)
            except TimeoutError as e:
                raise ResponseTimeoutError(message_id, timeout) from e
        finally:
            await self._remove_listener(message_id)

        if not response.get("success"):
            raise FailedMessageError.from_error_response(response.get("error"), data)
        return response.get("result")

    async def call_service(
        self, domain: str, service: str, entity_ids: str | Iterable[str], **attributes: Any
    ) -> Any:
        """Call a Home Assistant service.

        Args:
            domain (str): The service domain, e.g. 'light'.
            service (str): The service name, e.g. 'turn_on'.
            entity_ids (str | Iterable[str]): Target entity id or ids.
            **attributes: Extra service data, e.g. brightness.

        Returns:
            Any: The result payload from Home Assistant.
        """
        entity_ids = [entity_ids] if isinstance(entity_ids, str) else list(entity_ids)
        service_data = {"entity_id": entity_ids, **attributes}
        self.logger.debug("Calling %s.%s for %s with %s", domain, service, entity_ids, attributes)
        return await self.send_and_wait(
            type=MessageType.CALL_SERVICE, domain=domain, service=service, service_data=service_data
        )

    async def get_states(self) -> list[State]:
        """Fetch the current state of every entity."""
        result = await self.send_and_wait(type=MessageType.GET_STATES)
        states: list[State] = []
        for raw in result or []:
            try:
                states.append(State.model_validate(raw))
            except ValidationError as e:
                self.logger.warning("Skipping invalid state %r: %s", raw, e)
        return states

    async def subscribe_events(self, event_type: str, handler: EventHandler) -> Subscription:
        """Subscribe to Home Assistant events of one type.

        Events are delivered to `handler` one at a time in arrival order. `state_changed` frames are decoded
        into `StateChangedEvent`, other event types are passed as the raw event dict.

        Raises:
            ResponseTimeoutError: If the subscription is not acknowledged in time.
            ProtocolError: If Home Assistant rejects the subscription.
        """
        message_id = self.get_next_message_id()
        timeout = self.hassflow.config.websocket_response_timeout_seconds
        send_stream, receive_stream = create_memory_object_stream[Frame](math.inf)

        await self._add_listener(message_id, send_stream)
        try:
            await self.send_json(id=message_id, type=MessageType.SUBSCRIBE_EVENTS, event_type=event_type)
            try:
                ack = await asyncio.wait_for(receive_stream.receive(), timeout=timeout)
            except TimeoutError as e:
                raise ResponseTimeoutError(message_id, timeout) from e

            if ack.get("type") != MessageType.RESULT or not ack.get("success"):
                raise ProtocolError(f"Subscription to '{event_type}' was rejected: {ack.get('error')}")
        except BaseException:
            await self._remove_listener(message_id)
            receive_stream.close()
            raise

        subscription = Subscription(self, message_id, event_type)
        subscription.task = self.task_bucket.spawn(
            self._consume(subscription, receive_stream, handler), name=f"websocket:subscription_{message_id}"
        )
        self._subscriptions[message_id] = subscription
        self.logger.debug("Subscribed to '%s' (id=%d)", event_type, message_id)
        return subscription

    async def _consume(
        self, subscription: Subscription, stream: "MemoryObjectReceiveStream[Frame]", handler: EventHandler
    ) -> None:
        async with stream:
            async for frame in stream:
                event = self._decode_event(frame)
                if event is None:
                    continue

                try:
                    await maybe_await(handler, event)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    self.logger.exception("Error handling %s event on %r", subscription.event_type, subscription)

        self.logger.debug("%r ended", subscription)

    def _decode_event(self, frame: Frame) -> StateChangedEvent | Frame | None:
        if frame.get("type") != MessageType.EVENT:
            self.logger.debug("Ignoring %s frame on subscription %s", frame.get("type"), frame.get("id"))
            return None

        payload = frame.get("event") or {}
        if payload.get("event_type") != STATE_CHANGED:
            return payload

        try:
            return StateChangedEvent.model_validate(payload)
        except ValidationError as e:
            self.logger.warning("Ignoring malformed state_changed event: %s", e)
            return None
