import itertools
import json
from logging import getLogger
from typing import Any

from aiohttp import WSMsgType, web
from whenever import Instant

from hassflow.enums import STATE_CHANGED, MessageType
from hassflow.models import State

from .helpers import apply_service_call

LOGGER = getLogger(__name__)

HA_VERSION = "2024.1.0"


class SimpleHassServer:
    """A small Home Assistant websocket API server for tests.

    Handles authentication, `subscribe_events`, `call_service` and `get_states`. A service call is answered
    first, then a `state_changed` event is sent to every subscriber for each target entity.

    Behaviour can be adjusted per test:

    - `challenge_type`: type of the first frame sent after connecting.
    - `failing_services`: (domain, service) pairs answered with `success: false`.
    - `silent_types`: message types that never get an answer.
    """

    def __init__(self, *, port: int, token: str = "test-token", host: str = "127.0.0.1") -> None:
        self.host = host
        self.port = port
        self.token = token

        self.states: dict[str, State] = {}
        self.received: list[dict[str, Any]] = []

        self.challenge_type = MessageType.AUTH_REQUIRED.value
        self.failing_services: set[tuple[str, str]] = set()
        self.silent_types: set[str] = set()

        self._subscribers: list[tuple[web.WebSocketResponse, int]] = []
        self._connections: list[web.WebSocketResponse] = []
        self._runner: web.AppRunner | None = None
        self._context_seq = itertools.count(1)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def __aenter__(self) -> "SimpleHassServer":
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/api/websocket", self.handle_websocket)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        LOGGER.debug("Fake Home Assistant listening on %s", self.base_url)

    async def stop(self) -> None:
        await self.close_connections()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def close_connections(self) -> None:
        """Drop every client connection, as if Home Assistant went away."""
        for ws in list(self._connections):
            await ws.close()

    def set_state(self, entity_id: str, value: str | None, attributes: dict[str, Any] | None = None) -> State:
        """Set a state without telling subscribers, e.g. before the client connects."""
        now = Instant.now()
        state = State(
            entity_id=entity_id,
            state=value,
            attributes=attributes or {},
            last_changed=now,
            last_reported=now,
            last_updated=now,
        )
        self.states[entity_id] = state
        return state

    async def push_state(self, entity_id: str, value: str | None, attributes: dict[str, Any] | None = None) -> None:
        """Change a state and send `state_changed` to subscribers, like a change made outside hassflow."""
        old_state = self.states.get(entity_id)
        new_state = self.set_state(entity_id, value, attributes)
        await self._broadcast_state_changed(entity_id, old_state, new_state)

    def messages_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [message for message in self.received if message.get("type") == message_type]

    # --------- websocket handling
    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._connections.append(ws)

        try:
            if await self._authenticate(ws):
                async for msg in ws:
                    if msg.type != WSMsgType.TEXT:
                        continue
                    message = json.loads(msg.data)
                    self.received.append(message)
                    await self._handle_message(ws, message)
        finally:
            self._connections.remove(ws)
            self._subscribers = [(sub_ws, sub_id) for sub_ws, sub_id in self._subscribers if sub_ws is not ws]

        return ws

    async def _authenticate(self, ws: web.WebSocketResponse) -> bool:
        await ws.send_json({"type": self.challenge_type, "ha_version": HA_VERSION})

        msg = await ws.receive()
        if msg.type != WSMsgType.TEXT:
            return False

        message = json.loads(msg.data)
        self.received.append(message)
        if message.get("type") != MessageType.AUTH or message.get("access_token") != self.token:
            await ws.send_json({"type": MessageType.AUTH_INVALID, "message": "Invalid access token or password"})
            await ws.close()
            return False

        await ws.send_json({"type": MessageType.AUTH_OK, "ha_version": HA_VERSION})
        return True

    async def _handle_message(self, ws: web.WebSocketResponse, message: dict[str, Any]) -> None:
        message_type = message.get("type")
        message_id = message.get("id")

        if message_type in self.silent_types:
            LOGGER.debug("Not answering %s message %s", message_type, message_id)
            return

        if message_type == MessageType.SUBSCRIBE_EVENTS:
            self._subscribers.append((ws, message_id))  # pyright: ignore[reportArgumentType]
            await self._send_result(ws, message_id, None)

        elif message_type == MessageType.GET_STATES:
            await self._send_result(ws, message_id, [state.to_wire() for state in self.states.values()])

        elif message_type == MessageType.CALL_SERVICE:
            await self._handle_call_service(ws, message)

        else:
            await self._send_error(ws, message_id, "unknown_command", f"Unknown command {message_type!r}")

    async def _handle_call_service(self, ws: web.WebSocketResponse, message: dict[str, Any]) -> None:
        message_id = message.get("id")
        domain = message.get("domain", "")
        service = message.get("service", "")

        if (domain, service) in self.failing_services:
            await self._send_error(ws, message_id, "home_assistant_error", f"Service {domain}.{service} failed")
            return

        await self._send_result(ws, message_id, {"context": self._context()})

        service_data = dict(message.get("service_data") or {})
        entity_ids = service_data.pop("entity_id", [])
        if isinstance(entity_ids, str):
            entity_ids = [entity_ids]

        for entity_id in entity_ids:
            old_state = self.states.get(entity_id)
            new_state = apply_service_call(entity_id, service, service_data, old_state)
            self.states[entity_id] = new_state
            await self._broadcast_state_changed(entity_id, old_state, new_state)

    async def _broadcast_state_changed(self, entity_id: str, old_state: State | None, new_state: State) -> None:
        for ws, subscription_id in list(self._subscribers):
            if ws.closed:
                continue
            await ws.send_json(
                {
                    "id": subscription_id,
                    "type": MessageType.EVENT,
                    "event": {
                        "event_type": STATE_CHANGED,
                        "data": {
                            "entity_id": entity_id,
                            "old_state": old_state.to_wire() if old_state else None,
                            "new_state": new_state.to_wire(),
                        },
                        "origin": "LOCAL",
                        "time_fired": Instant.now().format_iso(),
                        "context": self._context(),
                    },
                }
            )

    def _context(self) -> dict[str, Any]:
        return {"id": f"ctx-{next(self._context_seq)}", "parent_id": None, "user_id": None}

    async def _send_result(self, ws: web.WebSocketResponse, message_id: Any, result: Any) -> None:
        await ws.send_json({"id": message_id, "type": MessageType.RESULT, "success": True, "result": result})

    async def _send_error(self, ws: web.WebSocketResponse, message_id: Any, code: str, message: str) -> None:
        await ws.send_json(
            {
                "id": message_id,
                "type": MessageType.RESULT,
                "success": False,
                "error": {"code": code, "message": message},
            }
        )

