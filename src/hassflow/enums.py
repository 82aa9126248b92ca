from enum import StrEnum, auto


class ResourceStatus(StrEnum):
    """Enum for resource status."""

    NOT_STARTED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPED = auto()
    FAILED = auto()


class ResourceRole(StrEnum):
    """Enum for resource roles."""

    BASE = "Base"
    CORE = "Core"
    RESOURCE = "Resource"


class MessageType(StrEnum):
    """Home Assistant websocket message types used by hassflow."""

    AUTH = "auth"
    AUTH_REQUIRED = "auth_required"
    AUTH_OK = "auth_ok"
    AUTH_INVALID = "auth_invalid"
    CALL_SERVICE = "call_service"
    EVENT = "event"
    GET_STATES = "get_states"
    RESULT = "result"
    SUBSCRIBE_EVENTS = "subscribe_events"


STATE_CHANGED = "state_changed"
"""Event type for state change notifications."""
