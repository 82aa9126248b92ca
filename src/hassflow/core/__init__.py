from .clock import Clock, LoopClock
from .core import HassClient, Hassflow
from .dispatcher import Dispatcher
from .registry import EntityRegistry, discover_entities
from .timer import Timer
from .websocket_client import Subscription, WebsocketClient

__all__ = [
    "Clock",
    "Dispatcher",
    "EntityRegistry",
    "HassClient",
    "Hassflow",
    "LoopClock",
    "Subscription",
    "Timer",
    "WebsocketClient",
    "discover_entities",
]
