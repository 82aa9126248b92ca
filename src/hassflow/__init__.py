from .automations import (
    Automation,
    Button,
    ConditionScene,
    FunctionAutomation,
    PrintDebug,
    SensorsTriggerLights,
    TimerAutomation,
)
from .collaborators import DaylightProvider, StateRecorder
from .config import HassflowConfig
from .core import Dispatcher, Hassflow, Timer, WebsocketClient, discover_entities
from .entities import BinarySensor, Entity, EntityLike, InputBoolean, Light, LightGroup, LightLike, LightSensor
from .models import State, StateChangedEvent

__all__ = [
    "Automation",
    "BinarySensor",
    "Button",
    "ConditionScene",
    "DaylightProvider",
    "Dispatcher",
    "Entity",
    "EntityLike",
    "FunctionAutomation",
    "Hassflow",
    "HassflowConfig",
    "InputBoolean",
    "Light",
    "LightGroup",
    "LightLike",
    "LightSensor",
    "PrintDebug",
    "SensorsTriggerLights",
    "State",
    "StateChangedEvent",
    "StateRecorder",
    "Timer",
    "TimerAutomation",
    "WebsocketClient",
    "discover_entities",
]
