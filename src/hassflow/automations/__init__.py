from .base import Automation, FunctionAutomation
from .button import Button
from .print_debug import PrintDebug
from .sensors_trigger_lights import ConditionScene, SensorsTriggerLights
from .timer_automation import TimerAutomation

__all__ = [
    "Automation",
    "Button",
    "ConditionScene",
    "FunctionAutomation",
    "PrintDebug",
    "SensorsTriggerLights",
    "TimerAutomation",
]
