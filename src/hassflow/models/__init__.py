from .events import StateChangedEvent
from .states import Context, State

__all__ = ["Context", "State", "StateChangedEvent"]
