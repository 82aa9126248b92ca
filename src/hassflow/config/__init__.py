from .core_config import HassflowConfig

__all__ = ["HassflowConfig"]
