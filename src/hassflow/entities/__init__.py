from .base import Entity, SwitchableEntity
from .light import Light, LightGroup
from .protocols import EntityLike, LightLike, member_entity_ids
from .sensors import BinarySensor, InputBoolean, LightSensor

__all__ = [
    "BinarySensor",
    "Entity",
    "EntityLike",
    "InputBoolean",
    "Light",
    "LightGroup",
    "LightLike",
    "LightSensor",
    "SwitchableEntity",
    "member_entity_ids",
]
