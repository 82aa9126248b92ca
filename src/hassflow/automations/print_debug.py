import typing

from hassflow.automations.base import Automation
from hassflow.entities.protocols import member_entity_ids

if typing.TYPE_CHECKING:
    from hassflow.entities.protocols import EntityLike


class PrintDebug(Automation):
    """Log the state of every watched entity whenever one of them changes."""

    def __init__(self, name: str, *entities: "EntityLike") -> None:
        super().__init__(name)
        self.entities = list(entities)

    def trigger_entity_ids(self) -> list[str]:
        return [entity_id for entity in self.entities for entity_id in member_entity_ids(entity)]

    async def action(self, trigger: "EntityLike") -> None:
        for entity in self.entities:
            self.logger.info("[%s] Entity %s state: %r", self.name, entity.entity_id, entity.state)
