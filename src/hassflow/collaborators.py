"""Interfaces for services that hassflow calls out to but does not implement."""

from typing import Protocol, runtime_checkable

from hassflow.models import State


@runtime_checkable
class StateRecorder(Protocol):
    """Receives every confirmed state change, e.g. to persist history or metrics."""

    async def record(self, entity_id: str, state: State | None) -> None: ...


@runtime_checkable
class DaylightProvider(Protocol):
    """Answers whether it is currently daytime at the configured location.

    Usable directly as an automation condition, e.g. `condition=lambda: not daylight.is_daytime()`.
    """

    def is_daytime(self) -> bool: ...
