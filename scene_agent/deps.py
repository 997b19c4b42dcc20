from __future__ import annotations

from scene_agent.services.turn_service import TurnService
from scene_agent.transport.channel import EventBus

_turn_service: TurnService | None = None
_event_bus: EventBus | None = None


def set_dependencies(turn_service: TurnService, event_bus: EventBus) -> None:
    global _turn_service, _event_bus
    _turn_service = turn_service
    _event_bus = event_bus


def get_turn_service() -> TurnService:
    if _turn_service is None:
        raise RuntimeError("TurnService not initialized")
    return _turn_service


def get_event_bus() -> EventBus:
    if _event_bus is None:
        raise RuntimeError("EventBus not initialized")
    return _event_bus
