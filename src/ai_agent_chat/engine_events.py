from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger


class EnginePhase(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"


@dataclass(frozen=True)
class EngineState:
    phase: EnginePhase
    session_id: str
    streaming_turn_id: str | None
    turn_count: int


@dataclass(frozen=True)
class EngineEvent:
    type: str
    state: EngineState
    turn_id: str | None = None
    payload: dict = field(default_factory=dict)


EngineObserver = Callable[[EngineEvent], None]


class EngineEvents:
    """Synchronous fan-out of engine notifications to read-only observers."""

    def __init__(self) -> None:
        self._observers: list[EngineObserver] = []

    def subscribe(self, observer: EngineObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def emit(self, event: EngineEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception as ex:
                logger.warning(f"Observer failed on {event.type}: {ex}")
