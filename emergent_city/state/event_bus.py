"""
Event bus for progression state changes.

Lets the presentation layer react to reveals, destructions and act
transitions without the engine knowing who is listening.

Usage:
    from .event_bus import get_event_bus, EventType

    bus = get_event_bus()
    bus.on(EventType.MOMENT_DESTROYED, my_handler)

    bus.emit(EventType.MOMENT_DESTROYED, moment_id="bridge_flowers", fragility=9)

    def my_handler(event: NarrativeEvent):
        print(f"Lost {event.data['moment_id']}")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Narrative events that can be published."""

    # Moment events
    MOMENT_REVEALED = "moment.revealed"
    MOMENT_DESTROYED = "moment.destroyed"
    MOMENT_REMEMBERED = "moment.remembered"

    # Choice events
    CHOICE_RECORDED = "choice.recorded"
    FLAG_SET = "flag.set"
    COMMAND_UNLOCKED = "command.unlocked"

    # Progression events
    ACT_ADVANCED = "act.advanced"
    ENDING_REACHED = "ending.reached"

    # City graph events
    EMERGENCE_OCCURRED = "emergence.occurred"
    STORY_BEAT_FIRED = "beat.fired"

    # Persistence events
    STATE_LOADED = "state.loaded"
    STATE_SAVED = "state.saved"


@dataclass
class NarrativeEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type (from EventType enum)
        data: Event-specific payload as dict
        state_id: ID of the progression state this event belongs to
        act: Act number when the event occurred
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    state_id: str = ""
    act: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


EventHandler = Callable[[NarrativeEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on emit(). A failing listener is
    logged and skipped so the command still completes.
    """

    def __init__(self):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[NarrativeEvent] = []
        self._history_limit = 100

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to an event type."""
        handlers = self._listeners.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        if handler in self._listeners.get(event_type, []):
            self._listeners[event_type].remove(handler)

    def emit(
        self,
        event_type: EventType,
        state_id: str = "",
        act: int = 0,
        **data,
    ) -> NarrativeEvent:
        """
        Emit an event to all subscribers.

        Returns:
            The emitted NarrativeEvent (for chaining/testing)
        """
        event = NarrativeEvent(type=event_type, data=data, state_id=state_id, act=act)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in event handler for {event_type.value}")

        return event

    def clear(self) -> None:
        """Clear all listeners. Useful for testing."""
        self._listeners.clear()

    def get_history(self, event_type: EventType | None = None) -> list[NarrativeEvent]:
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus. Useful for testing."""
    global _event_bus
    _event_bus = None
