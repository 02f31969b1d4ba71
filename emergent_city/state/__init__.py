"""Progression state models, persistence and events."""

from .schema import (
    ChoicePattern,
    ChoiceRatios,
    City,
    Ending,
    EmergentProperty,
    FinalChoicePhase,
    Moment,
    MomentContext,
    MomentType,
    NarrativeFlag,
    ProgressionState,
    RelationType,
    ThreadRelationship,
    ThreadType,
    UrbanThread,
)
from .store import ProgressionStore, JsonProgressionStore, MemoryProgressionStore
from .event_bus import EventBus, EventType, NarrativeEvent, get_event_bus, reset_event_bus

__all__ = [
    "ChoicePattern",
    "ChoiceRatios",
    "City",
    "Ending",
    "EmergentProperty",
    "FinalChoicePhase",
    "Moment",
    "MomentContext",
    "MomentType",
    "NarrativeFlag",
    "ProgressionState",
    "RelationType",
    "ThreadRelationship",
    "ThreadType",
    "UrbanThread",
    "ProgressionStore",
    "JsonProgressionStore",
    "MemoryProgressionStore",
    "EventBus",
    "EventType",
    "NarrativeEvent",
    "get_event_bus",
    "reset_event_bus",
]
