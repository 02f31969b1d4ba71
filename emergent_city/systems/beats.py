"""
Story beats: narrative moments triggered by the city graph.

A beat pairs a trigger (thread counts, relationships, synergy, tension,
coherence, complexity or a named emergent property) with dialogue and
optional effects. One-time beats fire once per tracker.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field

from ..state.event_bus import get_event_bus, EventType
from ..state.schema import City, ThreadType, clamp

logger = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    THREAD_CREATED = "threadCreated"
    THREAD_CREATED_TYPE = "threadCreatedType"
    RELATIONSHIP_FORMED = "relationshipFormed"
    EMERGENT_PROPERTY = "emergentProperty"
    SYNERGY = "synergy"
    TENSION = "tension"
    CITY_COHERENCE = "cityCoherence"
    THREAD_COMPLEXITY = "threadComplexity"


class BeatTrigger(BaseModel):
    """
    Flat trigger record; which fields matter depends on `type`.

    threadCreated: count
    threadCreatedType: thread_type, count
    relationshipFormed: type1, type2
    emergentProperty: name
    synergy / tension: type1, type2, threshold
    cityCoherence: threshold
    threadComplexity: thread_type, threshold
    """
    type: TriggerKind
    count: int | None = None
    thread_type: ThreadType | None = None
    type1: ThreadType | None = None
    type2: ThreadType | None = None
    name: str | None = None
    threshold: float | None = None


class DialogueLine(BaseModel):
    speaker: str = "city"
    text: str
    emotional_tone: str | None = None
    tags: list[str] = Field(default_factory=list)


class BeatEffects(BaseModel):
    city_coherence: float | None = None
    city_complexity: float | None = None
    thread_coherence: dict[ThreadType, float] | None = None
    thread_complexity: dict[ThreadType, float] | None = None


class StoryBeat(BaseModel):
    id: str
    name: str
    trigger: BeatTrigger
    dialogue: list[DialogueLine] = Field(default_factory=list)
    effects: BeatEffects | None = None
    one_time_only: bool = True


# -----------------------------------------------------------------------------
# Trigger evaluation
# -----------------------------------------------------------------------------

def _pairs(city: City, type1: ThreadType, type2: ThreadType):
    """Yield relationships from type1 threads to type2 threads."""
    targets = {t.id for t in city.threads_of(type2)}
    for thread in city.threads_of(type1):
        for relationship in thread.relationships:
            if relationship.other_thread_id in targets:
                yield relationship


def _average(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def _at_least(value: float | None, threshold: float | None) -> bool:
    return value is not None and threshold is not None and value >= threshold


def evaluate_trigger(trigger: BeatTrigger, city: City) -> bool:
    kind = trigger.type

    if kind == TriggerKind.THREAD_CREATED:
        return len(city.threads) == trigger.count

    if kind == TriggerKind.THREAD_CREATED_TYPE:
        return len(city.threads_of(trigger.thread_type)) == trigger.count

    if kind == TriggerKind.RELATIONSHIP_FORMED:
        return any(True for _ in _pairs(city, trigger.type1, trigger.type2))

    if kind == TriggerKind.EMERGENT_PROPERTY:
        return trigger.name is not None and city.has_emerged(trigger.name)

    if kind == TriggerKind.SYNERGY:
        synergies = [r.synergy for r in _pairs(city, trigger.type1, trigger.type2)]
        return _at_least(_average(synergies), trigger.threshold)

    if kind == TriggerKind.TENSION:
        # Tension is the negative part of synergy
        tensions = [abs(min(0.0, r.synergy)) for r in _pairs(city, trigger.type1, trigger.type2)]
        return _at_least(_average(tensions), trigger.threshold)

    if kind == TriggerKind.CITY_COHERENCE:
        return _at_least(city.resource("coherence"), trigger.threshold)

    if kind == TriggerKind.THREAD_COMPLEXITY:
        threads = city.threads_of(trigger.thread_type)
        return _at_least(_average([t.complexity for t in threads]) or 0.0, trigger.threshold)

    return False


def _apply_to_threads(
    city: City,
    deltas: dict[ThreadType, float],
    attribute: str,
) -> None:
    for thread_type, delta in deltas.items():
        for thread in city.threads_of(thread_type):
            setattr(thread, attribute, clamp(getattr(thread, attribute) + delta))


def apply_effects(effects: BeatEffects, city: City) -> None:
    """Apply a beat's effects to the city, clamping every value to [0, 1]."""
    if effects.city_coherence is not None:
        city.adjust_resource("coherence", effects.city_coherence)
    if effects.city_complexity is not None:
        city.adjust_resource("complexity", effects.city_complexity)
    if effects.thread_coherence:
        _apply_to_threads(city, effects.thread_coherence, "coherence")
    if effects.thread_complexity:
        _apply_to_threads(city, effects.thread_complexity, "complexity")


class StoryBeatTracker:
    """
    Tracks which beats have fired and checks triggers against a city.

    The tracker holds the occurred set; beats themselves stay read-only.
    """

    def __init__(self, beats: list[StoryBeat]):
        self.beats = list(beats)
        self.occurred: set[str] = set()

    def check_triggers(self, city: City, apply: bool = True) -> list[StoryBeat]:
        """Return beats that fire now, applying their effects unless told not to."""
        fired = []
        for beat in self.beats:
            if beat.one_time_only and beat.id in self.occurred:
                continue
            if not evaluate_trigger(beat.trigger, city):
                continue
            self._fire(beat, city, apply)
            fired.append(beat)

        return fired

    def trigger(self, beat_id: str, city: City, apply: bool = True) -> StoryBeat | None:
        """Fire a beat by id regardless of its trigger (emergence rules name one)."""
        beat = self.get_beat(beat_id)
        if beat is None:
            logger.warning(f"Unknown story beat {beat_id!r}")
            return None
        if beat.one_time_only and beat.id in self.occurred:
            return None
        self._fire(beat, city, apply)
        return beat

    def _fire(self, beat: StoryBeat, city: City, apply: bool) -> None:
        self.occurred.add(beat.id)
        if apply and beat.effects is not None:
            apply_effects(beat.effects, city)

        logger.info(f"Story beat fired: {beat.id}")
        get_event_bus().emit(EventType.STORY_BEAT_FIRED, beat_id=beat.id, name=beat.name)

    def get_beat(self, beat_id: str) -> StoryBeat | None:
        for beat in self.beats:
            if beat.id == beat_id:
                return beat
        return None

    def reset(self) -> None:
        self.occurred.clear()
