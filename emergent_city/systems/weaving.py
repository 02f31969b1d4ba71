"""
Thread weaving: growing the city's relationship graph.

A new thread forms a relationship with every existing thread, in both
directions. Same-type pairs resonate; other pairs are looked up in an
order-independent compatibility table with a moderate default.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from ..state.schema import (
    City,
    RelationType,
    ThreadRelationship,
    ThreadType,
    UrbanThread,
)

logger = logging.getLogger(__name__)


class RelationshipTemplate(NamedTuple):
    type: RelationType
    strength: float
    synergy: float


T = ThreadType
R = RelationType

# Keys are frozensets so (a, b) and (b, a) share an entry
COMPATIBILITY: dict[frozenset[ThreadType], RelationshipTemplate] = {
    frozenset((T.TRANSIT, T.HOUSING)): RelationshipTemplate(R.SUPPORT, 0.75, 0.6),
    frozenset((T.TRANSIT, T.COMMERCE)): RelationshipTemplate(R.SUPPORT, 0.7, 0.5),
    frozenset((T.TRANSIT, T.CULTURE)): RelationshipTemplate(R.HARMONY, 0.65, 0.4),
    frozenset((T.TRANSIT, T.PARKS)): RelationshipTemplate(R.HARMONY, 0.6, 0.5),
    frozenset((T.HOUSING, T.PARKS)): RelationshipTemplate(R.SUPPORT, 0.7, 0.8),
    frozenset((T.HOUSING, T.COMMERCE)): RelationshipTemplate(R.SUPPORT, 0.65, 0.4),
    frozenset((T.HOUSING, T.CULTURE)): RelationshipTemplate(R.HARMONY, 0.6, 0.6),
    frozenset((T.HOUSING, T.WATER)): RelationshipTemplate(R.DEPENDENCY, 0.9, 0.5),
    frozenset((T.HOUSING, T.POWER)): RelationshipTemplate(R.DEPENDENCY, 0.85, 0.5),
    frozenset((T.HOUSING, T.SEWAGE)): RelationshipTemplate(R.DEPENDENCY, 0.85, 0.4),
    frozenset((T.CULTURE, T.COMMERCE)): RelationshipTemplate(R.HARMONY, 0.5, 0.3),
    frozenset((T.CULTURE, T.PARKS)): RelationshipTemplate(R.HARMONY, 0.75, 0.7),
    frozenset((T.CULTURE, T.KNOWLEDGE)): RelationshipTemplate(R.HARMONY, 0.8, 0.8),
    frozenset((T.COMMERCE, T.POWER)): RelationshipTemplate(R.DEPENDENCY, 0.75, 0.5),
    frozenset((T.COMMERCE, T.PARKS)): RelationshipTemplate(R.TENSION, 0.3, -0.2),
    frozenset((T.POWER, T.WATER)): RelationshipTemplate(R.DEPENDENCY, 0.85, 0.7),
    frozenset((T.POWER, T.SEWAGE)): RelationshipTemplate(R.DEPENDENCY, 0.8, 0.6),
    frozenset((T.WATER, T.SEWAGE)): RelationshipTemplate(R.SUPPORT, 0.75, 0.5),
    frozenset((T.WATER, T.PARKS)): RelationshipTemplate(R.SUPPORT, 0.7, 0.6),
    frozenset((T.KNOWLEDGE, T.HOUSING)): RelationshipTemplate(R.SUPPORT, 0.6, 0.5),
    frozenset((T.KNOWLEDGE, T.COMMERCE)): RelationshipTemplate(R.HARMONY, 0.65, 0.6),
}

DEFAULT_TEMPLATE = RelationshipTemplate(R.SUPPORT, 0.4, 0.2)
RESONANCE_TEMPLATE = RelationshipTemplate(R.RESONANCE, 0.6, 0.5)


def relationship_template(type1: ThreadType, type2: ThreadType) -> RelationshipTemplate:
    if type1 == type2:
        return RESONANCE_TEMPLATE
    return COMPATIBILITY.get(frozenset((type1, type2)), DEFAULT_TEMPLATE)


def weave_thread(city: City, thread_type: ThreadType) -> UrbanThread:
    """Add a thread of the given type, connected to every existing thread."""
    thread = UrbanThread(type=thread_type)

    for existing in city.threads:
        template = relationship_template(thread_type, existing.type)
        thread.relationships.append(ThreadRelationship(
            other_thread_id=existing.id,
            type=template.type,
            strength=template.strength,
            synergy=template.synergy,
        ))
        existing.relationships.append(ThreadRelationship(
            other_thread_id=thread.id,
            type=template.type,
            strength=template.strength,
            synergy=template.synergy,
        ))

    city.threads.append(thread)
    logger.debug(f"Thread woven: {thread_type.value} ({len(city.threads)} total)")
    return thread


def weave_threads(city: City, thread_types: list[ThreadType]) -> list[UrbanThread]:
    return [weave_thread(city, thread_type) for thread_type in thread_types]
