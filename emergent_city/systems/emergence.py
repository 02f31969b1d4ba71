"""
Emergence detection for the city's relationship graph.

Rules are declarative: a set of required thread types plus optional
thresholds. When a rule's declared conditions all hold, the city's
awareness expands once (complexity, perceptions, deeper relationships)
and the rule's name is recorded so it never fires again.

Emergence deepens existing threads. It never creates new ones.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from ..state.event_bus import get_event_bus, EventType
from ..state.schema import (
    City,
    ConsciousnessExpansion,
    EmergentProperty,
    RelationshipDeepening,
    ThreadType,
    UrbanThread,
    clamp,
)

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Rule models (loaded from JSON)
# -----------------------------------------------------------------------------

class EmergenceConditions(BaseModel):
    required_thread_types: list[ThreadType] = Field(default_factory=list)
    minimum_relationship_strength: float | None = None
    minimum_average_integration: float | None = None
    minimum_thread_count: int | None = None
    minimum_city_complexity: float | None = None


class RelationshipDeepeningTemplate(BaseModel):
    type1: ThreadType
    type2: ThreadType
    quality: str
    strength_bonus: float


class ExpansionTemplate(BaseModel):
    new_perceptions: list[str] = Field(default_factory=list)
    expanded_self_awareness: str = ""
    complexity_increase: float = 0.0
    affected_thread_types: list[ThreadType] | None = None
    deepened_relationships: list[RelationshipDeepeningTemplate] | None = None


class EmergenceRule(BaseModel):
    name: str
    conditions: EmergenceConditions = Field(default_factory=EmergenceConditions)
    expansion: ExpansionTemplate = Field(default_factory=ExpansionTemplate)
    story_beat_id: str | None = None


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------

def average_relationship_strength(city: City, types: list[ThreadType]) -> float:
    """Mean strength of relationships whose both ends are of the given types."""
    wanted = set(types)
    total = 0.0
    count = 0
    for thread in city.threads:
        if thread.type not in wanted:
            continue
        for relationship in thread.relationships:
            other = city.get_thread(relationship.other_thread_id)
            if other is not None and other.type in wanted:
                total += relationship.strength
                count += 1
    return total / count if count else 0.0


def average_integration(city: City, types: list[ThreadType]) -> float:
    wanted = set(types)
    relevant = [t for t in city.threads if t.type in wanted]
    if not relevant:
        return 0.0
    return sum(t.integration for t in relevant) / len(relevant)


class EmergenceEngine:
    """
    Evaluates emergence rules against a city.

    Each rule fires at most once per city: names already present in
    city.emergent_properties are skipped.
    """

    def __init__(self, rules: list[EmergenceRule]):
        self.rules = list(rules)

    @property
    def rule_names(self) -> list[str]:
        return [r.name for r in self.rules]

    def conditions_met(self, rule: EmergenceRule, city: City) -> bool:
        """AND of the conditions the rule declares; undeclared ones are skipped."""
        conditions = rule.conditions
        present = {t.type for t in city.threads}

        if not all(t in present for t in conditions.required_thread_types):
            return False

        if (
            conditions.minimum_thread_count is not None
            and len(city.threads) < conditions.minimum_thread_count
        ):
            return False

        if (
            conditions.minimum_city_complexity is not None
            and city.resource("complexity") < conditions.minimum_city_complexity
        ):
            return False

        if conditions.minimum_relationship_strength is not None:
            strength = average_relationship_strength(city, conditions.required_thread_types)
            if strength < conditions.minimum_relationship_strength:
                return False

        if conditions.minimum_average_integration is not None:
            integration = average_integration(city, conditions.required_thread_types)
            if integration < conditions.minimum_average_integration:
                return False

        return True

    def check_for_emergence(self, city: City) -> list[EmergentProperty]:
        """Fire every not-yet-emerged rule whose conditions hold."""
        emerged = []
        for rule in self.rules:
            if city.has_emerged(rule.name):
                continue
            if not self.conditions_met(rule, city):
                continue

            prop = self._create_property(rule, city)
            self.apply_expansion(prop.expansion, city)
            city.emergent_properties.append(prop)
            emerged.append(prop)

            logger.info(f"Emergent property '{rule.name}' from {len(prop.source_thread_ids)} threads")
            get_event_bus().emit(
                EventType.EMERGENCE_OCCURRED,
                name=rule.name,
                perceptions=list(prop.expansion.new_perceptions),
            )

        return emerged

    def _create_property(self, rule: EmergenceRule, city: City) -> EmergentProperty:
        template = rule.expansion
        required = set(rule.conditions.required_thread_types)
        sources = [t.id for t in city.threads if t.type in required]

        if template.affected_thread_types is None:
            affected = list(sources)
        else:
            affected_types = set(template.affected_thread_types)
            affected = [t.id for t in city.threads if t.type in affected_types]

        deepenings = []
        for deepening in template.deepened_relationships or []:
            first = _first_of(city, deepening.type1)
            second = _first_of(city, deepening.type2)
            if first is None or second is None or first.id == second.id:
                continue
            deepenings.append(RelationshipDeepening(
                thread_id_1=first.id,
                thread_id_2=second.id,
                quality=deepening.quality,
                strength_bonus=deepening.strength_bonus,
            ))

        return EmergentProperty(
            name=rule.name,
            source_thread_ids=sources,
            expansion=ConsciousnessExpansion(
                affected_thread_ids=affected,
                new_perceptions=list(template.new_perceptions),
                deepened_relationships=deepenings,
                expanded_self_awareness=template.expanded_self_awareness,
                complexity_increase=template.complexity_increase,
            ),
        )

    def apply_expansion(self, expansion: ConsciousnessExpansion, city: City) -> None:
        city.adjust_resource("complexity", expansion.complexity_increase)
        city.perceptions.extend(expansion.new_perceptions)

        for deepening in expansion.deepened_relationships:
            first = city.get_thread(deepening.thread_id_1)
            second = city.get_thread(deepening.thread_id_2)
            if first is None or second is None:
                continue
            _strengthen(first, second.id, deepening.strength_bonus)
            _strengthen(second, first.id, deepening.strength_bonus)

        # Affected threads grow half as much as the city does
        for thread_id in expansion.affected_thread_ids:
            thread = city.get_thread(thread_id)
            if thread is not None:
                thread.complexity = clamp(thread.complexity + expansion.complexity_increase / 2)


def _first_of(city: City, thread_type: ThreadType) -> UrbanThread | None:
    threads = city.threads_of(thread_type)
    return threads[0] if threads else None


def _strengthen(thread: UrbanThread, other_id: str, bonus: float) -> None:
    # Only existing relationships deepen; emergence never creates edges
    relationship = thread.relationship_with(other_id)
    if relationship is not None:
        relationship.strength = clamp(relationship.strength + bonus)
