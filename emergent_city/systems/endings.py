"""
Ending classification.

A priority-ordered decision list over choice ratios, losses, the city's
relationship scalars and narrative flags. Evaluated top to bottom with
early exit: extreme and negative outcomes are checked before balanced
and positive ones, so order matters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..config import BalanceConfig, EndingThresholds
from ..state.schema import ChoiceRatios, Ending, NarrativeFlag, ProgressionState

logger = logging.getLogger(__name__)


@dataclass
class EndingInputs:
    """Everything the classifier reads, detached from live state."""
    ratios: ChoiceRatios
    destroyed_count: int = 0
    trust: float = 0.5
    autonomy: float = 0.5
    flags: set[str] = field(default_factory=set)
    total_choices: int = 0

    @classmethod
    def from_state(cls, state: ProgressionState) -> "EndingInputs":
        return cls(
            ratios=state.choice_ratios(),
            destroyed_count=len(state.destroyed_moment_ids),
            trust=state.city_trust,
            autonomy=state.city_autonomy,
            flags=state.active_flags(),
            total_choices=state.total_choices(),
        )

    def has(self, flag: NarrativeFlag) -> bool:
        return flag.value in self.flags


class EndingClassifier:
    """
    Maps accumulated play to one of the eight endings.

    classify() returns None when no rule matches; determine_ending()
    applies the end-of-game fallback.
    """

    def __init__(self, config: BalanceConfig | None = None):
        self.config = config or BalanceConfig()

    @property
    def thresholds(self) -> EndingThresholds:
        return self.config.endings

    def is_balanced(self, inputs: EndingInputs) -> bool:
        t = self.thresholds
        r = inputs.ratios
        return (
            abs(r.story - r.efficiency) < t.balance_max_ratio_difference
            and abs(r.autonomy - r.control) < t.balance_max_ratio_difference
        )

    def classify(self, inputs: EndingInputs) -> Ending | None:
        t = self.thresholds
        r = inputs.ratios
        destroyed = inputs.destroyed_count

        if (
            r.efficiency > t.fragmentation_efficiency_ratio
            and destroyed > t.fragmentation_destroyed_moments
        ):
            return Ending.FRAGMENTATION

        if r.story > t.archive_story_ratio and destroyed < t.archive_max_destroyed_moments:
            return Ending.ARCHIVE

        if r.control > t.silence_control_ratio and inputs.has(NarrativeFlag.IGNORED_CITY_REQUESTS):
            return Ending.SILENCE

        if (
            r.autonomy > t.independence_autonomy_ratio
            and inputs.autonomy >= t.independence_min_autonomy
        ):
            return Ending.INDEPENDENCE

        # Symbiosis and Emergence share this
        balanced = self.is_balanced(inputs)

        if (
            balanced
            and inputs.has(NarrativeFlag.ACCEPTED_AMBIGUITY)
            and inputs.total_choices >= t.symbiosis_min_total_choices
        ):
            return Ending.SYMBIOSIS

        if (
            r.story + r.autonomy > t.harmony_combined_ratio
            and destroyed < t.harmony_max_destroyed_moments
            and inputs.trust >= t.harmony_min_trust
        ):
            return Ending.HARMONY

        if balanced and all(inputs.has(flag) for flag in t.emergence_required_flags):
            return Ending.EMERGENCE

        if (
            r.efficiency + r.control > t.optimization_combined_ratio
            and destroyed <= t.optimization_max_destroyed_moments
        ):
            return Ending.OPTIMIZATION

        return None

    def classify_state(self, state: ProgressionState) -> Ending | None:
        return self.classify(EndingInputs.from_state(state))

    def determine_ending(self, inputs: EndingInputs) -> Ending:
        """Classify, falling back to the configured ending when undetermined."""
        ending = self.classify(inputs)
        if ending is None:
            ending = self.thresholds.undetermined_fallback
            logger.info(f"No ending rule matched; falling back to {ending.value}")
        return ending
