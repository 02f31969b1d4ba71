"""Tests for ending classification."""

import logging

import pytest

from emergent_city.config import BalanceConfig, EndingThresholds
from emergent_city.state import ChoicePattern, ChoiceRatios, Ending, NarrativeFlag, ProgressionState
from emergent_city.systems.endings import EndingClassifier, EndingInputs


def inputs(
    story=0.0,
    efficiency=0.0,
    autonomy=0.0,
    control=0.0,
    destroyed=0,
    trust=0.5,
    city_autonomy=0.5,
    flags=(),
    total=10,
) -> EndingInputs:
    return EndingInputs(
        ratios=ChoiceRatios(story=story, efficiency=efficiency, autonomy=autonomy, control=control),
        destroyed_count=destroyed,
        trust=trust,
        autonomy=city_autonomy,
        flags={flag.value for flag in flags},
        total_choices=total,
    )


@pytest.fixture
def classifier():
    return EndingClassifier()


class TestClassify:
    """Each ending and its defining conditions."""

    def test_fragmentation(self, classifier):
        """Heavy optimization with many losses fragments the city."""
        assert classifier.classify(inputs(efficiency=0.8, story=0.2, destroyed=9)) == Ending.FRAGMENTATION

    def test_fragmentation_outranks_silence(self, classifier):
        """Both match; the losses come first."""
        heavy = inputs(
            efficiency=0.8,
            control=0.65,
            destroyed=10,
            flags=[NarrativeFlag.IGNORED_CITY_REQUESTS],
        )
        assert classifier.classify(heavy) == Ending.FRAGMENTATION

        light = inputs(
            efficiency=0.8,
            control=0.65,
            destroyed=2,
            flags=[NarrativeFlag.IGNORED_CITY_REQUESTS],
        )
        assert classifier.classify(light) == Ending.SILENCE

    def test_efficiency_without_losses_is_optimization(self, classifier):
        assert classifier.classify(inputs(efficiency=0.8, story=0.2, destroyed=2)) == Ending.OPTIMIZATION

    def test_archive(self, classifier):
        """Almost all story and almost nothing lost."""
        assert classifier.classify(inputs(story=0.8, autonomy=0.2, destroyed=1)) == Ending.ARCHIVE

    def test_archive_needs_few_losses(self, classifier):
        result = classifier.classify(inputs(story=0.8, autonomy=0.2, destroyed=2, trust=0.7))
        assert result == Ending.HARMONY

    def test_silence(self, classifier):
        """Control plus ignoring the city's requests."""
        result = classifier.classify(inputs(
            control=0.7, story=0.3, flags=[NarrativeFlag.IGNORED_CITY_REQUESTS],
        ))
        assert result == Ending.SILENCE

    def test_control_without_ignoring_is_optimization(self, classifier):
        assert classifier.classify(inputs(control=0.7, story=0.3)) == Ending.OPTIMIZATION

    def test_independence(self, classifier):
        result = classifier.classify(inputs(autonomy=0.7, story=0.3, city_autonomy=0.8))
        assert result == Ending.INDEPENDENCE

    def test_independence_needs_city_autonomy(self, classifier):
        result = classifier.classify(inputs(autonomy=0.7, story=0.3, city_autonomy=0.6, trust=0.4))
        assert result != Ending.INDEPENDENCE

    def test_symbiosis(self, classifier):
        """Balanced, long, and at peace with ambiguity."""
        result = classifier.classify(inputs(
            story=0.25, efficiency=0.25, autonomy=0.25, control=0.25,
            flags=[NarrativeFlag.ACCEPTED_AMBIGUITY],
            total=20,
        ))
        assert result == Ending.SYMBIOSIS

    def test_symbiosis_needs_enough_choices(self, classifier):
        result = classifier.classify(inputs(
            story=0.25, efficiency=0.25, autonomy=0.25, control=0.25,
            flags=[NarrativeFlag.ACCEPTED_AMBIGUITY],
            total=19,
        ))
        assert result != Ending.SYMBIOSIS

    def test_harmony(self, classifier):
        result = classifier.classify(inputs(
            story=0.4, autonomy=0.3, efficiency=0.2, control=0.1, destroyed=1, trust=0.7,
        ))
        assert result == Ending.HARMONY

    def test_harmony_needs_trust(self, classifier):
        result = classifier.classify(inputs(
            story=0.4, autonomy=0.3, efficiency=0.2, control=0.1, destroyed=1, trust=0.5,
        ))
        assert result != Ending.HARMONY

    def test_emergence(self, classifier):
        """Balanced play with all three emergence flags."""
        result = classifier.classify(inputs(
            story=0.25, efficiency=0.25, autonomy=0.25, control=0.25,
            flags=[
                NarrativeFlag.CITY_TRANSCENDED,
                NarrativeFlag.QUESTIONED_OWN_NATURE,
                NarrativeFlag.FORMED_NEW_PATTERN,
            ],
        ))
        assert result == Ending.EMERGENCE

    def test_emergence_needs_every_flag(self, classifier):
        result = classifier.classify(inputs(
            story=0.25, efficiency=0.25, autonomy=0.25, control=0.25,
            flags=[NarrativeFlag.CITY_TRANSCENDED, NarrativeFlag.QUESTIONED_OWN_NATURE],
        ))
        assert result is None

    def test_optimization(self, classifier):
        result = classifier.classify(inputs(
            efficiency=0.4, control=0.3, story=0.2, autonomy=0.1, destroyed=3,
        ))
        assert result == Ending.OPTIMIZATION

    def test_no_choices_is_undetermined(self, classifier):
        assert classifier.classify(inputs(total=0)) is None


class TestPriority:
    """Earlier rules win when several match."""

    def test_archive_before_harmony(self, classifier):
        result = classifier.classify(inputs(story=0.8, autonomy=0.2, destroyed=0, trust=0.9))
        assert result == Ending.ARCHIVE

    def test_independence_before_harmony(self, classifier):
        result = classifier.classify(inputs(
            autonomy=0.7, story=0.3, city_autonomy=0.8, trust=0.9,
        ))
        assert result == Ending.INDEPENDENCE

    def test_symbiosis_before_emergence(self, classifier):
        result = classifier.classify(inputs(
            story=0.25, efficiency=0.25, autonomy=0.25, control=0.25,
            flags=[
                NarrativeFlag.ACCEPTED_AMBIGUITY,
                NarrativeFlag.CITY_TRANSCENDED,
                NarrativeFlag.QUESTIONED_OWN_NATURE,
                NarrativeFlag.FORMED_NEW_PATTERN,
            ],
            total=24,
        ))
        assert result == Ending.SYMBIOSIS


class TestDetermineEnding:
    """The end-of-game fallback."""

    def test_fallback_is_optimization(self, classifier, caplog):
        caplog.set_level(logging.INFO)
        assert classifier.determine_ending(inputs(total=0)) == Ending.OPTIMIZATION
        assert "falling back" in caplog.text

    def test_fallback_is_configurable(self):
        config = BalanceConfig(endings=EndingThresholds(undetermined_fallback=Ending.SYMBIOSIS))
        classifier = EndingClassifier(config)
        assert classifier.determine_ending(inputs(total=0)) == Ending.SYMBIOSIS

    def test_determined_ending_passes_through(self, classifier):
        assert classifier.determine_ending(inputs(story=0.9, autonomy=0.1)) == Ending.ARCHIVE

    def test_thresholds_are_configurable(self):
        config = BalanceConfig(endings=EndingThresholds(archive_story_ratio=0.95))
        classifier = EndingClassifier(config)
        assert classifier.classify(inputs(story=0.9, autonomy=0.1)) != Ending.ARCHIVE


class TestFromState:
    """Inputs read from a live progression state."""

    def test_scenario_preserver(self, classifier):
        """A player who preserves everything ends in the archive."""
        state = ProgressionState()
        for _ in range(9):
            state.record_choice(ChoicePattern.STORY)
        state.record_choice(ChoicePattern.AUTONOMY)

        assert classifier.classify_state(state) == Ending.ARCHIVE

    def test_scenario_optimizer(self, classifier):
        """A player who optimizes and loses much fragments the city."""
        state = ProgressionState()
        for _ in range(8):
            state.record_choice(ChoicePattern.EFFICIENCY)
        state.record_choice(ChoicePattern.STORY)
        for i in range(9):
            state.destroy_moment(f"m{i}")

        assert classifier.classify_state(state) == Ending.FRAGMENTATION

    def test_scenario_controller(self, classifier):
        """Deciding everything while ignoring the city leads to silence."""
        state = ProgressionState()
        for _ in range(7):
            state.record_choice(ChoicePattern.CONTROL)
        for _ in range(3):
            state.record_choice(ChoicePattern.STORY)
        state.set_flag(NarrativeFlag.IGNORED_CITY_REQUESTS)

        assert classifier.classify_state(state) == Ending.SILENCE

    def test_inputs_capture_active_flags_only(self):
        state = ProgressionState()
        state.set_flag(NarrativeFlag.ACCEPTED_AMBIGUITY)
        state.set_flag(NarrativeFlag.CITY_TRANSCENDED, False)

        data = EndingInputs.from_state(state)
        assert data.has(NarrativeFlag.ACCEPTED_AMBIGUITY)
        assert not data.has(NarrativeFlag.CITY_TRANSCENDED)
