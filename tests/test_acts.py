"""Tests for the four act handlers."""

import pytest

from emergent_city.config import BalanceConfig
from emergent_city.interface.parser import parse_command
from emergent_city.state import ChoicePattern, FinalChoicePhase, NarrativeFlag, ProgressionState
from emergent_city.systems.acts import ACT_CLASSES, ActController, ActFour, ActOne, ActThree, ActTwo
from emergent_city.systems.acts.act_one import ALREADY_AWAKE_TEXT, NOTHING_LEFT_TEXT, TUTORIAL_TEXT
from emergent_city.systems.acts.act_three import (
    MAJOR_DECISION_TEXT,
    REDESIGN_ALREADY_DECIDED,
    REDESIGN_DECIDED,
)
from emergent_city.systems.acts.act_two import BUS_ROUTE_DECISION, PENDING_REMINDER
from emergent_city.systems.moments import MomentSelector

from conftest import make_moment


def state_in_act(act: int) -> ProgressionState:
    state = ProgressionState()
    for _ in range(act - 1):
        state.advance_act()
    return state


def run(handler, line: str, state: ProgressionState):
    return handler.handle(parse_command(line), state)


@pytest.fixture
def act_one(selector, voice, config, rng):
    return ActOne(selector, voice, config, rng)


@pytest.fixture
def act_two(selector, voice, config, rng):
    return ActTwo(selector, voice, config, rng)


@pytest.fixture
def act_three(selector, voice, config, rng):
    return ActThree(selector, voice, config, rng)


@pytest.fixture
def act_four(selector, voice, config, rng):
    return ActFour(selector, voice, config, rng)


class TestController:
    """Handlers are looked up by act number."""

    def test_one_handler_per_act(self, selector, voice, config, rng):
        controller = ActController(selector, voice, config, rng)
        for number, cls in ACT_CLASSES.items():
            assert isinstance(controller.handler_for(number), cls)
        assert controller.handler_for(5) is None

    def test_custom_classes(self, selector, voice, config, rng):
        controller = ActController(selector, voice, config, rng, act_classes={1: ActOne})
        assert controller.handler_for(2) is None

    def test_wrong_state_variant(self, act_two, state):
        with pytest.raises(TypeError):
            act_two.progress(state)


class TestActOne:
    """Awakening: GENERATE then OBSERVE."""

    def test_generate_tutorial(self, act_one, state):
        response = run(act_one, "generate", state)
        assert response.text == TUTORIAL_TEXT
        assert response.commands_to_unlock == ["OBSERVE"]
        assert response.advances_scene
        assert state.act_state.tutorial_complete

    def test_generate_twice(self, act_one, state):
        run(act_one, "generate", state)
        response = run(act_one, "generate", state)
        assert response.text == ALREADY_AWAKE_TEXT
        assert not response.advances_scene

    def test_observe_reveals_act_one_moment(self, act_one, state):
        response = run(act_one, "observe", state)
        assert response.revealed_moment.associated_act == 1
        assert response.should_visualize
        assert response.advances_scene
        assert response.choice_pattern is None
        assert state.act_state.first_observe_complete
        assert state.act_state.moments_revealed == 1

    def test_observe_district(self, act_one, state):
        response = run(act_one, "observe 4", state)
        assert response.revealed_moment.district in (0, 4)

    def test_nothing_left(self, voice, config, rng, state):
        handler = ActOne(MomentSelector([], config, rng), voice, config, rng)
        assert run(handler, "observe", state).text == NOTHING_LEFT_TEXT

    def test_reflection_at_third_reveal(self, act_one, state, selector):
        texts = []
        for _ in range(3):
            response = run(act_one, "observe", state)
            selector.reveal(response.revealed_moment, state)
            texts.append(response.text)
        assert "Three moments now" in texts[2]
        assert "Three moments now" not in texts[1]

    def test_wrong_command(self, act_one, state):
        response = run(act_one, "reflect", state)
        assert response.text in [
            line.format(command="reflect") for line in ActOne.wrong_command_lines
        ]

    def test_complete_after_minimum_reveals(self, act_one, state):
        for i in range(7):
            state.reveal_moment(f"m{i}")
        assert not act_one.is_complete(state)
        state.reveal_moment("m7")
        assert act_one.is_complete(state)

    def test_available_commands(self, act_one, state):
        assert act_one.available_commands(state) == ["HELP", "GENERATE"]
        run(act_one, "generate", state)
        assert "OBSERVE" in act_one.available_commands(state)


class TestActTwo:
    """Stories Within: every moment is a choice."""

    def observe(self, handler, selector, state):
        response = run(handler, "observe", state)
        selector.reveal(response.revealed_moment, state)
        return response.revealed_moment

    def test_observe_sets_pending(self, act_two, selector):
        state = state_in_act(2)
        response = run(act_two, "observe", state)

        moment = response.revealed_moment
        assert moment.fragility >= 7
        assert state.act_state.pending_moment_id == moment.id
        assert not response.advances_scene
        assert "Choose one. You cannot have both." in response.text

    def test_observe_while_pending(self, act_two, selector):
        state = state_in_act(2)
        moment = self.observe(act_two, selector, state)
        response = run(act_two, "observe", state)
        assert "already waiting" in response.text
        assert response.revealed_moment is None
        assert state.act_state.pending_moment_id == moment.id

    def test_preserve(self, act_two, selector):
        state = state_in_act(2)
        moment = self.observe(act_two, selector, state)
        response = run(act_two, "preserve", state)

        assert response.choice_pattern == ChoicePattern.STORY
        assert response.flags_to_set == {"choice_1_preserve": True, f"preserved_{moment.id}": True}
        assert response.advances_scene
        assert state.act_state.pending_moment_id is None
        assert state.act_state.preserved == 1
        assert not moment.destroyed

    def test_preserve_without_pending(self, act_two):
        response = run(act_two, "preserve", state_in_act(2))
        assert response.is_error
        assert response.choice_pattern is None

    def test_first_optimize_shows_bus_route(self, act_two, selector):
        """The bus route decision comes before any loss, and records nothing."""
        state = state_in_act(2)
        moment = self.observe(act_two, selector, state)
        response = run(act_two, "optimize", state)

        assert response.text == BUS_ROUTE_DECISION
        assert response.choice_pattern is None
        assert response.flags_to_set == {NarrativeFlag.BUS_ROUTE_DECISION_SEEN.value: True}
        assert state.act_state.pending_moment_id == moment.id
        assert not moment.destroyed

    def test_bus_route_without_pending(self, act_two):
        state = state_in_act(2)
        assert run(act_two, "optimize", state).text == BUS_ROUTE_DECISION
        assert run(act_two, "optimize", state).is_error

    def test_optimize_destroys(self, act_two, selector):
        state = state_in_act(2)
        moment = self.observe(act_two, selector, state)
        run(act_two, "optimize", state)
        response = run(act_two, "optimize", state)

        assert response.choice_pattern == ChoicePattern.EFFICIENCY
        assert response.flags_to_set == {"choice_1_optimize": True}
        assert moment.destroyed
        assert moment.id in state.destroyed_moment_ids
        assert state.act_state.optimized == 1

    def test_remember_pending(self, act_two, selector):
        state = state_in_act(2)
        moment = self.observe(act_two, selector, state)
        response = run(act_two, "remember", state)

        assert response.choice_pattern == ChoicePattern.STORY
        assert response.flags_to_set == {f"remembered_{moment.id}": True}
        assert moment.remembered
        assert state.act_state.pending_moment_id is None
        assert state.act_state.remembered == 1

    def test_remember_by_id(self, act_two, selector):
        state = state_in_act(2)
        earlier = selector.get_moment("a1_0")
        selector.reveal(earlier, state)

        response = run(act_two, "remember a1_0", state)
        assert not response.is_error
        assert "a1_0" in state.remembered_moment_ids

    def test_remember_twice(self, act_two, selector):
        state = state_in_act(2)
        selector.reveal(selector.get_moment("a1_0"), state)
        run(act_two, "remember a1_0", state)
        assert run(act_two, "remember a1_0", state).is_error

    def test_remember_unseen(self, act_two):
        response = run(act_two, "remember a1_0", state_in_act(2))
        assert response.is_error
        assert "haven't observed" in response.text

    def test_remember_unknown(self, act_two):
        assert run(act_two, "remember nowhere", state_in_act(2)).is_error

    def test_pending_reminder(self, act_two, selector):
        state = state_in_act(2)
        self.observe(act_two, selector, state)
        assert run(act_two, "reflect", state).text == PENDING_REMINDER

    def test_out_of_moments(self, voice, config, rng):
        handler = ActTwo(MomentSelector([], config, rng), voice, config, rng)
        state = state_in_act(2)
        response = run(handler, "observe", state)
        assert response.flags_to_set == {NarrativeFlag.ACT_TWO_NO_MORE_MOMENTS.value: True}

        state.set_flag(NarrativeFlag.ACT_TWO_NO_MORE_MOMENTS)
        assert handler.is_complete(state)

    def test_complete_after_minimum(self, act_two):
        state = state_in_act(2)
        state.act_state.preserved = 3
        state.act_state.optimized = 1
        assert not act_two.is_complete(state)
        state.act_state.remembered = 1
        assert act_two.is_complete(state)

    def test_not_complete_while_pending(self, act_two):
        state = state_in_act(2)
        state.act_state.preserved = 5
        state.act_state.pending_moment_id = "a2_0"
        assert not act_two.is_complete(state)

    def test_help_shows_progress(self, act_two):
        state = state_in_act(2)
        state.act_state.preserved = 2
        assert "Choices made: 2/5" in act_two.help_text(state)


class TestActThree:
    """Weight of Choices: the major decision, then DECIDE, QUESTION and REFLECT."""

    def test_first_decide_presents_major_decision(self, act_three):
        state = state_in_act(3)
        response = run(act_three, "decide a1_0", state)
        assert response.text == MAJOR_DECISION_TEXT
        assert response.choice_pattern is None
        assert state.act_state.major_decision_presented

    def test_first_question_presents_major_decision(self, act_three):
        state = state_in_act(3)
        assert run(act_three, "question", state).text == MAJOR_DECISION_TEXT

    def test_decide_redesign(self, act_three):
        state = state_in_act(3)
        run(act_three, "decide", state)
        response = run(act_three, "decide infrastructure_redesign", state)

        assert response.text == REDESIGN_DECIDED
        assert response.choice_pattern == ChoicePattern.CONTROL
        assert response.flags_to_set == {
            NarrativeFlag.IGNORED_CITY_REQUESTS.value: True,
            "decided_infrastructure_redesign": True,
        }
        assert state.act_state.major_decision_made
        assert state.act_state.decisions == 1

    def test_question_redesign(self, act_three):
        state = state_in_act(3)
        run(act_three, "question", state)
        response = run(act_three, "QUESTION Infrastructure_Redesign", state)

        assert response.choice_pattern == ChoicePattern.AUTONOMY
        assert response.flags_to_set[NarrativeFlag.QUESTIONED_OWN_NATURE.value]
        assert state.act_state.questions == 1

    def test_redesign_only_once(self, act_three):
        state = state_in_act(3)
        run(act_three, "decide", state)
        run(act_three, "decide infrastructure_redesign", state)
        response = run(act_three, "question infrastructure_redesign", state)
        assert response.text == REDESIGN_ALREADY_DECIDED
        assert response.choice_pattern is None

    def test_decide_moment(self, act_three, selector):
        state = state_in_act(3)
        selector.reveal(selector.get_moment("a1_0"), state)
        run(act_three, "decide", state)

        response = run(act_three, "decide a1_0", state)
        assert response.choice_pattern == ChoicePattern.CONTROL
        assert response.flags_to_set == {"decided_a1_0": True}
        assert "a1_0 first" in response.text

    def test_decide_needs_revealed_moment(self, act_three):
        state = state_in_act(3)
        run(act_three, "decide", state)
        assert run(act_three, "decide a1_0", state).is_error
        assert run(act_three, "decide", state).is_error

    def test_decide_destroyed_moment(self, act_three, selector):
        state = state_in_act(3)
        selector.destroy(selector.get_moment("a2_0"), state)
        run(act_three, "decide", state)
        response = run(act_three, "decide a2_0", state)
        assert response.is_error
        assert "already gone" in response.text

    def test_question_moment(self, act_three, selector):
        state = state_in_act(3)
        selector.reveal(selector.get_moment("a1_1"), state)
        run(act_three, "question", state)

        response = run(act_three, "question a1_1", state)
        assert response.choice_pattern == ChoicePattern.AUTONOMY
        assert "First time I've heard you ask" in response.text

    def test_reflect_resolves_major_decision(self, act_three):
        state = state_in_act(3)
        run(act_three, "decide", state)
        response = run(act_three, "reflect", state)

        assert response.choice_pattern == ChoicePattern.STORY
        assert response.flags_to_set["reflection_1"]
        assert state.act_state.major_decision_made

    def test_reflect_before_gate_leaves_it_open(self, act_three):
        state = state_in_act(3)
        run(act_three, "reflect", state)
        assert not state.act_state.major_decision_made

    def test_reflect_forms_new_pattern_when_balanced(self, act_three):
        state = state_in_act(3)
        for pattern in ChoicePattern:
            state.record_choice(pattern)
        response = run(act_three, "reflect", state)
        assert response.flags_to_set[NarrativeFlag.FORMED_NEW_PATTERN.value]
        assert "No clear pattern yet" not in response.text

    def test_reflect_no_pattern_when_dominant(self, act_three):
        state = state_in_act(3)
        for _ in range(3):
            state.record_choice(ChoicePattern.STORY)
        response = run(act_three, "reflect", state)
        assert NarrativeFlag.FORMED_NEW_PATTERN.value not in response.flags_to_set
        assert "You've chosen memory over efficiency" in response.text

    def test_reflect_no_pattern_without_choices(self, act_three):
        response = run(act_three, "reflect", state_in_act(3))
        assert NarrativeFlag.FORMED_NEW_PATTERN.value not in response.flags_to_set

    def test_complete(self, act_three):
        state = state_in_act(3)
        state.act_state.reflections = 5
        assert not act_three.is_complete(state)
        state.act_state.major_decision_made = True
        assert act_three.is_complete(state)

    def test_wrong_command(self, act_three):
        response = run(act_three, "preserve", state_in_act(3))
        assert response.text in ActThree.wrong_command_lines


class TestActFour:
    """What Remains: the final choice."""

    def test_first_verb_opens_final_choice(self, act_four):
        state = state_in_act(4)
        response = run(act_four, "resist", state)

        assert "Three paths remain" in response.text
        assert response.choice_pattern is None
        assert state.act_state.phase == FinalChoicePhase.ACTIVE
        assert state.act_state.choices_made == 0

    def test_counted_choices(self, act_four):
        state = state_in_act(4)
        run(act_four, "accept", state)
        response = run(act_four, "accept", state)

        assert response.choice_pattern == ChoicePattern.STORY
        assert response.flags_to_set == {"accept_1": True}
        assert not response.final_choice

    def test_final_choice(self, act_four):
        state = state_in_act(4)
        run(act_four, "accept", state)
        run(act_four, "resist", state)
        run(act_four, "resist", state)
        response = run(act_four, "accept", state)

        assert response.final_choice
        assert response.choice_pattern == ChoicePattern.STORY
        assert response.flags_to_set == {
            NarrativeFlag.FINAL_CHOICE_MADE.value: True,
            "finalChoice_accept": True,
            NarrativeFlag.ACCEPTED_AMBIGUITY.value: True,
        }
        assert state.act_state.final_choice_made

    def test_transcend_final_flags(self, act_four):
        state = state_in_act(4)
        for _ in range(4):
            response = run(act_four, "transcend", state)
        assert response.choice_pattern == ChoicePattern.AUTONOMY
        assert response.flags_to_set[NarrativeFlag.CITY_TRANSCENDED.value]
        assert response.flags_to_set["finalChoice_transcend"]

    def test_resist_final_has_no_extra_flags(self, act_four):
        state = state_in_act(4)
        for _ in range(4):
            response = run(act_four, "resist", state)
        assert set(response.flags_to_set) == {NarrativeFlag.FINAL_CHOICE_MADE.value, "finalChoice_resist"}

    def test_after_final_choice(self, act_four):
        state = state_in_act(4)
        for _ in range(4):
            run(act_four, "accept", state)
        response = run(act_four, "transcend", state)
        assert response.text.startswith("The choice is made")
        assert response.choice_pattern is None

    def test_lines_progress(self, act_four):
        state = state_in_act(4)
        run(act_four, "resist", state)
        first = run(act_four, "resist", state).text
        second = run(act_four, "resist", state).text
        assert first.startswith("You resist.")
        assert second.startswith("Resistance again.")

    def test_complete_on_flag(self, act_four):
        state = state_in_act(4)
        assert not act_four.is_complete(state)
        state.set_flag(NarrativeFlag.FINAL_CHOICE_MADE)
        assert act_four.is_complete(state)

    def test_configurable_minimum(self, selector, voice, rng):
        config = BalanceConfig()
        config.act_progression.act_four_final_choice_minimum = 1
        handler = ActFour(selector, voice, config, rng)
        state = state_in_act(4)
        run(handler, "accept", state)
        assert run(handler, "accept", state).final_choice


def test_make_moment_defaults():
    moment = make_moment("m")
    assert moment.associated_act == 1


class TestCompletionStaysComplete:
    """Once an act reports complete, further choices never undo it."""

    def test_act_one(self, act_one):
        state = state_in_act(1)
        run(act_one, "generate", state)
        seen = []
        for _ in range(10):
            response = run(act_one, "observe", state)
            state.reveal_moment(response.revealed_moment.id)
            seen.append(act_one.is_complete(state))
        assert seen == [False] * 7 + [True] * 3

    def test_act_two(self, act_two, selector):
        state = state_in_act(2)
        state.act_state.bus_route_gate_seen = True
        seen = []
        for verb in ["preserve", "optimize", "remember", "preserve", "optimize", "preserve", "preserve", "optimize"]:
            moment = run(act_two, "observe", state).revealed_moment
            selector.reveal(moment, state)
            run(act_two, verb, state)
            seen.append(act_two.is_complete(state))
        assert seen == [False] * 4 + [True] * 4

    def test_act_three(self, act_three):
        state = state_in_act(3)
        run(act_three, "decide", state)
        run(act_three, "decide infrastructure_redesign", state)
        seen = [act_three.is_complete(state)]
        for _ in range(7):
            run(act_three, "reflect", state)
            seen.append(act_three.is_complete(state))
        assert seen == [False] * 4 + [True] * 4

    def test_act_four(self, act_four):
        state = state_in_act(4)
        seen = []
        for _ in range(6):
            response = run(act_four, "accept", state)
            for flag, value in response.flags_to_set.items():
                state.set_flag(flag, value)
            seen.append(act_four.is_complete(state))
        assert seen == [False] * 3 + [True] * 3
