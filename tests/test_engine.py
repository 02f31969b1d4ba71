"""Tests for the narrative engine command pipeline."""

import random

import pytest

from emergent_city.config import BalanceConfig
from emergent_city.engine import RESET_TEXT, NarrativeEngine
from emergent_city.state import (
    Ending,
    EventType,
    MemoryProgressionStore,
    ThreadType,
    get_event_bus,
)
from emergent_city.systems.acts import ActController, ActOne

from conftest import (
    act_moments,
    play_act_four,
    play_act_one,
    play_act_three,
    play_act_two,
)


class FailingStore(MemoryProgressionStore):
    def save(self, state):
        raise OSError("disk full")


class TestUnlocks:
    """Command gating."""

    def test_initial_unlocks(self, engine):
        assert engine.state.unlocked_commands == {"HELP", "OBSERVE", "GENERATE"}

    def test_unknown_command_is_error(self, engine):
        output = engine.process_command("dance")
        assert output.is_error

    def test_locked_command_is_flavor(self, engine):
        output = engine.process_command("preserve")
        assert not output.is_error
        assert output.text
        assert output.choice_pattern is None
        assert engine.state.total_choices() == 0

    def test_generate_advances_scene(self, engine):
        """OBSERVE is already unlocked, so GENERATE unlocks nothing new."""
        engine.process_command("generate")
        events = get_event_bus().get_history(EventType.COMMAND_UNLOCKED)
        assert "OBSERVE" not in [e.data["command"] for e in events]
        assert engine.state.current_scene == 1


class TestMetaCommands:
    """STATUS, MOMENTS, HISTORY, HELP and the easter eggs."""

    def test_status(self, engine):
        output = engine.process_command("status")
        assert not output.is_dialogue
        assert "Act: 1 - Scene 0" in output.text
        assert "[DEBUG]" not in output.text

    def test_debug_counters(self, engine):
        engine.player_config["debug_show_choice_counters"] = True
        assert "[DEBUG] Choice Distribution:" in engine.process_command("status").text

    def test_help_includes_meta(self, engine):
        text = engine.process_command("help").text
        assert "=== ACT I: AWAKENING ===" in text
        assert "Meta Commands:" in text

    def test_moments_report(self, engine):
        play_act_one(engine)
        text = engine.process_command("moments").text
        assert "Preserved: 8" in text
        assert "... and 3 more" in text
        assert "Unseen: 15 of 23" in text
        assert "[DEBUG]" not in text

    def test_moments_report_debug(self, engine):
        engine.player_config["debug_show_choice_counters"] = True
        engine.process_command("generate")
        engine.process_command("observe")
        text = engine.process_command("moments").text
        assert "[DEBUG] Unseen by act: 1=9, 2=8, 3=3, 4=2" in text
        assert "[DEBUG] Recent types:" in text

    def test_history(self, engine):
        text = engine.process_command("history").text
        assert "Total Choices: 0" in text
        assert "balanced" in text

    def test_easter_egg_in_any_act(self, engine):
        output = engine.process_command("hello")
        assert output.text
        assert not output.is_error
        assert engine.state.current_scene == 0


class TestActFlow:
    """Acts advance and the city grows with them."""

    def test_act_one_to_two(self, engine):
        engine.process_command("generate")
        outputs = [engine.process_command("observe") for _ in range(8)]

        assert outputs[-1].act_advanced_to == 2
        assert "=== ACT II: STORIES WITHIN ===" in outputs[-1].text
        assert "New commands: REMEMBER, PRESERVE, OPTIMIZE" in outputs[-1].text
        assert engine.state.current_act == 2
        assert engine.state.is_command_unlocked("PRESERVE")

    def test_revealed_moment_is_recorded(self, engine):
        engine.process_command("generate")
        output = engine.process_command("observe")
        assert output.revealed_moment.id in engine.state.revealed_moment_ids
        assert output.should_visualize

    def test_city_grows_per_act(self, engine):
        assert len(engine.city.threads) == 2
        play_act_one(engine)
        assert len(engine.city.threads) == 4
        assert engine.city.threads_of(ThreadType.PARKS)
        assert engine.city.resource("coherence") == pytest.approx(0.15)

    def test_choices_grow_complexity(self, engine):
        play_act_one(engine)
        engine.process_command("observe")
        engine.process_command("preserve")
        assert engine.city.resource("complexity") == pytest.approx(0.03)

    def test_choice_updates_relationship(self, engine):
        play_act_one(engine)
        engine.process_command("observe")
        output = engine.process_command("preserve")
        assert output.advances_scene
        assert engine.state.story_choices == 1
        assert engine.state.city_trust == pytest.approx(0.55)

    def test_missing_act_handler(self, moments, config, rng):
        engine = NarrativeEngine(moments, config=config, rng=rng)
        engine.acts = ActController(engine.selector, engine.voice, config, rng, act_classes={1: ActOne})
        play_act_one(engine)
        output = engine.process_command("observe")
        assert output.is_error
        assert output.text == "Error: No act manager for Act 2"


class TestEndings:
    """Full playthroughs reach a single, permanent ending."""

    def test_preserving_playthrough_reaches_archive(self, engine):
        play_act_one(engine)
        play_act_two(engine, "PRESERVE")
        play_act_three(engine, "QUESTION")
        output = play_act_four(engine, "ACCEPT")

        assert output.final_choice
        assert output.ending == Ending.ARCHIVE
        assert "ENDING: THE ARCHIVE" in output.text
        assert engine.state.reached_ending == Ending.ARCHIVE

        events = get_event_bus().get_history(EventType.ENDING_REACHED)
        assert [e.data["ending"] for e in events] == ["archive"]

    def test_after_ending(self, engine):
        play_act_one(engine)
        play_act_two(engine)
        play_act_three(engine)
        play_act_four(engine)

        output = engine.process_command("transcend")
        assert output.text.endswith("RESET to begin again.")
        assert output.ending == Ending.ARCHIVE
        assert engine.state.reached_ending == Ending.ARCHIVE

    def test_status_shows_ending(self, engine):
        play_act_one(engine)
        play_act_two(engine)
        play_act_three(engine)
        play_act_four(engine)
        assert "Ending: The Archive" in engine.process_command("status").text

    def test_reset(self, engine):
        play_act_one(engine)
        old_id = engine.state.id

        output = engine.process_command("reset")
        assert output.text == RESET_TEXT
        assert not output.is_dialogue
        assert engine.state.id != old_id
        assert engine.state.current_act == 1
        assert len(engine.city.threads) == 2
        assert not engine.selector.get_preserved_moments()


class TestDestruction:
    """Efficiency costs are reported on the output."""

    def test_destroyed_ids_reported(self):
        config = BalanceConfig()
        config.destruction.moderate_destruction_chance = 1.0
        config.destruction.high_destruction_chance = 1.0
        engine = NarrativeEngine(act_moments(), config=config, rng=random.Random(1))

        play_act_one(engine)
        engine.process_command("observe")
        pending = engine.state.act_state.pending_moment_id
        engine.process_command("optimize")
        output = engine.process_command("optimize")

        assert pending in output.destroyed_moment_ids
        assert len(output.destroyed_moment_ids) == 2
        assert engine.state.destroyed_moment_ids == set(output.destroyed_moment_ids)

    def test_no_destruction_on_story_choice(self, engine):
        play_act_one(engine)
        engine.process_command("observe")
        assert engine.process_command("preserve").destroyed_moment_ids == []


class TestPersistence:
    """Save and load through the injected store."""

    def test_save_and_load(self, engine, memory_store, moments, config):
        play_act_one(engine)
        engine.process_command("observe")
        engine.process_command("preserve")
        assert engine.save()

        other = NarrativeEngine(act_moments(), config=config, store=memory_store)
        assert other.load(engine.state.id)
        assert other.state.current_act == 2
        assert other.state.story_choices == 1
        assert other.state.revealed_moment_ids == engine.state.revealed_moment_ids
        assert len(other.selector.get_preserved_moments()) == 9
        assert len(other.city.threads) == 4

    def test_load_missing(self, engine):
        assert not engine.load("nope")

    def test_failing_store(self, moments):
        engine = NarrativeEngine(moments, store=FailingStore())
        assert not engine.save()

    def test_resume_from_state(self, engine, moments, config):
        play_act_one(engine)
        resumed = NarrativeEngine(act_moments(), config=config, state=engine.state.model_copy(deep=True))
        assert resumed.state.is_command_unlocked("PRESERVE")
        assert len(resumed.selector.get_preserved_moments()) == 8
