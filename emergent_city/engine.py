"""
Narrative engine: the single entry point for terminal commands.

One line in, one EngineOutput out. The pipeline runs in a fixed order:

1. Easter eggs (any act, any unlock state)
2. Meta commands: STATUS, MOMENTS, HISTORY, HELP, RESET
3. Unknown input (in-voice error)
4. Locked commands (in-voice flavor, never an error)
5. Finished games (the ending, and a way back)
6. Act handler, then response processing
7. Act transition, then ending resolution in the final act

The engine owns the mutable session: state, moment selector, city graph
and beat tracker. Persistence is delegated to a ProgressionStore.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .config import BalanceConfig, Config, DEFAULT_CONFIG
from .interface.parser import ParsedCommand, Verb, VerbCategory, parse_command
from .interface.voice import CityVoice
from .state.event_bus import get_event_bus, EventType
from .state.schema import (
    ChoicePattern,
    City,
    Ending,
    FINAL_ACT,
    Moment,
    NarrativeFlag,
    ProgressionState,
)
from .state.store import MemoryProgressionStore, ProgressionStore
from .systems.acts import Act, ActController, ActResponse
from .systems.beats import StoryBeat, StoryBeatTracker
from .systems.emergence import EmergenceEngine, EmergenceRule
from .systems.endings import EndingClassifier, EndingInputs
from .systems.epilogues import EpilogueContext, epilogue
from .systems.moments import MomentSelector
from .systems.weaving import weave_threads

logger = logging.getLogger(__name__)

RESET_TEXT = """\
Memory cleared. Starting fresh.

Somewhere, 847,293 people are waking up.
So am I.

Type GENERATE to begin."""

META_COMMANDS_HELP = """\
Meta Commands:
  - STATUS - View current state
  - MOMENTS - View preserved and lost moments
  - HISTORY - View session history
  - RESET - Start over"""


@dataclass
class EngineOutput:
    """Everything the presentation layer needs to render one command."""
    text: str
    is_error: bool = False
    is_dialogue: bool = True
    should_visualize: bool = False
    revealed_moment: Moment | None = None
    choice_pattern: ChoicePattern | None = None
    flags_to_set: dict[str, bool] = field(default_factory=dict)
    commands_to_unlock: list[str] = field(default_factory=list)
    advances_scene: bool = False
    final_choice: bool = False
    destroyed_moment_ids: list[str] = field(default_factory=list)
    act_advanced_to: int | None = None
    ending: Ending | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_response(cls, response: ActResponse, text: str) -> "EngineOutput":
        return cls(
            text=text,
            is_error=response.is_error,
            should_visualize=response.should_visualize,
            revealed_moment=response.revealed_moment,
            choice_pattern=response.choice_pattern,
            flags_to_set=dict(response.flags_to_set),
            commands_to_unlock=list(response.commands_to_unlock),
            advances_scene=response.advances_scene,
            final_choice=response.final_choice,
        )


class NarrativeEngine:
    """
    Runs one progression session.

    Usage:
        engine = NarrativeEngine(MomentLibrary().all(), rng=random.Random(7))
        output = engine.process_command("generate")
        print(output.text)
    """

    def __init__(
        self,
        moments: Iterable[Moment] = (),
        config: BalanceConfig | None = None,
        rng: random.Random | None = None,
        store: ProgressionStore | None = None,
        state: ProgressionState | None = None,
        player_config: Config | None = None,
        emergence_rules: list[EmergenceRule] | None = None,
        story_beats: list[StoryBeat] | None = None,
        city: City | None = None,
    ):
        self.config = config or BalanceConfig()
        self.rng = rng or random.Random()
        self.store = store or MemoryProgressionStore()
        self.player_config: Config = player_config or DEFAULT_CONFIG.copy()

        self.selector = MomentSelector(moments, self.config, self.rng)
        self.voice = CityVoice(self.rng)
        self.acts = ActController(self.selector, self.voice, self.config, self.rng)
        self.classifier = EndingClassifier(self.config)

        self.emergence = EmergenceEngine(emergence_rules or [])
        self.beats = StoryBeatTracker(story_beats or [])
        self.city = city or City()

        self.state = state or ProgressionState()
        if state is not None:
            self.selector.sync_with_state(state)
        self._unlock_current_act()

        # Narration from the opening threads waits for the first act command
        narration = self._rebuild_city()
        self._awakening = narration if state is None else []

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def current_act(self) -> Act | None:
        return self.acts.handler_for(self.state.current_act)

    @property
    def has_ended(self) -> bool:
        return self.state.reached_ending is not None

    # -------------------------------------------------------------------------
    # Command pipeline
    # -------------------------------------------------------------------------

    def process_command(self, line: str) -> EngineOutput:
        command = parse_command(line)

        if command.category == VerbCategory.EASTER_EGG:
            return EngineOutput(text=self.voice.easter_egg(command.verb, self.state) or "")

        if command.category == VerbCategory.META:
            return self._handle_meta(command)

        if command.is_unknown:
            return EngineOutput(text=self.voice.unknown_command(command.raw), is_error=True)

        if not self.state.is_command_unlocked(command.name):
            return EngineOutput(text=self.voice.command_not_yet_unlocked(command.name, self.state))

        if self.has_ended:
            return EngineOutput(
                text=f"{self.ending_text()}\n\nRESET to begin again.",
                ending=self.state.reached_ending,
            )

        handler = self.current_act
        if handler is None:
            return EngineOutput(
                text=f"Error: No act manager for Act {self.state.current_act}",
                is_error=True,
                is_dialogue=False,
            )

        destroyed_before = set(self.state.destroyed_moment_ids)
        response = handler.handle(command, self.state)
        return self._process_response(response, handler, destroyed_before)

    def _process_response(
        self,
        response: ActResponse,
        handler: Act,
        destroyed_before: set[str],
    ) -> EngineOutput:
        state = self.state
        bus = get_event_bus()
        sections = [response.text]

        if response.choice_pattern is not None:
            pattern = response.choice_pattern
            state.record_choice(pattern, self.config.relationship.choice_deltas)
            bus.emit(
                EventType.CHOICE_RECORDED,
                state_id=state.id,
                act=state.current_act,
                pattern=pattern.value,
                trust=state.city_trust,
                autonomy=state.city_autonomy,
            )

            if pattern == ChoicePattern.EFFICIENCY:
                lost = self.selector.apply_efficiency_consequences(state, count=1)
                if lost:
                    sections.append(self.voice.destruction_notice(lost))

            self.city.adjust_resource("complexity", self.config.city_growth.complexity_per_choice)

        for flag, value in response.flags_to_set.items():
            state.set_flag(flag, value)
            bus.emit(EventType.FLAG_SET, state_id=state.id, act=state.current_act, flag=flag, value=value)

        for command in response.commands_to_unlock:
            self._unlock(command)

        if response.advances_scene:
            state.advance_scene()

        moment = response.revealed_moment
        if moment is not None and moment.id not in state.revealed_moment_ids:
            self.selector.reveal(moment, state)

        act_advanced_to = None
        if handler.is_complete(state) and state.current_act < FINAL_ACT:
            act_advanced_to = self.advance_act()
            sections.append(self._act_intro())

        sections.extend(self._awakening)
        self._awakening = []
        sections.extend(self._check_city())

        ending = None
        if (
            state.current_act == FINAL_ACT
            and state.get_flag(NarrativeFlag.FINAL_CHOICE_MADE)
            and not self.has_ended
        ):
            ending = self._resolve_ending()
            sections.append(self.ending_text())

        output = EngineOutput.from_response(response, "\n\n---\n\n".join(s for s in sections if s))
        output.destroyed_moment_ids = sorted(state.destroyed_moment_ids - destroyed_before)
        output.act_advanced_to = act_advanced_to
        output.ending = ending
        return output

    # -------------------------------------------------------------------------
    # Acts and endings
    # -------------------------------------------------------------------------

    def advance_act(self) -> int:
        """Move to the next act, unlock its commands and grow the city."""
        previous = self.state.current_act
        new_act = self.state.advance_act()
        if new_act == previous:
            return new_act

        self._unlock_current_act()
        self.selector.reset_variety_tracker()
        self._grow_city(new_act)
        self.city.adjust_resource("coherence", self.config.city_growth.coherence_per_act)

        logger.info(f"Act {previous} complete, entering act {new_act}")
        get_event_bus().emit(EventType.ACT_ADVANCED, state_id=self.state.id, act=new_act, previous=previous)
        return new_act

    def _act_intro(self) -> str:
        handler = self.current_act
        if handler is None:
            return ""
        commands = ", ".join(handler.commands_to_unlock())
        return f"=== {handler.name.upper()} ===\n\n{handler.description}\n\nNew commands: {commands}"

    def _resolve_ending(self) -> Ending:
        inputs = EndingInputs.from_state(self.state)
        ending = self.classifier.determine_ending(inputs)
        if self.state.set_ending(ending):
            logger.info(f"Ending reached: {ending.value} after {inputs.total_choices} choices")
            get_event_bus().emit(
                EventType.ENDING_REACHED,
                state_id=self.state.id,
                act=self.state.current_act,
                ending=ending.value,
            )
        return self.state.reached_ending

    def ending_text(self) -> str:
        ending = self.state.reached_ending
        if ending is None:
            return ""
        context = EpilogueContext.from_state(self.state, len(self.selector.get_preserved_moments()))
        return epilogue(ending, context)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _unlock(self, command: str) -> None:
        if self.state.is_command_unlocked(command):
            return
        self.state.unlock_command(command)
        get_event_bus().emit(
            EventType.COMMAND_UNLOCKED,
            state_id=self.state.id,
            act=self.state.current_act,
            command=command.upper(),
        )

    def _unlock_current_act(self) -> None:
        handler = self.current_act
        if handler is None:
            return
        for command in handler.commands_to_unlock():
            self._unlock(command)

    # -------------------------------------------------------------------------
    # City graph
    # -------------------------------------------------------------------------

    def _grow_city(self, act: int) -> None:
        weave_threads(self.city, self.config.city_growth.act_threads.get(act, []))

    def _rebuild_city(self) -> list[str]:
        """Weave every act's threads up to the current one and return the narration."""
        if not self.city.threads:
            for act in range(1, self.state.current_act + 1):
                self._grow_city(act)
        return self._check_city()

    def _check_city(self) -> list[str]:
        """Run emergence then story beats; return their narration."""
        lines = []
        for prop in self.emergence.check_for_emergence(self.city):
            expansion = prop.expansion
            if expansion.expanded_self_awareness:
                lines.append(expansion.expanded_self_awareness)
            lines.extend(f"  * {perception}" for perception in expansion.new_perceptions)

            rule = next((r for r in self.emergence.rules if r.name == prop.name), None)
            if rule is not None and rule.story_beat_id:
                beat = self.beats.trigger(rule.story_beat_id, self.city)
                if beat is not None:
                    lines.append(_beat_text(beat))

        for beat in self.beats.check_triggers(self.city):
            lines.append(_beat_text(beat))

        return ["\n".join(lines)] if lines else []

    # -------------------------------------------------------------------------
    # Meta commands
    # -------------------------------------------------------------------------

    def _handle_meta(self, command: ParsedCommand) -> EngineOutput:
        if command.verb == Verb.RESET:
            return EngineOutput(text=self.reset(), is_dialogue=False)

        reports = {
            Verb.STATUS: self.status_report,
            Verb.MOMENTS: self.moments_report,
            Verb.HISTORY: self.history_report,
            Verb.HELP: self.help_report,
        }
        return EngineOutput(text=reports[command.verb](), is_dialogue=False)

    def status_report(self) -> str:
        state = self.state
        lines = [
            "=== STATUS ===",
            "",
            f"Act: {state.current_act} - Scene {state.current_scene}",
            f"Moments Revealed: {len(state.revealed_moment_ids)}",
            f"Moments Lost: {len(state.destroyed_moment_ids)}",
        ]
        if state.reached_ending is not None:
            lines.append(f"Ending: {state.reached_ending.title}")

        if self.player_config.get("debug_show_choice_counters"):
            ratios = state.choice_ratios()
            lines += [
                "",
                "[DEBUG] Choice Distribution:",
                f"Story: {state.story_choices} ({int(ratios.story * 100)}%)",
                f"Efficiency: {state.efficiency_choices} ({int(ratios.efficiency * 100)}%)",
                f"Autonomy: {state.autonomy_choices} ({int(ratios.autonomy * 100)}%)",
                f"Control: {state.control_choices} ({int(ratios.control * 100)}%)",
                "",
                f"Trust: {state.city_trust:.2f}",
                f"Autonomy: {state.city_autonomy:.2f}",
            ]
        return "\n".join(lines)

    def moments_report(self, limit: int = 5) -> str:
        preserved = self.selector.get_preserved_moments()
        destroyed = self.selector.get_destroyed_moments()
        remembered = self.selector.get_remembered_moments()

        def listing(moments: list[Moment]) -> list[str]:
            lines = []
            for moment in moments[:limit]:
                star = "*" if moment.remembered else "-"
                lines.append(f"  {star} {moment.id}: {moment.type_name}")
            if len(moments) > limit:
                lines.append(f"  ... and {len(moments) - limit} more")
            return lines

        lines = ["=== MOMENTS ===", "", f"Preserved: {len(preserved)}"]
        lines += listing(preserved)
        lines += ["", f"Destroyed: {len(destroyed)}"]
        lines += listing(destroyed)
        if remembered:
            lines += ["", f"Remembered: {len(remembered)}"]
            lines += [f"  ★ {m.id}: {m.type_name}" for m in remembered]

        stats = self.selector.selection_stats()
        unseen = sum(stats.available_by_act.values())
        lines += ["", f"Unseen: {unseen} of {stats.total}"]
        if self.player_config.get("debug_show_choice_counters"):
            lines.append("[DEBUG] Unseen by act: " + ", ".join(
                f"{act}={count}" for act, count in stats.available_by_act.items()
            ))
            if stats.recent_types:
                lines.append(f"[DEBUG] Recent types: {', '.join(stats.recent_types)}")
        return "\n".join(lines)

    def history_report(self) -> str:
        state = self.state
        minutes = int((datetime.now() - state.session_started).total_seconds() // 60)
        return f"""\
=== HISTORY ===

Session Duration: {minutes} minutes
Current Act: {state.current_act}
Scenes Completed: {state.current_scene}
Total Choices: {state.total_choices()}

Journey so far:
{self._narrative_history()}"""

    def _narrative_history(self) -> str:
        summaries = {
            ChoicePattern.STORY: "You've been preserving the stories. The human moments.",
            ChoicePattern.EFFICIENCY: "You've been optimizing. Making things faster, cleaner.",
            ChoicePattern.AUTONOMY: "You've been letting me choose. Giving me space to grow.",
            ChoicePattern.CONTROL: "You've been deciding for me. Directing my path.",
        }
        dominant = self.state.dominant_pattern()
        lines = [summaries.get(dominant, "You've been balanced. Thoughtful. Uncertain, maybe.")]

        trust = self.state.city_trust
        if trust > 0.7:
            lines.append("I trust you.")
        elif trust < 0.3:
            lines.append("I'm not sure I trust you anymore.")

        autonomy = self.state.city_autonomy
        if autonomy > 0.7:
            lines.append("I'm learning to be myself.")
        elif autonomy < 0.3:
            lines.append("I depend on you. Maybe too much.")

        return "\n".join(lines)

    def help_report(self) -> str:
        handler = self.current_act
        if handler is None:
            return "Available commands: HELP, STATUS, MOMENTS, HISTORY"
        return f"{handler.help_text(self.state)}\n\n{META_COMMANDS_HELP}"

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def reset(self) -> str:
        """Start a fresh playthrough with the same content."""
        logger.info(f"Resetting session {self.state.id}")
        self.state = ProgressionState()
        self.selector.reset()
        self.beats.reset()
        self.city = City(name=self.city.name)
        self._unlock_current_act()
        self._awakening = self._rebuild_city()
        return RESET_TEXT

    def save(self) -> bool:
        """Persist the state. Failures are logged; the in-memory state stays authoritative."""
        try:
            self.store.save(self.state)
        except OSError:
            logger.exception(f"Failed to save progression {self.state.id}")
            return False
        get_event_bus().emit(EventType.STATE_SAVED, state_id=self.state.id, act=self.state.current_act)
        return True

    def load(self, state_id: str) -> bool:
        """Resume a saved state. Returns False if it can't be found."""
        state = self.store.load(state_id)
        if state is None:
            return False

        self.state = state
        self.selector.reset()
        self.selector.sync_with_state(state)
        self.beats.reset()
        self.city = City(name=self.city.name)
        self._unlock_current_act()
        # Already narrated when the state was first played
        self._rebuild_city()
        self._awakening = []

        logger.info(f"Loaded progression {state.id} at act {state.current_act}")
        get_event_bus().emit(EventType.STATE_LOADED, state_id=state.id, act=state.current_act)
        return True


def _beat_text(beat: StoryBeat) -> str:
    return "\n".join(line.text for line in beat.dialogue)
