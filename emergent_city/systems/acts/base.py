"""
Shared pieces of the act state machine.

Each act is a handler class over one variant of the per-act state union
stored on ProgressionState. Handlers never touch persistence or
rendering: they return an ActResponse and the engine applies it.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import ClassVar

from pydantic import BaseModel

from ...config import BalanceConfig
from ...interface.parser import ParsedCommand
from ...interface.voice import CityVoice
from ...state.schema import (
    ChoicePattern,
    Moment,
    NarrativeFlag,
    ProgressionState,
    flag_key,
)
from ..moments import MomentSelector


@dataclass
class ActResponse:
    """
    Result of one act command.

    The engine records the pattern, sets flags, unlocks commands,
    advances the scene and reveals the moment, in that order.
    """
    text: str
    is_error: bool = False
    should_visualize: bool = False
    revealed_moment: Moment | None = None
    choice_pattern: ChoicePattern | None = None
    flags_to_set: dict[str, bool] = field(default_factory=dict)
    commands_to_unlock: list[str] = field(default_factory=list)
    advances_scene: bool = False
    final_choice: bool = False

    @classmethod
    def simple(cls, text: str) -> "ActResponse":
        return cls(text=text)

    @classmethod
    def error(cls, text: str) -> "ActResponse":
        return cls(text=text, is_error=True)

    @classmethod
    def moment_reveal(cls, text: str, moment: Moment) -> "ActResponse":
        return cls(
            text=text,
            should_visualize=True,
            revealed_moment=moment,
            advances_scene=True,
        )

    @classmethod
    def choice(
        cls,
        text: str,
        pattern: ChoicePattern,
        flags: dict[NarrativeFlag | str, bool] | None = None,
    ) -> "ActResponse":
        return cls(
            text=text,
            should_visualize=True,
            choice_pattern=pattern,
            flags_to_set={flag_key(k): v for k, v in (flags or {}).items()},
            advances_scene=True,
        )


class Act:
    """
    Base class for the four act handlers.

    Subclasses set the class attributes and implement handle(),
    is_complete() and help_text().
    """

    number: ClassVar[int]
    name: ClassVar[str]
    description: ClassVar[str]
    state_type: ClassVar[type[BaseModel]]
    unlocks: ClassVar[tuple[str, ...]] = ()
    commands: ClassVar[tuple[str, ...]] = ()
    wrong_command_lines: ClassVar[tuple[str, ...]] = ("Not yet. Not here.",)

    def __init__(
        self,
        selector: MomentSelector,
        voice: CityVoice,
        config: BalanceConfig,
        rng: random.Random,
    ):
        self.selector = selector
        self.voice = voice
        self.config = config
        self.rng = rng

    @property
    def progression(self):
        return self.config.act_progression

    def progress(self, state: ProgressionState):
        """This act's private counters from the state's tagged union."""
        act_state = state.act_state
        if not isinstance(act_state, self.state_type):
            raise TypeError(
                f"Act {self.number} handler got state for act {act_state.act}"
            )
        return act_state

    def handle(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        raise NotImplementedError

    def is_complete(self, state: ProgressionState) -> bool:
        raise NotImplementedError

    def help_text(self, state: ProgressionState) -> str:
        raise NotImplementedError

    def available_commands(self, state: ProgressionState) -> list[str]:
        return list(self.commands)

    def commands_to_unlock(self) -> list[str]:
        return list(self.unlocks)

    def handle_wrong_command(self, command: ParsedCommand, state: ProgressionState) -> str:
        word = command.raw.split()[0].lower() if command.raw.split() else ""
        return self.rng.choice(list(self.wrong_command_lines)).format(command=word)

    # --- Shared helpers ---

    def revealed_moment(
        self,
        moment_id: str | None,
        state: ProgressionState,
        usage: str,
    ) -> tuple[Moment | None, ActResponse | None]:
        """
        Resolve a moment id the player typed.

        Returns (moment, None) on success or (None, error response) for
        a missing argument, an unknown id, an unobserved moment or one
        that is already gone.
        """
        if not moment_id:
            return None, ActResponse.error(f"Which moment? Use {usage}")

        moment = self.selector.get_moment(moment_id)
        if moment is None:
            return None, ActResponse.error(f"I don't recognize '{moment_id}'. Use {usage}")

        if moment_id not in state.revealed_moment_ids:
            return None, ActResponse.error("I haven't observed that moment yet.")

        if moment.destroyed:
            return None, ActResponse.error(
                f"'{moment_id}' is already gone. There's nothing left to hold."
            )

        return moment, None
