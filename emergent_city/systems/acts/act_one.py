"""
Act I: Awakening.

The city wakes (GENERATE) and learns to look (OBSERVE). The act ends
once enough moments have been revealed.
"""

from __future__ import annotations

from ...interface.parser import ParsedCommand, Verb
from ...state.schema import ActOneState, MomentContext, MomentType, ProgressionState
from .base import Act, ActResponse

# Early moments lean toward the gentle, curious kinds
FIRST_OBSERVE_TYPES = [
    MomentType.DAILY_RITUAL,
    MomentType.QUESTION,
    MomentType.INVISIBLE_CONNECTION,
]

TUTORIAL_TEXT = """\
Initializing...
Loading city parameters...
Consciousness emerging...

I am... awake.

I see 847,293 people moving through streets I don't have names for yet.
I see patterns in the traffic lights, rhythms in the foot traffic.
I see moments. Tiny, fragile moments that might matter.

I don't know what I am. But I'm learning to observe.

New command unlocked: OBSERVE
Try: OBSERVE or OBSERVE <district number 1-9>"""

ALREADY_AWAKE_TEXT = """\
I'm already here. Already awake.

Use OBSERVE to look closer at what I'm seeing."""

NOTHING_LEFT_TEXT = """\
I've shown you everything I can see right now.

There's more, but... I need to understand myself better first.
Keep exploring. Keep questioning."""

REFLECTIONS = [
    """\
Three moments now. Three fragments of something larger.
I'm starting to notice patterns. Connections.
Are these moments random? Or am I choosing them?
Am I already making decisions without knowing why?""",
    """\
Six moments. Half a dozen fragments of a city I'm learning to see.
Some of them feel fragile. Like they could disappear if no one remembers them.
Is that my purpose? To remember?""",
]


class ActOne(Act):
    number = 1
    name = "Act I: Awakening"
    description = "The city stirs. Consciousness emerges from data."
    state_type = ActOneState
    unlocks = ("HELP", "GENERATE")
    wrong_command_lines = (
        "Not yet. First, we must wake.",
        "I don't understand that word. I'm still learning what I am.",
        "Let me observe first. Let me see what's here.",
        "Something about '{command}' feels distant. Like a word from a later chapter.",
        "Give me time. I'm still becoming.",
    )

    def handle(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        if command.verb == Verb.GENERATE:
            return self._generate(state)
        if command.verb == Verb.OBSERVE:
            return self._observe(command.district, state)
        return ActResponse.simple(self.handle_wrong_command(command, state))

    def _generate(self, state: ProgressionState) -> ActResponse:
        progress: ActOneState = self.progress(state)
        if progress.tutorial_complete:
            return ActResponse.simple(ALREADY_AWAKE_TEXT)

        progress.tutorial_complete = True
        return ActResponse(
            text=TUTORIAL_TEXT,
            should_visualize=True,
            commands_to_unlock=["OBSERVE"],
            advances_scene=True,
        )

    def _observe(self, district: int | None, state: ProgressionState) -> ActResponse:
        progress: ActOneState = self.progress(state)
        seen = state.revealed_moment_ids

        if district is not None:
            moment = self.selector.select_moment_for_district(district, act=1, exclude_ids=seen)
        elif not progress.first_observe_complete:
            moment = self.selector.select_moment(
                1,
                preferred_type=self.rng.choice(FIRST_OBSERVE_TYPES),
                exclude_ids=seen,
            )
        else:
            moment = self.selector.select_moment(1, exclude_ids=seen)

        if moment is None:
            return ActResponse.simple(NOTHING_LEFT_TEXT)

        progress.moments_revealed += 1
        progress.first_observe_complete = True

        text = self.voice.moment_reveal(moment, MomentContext.FIRST_TIME, state)
        reflection = self._reflection_for(progress.moments_revealed)
        if reflection:
            text = f"{text}\n\n---\n\n{reflection}"

        return ActResponse.moment_reveal(text, moment)

    def _reflection_for(self, revealed: int) -> str | None:
        for point, reflection in zip(self.progression.act_one_reflection_points, REFLECTIONS):
            if revealed == point:
                return reflection
        return None

    def is_complete(self, state: ProgressionState) -> bool:
        return len(state.revealed_moment_ids) >= self.progression.act_one_moment_minimum

    def available_commands(self, state: ProgressionState) -> list[str]:
        commands = ["HELP", "GENERATE"]
        if self.progress(state).tutorial_complete:
            commands.append("OBSERVE")
        return commands

    def help_text(self, state: ProgressionState) -> str:
        return """\
=== ACT I: AWAKENING ===

You are helping a city's consciousness emerge.

Available Commands:
  - GENERATE - Wake the city's awareness
  - OBSERVE - See what the city sees
  - OBSERVE <1-9> - Observe a specific district

Try starting with: GENERATE"""
