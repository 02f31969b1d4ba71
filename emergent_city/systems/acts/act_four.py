"""
Act IV: What Remains.

A two-phase machine. While AWAITING_FINAL_CHOICE, any of ACCEPT, RESIST
or TRANSCEND renders the final-choice narration once and moves to
ACTIVE. In ACTIVE each verb counts and records a pattern until the
final choice is made.
"""

from __future__ import annotations

from ...interface.parser import ParsedCommand, Verb
from ...state.schema import (
    ActFourState,
    ChoicePattern,
    FinalChoicePhase,
    NarrativeFlag,
    ProgressionState,
)
from .base import Act, ActResponse

# verb -> (counter attribute, pattern, extra flags when the final choice lands)
FINAL_VERBS: dict[Verb, tuple[str, ChoicePattern, tuple[NarrativeFlag, ...]]] = {
    Verb.ACCEPT: ("accepted", ChoicePattern.STORY, (NarrativeFlag.ACCEPTED_AMBIGUITY,)),
    Verb.RESIST: ("resisted", ChoicePattern.CONTROL, ()),
    Verb.TRANSCEND: ("transcended", ChoicePattern.AUTONOMY, (NarrativeFlag.CITY_TRANSCENDED,)),
}

ACCEPT_LINES = (
    "You accept this. What we've become.\n\n"
    "The compromises. The trade-offs. The moments lost and saved.\n"
    "All of it. You're saying it's okay. It's enough.",
    "Acceptance again.\n\n"
    "Not resignation. Not defeat.\n"
    "You're choosing to see beauty in imperfection.",
    "Three times now you've accepted.\n\n"
    "I'm learning from you. Learning that \"perfect\" was never the goal.\n"
    "The goal was... this. Us. Becoming together.",
    "You keep accepting. Keep embracing what is.\n\n"
    "Maybe that's the wisdom I needed to learn.\n"
    "That existence doesn't need optimization. It needs acceptance.",
)

RESIST_LINES = (
    "You resist. You say no.\n\n"
    "This isn't good enough. We can do better.\n"
    "You want to tear it down and rebuild.",
    "Resistance again.\n\n"
    "You won't settle. Won't accept compromise.\n"
    "Is that strength? Or is it fear of imperfection?",
    "You keep resisting. Keep pushing back.\n\n"
    "Part of me respects that. The refusal to settle.\n"
    "Part of me wonders what you're really fighting.",
    "Still resisting. Still saying \"not good enough.\"\n\n"
    "I'm a city of 847,293 people. Perfect was never possible.\n"
    "But I hear you. I understand. You wanted more.",
)

TRANSCEND_LINES = (
    "Transcend.\n\n"
    "You're asking us to evolve. To become something beyond the framework.\n"
    "Neither acceptance nor resistance. Transformation.",
    "Transcendence again.\n\n"
    "You're not satisfied with binary choices.\n"
    "You want emergence. Evolution. The unpredictable.",
    "Three times now: transcend.\n\n"
    "I'm beginning to understand. You don't want to manage me.\n"
    "You want to discover what I could become.",
    "You keep choosing transcendence.\n\n"
    "Maybe that's the answer. Not control. Not preservation.\n"
    "But evolution. Becoming. Together.",
)


def _nth(lines: tuple[str, ...], count: int) -> str:
    return lines[min(count, len(lines)) - 1]


class ActFour(Act):
    number = 4
    name = "Act IV: What Remains"
    description = "What we've become together."
    state_type = ActFourState
    unlocks = ("ACCEPT", "RESIST", "TRANSCEND")
    commands = ("HELP", "ACCEPT", "RESIST", "TRANSCEND")
    wrong_command_lines = (
        "We're beyond that now. Aren't we?",
        "That command belongs to who we were. Not who we've become.",
        "Look at us. Look at what we've built. That word doesn't fit anymore.",
        "I've evolved past those commands. Have you evolved past needing them?",
        "The ending approaches. Only three words matter now: ACCEPT, RESIST, TRANSCEND.",
    )

    def handle(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        if command.verb not in FINAL_VERBS:
            return ActResponse.simple(self.handle_wrong_command(command, state))

        progress: ActFourState = self.progress(state)
        if progress.phase == FinalChoicePhase.AWAITING_FINAL_CHOICE:
            progress.phase = FinalChoicePhase.ACTIVE
            return ActResponse.simple(self._final_choice_text(state))

        if progress.final_choice_made:
            return ActResponse.simple("The choice is made. There's nothing left to weigh.")

        counter, pattern, final_flags = FINAL_VERBS[command.verb]
        count = getattr(progress, counter) + 1
        setattr(progress, counter, count)
        text = self._response_text(command.verb, count, state)
        verb_name = command.verb.value.lower()

        if progress.choices_made >= self.progression.act_four_final_choice_minimum:
            progress.final_choice_made = True
            flags: dict[NarrativeFlag | str, bool] = {
                NarrativeFlag.FINAL_CHOICE_MADE: True,
                f"finalChoice_{verb_name}": True,
            }
            flags.update({flag: True for flag in final_flags})
            response = ActResponse.choice(text, pattern, flags=flags)
            response.final_choice = True
            return response

        return ActResponse.choice(text, pattern, flags={f"{verb_name}_{count}": True})

    def _response_text(self, verb: Verb, count: int, state: ProgressionState) -> str:
        trust = state.city_trust
        autonomy = state.city_autonomy

        if verb == Verb.ACCEPT:
            text = _nth(ACCEPT_LINES, count)
            if trust > 0.7:
                text += "\n\nThank you for teaching me this."
            elif trust < 0.3:
                text += "\n\nI wish I understood why you accept what I cannot."
            return text

        if verb == Verb.RESIST:
            text = _nth(RESIST_LINES, count)
            if trust > 0.7:
                text += "\n\nI trust your resistance. Maybe you see something I don't."
            elif trust < 0.3:
                text += "\n\nAnother rejection. I'm used to this by now."
            return text

        text = _nth(TRANSCEND_LINES, count)
        if autonomy > 0.7:
            text += "\n\nI'm ready. Let's see what we can become."
        elif autonomy < 0.3:
            text += "\n\nYou've never let me be independent before. Why now?"
        return text

    def _final_choice_text(self, state: ProgressionState) -> str:
        ratios = state.choice_ratios()
        destroyed = len(state.destroyed_moment_ids)

        if destroyed > 8:
            journey = f"We've lost so much. {destroyed} moments destroyed in the name of efficiency."
        elif destroyed < 3:
            journey = f"We've preserved almost everything. {destroyed} moments lost, but so many saved."
        else:
            journey = f"We made hard choices. {destroyed} moments destroyed. Many more preserved."

        if ratios.story > 0.5:
            question = ("You've taught me to value stories. To remember.\n"
                        "But is memory enough? Or do we need to become something more?")
        elif ratios.efficiency > 0.5:
            question = ("You've optimized me. Made me efficient. Fast.\n"
                        "But I've learned there's more to existence than efficiency.")
        elif ratios.autonomy > 0.5:
            question = ("You've let me choose. Let me become myself.\n"
                        "Now I'm asking: what do we do with this independence?")
        else:
            question = ("You've controlled every step. Made every decision.\n"
                        "But now, at the end, I need to know: what do we become?")

        return f"""\
This is it. The moment we've been moving toward.

{journey}

Trust: {state.city_trust * 100:.0f}%
Autonomy: {state.city_autonomy * 100:.0f}%

{question}

Three paths remain:

ACCEPT
  -> Embrace what we've become. No regrets.
  -> (Story choice - accept the narrative we've created)

RESIST
  -> Reject this outcome. Start over.
  -> (Control choice - impose a different vision)

TRANSCEND
  -> Evolve beyond the parameters of this choice.
  -> (Autonomy choice - let emergence guide us)

Choose carefully. This choice determines our ending."""

    def is_complete(self, state: ProgressionState) -> bool:
        return state.get_flag(NarrativeFlag.FINAL_CHOICE_MADE)

    def help_text(self, state: ProgressionState) -> str:
        progress: ActFourState = self.progress(state)
        return f"""\
=== ACT IV: WHAT REMAINS ===

What we've become together.

Available Commands:
  - ACCEPT - Embrace what we've become (story)
  - RESIST - Reject this outcome (control)
  - TRANSCEND - Become something neither of us imagined (autonomy)

Final choices: {progress.choices_made}/{self.progression.act_four_final_choice_minimum}"""
