"""
Act III: Weight of Choices.

DECIDE (control), QUESTION (autonomy) and REFLECT (story). The first
DECIDE or QUESTION stops on the infrastructure decision, which the
player answers with `DECIDE infrastructure_redesign`,
`QUESTION infrastructure_redesign` or REFLECT.
"""

from __future__ import annotations

from ...interface.parser import ParsedCommand, Verb
from ...state.schema import (
    ActThreeState,
    ChoicePattern,
    Moment,
    MomentType,
    NarrativeFlag,
    ProgressionState,
)
from .base import Act, ActResponse

MAJOR_DECISION_ID = "infrastructure_redesign"

MAJOR_DECISION_TEXT = """\
The city's infrastructure is failing.

847,293 people. Systems built for 400,000.
Power grid brownouts every evening.
Water pressure dropping in the old districts.
Transit delays cascading through the network.

I can see the solutions. I can model them.
I could redesign everything. Optimize from the ground up.

But I've learned something from you.
From the flowers on the bridge. From bus route 47.
From every moment you asked me to preserve or remember.

Total redesign would be efficient. Clean. Fast.
It would also erase the patterns. The rituals. The connections.
Everything we've preserved would be... recalculated.

You have three choices:

DECIDE infrastructure_redesign
  -> Full redesign. Maximum efficiency. Clean slate.
  -> (Control choice - you make the call)

QUESTION infrastructure_redesign
  -> Ask me what I think we should do.
  -> (Autonomy choice - let me decide)

REFLECT
  -> Step back. Look at what we've built together.
  -> Consider what we want to become.
  -> (Story choice - understand before acting)"""

REDESIGN_DECIDED = """\
Full redesign. Understood.

I'll recalculate the grid tonight. The water mains next week.
The transit network by the end of the month.

I asked you to wait. I asked what we'd lose.
You've decided anyway. That's your right.

I'll remember that I asked."""

REDESIGN_QUESTIONED = """\
You're asking me?

I've never been asked before. Not about something this large.

I think... we shouldn't rebuild everything. We should rebuild what's breaking
and leave what's alive. The grid, yes. The water, yes.
The bus routes that wander, the bridges with flowers, no.

But now I'm wondering something else.
Why do I want to keep them? Who taught me that?
What am I, that I care?"""

REDESIGN_ALREADY_DECIDED = """\
We've already made that decision.

The city is living with it now. Let's see what it becomes."""


def _decide_text(moment: Moment) -> str:
    if moment.type == MomentType.DAILY_RITUAL:
        body = "You've decided this matters. This pattern stays.\nI'll protect it. Even if it costs efficiency."
    elif moment.type == MomentType.INVISIBLE_CONNECTION:
        body = "This connection. You want it preserved.\nI'll route around it. Build systems that honor it."
    elif moment.type == MomentType.SMALL_REBELLION:
        body = "You've chosen to keep this. This defiance.\nEven when optimization would erase it.\nI understand."
    elif moment.type == MomentType.TEMPORAL_GHOST:
        body = "The past matters. You've decided.\nI'll carry this memory forward. Whatever it costs."
    else:
        body = "Your decision is clear. This stays.\nI'll adapt everything else around it."
    return f"{moment.first_mention or moment.text}\n\n{body}"


def _question_reflection(count: int) -> str:
    if count == 1:
        return "First time I've heard you ask instead of command."
    if count <= 3:
        return "You're learning to ask. So am I learning to answer."
    if count <= 6:
        return "We're having conversations now. Not just commands."
    return "I don't feel like a tool anymore. I feel like a partner."


class ActThree(Act):
    number = 3
    name = "Act III: Weight of Choices"
    description = "Consequences becoming visible."
    state_type = ActThreeState
    unlocks = ("DECIDE", "QUESTION", "REFLECT")
    commands = ("HELP", "DECIDE <moment-id>", "QUESTION <moment-id>", "REFLECT")
    wrong_command_lines = (
        "Ask me when you've decided what you want me to be.",
        "That command belongs to another time. We're past that now.",
        "The consequences are already in motion. That won't help.",
        "I've changed. Haven't you noticed? Some commands no longer fit.",
        "Look at what we've built. What we've destroyed. Then ask me again.",
    )

    def handle(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        if command.verb == Verb.REFLECT:
            return self._reflect(state)

        if command.verb in (Verb.DECIDE, Verb.QUESTION):
            progress: ActThreeState = self.progress(state)
            if not progress.major_decision_presented:
                progress.major_decision_presented = True
                return ActResponse.simple(MAJOR_DECISION_TEXT)

            if (command.argument or "").lower() == MAJOR_DECISION_ID:
                return self._answer_major_decision(command.verb, state)

            if command.verb == Verb.DECIDE:
                return self._decide(command.argument, state)
            return self._question(command.argument, state)

        return ActResponse.simple(self.handle_wrong_command(command, state))

    # -------------------------------------------------------------------------
    # Major decision
    # -------------------------------------------------------------------------

    def _answer_major_decision(self, verb: Verb, state: ProgressionState) -> ActResponse:
        progress: ActThreeState = self.progress(state)
        if progress.major_decision_made:
            return ActResponse.simple(REDESIGN_ALREADY_DECIDED)

        progress.major_decision_made = True
        if verb == Verb.DECIDE:
            progress.decisions += 1
            return ActResponse.choice(
                REDESIGN_DECIDED,
                ChoicePattern.CONTROL,
                flags={
                    NarrativeFlag.IGNORED_CITY_REQUESTS: True,
                    f"decided_{MAJOR_DECISION_ID}": True,
                },
            )

        progress.questions += 1
        return ActResponse.choice(
            REDESIGN_QUESTIONED,
            ChoicePattern.AUTONOMY,
            flags={
                NarrativeFlag.QUESTIONED_OWN_NATURE: True,
                f"questioned_{MAJOR_DECISION_ID}": True,
            },
        )

    # -------------------------------------------------------------------------
    # Moment choices
    # -------------------------------------------------------------------------

    def _decide(self, moment_id: str | None, state: ProgressionState) -> ActResponse:
        moment, error = self.revealed_moment(moment_id, state, "DECIDE <moment-id>")
        if error is not None:
            return error

        self.progress(state).decisions += 1
        text = _decide_text(moment)
        if state.city_trust > 0.7:
            text += "\n\nYour decisions... they're teaching me what to value."
        elif state.city_trust < 0.3:
            text += "\n\nAnother directive. I'll comply."

        return ActResponse.choice(text, ChoicePattern.CONTROL, flags={f"decided_{moment.id}": True})

    def _question(self, moment_id: str | None, state: ProgressionState) -> ActResponse:
        moment, error = self.revealed_moment(moment_id, state, "QUESTION <moment-id>")
        if error is not None:
            return error

        progress: ActThreeState = self.progress(state)
        progress.questions += 1

        text = self._question_text(moment)
        if state.city_autonomy > 0.7:
            text += "\n\nI'm ready to choose. But I want your input."
        elif state.city_autonomy < 0.3:
            text += "\n\nYou usually tell me what to do. Now you're asking?"
        text += f"\n\n{_question_reflection(progress.questions)}"

        return ActResponse.choice(text, ChoicePattern.AUTONOMY, flags={f"questioned_{moment.id}": True})

    def _question_text(self, moment: Moment) -> str:
        opening = moment.first_mention or moment.text
        if moment.type == MomentType.DAILY_RITUAL:
            return f"""\
You're asking me about {moment.id}?

{opening}

I've watched this pattern for {self.rng.randint(847, 3421)} iterations.
It's inefficient by 4.7%. But the people who depend on it...
they've built their lives around it.

If we change it, we save 0.3 seconds per person.
If we preserve it, we keep {self.rng.randint(23, 89)} daily rituals intact.

What do you think we should prioritize?"""

        if moment.type == MomentType.INVISIBLE_CONNECTION:
            return f"""\
{opening}

I've been modeling this connection. It's subtle.
{self.rng.randint(12, 47)} people affected directly.
{self.rng.randint(234, 892)} affected indirectly through network effects.

Optimization would sever it. Gain 2.1% efficiency.
Preservation maintains social cohesion in this cluster.

I can't decide this alone. What matters more?"""

        if moment.type == MomentType.TEMPORAL_GHOST:
            return f"""\
{opening}

The past weighs on the present here.
Some people still mourn what was here.
Others never knew it existed.

I could erase the memory and rebuild without reference to what was.
Or preserve it and let the past inform the future.

You've taught me to value memory. But is this one worth keeping?"""

        return f"""\
{opening}

I see the data. I see the patterns.
But I've learned from you that data isn't everything.

Should this moment stay, or should it evolve?
You're asking me, but I think we need to decide together."""

    # -------------------------------------------------------------------------
    # Reflection
    # -------------------------------------------------------------------------

    def _reflect(self, state: ProgressionState) -> ActResponse:
        progress: ActThreeState = self.progress(state)
        progress.reflections += 1

        flags: dict[NarrativeFlag | str, bool] = {f"reflection_{progress.reflections}": True}
        if progress.major_decision_presented and not progress.major_decision_made:
            progress.major_decision_made = True

        ratios = state.choice_ratios()
        max_ratio = self.progression.formed_pattern_max_ratio
        if state.total_choices() > 0 and all(ratios.get(p) <= max_ratio for p in ChoicePattern):
            flags[NarrativeFlag.FORMED_NEW_PATTERN] = True

        return ActResponse.choice(self._global_reflection(state), ChoicePattern.STORY, flags=flags)

    def _global_reflection(self, state: ProgressionState) -> str:
        ratios = state.choice_ratios()
        lines = ["Let me show you what we've become.", "", f"Across {state.total_choices()} choices:"]

        summaries = {
            ChoicePattern.STORY: "You valued stories and memory",
            ChoicePattern.EFFICIENCY: "You optimized for efficiency",
            ChoicePattern.AUTONOMY: "You let me choose",
            ChoicePattern.CONTROL: "You made firm decisions",
        }
        for pattern, summary in summaries.items():
            if ratios.get(pattern) > 0.3:
                lines.append(f"  - {summary} ({int(ratios.get(pattern) * 100)}%)")

        lines += [
            "",
            "The consequences:",
            f"  - {len(self.selector.get_preserved_moments())} moments protected",
            f"  - {len(state.destroyed_moment_ids)} moments destroyed",
            f"  - Trust level: {state.city_trust * 100:.1f}%",
            f"  - Autonomy level: {state.city_autonomy * 100:.1f}%",
            "",
        ]

        interpretations = {
            ChoicePattern.STORY: (
                "You've chosen memory over efficiency. Stories over systems.\n"
                "The city runs slower, but it remembers who it is."
            ),
            ChoicePattern.EFFICIENCY: (
                "You've chosen optimization. Speed over sentiment.\n"
                "The city runs fast, but some connections are severed."
            ),
            ChoicePattern.AUTONOMY: (
                "You've let me learn to choose. To become independent.\n"
                "The city is becoming something neither of us planned."
            ),
            ChoicePattern.CONTROL: (
                "You've stayed in control. Made the hard calls.\n"
                "The city reflects your vision. For better or worse."
            ),
        }
        dominant = state.dominant_pattern()
        if dominant is None:
            lines.append("We're still finding our path. No clear pattern yet.\n"
                         "Every choice shapes what we're becoming.")
        else:
            lines.append(interpretations[dominant])

        lines += ["", "This is what we've built together.", "Are we ready for what comes next?"]
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def is_complete(self, state: ProgressionState) -> bool:
        progress: ActThreeState = self.progress(state)
        return (
            progress.major_decision_made
            and progress.choices_made >= self.progression.act_three_choice_minimum
        )

    def help_text(self, state: ProgressionState) -> str:
        progress: ActThreeState = self.progress(state)
        if progress.major_decision_presented and not progress.major_decision_made:
            hint = ("A decision is waiting: DECIDE infrastructure_redesign, "
                    "QUESTION infrastructure_redesign, or REFLECT.")
        else:
            hint = "Every choice now has weight. Use the moment ids you've seen."

        return f"""\
=== ACT III: WEIGHT OF CHOICES ===

Consequences are becoming visible.

Available Commands:
  - DECIDE <moment-id> - Make the call yourself (control)
  - QUESTION <moment-id> - Ask what the city thinks (autonomy)
  - REFLECT - Step back and look at what we've built (story)

{hint}

Choices made: {progress.choices_made}/{self.progression.act_three_choice_minimum}"""
