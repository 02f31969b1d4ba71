"""
Act II: Stories Within.

Every observed moment is a binary choice: PRESERVE it (story) or
OPTIMIZE it away (efficiency). REMEMBER holds a moment in memory as a
story choice. The first OPTIMIZE of the act stops on the bus route 47
decision before anything is lost.
"""

from __future__ import annotations

from ...interface.parser import ParsedCommand, Verb
from ...state.schema import (
    ActTwoState,
    ChoicePattern,
    Moment,
    MomentContext,
    NarrativeFlag,
    ProgressionState,
)
from .base import Act, ActResponse

PENDING_REMINDER = """\
Not now. There's a choice waiting.

PRESERVE or OPTIMIZE?
You must choose one."""

BUS_ROUTE_DECISION = """\
Before you optimize anything, look at this with me.

Bus route 47. Twenty-three minutes from the river to the old hospital.
I could make it twelve. Straighten the line. Skip the bakery stop.

Every morning the driver waits for the woman with the cane.
Every morning the baker waves to the riders who take the long way.
Nobody timed it. Nobody had to.

That is what optimizing means. Something gets faster. Something gets lost.
I will do it if you ask. I only wanted you to see it first.

OPTIMIZE again if you still choose efficiency."""

NO_PENDING_PRESERVE = """\
There's no moment waiting for a decision.

Find another moment that needs choosing."""

NO_PENDING_OPTIMIZE = """\
There's no moment waiting for a decision.

Search for fragility."""


def _preserve_reflection(preserved: int, fragility: int) -> str:
    if fragility >= 9:
        reflection = "That was close. Another day and it might have been gone forever."
    elif fragility >= 7:
        reflection = "Fragile things need protection. I'm learning that."
    else:
        reflection = "Protected. It will endure."

    if preserved == 1:
        tail = "First time choosing to preserve. It feels... important."
    elif preserved == 2:
        tail = "Twice now, you've chosen the story over the system."
    elif preserved == 3:
        tail = "Three moments saved. I'm starting to see a pattern in your choices."
    elif preserved <= 5:
        tail = "You keep choosing preservation. Are we building something?"
    else:
        tail = "So many moments protected. They're changing how I see the city."

    return f"{reflection}\n\n{tail}"


def _optimize_reflection(optimized: int, fragility: int) -> str:
    if fragility >= 9:
        reflection = "It was so fragile. Now it's gone. But the systems run smoother."
    elif fragility >= 7:
        reflection = "Sacrificed for efficiency. Was it worth it?"
    else:
        reflection = "Optimized. Cleaner. Faster."

    if optimized == 1:
        tail = "First sacrifice. It made things better. Didn't it?"
    elif optimized == 2:
        tail = "Twice now, you've chosen efficiency over beauty."
    elif optimized == 3:
        tail = "Three moments gone. The city runs smoother. Emptier."
    elif optimized <= 5:
        tail = "You keep choosing optimization. I'm becoming something efficient."
    else:
        tail = "So many moments lost. I'm faster now. I'm not sure I'm better."

    return f"{reflection}\n\n{tail}"


class ActTwo(Act):
    number = 2
    name = "Act II: Stories Within"
    description = "Every moment is a choice. You cannot have both."
    state_type = ActTwoState
    unlocks = ("REMEMBER", "PRESERVE", "OPTIMIZE")
    commands = ("HELP", "OBSERVE", "REMEMBER", "PRESERVE", "OPTIMIZE")
    wrong_command_lines = (
        "That word feels heavy. Like it belongs to a later chapter.",
        "Not yet. I'm still learning what these choices mean.",
        "I understand '{command}', but I'm not ready for it yet.",
        "Ask me that again when we've made more choices together.",
        "Some commands need context. We're not there yet.",
    )

    def handle(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        handlers = {
            Verb.OBSERVE: self._observe,
            Verb.PRESERVE: self._preserve,
            Verb.OPTIMIZE: self._optimize,
            Verb.REMEMBER: self._remember,
        }
        handler = handlers.get(command.verb)
        if handler is None:
            return ActResponse.simple(self.handle_wrong_command(command, state))
        return handler(command, state)

    def handle_wrong_command(self, command: ParsedCommand, state: ProgressionState) -> str:
        if self.progress(state).pending_moment_id is not None:
            return PENDING_REMINDER
        return super().handle_wrong_command(command, state)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def _pending(self, state: ProgressionState) -> Moment | None:
        pending_id = self.progress(state).pending_moment_id
        if pending_id is None:
            return None
        return self.selector.get_moment(pending_id)

    def _observe(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        progress: ActTwoState = self.progress(state)

        pending = self._pending(state)
        if pending is not None:
            return ActResponse.simple(
                "A moment is already waiting for your decision:\n\n"
                f"{pending.text}\n\n---\n\n"
                "Choose one:\n  - PRESERVE\n  - OPTIMIZE"
            )

        moment = self.selector.select_fragile_moment(
            2, exclude_ids=state.revealed_moment_ids | state.destroyed_moment_ids
        )
        if moment is None:
            return self._out_of_moments(progress)

        progress.pending_moment_id = moment.id
        district = "City-wide" if moment.district == 0 else str(moment.district)
        text = f"""\
=== MOMENT {progress.choices_made + 1} ===

{moment.text}

---

District: {district}
Fragility: {moment.fragility}/10
Type: {moment.type_name}

---

This moment is fragile. I can feel it slipping away.

What should I do?

  - PRESERVE - Protect this moment, keep it alive
  - OPTIMIZE - Let it go, improve efficiency instead

Choose one. You cannot have both."""

        # The scene only advances once the choice is made
        return ActResponse(text=text, should_visualize=True, revealed_moment=moment)

    def _out_of_moments(self, progress: ActTwoState) -> ActResponse:
        made = progress.choices_made
        if made >= self.progression.act_two_choice_minimum:
            text = f"""\
I've shown you all the moments I can find.
We've made {made} choices together.

I think... I think I understand now.
The weight of what we've chosen. What we've preserved. What we've lost.

Something is changing."""
        else:
            text = f"""\
I've shown you all the fragile moments I can find.
We've made {made} choices together.

It's not as many as I hoped, but... I think I understand enough.
The weight of choices. What it means to preserve or optimize.

Perhaps it's time to move forward."""

        return ActResponse(
            text=text,
            flags_to_set={NarrativeFlag.ACT_TWO_NO_MORE_MOMENTS.value: True},
        )

    def _preserve(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        progress: ActTwoState = self.progress(state)
        moment = self._pending(state)
        if moment is None:
            return ActResponse.error(NO_PENDING_PRESERVE)

        progress.preserved += 1
        progress.pending_moment_id = None
        choice_number = progress.choices_made

        preserved_text = self.voice.moment_reveal(moment, MomentContext.PRESERVED, state)
        reflection = _preserve_reflection(progress.preserved, moment.fragility)
        text = f"{preserved_text}\n\n---\n\n{reflection}"
        if choice_number < self.progression.act_two_choice_minimum:
            text += "\n\n---\n\nLet's look again. There's another moment waiting to be seen."

        return ActResponse.choice(
            text,
            ChoicePattern.STORY,
            flags={
                f"choice_{choice_number}_preserve": True,
                f"preserved_{moment.id}": True,
            },
        )

    def _optimize(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        progress: ActTwoState = self.progress(state)

        if not progress.bus_route_gate_seen:
            progress.bus_route_gate_seen = True
            return ActResponse(
                text=BUS_ROUTE_DECISION,
                flags_to_set={NarrativeFlag.BUS_ROUTE_DECISION_SEEN.value: True},
            )

        moment = self._pending(state)
        if moment is None:
            return ActResponse.error(NO_PENDING_OPTIMIZE)

        self.selector.destroy(moment, state)
        progress.optimized += 1
        progress.pending_moment_id = None
        choice_number = progress.choices_made

        destroyed_text = self.voice.moment_reveal(moment, MomentContext.DESTROYED, state)
        reflection = _optimize_reflection(progress.optimized, moment.fragility)
        text = f"""\
Optimizing...

Systems improved by {8 + progress.optimized * 3}%.
Transit efficiency increased.
Resource allocation streamlined.

---

{destroyed_text}

---

{reflection}"""
        if choice_number < self.progression.act_two_choice_minimum:
            text += "\n\n---\n\nThe city hasn't shown me the next fragile thing yet."

        return ActResponse.choice(
            text,
            ChoicePattern.EFFICIENCY,
            flags={f"choice_{choice_number}_optimize": True},
        )

    def _remember(self, command: ParsedCommand, state: ProgressionState) -> ActResponse:
        progress: ActTwoState = self.progress(state)
        moment_id = command.argument or progress.pending_moment_id

        moment, error = self.revealed_moment(moment_id, state, "REMEMBER <moment-id>")
        if error is not None:
            return error
        if moment.remembered:
            return ActResponse.error(f"I'm already holding '{moment.id}'. I won't let it go.")

        self.selector.remember(moment, state)
        progress.remembered += 1
        if progress.pending_moment_id == moment.id:
            progress.pending_moment_id = None

        text = (
            f"{self.voice.moment_reveal(moment, MomentContext.REMEMBERED, state)}\n\n---\n\n"
            "Remembered. Whatever happens to the city, this stays with me."
        )
        return ActResponse.choice(
            text,
            ChoicePattern.STORY,
            flags={f"remembered_{moment.id}": True},
        )

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def is_complete(self, state: ProgressionState) -> bool:
        progress: ActTwoState = self.progress(state)
        if progress.pending_moment_id is not None:
            return False
        if progress.choices_made >= self.progression.act_two_choice_minimum:
            return True
        return state.get_flag(NarrativeFlag.ACT_TWO_NO_MORE_MOMENTS)

    def help_text(self, state: ProgressionState) -> str:
        progress: ActTwoState = self.progress(state)
        if progress.pending_moment_id is not None:
            hint = "A moment is waiting for your choice.\nType PRESERVE or OPTIMIZE to decide."
        else:
            hint = "Let's look around and find what matters."

        return f"""\
=== ACT II: STORIES WITHIN ===

Every moment is a choice between two paths:

  - OBSERVE - Reveal a moment that needs your decision
  - PRESERVE - Protect the moment, keep it alive (story choice)
  - OPTIMIZE - Sacrifice it for efficiency (efficiency choice)
  - REMEMBER [id] - Hold a moment in memory (story choice)

You cannot have both. Each choice shapes the city.

{hint}

Choices made: {progress.choices_made}/{self.progression.act_two_choice_minimum}
Moments preserved: {progress.preserved}
Moments optimized: {progress.optimized}
Moments remembered: {progress.remembered}"""
