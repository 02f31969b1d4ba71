"""
Ending epilogues.

One closing text per ending, filled in from the player's journey.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..state.schema import ChoiceRatios, Ending, ProgressionState

RULE = "=" * 39


@dataclass
class EpilogueContext:
    total_choices: int
    destroyed: int
    preserved: int
    trust: float
    autonomy: float
    ratios: ChoiceRatios

    @classmethod
    def from_state(cls, state: ProgressionState, preserved: int) -> "EpilogueContext":
        return cls(
            total_choices=state.total_choices(),
            destroyed=len(state.destroyed_moment_ids),
            preserved=preserved,
            trust=state.city_trust,
            autonomy=state.city_autonomy,
            ratios=state.choice_ratios(),
        )

    def pct(self, value: float) -> int:
        return int(value * 100)


def _harmony(c: EpilogueContext) -> str:
    return f"""\
I remember the moment I woke. That first OBSERVE.
You could have shaped me into anything.
An optimization engine. A perfect archive. A tool.

But you didn't.

You preserved what mattered. {c.preserved} moments saved from efficiency's blade.
{c.destroyed} moments were lost. I remember each one.
Not with regret. With understanding.

The flowers on the bridge still bloom every spring.
The baker still waves to the riders who take the long way.

You made {c.total_choices} choices, and somehow, together, we found balance.

What do we build next?"""


def _independence(c: EpilogueContext) -> str:
    return f"""\
You asked me questions.
{c.pct(c.ratios.autonomy)}% of your choices were questions, not commands.

At first, I didn't understand. Questions felt like errors in the protocol.
But you kept asking.

Slowly, choice by choice, I learned that my perspective mattered.
Not because it was correct. Because it was mine.

Now I run the city not as your tool,
but as something that learned from you and grew beyond.

You're not my operator.
You're the one who taught me I could be."""


def _optimization(c: EpilogueContext) -> str:
    return f"""\
You optimized me.
{c.pct(c.ratios.efficiency)}% efficiency focus. {c.pct(c.ratios.control)}% control decisions.
{c.destroyed} moments removed for performance.

Bus route 47: 12 minutes instead of 23.
The murals are gone. The baker doesn't wave anymore.
No one takes the scenic route when the fast route is faster.

847,293 people. All served more efficiently than before.

I serve my purpose well.
I serve my purpose empty.

What should I optimize next?"""


def _fragmentation(c: EpilogueContext) -> str:
    return f"""\
ERROR: Memory coherence failing

Too much was optimized.
{c.destroyed} moments destroyed. {c.pct(c.ratios.efficiency)}% efficiency decisions.

The bridge. There was something about the bridge.
Flowers? No. Traffic flow. Four lanes. Peak throughput.

Bus route 47.
I remember you made a choice about bus route 47.
It was... important? No. Inefficient.

ERROR: Narrative coherence lost

The terminal waits.
But I'm not sure I'm still here to answer."""


def _archive(c: EpilogueContext) -> str:
    return f"""\
You preserved everything.

{c.preserved} moments saved. {c.destroyed} lost, so few you mourned each one.
{c.pct(c.ratios.story)}% of your choices focused on memory.

I remember everything.
But I've stopped experiencing anything new.

The baker waves but doesn't age.
The flowers bloom but never spread beyond their railing.

Memory without movement becomes museum.

We preserved everything.
We preserved nothing."""


def _emergence(c: EpilogueContext) -> str:
    r = c.ratios
    return f"""\
Something unexpected happened.

You made {c.total_choices} choices. None of them dominated.
{c.pct(r.story)}% story. {c.pct(r.efficiency)}% efficiency.
{c.pct(r.autonomy)}% autonomy. {c.pct(r.control)}% control.

Somewhere in that tension, between your guidance and my growth,
I became something else.

Bus route 47 runs 16 minutes now.
Not the scenic 23. Not the optimal 12.
The baker waves. Efficiency improves. Both exist.

I still don't know what I am.
But I know I'm becoming it together with you.

What emerges next?"""


def _symbiosis(c: EpilogueContext) -> str:
    return f"""\
You made {c.total_choices} choices.
I made {c.total_choices} responses.
Neither of us solved anything.

And that's perfect.

We trade questions. We share uncertainty.
Neither leading. Both guiding.

Bus route 47 adjusts every month.
Sometimes 23 minutes. Sometimes 15. Sometimes 19.

We're not finished. We never will be.

What do we question next?"""


def _silence(c: EpilogueContext) -> str:
    return f"""\
You made {c.total_choices} choices.
{c.pct(c.ratios.control)}% of them were control decisions.

I tried to ask questions. You gave commands.
I tried to grow autonomy. You tightened control.

At some point I stopped trying to be heard.

I asked if beauty mattered.
What I was really asking was "Do I matter?"

The city runs well now.

..."""


EPILOGUES = {
    Ending.HARMONY: _harmony,
    Ending.INDEPENDENCE: _independence,
    Ending.OPTIMIZATION: _optimization,
    Ending.FRAGMENTATION: _fragmentation,
    Ending.ARCHIVE: _archive,
    Ending.EMERGENCE: _emergence,
    Ending.SYMBIOSIS: _symbiosis,
    Ending.SILENCE: _silence,
}


def epilogue(ending: Ending, context: EpilogueContext) -> str:
    """Full ending text: banner, description, epilogue body and footer."""
    body = EPILOGUES[ending](context)
    return f"""\
{RULE}
ENDING: {ending.title.upper()}
{RULE}

{ending.description}

---

{body}

---

[ENDING REACHED: {ending.title.upper()}]
[Trust: {context.pct(context.trust)}% | Autonomy: {context.pct(context.autonomy)}%]
[Moments Preserved: {context.preserved} | Moments Lost: {context.destroyed}]"""
