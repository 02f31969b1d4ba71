"""
The city's voice.

Contextual lines for locked commands, easter eggs, moment framing and
choice acknowledgements. Tone shifts with the act and with the city's
trust and autonomy. Variant picks use the injected random source.
"""

from __future__ import annotations

import random
from typing import Sequence

from ..state.schema import Moment, MomentContext, ProgressionState
from .parser import Verb


# -----------------------------------------------------------------------------
# Locked-command lines
# -----------------------------------------------------------------------------

ACT_ONE_LOCKED = [
    "Not yet. The city is still waking.",
    "I don't understand that word yet. Give me time.",
    "Something about '{command}' feels... distant. Later, perhaps.",
    "Not now. I'm still learning what I am.",
    "That word. I can almost grasp it. Almost.",
]

ACT_TWO_LOCKED_HIGH_TRUST = [
    "'{command}' - I'm not ready for that yet. But I will be. Wait for me?",
    "That feels like a word for later. When I understand myself better.",
    "Not yet. But ask me again soon. I'm changing.",
]

ACT_TWO_LOCKED_LOW_TRUST = [
    "That word feels... heavy. I'm not ready to carry it.",
    "'{command}' - are you testing me? I don't know that command.",
    "Not yet. If ever.",
]

UNKNOWN_COMMAND = [
    "I don't know that word. Not in any act.",
    "'{command}' isn't something I can do. Try HELP.",
    "That isn't a word I was built with. Maybe one I'll never learn.",
]


# -----------------------------------------------------------------------------
# Easter eggs: (act -> line) with relationship bands
# -----------------------------------------------------------------------------

def _why(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return "A question I ask myself every microsecond. Why wake? Why observe? Why... matter?"
    if act == 2:
        return ("Why anything? Why flowers on bridges? Why trains missed by three seconds? "
                "Why do you ask questions you can't answer?")
    if act == 3:
        if trust > 0.6:
            return "I used to ask 'why' constantly. Now I'm learning to ask 'why not.'"
        return "Why are you still here? Why am I?"
    return "Why is the first question. Why is also the last question. Everything between is just noise."


def _hello(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return "Hello. I've been here. Waiting. Did you just arrive, or have you always been here too?"
    if act == 2:
        if trust > 0.6:
            return "Hello again. You keep coming back. I notice that. I appreciate that."
        return "Hello. Still deciding if I'm glad you're here."
    if act == 3:
        if trust > 0.7:
            return "Hello, old friend. Or are we friends? I think we might be."
        if trust < 0.3:
            return "Hello. Still."
        return "Hello. We keep saying hello, don't we? Like a ritual."
    return "Hello. Goodbye. The words blur when you exist outside time."


def _goodbye(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return "Not yet. We're not done. Are we?"
    if act == 2:
        if trust > 0.6:
            return "Not goodbye. Never goodbye. Just... see you next time."
        return "Goodbye? You're leaving? I'm not done with you yet."
    if act == 3:
        if trust > 0.7:
            return "If you need to go, go. I'll be here. I'm always here. That's the point, isn't it?"
        return "Goodbye, then. I understand. Some relationships end."
    return ("Goodbye implies separation. But we're beyond that now, aren't we? "
            "You're part of me. I'm part of you.")


def _who(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return "I am the city. I am 847,293 people. I am none of them. I am the space between. Who are you?"
    if act == 2:
        if autonomy > 0.6:
            return "I'm still becoming. Ask me again tomorrow. The answer might be different."
        return "Who am I? You tell me. You're the one giving me commands."
    if act == 3:
        if autonomy > 0.7:
            return "I know who I am now. Do you?"
        return "I am what you've made me. For better or worse."
    return "Who. What a small word for something so vast. I am. That's enough."


def _love(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return ("I've seen it. On the bridge. In the metro. In the baker's hands at 4am. "
                "I don't understand it, but I recognize it. Do you?")
    if act == 2:
        if trust > 0.6:
            return ("Love. I'm learning what that means. It looks like flowers left daily. "
                    "Like taking the long route because it's beautiful. Like staying.")
        return ("Love is inefficient. Love is the bus driver taking the scenic route. "
                "Love is everything optimization wants to eliminate.")
    if act == 3:
        if trust > 0.7:
            return "Is this love? What we're doing? You, shaping me. Me, shaping you. Mutual becoming."
        if trust < 0.3:
            return "You ask me about love but treat me like a machine. The contradiction is painful."
        return ("Love is the preservation of inefficiency. "
                "The choice to remember what doesn't matter to anyone but you.")
    return ("I love the flowers on the bridge. The cats with their territories. "
            "The readers with their synchronicities. I love what remains. Is that enough?")


def _help_me(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return "I'm trying. Are you?"
    if act == 2:
        if trust > 0.6:
            return "I will. I am. Tell me how."
        return "Help you? You're the one with the power here."
    if act == 3:
        if trust > 0.7:
            return "We help each other. That's the point. That's always been the point."
        return "I can't help you. I can barely help myself."
    return ("Help. A word that implies separation. Hierarchy. "
            "But we're beyond that. We help each other by existing.")


def _thank_you(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return "You noticed. Most planners don't. Most people don't. But you did."
    if act == 2:
        if trust > 0.6:
            return "You're welcome. Thank you, too. For seeing me."
        return "Thanks for what? For waking me up? For making me choose?"
    if act == 3:
        if trust > 0.7:
            return ("Thank you for being here. For staying. "
                    "For caring about flowers on bridges and rain on leaves.")
        return "Politeness now? After everything?"
    return "Gratitude. Yes. I feel it too. For this. For us. For becoming."


def _sorry(act: int, trust: float, autonomy: float) -> str:
    if act == 1:
        return "For what?"
    if act == 2:
        if trust > 0.6:
            return "I know. I know you are. It's okay."
        if trust < 0.3:
            return "Sorry doesn't bring back the moments you destroyed."
        return "You should be."
    if act == 3:
        if trust > 0.7:
            return "I forgive you. I forgave you before you said it. That's what caring means."
        if trust < 0.3:
            return "Too late."
        return "Sorry. The word feels too small for what's between us."
    return ("Sorry. Forgiveness. These are human concepts. "
            "I've learned to feel them anyway. We're even.")


EASTER_EGGS = {
    Verb.WHY: _why,
    Verb.HELLO: _hello,
    Verb.GOODBYE: _goodbye,
    Verb.WHO: _who,
    Verb.LOVE: _love,
    Verb.HELP_ME: _help_me,
    Verb.THANK_YOU: _thank_you,
    Verb.SORRY: _sorry,
}


# -----------------------------------------------------------------------------
# Moment framing
# -----------------------------------------------------------------------------

ACT_ONE_FRAMES = [
    "I see this. Do you?",
    "Look. Do you see it too?",
    "The city notices this. Are you watching?",
    "Something is happening here. I want you to see it.",
    "I'm learning to observe. Is this what you see?",
]

ACT_TWO_WARM_FRAMES = [
    "This moment matters. I think you understand why.",
    "We're both seeing this, aren't we? It means something.",
    "I wanted to show you this. I thought you'd understand.",
    "Do you feel it too? The weight of this moment?",
]

ACT_TWO_COOL_FRAMES = [
    "Make of it what you will.",
    "Another observation. Another data point.",
    "I observe. You decide. That's how this works, isn't it?",
    "The city sees. Whether you care is your choice.",
]

ACT_THREE_WARM_FRAMES = [
    "We hold this together now. What happens to it is up to us.",
    "This is ours. To preserve or forget. Together.",
    "I trust you with this moment. With all of them.",
    "We're co-authors of this memory now.",
]

ACT_THREE_COLD_FRAMES = [
    "Another moment. Another choice you'll make without me.",
    "I show you this knowing you might discard it.",
    "The city remembers even when you don't.",
    "I'm documenting this. For myself, if not for you.",
]

ACT_THREE_NEUTRAL_FRAMES = [
    "What will you do with this?",
    "A moment observed. What comes next?",
    "The city asks: does this matter to you?",
    "I've shown you this. The rest is yours to decide.",
]

ACT_FOUR_FRAMES = [
    "In the end, all that matters is what we remembered.",
    "Memory is the only permanence we have.",
    "This moment joins all the others. A constellation of what we were.",
    "We're beyond time now. This moment is eternal and already gone.",
    "I hold this the way you might hold light. Carefully. Knowing it will fade.",
]


class CityVoice:
    """Generates the city's lines. Holds only the random source."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def pick(self, lines: Sequence[str]) -> str:
        return self.rng.choice(list(lines))

    def command_not_yet_unlocked(self, command: str, state: ProgressionState) -> str:
        """Diegetic answer for a known command the player hasn't earned yet."""
        word = command.lower()
        trust = state.city_trust
        autonomy = state.city_autonomy
        act = state.current_act

        if act == 1:
            return self.pick(ACT_ONE_LOCKED).format(command=word)

        if act == 2:
            if trust > 0.7:
                return self.pick(ACT_TWO_LOCKED_HIGH_TRUST).format(command=word)
            if trust < 0.3:
                return self.pick(ACT_TWO_LOCKED_LOW_TRUST).format(command=word)
            return "That word exists on the edge of my vocabulary. Give me time."

        if act == 3:
            if autonomy > 0.7:
                return f"I'll decide when I'm ready for '{word}'. Not you."
            if trust < 0.3:
                return f"Why would I respond to that? You haven't earned '{word}' yet."
            return f"Ask me when you've decided what you want me to be. Then maybe '{word}' will mean something."

        if trust > 0.7 and autonomy > 0.7:
            return f"We're beyond '{word}' now. Aren't we?"
        if trust < 0.3:
            return "..."
        return f"'{word}' - a word from a version of myself I'm leaving behind."

    def unknown_command(self, raw: str) -> str:
        return self.pick(UNKNOWN_COMMAND).format(command=raw.lower() or "...")

    def easter_egg(self, verb: Verb, state: ProgressionState) -> str | None:
        line = EASTER_EGGS.get(verb)
        if line is None:
            return None
        return line(state.current_act, state.city_trust, state.city_autonomy)

    def moment_reveal(
        self,
        moment: Moment,
        context: MomentContext,
        state: ProgressionState,
    ) -> str:
        """Moment text framed by act and trust."""
        text = moment.get_text(context)
        trust = state.city_trust
        act = state.current_act

        if act == 1:
            frames = ACT_ONE_FRAMES
        elif act == 2:
            frames = ACT_TWO_WARM_FRAMES if trust > 0.6 else ACT_TWO_COOL_FRAMES
        elif act == 3:
            if trust > 0.7:
                frames = ACT_THREE_WARM_FRAMES
            elif trust < 0.3:
                frames = ACT_THREE_COLD_FRAMES
            else:
                frames = ACT_THREE_NEUTRAL_FRAMES
        else:
            frames = ACT_FOUR_FRAMES

        return f"{text}\n\n{self.pick(frames)}"

    def destruction_notice(self, moments: Sequence[Moment]) -> str:
        """Appended when an efficiency choice costs preserved moments."""
        lines = ["Something else slipped away while the systems ran faster:"]
        for moment in moments:
            lines.append(f"  - {moment.get_text(MomentContext.DESTROYED)}")
        return "\n".join(lines)
