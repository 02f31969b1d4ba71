"""
Command parser for the city terminal.

Closed vocabulary: every line maps to exactly one Verb, with UNKNOWN for
anything that doesn't parse. Parsing never raises.

Pattern: one VerbSpec per verb carrying its aliases and argument shape,
registered in VERBS. The CLI completer and help text read the same table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Verb(str, Enum):
    # Act commands
    HELP = "HELP"
    GENERATE = "GENERATE"
    OBSERVE = "OBSERVE"
    REMEMBER = "REMEMBER"
    PRESERVE = "PRESERVE"
    OPTIMIZE = "OPTIMIZE"
    DECIDE = "DECIDE"
    QUESTION = "QUESTION"
    REFLECT = "REFLECT"
    ACCEPT = "ACCEPT"
    RESIST = "RESIST"
    TRANSCEND = "TRANSCEND"

    # Meta commands
    STATUS = "STATUS"
    MOMENTS = "MOMENTS"
    HISTORY = "HISTORY"
    RESET = "RESET"

    # Easter eggs
    WHY = "WHY"
    HELLO = "HELLO"
    GOODBYE = "GOODBYE"
    WHO = "WHO"
    LOVE = "LOVE"
    THANK_YOU = "THANK YOU"
    SORRY = "SORRY"
    HELP_ME = "HELP ME"

    UNKNOWN = "UNKNOWN"


class VerbCategory(str, Enum):
    """Verb categories for routing and display."""
    ACT = "Act"
    META = "Meta"
    EASTER_EGG = "Easter egg"
    UNKNOWN = "Unknown"


class ArgumentKind(str, Enum):
    NONE = "none"
    DISTRICT = "district"  # optional int 1-9
    TEXT = "text"          # free text: moment id, system, decision


@dataclass
class VerbSpec:
    """
    A single verb definition.

    Attributes:
        verb: The canonical verb
        description: Short description for help and completion
        category: Routing category
        aliases: Alternative spellings (uppercase)
        argument: Shape of the argument, if any
        hidden: If True, don't offer in completion
    """
    verb: Verb
    description: str
    category: VerbCategory
    aliases: list[str] = field(default_factory=list)
    argument: ArgumentKind = ArgumentKind.NONE
    hidden: bool = False

    @property
    def spellings(self) -> list[str]:
        return [self.verb.value, *self.aliases]


VERBS: list[VerbSpec] = [
    VerbSpec(Verb.HELP, "Show what you can do now", VerbCategory.META),
    VerbSpec(Verb.GENERATE, "Wake the city's awareness", VerbCategory.ACT, ["GEN"]),
    VerbSpec(Verb.OBSERVE, "See what the city sees", VerbCategory.ACT, ["OBS"], ArgumentKind.DISTRICT),
    VerbSpec(Verb.REMEMBER, "Hold a moment in memory", VerbCategory.ACT, ["REM"], ArgumentKind.TEXT),
    VerbSpec(Verb.PRESERVE, "Protect the moment", VerbCategory.ACT, ["KEEP"], ArgumentKind.TEXT),
    VerbSpec(Verb.OPTIMIZE, "Trade the moment for efficiency", VerbCategory.ACT, ["OPT"], ArgumentKind.TEXT),
    VerbSpec(Verb.DECIDE, "Make the call yourself", VerbCategory.ACT, ["CHOOSE"], ArgumentKind.TEXT),
    VerbSpec(Verb.QUESTION, "Ask the city what it thinks", VerbCategory.ACT, ["ASK"], ArgumentKind.TEXT),
    VerbSpec(Verb.REFLECT, "Step back and look at what we've built", VerbCategory.ACT, ["THINK"]),
    VerbSpec(Verb.ACCEPT, "Embrace what we've become", VerbCategory.ACT),
    VerbSpec(Verb.RESIST, "Reject this outcome", VerbCategory.ACT),
    VerbSpec(Verb.TRANSCEND, "Become something neither of us imagined", VerbCategory.ACT),
    VerbSpec(Verb.STATUS, "View current state", VerbCategory.META, ["STAT"]),
    VerbSpec(Verb.MOMENTS, "View preserved and lost moments", VerbCategory.META),
    VerbSpec(Verb.HISTORY, "View session history", VerbCategory.META, ["HIST"]),
    VerbSpec(Verb.RESET, "Start over", VerbCategory.META, ["RESTART"]),
    VerbSpec(Verb.WHY, "", VerbCategory.EASTER_EGG, hidden=True),
    VerbSpec(Verb.HELLO, "", VerbCategory.EASTER_EGG, ["HI"], hidden=True),
    VerbSpec(Verb.GOODBYE, "", VerbCategory.EASTER_EGG, ["BYE", "EXIT", "QUIT"], hidden=True),
    VerbSpec(Verb.WHO, "", VerbCategory.EASTER_EGG, hidden=True),
    VerbSpec(Verb.LOVE, "", VerbCategory.EASTER_EGG, hidden=True),
    VerbSpec(Verb.THANK_YOU, "", VerbCategory.EASTER_EGG, hidden=True),
    VerbSpec(Verb.SORRY, "", VerbCategory.EASTER_EGG, hidden=True),
    VerbSpec(Verb.HELP_ME, "", VerbCategory.EASTER_EGG, hidden=True),
]

_BY_VERB: dict[Verb, VerbSpec] = {spec.verb: spec for spec in VERBS}

# Single-word spellings; multi-word eggs are matched on the whole line first
_SPELLINGS: dict[str, VerbSpec] = {
    spelling: spec
    for spec in VERBS
    for spelling in spec.spellings
    if " " not in spelling
}
_PHRASES: dict[str, VerbSpec] = {
    spelling: spec
    for spec in VERBS
    for spelling in spec.spellings
    if " " in spelling
}


def get_spec(verb: Verb) -> VerbSpec | None:
    return _BY_VERB.get(verb)


@dataclass
class ParsedCommand:
    """A parsed terminal line."""
    verb: Verb
    raw: str
    argument: str | None = None
    district: int | None = None

    @property
    def category(self) -> VerbCategory:
        spec = get_spec(self.verb)
        return spec.category if spec else VerbCategory.UNKNOWN

    @property
    def name(self) -> str:
        """Name checked against the unlocked-command set."""
        return self.verb.value

    @property
    def is_unknown(self) -> bool:
        return self.verb == Verb.UNKNOWN


def parse_command(line: str) -> ParsedCommand:
    """
    Parse a terminal line. Case-insensitive; never raises.

    Examples:
        "observe 3"        -> OBSERVE, district=3
        "obs citywide"     -> OBSERVE, district=None
        "decide bridge_1"  -> DECIDE, argument="bridge_1"
        "thank you"        -> THANK_YOU
        "dance"            -> UNKNOWN
    """
    raw = line.strip()
    normalized = " ".join(raw.upper().split())

    if not normalized:
        return ParsedCommand(Verb.UNKNOWN, raw)

    if normalized in _PHRASES:
        return ParsedCommand(_PHRASES[normalized].verb, raw)

    head, _, rest = normalized.partition(" ")
    spec = _SPELLINGS.get(head)
    if spec is None:
        return ParsedCommand(Verb.UNKNOWN, raw)

    # Arguments keep their original case (moment ids are lowercase)
    original_rest = raw.split(None, 1)[1].strip() if rest else ""

    if spec.argument == ArgumentKind.DISTRICT:
        return ParsedCommand(spec.verb, raw, district=_parse_district(original_rest))

    if spec.argument == ArgumentKind.TEXT:
        return ParsedCommand(spec.verb, raw, argument=original_rest or None)

    return ParsedCommand(spec.verb, raw)


def _parse_district(text: str) -> int | None:
    try:
        district = int(text)
    except ValueError:
        return None
    return district if 1 <= district <= 9 else None


def completion_words(include_hidden: bool = False) -> list[str]:
    """Verbs offered by the CLI completer."""
    return [
        spec.verb.value
        for spec in VERBS
        if include_hidden or not spec.hidden
    ]
