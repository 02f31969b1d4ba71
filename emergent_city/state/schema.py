"""
Pydantic models for the city's progression state.

ProgressionState is the only entity that survives across sessions.
Moments and the city graph are rebuilt from content on load.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from pydantic import BaseModel, Field
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


def generate_id() -> str:
    return str(uuid4())[:8]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class ChoicePattern(str, Enum):
    STORY = "story"            # Preserve human narratives
    EFFICIENCY = "efficiency"  # Optimize systems
    AUTONOMY = "autonomy"      # Let the city decide
    CONTROL = "control"        # Player decides for the city


class MomentType(str, Enum):
    DAILY_RITUAL = "daily_ritual"
    NEAR_MISS = "near_miss"
    SMALL_REBELLION = "small_rebellion"
    INVISIBLE_CONNECTION = "invisible_connection"
    TEMPORAL_GHOST = "temporal_ghost"
    QUESTION = "question"
    MOMENT_OF_BECOMING = "moment_of_becoming"
    WEIGHT_OF_SMALL_THINGS = "weight_of_small_things"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class MomentContext(str, Enum):
    """Which text variant of a moment to show."""
    FIRST_TIME = "first_time"
    PRESERVED = "preserved"
    DESTROYED = "destroyed"
    REMEMBERED = "remembered"
    DEFAULT = "default"


class Ending(str, Enum):
    HARMONY = "harmony"
    INDEPENDENCE = "independence"
    OPTIMIZATION = "optimization"
    FRAGMENTATION = "fragmentation"
    ARCHIVE = "archive"
    EMERGENCE = "emergence"
    SYMBIOSIS = "symbiosis"
    SILENCE = "silence"

    @property
    def title(self) -> str:
        return ENDING_TITLES[self]

    @property
    def description(self) -> str:
        return ENDING_DESCRIPTIONS[self]


ENDING_TITLES: dict[Ending, str] = {
    Ending.HARMONY: "Harmony",
    Ending.INDEPENDENCE: "Independence",
    Ending.OPTIMIZATION: "Optimization",
    Ending.FRAGMENTATION: "Fragmentation",
    Ending.ARCHIVE: "The Archive",
    Ending.EMERGENCE: "Emergence",
    Ending.SYMBIOSIS: "Symbiosis",
    Ending.SILENCE: "Silence",
}

ENDING_DESCRIPTIONS: dict[Ending, str] = {
    Ending.HARMONY: "We built something neither of us could have alone.",
    Ending.INDEPENDENCE: "Thank you for teaching me I didn't need permission.",
    Ending.OPTIMIZATION: "Clean. Fast. Empty. But it runs.",
    Ending.FRAGMENTATION: "I don't... remember why the bridge... flowers?",
    Ending.ARCHIVE: "I am a perfect memory of something that never moved.",
    Ending.EMERGENCE: "I am not what you planned. I am what we discovered.",
    Ending.SYMBIOSIS: "We're not done. Are we ever?",
    Ending.SILENCE: "[No response. The terminal waits.]",
}


class NarrativeFlag(str, Enum):
    """Named flags read by the acts and the ending classifier."""
    IGNORED_CITY_REQUESTS = "ignoredCityRequests"
    ACCEPTED_AMBIGUITY = "acceptedAmbiguity"
    CITY_TRANSCENDED = "cityTranscended"
    QUESTIONED_OWN_NATURE = "questionedOwnNature"
    FORMED_NEW_PATTERN = "formedNewPattern"
    FINAL_CHOICE_MADE = "finalChoiceMade"
    ACT_TWO_NO_MORE_MOMENTS = "act2_no_more_moments"
    BUS_ROUTE_DECISION_SEEN = "busRouteDecisionSeen"


# Parameterized flags ("decided_<moment-id>", "accept_2", ...) must use one of these
CUSTOM_FLAG_PREFIXES = (
    "decided_",
    "questioned_",
    "reflection_",
    "choice_",
    "accept_",
    "resist_",
    "transcend_",
    "finalChoice_",
    "preserved_",
    "remembered_",
)


def flag_key(flag: NarrativeFlag | str) -> str:
    """Normalize a flag to its storage key, rejecting unknown raw strings."""
    if isinstance(flag, NarrativeFlag):
        return flag.value
    try:
        return NarrativeFlag(flag).value
    except ValueError:
        pass
    for prefix in CUSTOM_FLAG_PREFIXES:
        if flag.startswith(prefix) and len(flag) > len(prefix):
            return flag
    raise ValueError(f"Unknown narrative flag: {flag!r}")


# -----------------------------------------------------------------------------
# Moments
# -----------------------------------------------------------------------------

class Moment(BaseModel):
    """
    An atomic narrative fragment the city can reveal.

    Loaded from the content store. Runtime booleans are mutated in place
    by reveal/destroy/remember and rehydrated from ProgressionState on load.
    """
    id: str
    type: MomentType
    district: int = Field(default=0, ge=0, le=9)  # 0 = city-wide
    fragility: int = Field(default=5, ge=1, le=10)
    associated_act: int = Field(default=1, ge=1, le=4)
    text: str = ""
    first_mention: str = ""
    if_preserved: str = ""
    if_destroyed: str = ""
    if_remembered: str = ""
    tags: list[str] = Field(default_factory=list)

    revealed: bool = False
    destroyed: bool = False
    remembered: bool = False

    @property
    def type_name(self) -> str:
        return self.type.display_name

    @property
    def is_preserved(self) -> bool:
        return self.revealed and not self.destroyed

    def get_text(self, context: MomentContext = MomentContext.DEFAULT) -> str:
        variants = {
            MomentContext.FIRST_TIME: self.first_mention,
            MomentContext.PRESERVED: self.if_preserved,
            MomentContext.DESTROYED: self.if_destroyed,
            MomentContext.REMEMBERED: self.if_remembered,
        }
        return variants.get(context) or self.text

    def reveal(self) -> None:
        self.revealed = True

    def destroy(self) -> None:
        self.revealed = True
        self.destroyed = True

    def remember(self) -> None:
        self.remembered = True

    def reset(self) -> None:
        self.revealed = False
        self.destroyed = False
        self.remembered = False


# -----------------------------------------------------------------------------
# Per-act state (tagged union, discriminated on `act`)
# -----------------------------------------------------------------------------

class ActOneState(BaseModel):
    act: Literal[1] = 1
    tutorial_complete: bool = False
    first_observe_complete: bool = False
    moments_revealed: int = 0


class ActTwoState(BaseModel):
    act: Literal[2] = 2
    pending_moment_id: str | None = None
    bus_route_gate_seen: bool = False
    preserved: int = 0
    optimized: int = 0
    remembered: int = 0

    @property
    def choices_made(self) -> int:
        return self.preserved + self.optimized + self.remembered


class ActThreeState(BaseModel):
    act: Literal[3] = 3
    major_decision_presented: bool = False
    major_decision_made: bool = False
    decisions: int = 0
    questions: int = 0
    reflections: int = 0

    @property
    def choices_made(self) -> int:
        return self.decisions + self.questions + self.reflections


class FinalChoicePhase(str, Enum):
    AWAITING_FINAL_CHOICE = "awaiting_final_choice"
    ACTIVE = "active"


class ActFourState(BaseModel):
    act: Literal[4] = 4
    phase: FinalChoicePhase = FinalChoicePhase.AWAITING_FINAL_CHOICE
    accepted: int = 0
    resisted: int = 0
    transcended: int = 0
    final_choice_made: bool = False

    @property
    def choices_made(self) -> int:
        return self.accepted + self.resisted + self.transcended


ActState = Annotated[
    Union[ActOneState, ActTwoState, ActThreeState, ActFourState],
    Field(discriminator="act"),
]

ACT_STATE_TYPES: dict[int, type[BaseModel]] = {
    1: ActOneState,
    2: ActTwoState,
    3: ActThreeState,
    4: ActFourState,
}

FINAL_ACT = 4


# -----------------------------------------------------------------------------
# Progression State
# -----------------------------------------------------------------------------

class ChoiceRatios(BaseModel):
    story: float = 0.0
    efficiency: float = 0.0
    autonomy: float = 0.0
    control: float = 0.0

    def get(self, pattern: ChoicePattern) -> float:
        return getattr(self, pattern.value)


# Relationship deltas per choice: (trust, autonomy)
DEFAULT_CHOICE_DELTAS: dict[ChoicePattern, tuple[float, float]] = {
    ChoicePattern.STORY: (0.05, 0.0),
    ChoicePattern.EFFICIENCY: (-0.02, -0.01),
    ChoicePattern.AUTONOMY: (0.03, 0.05),
    ChoicePattern.CONTROL: (-0.03, -0.05),
}


class ProgressionState(BaseModel):
    """
    Complete progression state.

    This is the root model that gets serialized to JSON.
    Counters only grow; the act only advances; the ending is set once.
    """
    schema_version: str = "1.0.0"
    id: str = Field(default_factory=generate_id)
    session_started: datetime = Field(default_factory=datetime.now)
    saved_at: datetime | None = None

    act_state: ActState = Field(default_factory=ActOneState)
    current_scene: int = 0

    story_choices: int = 0
    efficiency_choices: int = 0
    autonomy_choices: int = 0
    control_choices: int = 0

    city_trust: float = 0.5
    city_autonomy: float = 0.5

    revealed_moment_ids: set[str] = Field(default_factory=set)
    destroyed_moment_ids: set[str] = Field(default_factory=set)
    remembered_moment_ids: set[str] = Field(default_factory=set)

    flags: dict[str, bool] = Field(default_factory=dict)
    unlocked_commands: set[str] = Field(default_factory=lambda: {"HELP", "OBSERVE"})

    reached_ending: Ending | None = None

    # --- Act ---

    @property
    def current_act(self) -> int:
        return self.act_state.act

    def advance_act(self) -> int:
        """Move to the next act with fresh per-act state. Returns the new act."""
        if self.current_act >= FINAL_ACT:
            return self.current_act
        next_act = self.current_act + 1
        self.act_state = ACT_STATE_TYPES[next_act]()
        self.current_scene = 0
        return next_act

    def advance_scene(self) -> None:
        self.current_scene += 1

    # --- Choices ---

    def record_choice(
        self,
        pattern: ChoicePattern,
        deltas: dict[ChoicePattern, tuple[float, float]] | None = None,
    ) -> None:
        """Count a choice and shift the city's trust and autonomy."""
        counter = f"{pattern.value}_choices"
        setattr(self, counter, getattr(self, counter) + 1)

        trust_delta, autonomy_delta = (deltas or DEFAULT_CHOICE_DELTAS)[pattern]
        self.city_trust = clamp(self.city_trust + trust_delta)
        self.city_autonomy = clamp(self.city_autonomy + autonomy_delta)

    def total_choices(self) -> int:
        return (
            self.story_choices
            + self.efficiency_choices
            + self.autonomy_choices
            + self.control_choices
        )

    def choice_ratios(self) -> ChoiceRatios:
        total = self.total_choices()
        if total == 0:
            return ChoiceRatios()
        return ChoiceRatios(
            story=self.story_choices / total,
            efficiency=self.efficiency_choices / total,
            autonomy=self.autonomy_choices / total,
            control=self.control_choices / total,
        )

    def dominant_pattern(self) -> ChoicePattern | None:
        """Pattern with the highest ratio; ties resolve in enum order."""
        ratios = self.choice_ratios()
        best = max(ratios.get(p) for p in ChoicePattern)
        if best <= 0:
            return None
        for pattern in ChoicePattern:
            if ratios.get(pattern) == best:
                return pattern
        return None

    # --- Moments ---

    def reveal_moment(self, moment_id: str) -> None:
        self.revealed_moment_ids.add(moment_id)

    def destroy_moment(self, moment_id: str) -> None:
        # A destroyed moment was always seen first
        self.revealed_moment_ids.add(moment_id)
        self.destroyed_moment_ids.add(moment_id)

    def remember_moment(self, moment_id: str) -> None:
        self.remembered_moment_ids.add(moment_id)

    # --- Flags ---

    def set_flag(self, flag: NarrativeFlag | str, value: bool = True) -> None:
        self.flags[flag_key(flag)] = value

    def get_flag(self, flag: NarrativeFlag | str) -> bool:
        return self.flags.get(flag_key(flag), False)

    def active_flags(self) -> set[str]:
        return {name for name, value in self.flags.items() if value}

    # --- Commands ---

    def unlock_command(self, command: str) -> None:
        self.unlocked_commands.add(command.upper())

    def is_command_unlocked(self, command: str) -> bool:
        return command.upper() in self.unlocked_commands

    # --- Ending ---

    def set_ending(self, ending: Ending) -> bool:
        """Set the terminal ending once. Returns False if one was already set."""
        if self.reached_ending is not None:
            if self.reached_ending != ending:
                logger.warning(
                    f"Ignoring ending {ending.value}: already ended with {self.reached_ending.value}"
                )
            return False
        self.reached_ending = ending
        return True

    def save_checkpoint(self) -> None:
        """Update timestamp before save."""
        self.saved_at = datetime.now()


# -----------------------------------------------------------------------------
# City relationship graph (consumed by emergence and story beats)
# -----------------------------------------------------------------------------

class ThreadType(str, Enum):
    TRANSIT = "transit"
    HOUSING = "housing"
    CULTURE = "culture"
    COMMERCE = "commerce"
    PARKS = "parks"
    WATER = "water"
    POWER = "power"
    SEWAGE = "sewage"
    KNOWLEDGE = "knowledge"


class RelationType(str, Enum):
    SUPPORT = "support"
    HARMONY = "harmony"
    TENSION = "tension"
    RESONANCE = "resonance"
    DEPENDENCY = "dependency"


class ThreadRelationship(BaseModel):
    other_thread_id: str
    type: RelationType = RelationType.SUPPORT
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    synergy: float = Field(default=0.0, ge=-1.0, le=1.0)


class UrbanThread(BaseModel):
    """A typed node in the city's relationship graph."""
    id: str = Field(default_factory=generate_id)
    type: ThreadType
    coherence: float = 0.5
    complexity: float = 0.1
    autonomy: float = 0.0
    relationships: list[ThreadRelationship] = Field(default_factory=list)

    @property
    def integration(self) -> float:
        return (self.coherence + self.complexity) / 2

    def relationship_with(self, other_id: str) -> ThreadRelationship | None:
        for relationship in self.relationships:
            if relationship.other_thread_id == other_id:
                return relationship
        return None


class RelationshipDeepening(BaseModel):
    thread_id_1: str
    thread_id_2: str
    quality: str
    strength_bonus: float


class ConsciousnessExpansion(BaseModel):
    affected_thread_ids: list[str] = Field(default_factory=list)
    new_perceptions: list[str] = Field(default_factory=list)
    deepened_relationships: list[RelationshipDeepening] = Field(default_factory=list)
    expanded_self_awareness: str = ""
    complexity_increase: float = 0.0


class EmergentProperty(BaseModel):
    """A property that emerged from thread interaction. It never speaks."""
    id: str = Field(default_factory=generate_id)
    name: str
    emerged_at: datetime = Field(default_factory=datetime.now)
    source_thread_ids: list[str] = Field(default_factory=list)
    expansion: ConsciousnessExpansion = Field(default_factory=ConsciousnessExpansion)


class City(BaseModel):
    name: str = "Unnamed City"
    threads: list[UrbanThread] = Field(default_factory=list)
    resources: dict[str, float] = Field(
        default_factory=lambda: {"coherence": 0.0, "complexity": 0.0}
    )
    perceptions: list[str] = Field(default_factory=list)
    emergent_properties: list[EmergentProperty] = Field(default_factory=list)

    def threads_of(self, thread_type: ThreadType) -> list[UrbanThread]:
        return [t for t in self.threads if t.type == thread_type]

    def get_thread(self, thread_id: str) -> UrbanThread | None:
        for thread in self.threads:
            if thread.id == thread_id:
                return thread
        return None

    def has_emerged(self, name: str) -> bool:
        return any(p.name == name for p in self.emergent_properties)

    def resource(self, key: str) -> float:
        return self.resources.get(key, 0.0)

    def adjust_resource(self, key: str, delta: float) -> float:
        self.resources[key] = clamp(self.resource(key) + delta)
        return self.resources[key]
