"""
Pytest fixtures for the narrative engine tests.

Provides seeded randomness, small moment libraries and in-memory stores
for isolated testing.
"""

import random

import pytest

from emergent_city.config import BalanceConfig
from emergent_city.engine import NarrativeEngine
from emergent_city.interface.voice import CityVoice
from emergent_city.state import (
    MemoryProgressionStore,
    Moment,
    MomentType,
    ProgressionState,
    reset_event_bus,
)
from emergent_city.systems.moments import MomentSelector


def make_moment(
    moment_id: str,
    moment_type: MomentType = MomentType.DAILY_RITUAL,
    district: int = 1,
    fragility: int = 5,
    act: int = 1,
) -> Moment:
    """Moment with recognizable text for every variant."""
    return Moment(
        id=moment_id,
        type=moment_type,
        district=district,
        fragility=fragility,
        associated_act=act,
        text=f"{moment_id} text",
        first_mention=f"{moment_id} first",
        if_preserved=f"{moment_id} preserved",
        if_destroyed=f"{moment_id} destroyed",
        if_remembered=f"{moment_id} remembered",
    )


def act_moments() -> list[Moment]:
    """Ten act I moments, eight fragile act II moments, a few for later acts."""
    types = list(MomentType)
    moments = [
        make_moment(f"a1_{i}", types[i % len(types)], district=i % 10, act=1)
        for i in range(10)
    ]
    moments += [
        make_moment(f"a2_{i}", types[i % len(types)], district=(i % 9) + 1, fragility=7 + i % 3, act=2)
        for i in range(8)
    ]
    moments += [make_moment(f"a3_{i}", act=3) for i in range(3)]
    moments += [make_moment(f"a4_{i}", act=4) for i in range(2)]
    return moments


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Every test gets its own global event bus."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def rng():
    """Seeded random source."""
    return random.Random(42)


@pytest.fixture
def config():
    """Default balance config."""
    return BalanceConfig()


@pytest.fixture
def moments():
    return act_moments()


@pytest.fixture
def selector(moments, config, rng):
    return MomentSelector(moments, config, rng)


@pytest.fixture
def voice(rng):
    return CityVoice(rng)


@pytest.fixture
def state():
    """Fresh progression state in act I."""
    return ProgressionState()


@pytest.fixture
def memory_store():
    """In-memory progression store for testing."""
    return MemoryProgressionStore()


@pytest.fixture
def engine(moments, config, rng, memory_store):
    """Engine over the test moments with no city content."""
    return NarrativeEngine(moments, config=config, rng=rng, store=memory_store)


# -----------------------------------------------------------------------------
# Play-through helpers
# -----------------------------------------------------------------------------

def play_act_one(engine: NarrativeEngine) -> None:
    engine.process_command("GENERATE")
    for _ in range(20):
        if engine.state.current_act != 1:
            return
        engine.process_command("OBSERVE")
    raise AssertionError("act I never completed")


def play_act_two(engine: NarrativeEngine, verb: str = "PRESERVE") -> None:
    for _ in range(20):
        if engine.state.current_act != 2:
            return
        engine.process_command("OBSERVE")
        engine.process_command(verb)
        if verb == "OPTIMIZE" and engine.state.current_act == 2:
            # The first OPTIMIZE only shows the bus route decision
            if engine.state.act_state.pending_moment_id is not None:
                engine.process_command(verb)
    raise AssertionError("act II never completed")


def play_act_three(engine: NarrativeEngine, answer: str = "QUESTION") -> None:
    engine.process_command("DECIDE")
    engine.process_command(f"{answer} infrastructure_redesign")
    for _ in range(20):
        if engine.state.current_act != 3:
            return
        engine.process_command("REFLECT")
    raise AssertionError("act III never completed")


def play_act_four(engine: NarrativeEngine, verb: str = "ACCEPT"):
    outputs = [engine.process_command(verb)]
    while not engine.has_ended and len(outputs) < 10:
        outputs.append(engine.process_command(verb))
    return outputs[-1]
