"""
Emergent City: a narrative progression engine for a city learning to think.

    from emergent_city import NarrativeEngine, MomentLibrary

    engine = NarrativeEngine(MomentLibrary().all())
    print(engine.process_command("GENERATE").text)
"""

__version__ = "0.1.0"

from .config import BalanceConfig
from .content import EmergenceRuleLibrary, MomentLibrary, StoryBeatLibrary
from .engine import EngineOutput, NarrativeEngine

__all__ = [
    "BalanceConfig",
    "EmergenceRuleLibrary",
    "MomentLibrary",
    "StoryBeatLibrary",
    "EngineOutput",
    "NarrativeEngine",
]
