"""Narrative systems: moments, acts, endings and the city graph."""

from .moments import MomentSelector
from .endings import EndingClassifier, EndingInputs
from .emergence import EmergenceEngine, EmergenceRule
from .beats import StoryBeat, StoryBeatTracker
from .weaving import weave_thread, weave_threads

__all__ = [
    "MomentSelector",
    "EndingClassifier",
    "EndingInputs",
    "EmergenceEngine",
    "EmergenceRule",
    "StoryBeat",
    "StoryBeatTracker",
    "weave_thread",
    "weave_threads",
]
