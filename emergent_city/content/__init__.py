"""Bundled content and the libraries that read it."""

from .loader import (
    DEFAULT_DATA_DIR,
    ContentLibrary,
    EmergenceRuleLibrary,
    MomentLibrary,
    StoryBeatLibrary,
)

__all__ = [
    "DEFAULT_DATA_DIR",
    "ContentLibrary",
    "EmergenceRuleLibrary",
    "MomentLibrary",
    "StoryBeatLibrary",
]
