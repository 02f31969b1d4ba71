"""
Act state machine.

ActController holds one handler per act and looks them up by number.
"""

from __future__ import annotations

import random

from ...config import BalanceConfig
from ...interface.voice import CityVoice
from ..moments import MomentSelector
from .act_four import ActFour
from .act_one import ActOne
from .act_three import ActThree
from .act_two import ActTwo
from .base import Act, ActResponse

ACT_CLASSES: dict[int, type[Act]] = {
    1: ActOne,
    2: ActTwo,
    3: ActThree,
    4: ActFour,
}


class ActController:
    """Registry of act handlers sharing one selector, voice and random source."""

    def __init__(
        self,
        selector: MomentSelector,
        voice: CityVoice,
        config: BalanceConfig,
        rng: random.Random,
        act_classes: dict[int, type[Act]] | None = None,
    ):
        classes = ACT_CLASSES if act_classes is None else act_classes
        self.handlers: dict[int, Act] = {
            number: cls(selector, voice, config, rng)
            for number, cls in classes.items()
        }

    def handler_for(self, act: int) -> Act | None:
        return self.handlers.get(act)


__all__ = [
    "Act",
    "ActResponse",
    "ActController",
    "ActOne",
    "ActTwo",
    "ActThree",
    "ActFour",
    "ACT_CLASSES",
]
