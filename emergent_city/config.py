"""
Balance and player configuration.

BalanceConfig holds every tunable the narrative systems read. It is
injected into the selector, acts, classifier and engine. Overrides are
read from a JSON file and merged over the defaults.

Player preferences (debug counters, status bar, save location) live in a
small JSON config next to the saves.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TypedDict

from pydantic import BaseModel, Field, ValidationError

from .state.schema import ChoicePattern, Ending, MomentType, NarrativeFlag, ThreadType

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Balance
# -----------------------------------------------------------------------------

class ActProgressionConfig(BaseModel):
    act_one_moment_minimum: int = 8
    act_two_choice_minimum: int = 5
    act_three_choice_minimum: int = 5
    act_four_final_choice_minimum: int = 3
    # Act I reflections after this many reveals
    act_one_reflection_points: list[int] = Field(default_factory=lambda: [3, 6])
    # REFLECT counts as "no clear pattern" when no ratio exceeds this
    formed_pattern_max_ratio: float = 0.4


def _default_affinities() -> dict[MomentType, dict[ChoicePattern, float]]:
    return {
        MomentType.INVISIBLE_CONNECTION: {ChoicePattern.STORY: 2.0},
        MomentType.TEMPORAL_GHOST: {ChoicePattern.STORY: 2.0},
        MomentType.MOMENT_OF_BECOMING: {
            ChoicePattern.STORY: 2.0,
            ChoicePattern.AUTONOMY: 1.8,
        },
        MomentType.DAILY_RITUAL: {ChoicePattern.EFFICIENCY: 0.5},
        MomentType.WEIGHT_OF_SMALL_THINGS: {ChoicePattern.EFFICIENCY: 0.5},
        MomentType.QUESTION: {
            ChoicePattern.AUTONOMY: 1.8,
            ChoicePattern.STORY: 1.5,
        },
        MomentType.SMALL_REBELLION: {ChoicePattern.CONTROL: 0.3},
        MomentType.NEAR_MISS: {ChoicePattern.EFFICIENCY: 0.7},
    }


class MomentSelectionConfig(BaseModel):
    variety_window: int = Field(default=3, ge=0)
    variety_penalty: float = 0.3
    fragile_boost: float = 2.5
    high_fragility_threshold: int = 7
    affinities: dict[MomentType, dict[ChoicePattern, float]] = Field(
        default_factory=_default_affinities
    )

    def affinity(self, moment_type: MomentType, pattern: ChoicePattern | None) -> float:
        if pattern is None:
            return 1.0
        return self.affinities.get(moment_type, {}).get(pattern, 1.0)


class DestructionConfig(BaseModel):
    moderate_fragility_threshold: int = 4
    high_fragility_threshold: int = 7
    high_destruction_chance: float = 0.6
    moderate_destruction_chance: float = 0.3
    low_destruction_chance: float = 0.1

    def chance_for(self, fragility: int) -> float:
        if fragility >= self.high_fragility_threshold:
            return self.high_destruction_chance
        if fragility >= self.moderate_fragility_threshold:
            return self.moderate_destruction_chance
        return self.low_destruction_chance


class EndingThresholds(BaseModel):
    fragmentation_efficiency_ratio: float = 0.7
    fragmentation_destroyed_moments: int = 8
    archive_story_ratio: float = 0.7
    archive_max_destroyed_moments: int = 2
    silence_control_ratio: float = 0.6
    independence_autonomy_ratio: float = 0.6
    independence_min_autonomy: float = 0.7
    balance_max_ratio_difference: float = 0.25
    symbiosis_min_total_choices: int = 20
    harmony_combined_ratio: float = 0.5
    harmony_max_destroyed_moments: int = 3
    harmony_min_trust: float = 0.6
    emergence_required_flags: list[NarrativeFlag] = Field(
        default_factory=lambda: [
            NarrativeFlag.CITY_TRANSCENDED,
            NarrativeFlag.QUESTIONED_OWN_NATURE,
            NarrativeFlag.FORMED_NEW_PATTERN,
        ]
    )
    optimization_combined_ratio: float = 0.5
    optimization_max_destroyed_moments: int = 7
    # Ending used when no rule matches at the end of Act IV
    undetermined_fallback: Ending = Ending.OPTIMIZATION


class RelationshipConfig(BaseModel):
    """Trust/autonomy shift per recorded choice, as (trust, autonomy)."""
    choice_deltas: dict[ChoicePattern, tuple[float, float]] = Field(
        default_factory=lambda: {
            ChoicePattern.STORY: (0.05, 0.0),
            ChoicePattern.EFFICIENCY: (-0.02, -0.01),
            ChoicePattern.AUTONOMY: (0.03, 0.05),
            ChoicePattern.CONTROL: (-0.03, -0.05),
        }
    )


def _default_act_threads() -> dict[int, list[ThreadType]]:
    return {
        1: [ThreadType.TRANSIT, ThreadType.HOUSING],
        2: [ThreadType.PARKS, ThreadType.CULTURE],
        3: [ThreadType.COMMERCE, ThreadType.WATER, ThreadType.POWER],
        4: [ThreadType.KNOWLEDGE, ThreadType.SEWAGE],
    }


class CityGrowthConfig(BaseModel):
    """How the city graph grows as the acts unfold."""
    act_threads: dict[int, list[ThreadType]] = Field(default_factory=_default_act_threads)
    complexity_per_choice: float = 0.03
    coherence_per_act: float = 0.15


class BalanceConfig(BaseModel):
    act_progression: ActProgressionConfig = Field(default_factory=ActProgressionConfig)
    moment_selection: MomentSelectionConfig = Field(default_factory=MomentSelectionConfig)
    destruction: DestructionConfig = Field(default_factory=DestructionConfig)
    endings: EndingThresholds = Field(default_factory=EndingThresholds)
    relationship: RelationshipConfig = Field(default_factory=RelationshipConfig)
    city_growth: CityGrowthConfig = Field(default_factory=CityGrowthConfig)


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_balance_config(path: Path | str | None = None) -> BalanceConfig:
    """Load balance overrides from JSON, or return defaults if missing or invalid."""
    if path is None:
        return BalanceConfig()

    path = Path(path)
    if not path.exists():
        return BalanceConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            overrides = json.load(f)
        if not isinstance(overrides, dict):
            logger.warning(f"Ignoring balance config {path}: expected an object")
            return BalanceConfig()
        merged = _merge(BalanceConfig().model_dump(mode="json"), overrides)
        return BalanceConfig.model_validate(merged)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError, ValidationError) as e:
        logger.warning(f"Ignoring balance config {path}: {e}")
        return BalanceConfig()


def save_balance_config(config: BalanceConfig, path: Path | str) -> bool:
    """Save balance config to JSON. Returns True on success."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
        return True
    except OSError as e:
        logger.error(f"Could not save balance config {path}: {e}")
        return False


# -----------------------------------------------------------------------------
# Player preferences
# -----------------------------------------------------------------------------

class Config(TypedDict, total=False):
    """User configuration."""
    debug_show_choice_counters: bool  # Show raw counters in STATUS
    show_status_bar: bool  # Show the trust/autonomy bar above the prompt
    last_save_id: str | None  # Resume this save on startup


DEFAULT_CONFIG: Config = {
    "debug_show_choice_counters": False,
    "show_status_bar": True,
    "last_save_id": None,
}


def get_config_path(saves_dir: Path | str = "saves") -> Path:
    """Get path to config file."""
    return Path(saves_dir) / ".emergent_city_config.json"


def load_config(saves_dir: Path | str = "saves") -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(saves_dir)

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        config = DEFAULT_CONFIG.copy()
        if isinstance(saved, dict):
            config.update(saved)
        return config
    except (json.JSONDecodeError, UnicodeDecodeError, IOError):
        return DEFAULT_CONFIG.copy()


def save_config(config: Config, saves_dir: Path | str = "saves") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(saves_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False
