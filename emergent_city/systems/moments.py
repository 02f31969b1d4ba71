"""
Moment selection and fragility-driven destruction.

Weighted procedural selection over the moment library:
- Candidates are limited to the current act and to unseen, intact moments
- Preferences (type, district) narrow the pool only when it stays non-empty
- Choice-pattern affinity, a recency penalty and a fragile boost shape weights

Efficiency choices put preserved fragile moments at risk. Each at-risk
moment rolls independently, so the same choice doesn't always cost the
same content.

All randomness flows through the injected random.Random.
"""

from __future__ import annotations

import logging
import random
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..config import BalanceConfig
from ..state.event_bus import get_event_bus, EventType
from ..state.schema import ChoicePattern, Moment, MomentType, ProgressionState

logger = logging.getLogger(__name__)


@dataclass
class SelectionStats:
    """Snapshot of the library for the MOMENTS report."""
    total: int = 0
    revealed: int = 0
    destroyed: int = 0
    remembered: int = 0
    available_by_act: dict[int, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
    by_fragility: dict[int, int] = field(default_factory=dict)
    recent_types: list[str] = field(default_factory=list)


class MomentSelector:
    """
    Selects which moment the city shows next.

    The selector owns the moment objects for the session. Reveal, destroy
    and remember mutate both the moment and the ProgressionState ids.
    """

    def __init__(
        self,
        moments: Iterable[Moment],
        config: BalanceConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or BalanceConfig()
        self.rng = rng or random.Random()
        self._moments: dict[str, Moment] = {}
        for moment in moments:
            if moment.id in self._moments:
                logger.warning(f"Duplicate moment id {moment.id!r}, keeping the first")
                continue
            self._moments[moment.id] = moment
        self._recent_types: deque[MomentType] = deque(
            maxlen=self.config.moment_selection.variety_window
        )

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def moments(self) -> list[Moment]:
        return list(self._moments.values())

    def get_moment(self, moment_id: str) -> Moment | None:
        return self._moments.get(moment_id)

    def get_preserved_moments(self) -> list[Moment]:
        return [m for m in self._moments.values() if m.is_preserved]

    def get_destroyed_moments(self) -> list[Moment]:
        return [m for m in self._moments.values() if m.destroyed]

    def get_remembered_moments(self) -> list[Moment]:
        return [m for m in self._moments.values() if m.remembered]

    @property
    def recent_types(self) -> list[MomentType]:
        return list(self._recent_types)

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def candidates(self, act: int, exclude_ids: Iterable[str] = ()) -> list[Moment]:
        excluded = set(exclude_ids)
        return [
            m for m in self._moments.values()
            if m.associated_act <= act
            and not m.revealed
            and not m.destroyed
            and m.id not in excluded
        ]

    def weight_for(
        self,
        moment: Moment,
        choice_pattern: ChoicePattern | None = None,
        enforce_variety: bool = True,
    ) -> float:
        """Effective sampling weight of one candidate."""
        selection = self.config.moment_selection
        weight = 1.0 * selection.affinity(moment.type, choice_pattern)

        if enforce_variety and moment.type in self._recent_types:
            weight *= selection.variety_penalty

        if (
            choice_pattern == ChoicePattern.EFFICIENCY
            and moment.fragility >= selection.high_fragility_threshold
        ):
            weight *= selection.fragile_boost

        return weight

    def select_moment(
        self,
        act: int,
        preferred_type: MomentType | None = None,
        preferred_district: int | None = None,
        choice_pattern: ChoicePattern | None = None,
        exclude_ids: Iterable[str] = (),
        enforce_variety: bool = True,
    ) -> Moment | None:
        """
        Pick one unseen moment for the act, or None if nothing is left.

        Preferences never empty the pool: a type or district that matches
        nothing is ignored.
        """
        pool = self.candidates(act, exclude_ids)
        if not pool:
            return None

        if preferred_type is not None:
            typed = [m for m in pool if m.type == preferred_type]
            if typed:
                pool = typed

        if preferred_district is not None:
            local = [m for m in pool if m.district in (0, preferred_district)]
            if local:
                pool = local

        weights = [self.weight_for(m, choice_pattern, enforce_variety) for m in pool]
        chosen = self._weighted_choice(pool, weights)
        self._recent_types.append(chosen.type)
        return chosen

    def _weighted_choice(self, pool: Sequence[Moment], weights: Sequence[float]) -> Moment:
        total = sum(weights)
        if total <= 0:
            return self.rng.choice(list(pool))

        draw = self.rng.random() * total
        cumulative = 0.0
        for moment, weight in zip(pool, weights):
            cumulative += weight
            if draw < cumulative:
                return moment
        return pool[-1]

    def select_moment_for_district(
        self,
        district: int,
        act: int,
        exclude_ids: Iterable[str] = (),
    ) -> Moment | None:
        return self.select_moment(act, preferred_district=district, exclude_ids=exclude_ids)

    def select_fragile_moment(
        self,
        act: int,
        exclude_ids: Iterable[str] = (),
    ) -> Moment | None:
        """Prefer high-fragility moments; fall back to any candidate."""
        threshold = self.config.moment_selection.high_fragility_threshold
        excluded = set(exclude_ids)
        pool = self.candidates(act, excluded)
        if any(m.fragility >= threshold for m in pool):
            excluded.update(m.id for m in pool if m.fragility < threshold)
        return self.select_moment(
            act,
            choice_pattern=ChoicePattern.EFFICIENCY,
            exclude_ids=excluded,
        )

    def select_moments(
        self,
        count: int,
        act: int,
        choice_pattern: ChoicePattern | None = None,
        exclude_ids: Iterable[str] = (),
    ) -> list[Moment]:
        """Select up to `count` distinct moments."""
        excluded = set(exclude_ids)
        selected: list[Moment] = []
        for _ in range(count):
            moment = self.select_moment(
                act,
                choice_pattern=choice_pattern,
                exclude_ids=excluded,
            )
            if moment is None:
                break
            selected.append(moment)
            excluded.add(moment.id)
        return selected

    def reset_variety_tracker(self) -> None:
        self._recent_types.clear()

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def reveal(self, moment: Moment, state: ProgressionState) -> None:
        moment.reveal()
        state.reveal_moment(moment.id)
        get_event_bus().emit(
            EventType.MOMENT_REVEALED,
            state_id=state.id,
            act=state.current_act,
            moment_id=moment.id,
            moment_type=moment.type.value,
        )

    def destroy(self, moment: Moment, state: ProgressionState) -> None:
        moment.destroy()
        state.destroy_moment(moment.id)
        get_event_bus().emit(
            EventType.MOMENT_DESTROYED,
            state_id=state.id,
            act=state.current_act,
            moment_id=moment.id,
            fragility=moment.fragility,
        )

    def remember(self, moment: Moment, state: ProgressionState) -> None:
        moment.remember()
        state.remember_moment(moment.id)
        get_event_bus().emit(
            EventType.MOMENT_REMEMBERED,
            state_id=state.id,
            act=state.current_act,
            moment_id=moment.id,
        )

    def apply_efficiency_consequences(
        self,
        state: ProgressionState,
        count: int = 1,
    ) -> list[Moment]:
        """
        Roll for the loss of the most fragile preserved moments.

        Takes up to `count` preserved moments at or above the moderate
        fragility threshold, most fragile first, and destroys each with a
        probability tiered by its fragility band.

        Returns:
            The moments destroyed by this call
        """
        destruction = self.config.destruction
        at_risk = sorted(
            (
                m for m in self.get_preserved_moments()
                if m.fragility >= destruction.moderate_fragility_threshold
            ),
            key=lambda m: m.fragility,
            reverse=True,
        )[:count]

        destroyed = []
        for moment in at_risk:
            if self.rng.random() < destruction.chance_for(moment.fragility):
                self.destroy(moment, state)
                destroyed.append(moment)
                logger.info(f"Efficiency cost: moment {moment.id} (fragility {moment.fragility}) lost")

        return destroyed

    def sync_with_state(self, state: ProgressionState) -> None:
        """Rehydrate moment booleans from a loaded state."""
        for moment in self._moments.values():
            moment.reset()
            if moment.id in state.revealed_moment_ids:
                moment.reveal()
            if moment.id in state.destroyed_moment_ids:
                moment.destroy()
            if moment.id in state.remembered_moment_ids:
                moment.remember()

        unknown = (state.revealed_moment_ids | state.destroyed_moment_ids) - self._moments.keys()
        if unknown:
            logger.warning(f"Save references {len(unknown)} moment(s) missing from the library")

    def reset(self) -> None:
        for moment in self._moments.values():
            moment.reset()
        self.reset_variety_tracker()

    def selection_stats(self) -> SelectionStats:
        stats = SelectionStats(total=len(self._moments))
        by_type: Counter[str] = Counter()
        by_fragility: Counter[int] = Counter()
        by_act: Counter[int] = Counter()

        for moment in self._moments.values():
            by_type[moment.type.value] += 1
            by_fragility[moment.fragility] += 1
            stats.revealed += moment.revealed
            stats.destroyed += moment.destroyed
            stats.remembered += moment.remembered
            if not moment.revealed and not moment.destroyed:
                by_act[moment.associated_act] += 1

        stats.by_type = dict(by_type)
        stats.by_fragility = dict(sorted(by_fragility.items()))
        stats.available_by_act = dict(sorted(by_act.items()))
        stats.recent_types = [t.value for t in self._recent_types]
        return stats
