"""Difficulty scoring for solved puzzles.

The score is a sum of independently clamped components, each a saturating
curve over one structural feature of the start state or of the search
result. All constants live in :class:`DifficultyWeights` so they can be
retuned without touching the formulas.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Tuple

from ..core.constants import LABEL_BANDS, SCORE_MAX, SCORE_MIN, DifficultyLabel
from ..core.models import Bottle, Bush, Cloth, Vine
from .solver import SolveResult, heuristic
from .state import PuzzleState


@dataclass(frozen=True)
class DifficultyWeights:
    """Tunable constants for :func:`score_difficulty`."""

    expected_moves_factor: float = 1.1
    move_exponent: float = 1.35
    move_scale: float = 32.0
    move_cap: float = 40.0

    heuristic_exponent: float = 1.15
    heuristic_scale: float = 1.4
    heuristic_cap: float = 14.0

    fragmentation_scale: float = 0.9
    fragmentation_cap: float = 10.0

    hidden_first_weight: float = 1.6
    hidden_extra_mono_weight: float = 0.45
    hidden_extra_mixed_weight: float = 0.9
    hidden_spread_base: float = 1.2
    hidden_spread_growth: float = 1.45
    hidden_cap: float = 16.0

    cloth_weight: float = 0.8
    vine_weight: float = 1.0
    bush_weight: float = 1.25
    gimmick_saturation: float = 0.6
    gimmick_scale: float = 12.0
    gimmick_count_bonus: Tuple[float, ...] = (1.5, 1.0, 0.5)
    gimmick_empty_relief: float = 0.75
    gimmick_cap: float = 16.0

    overlap_factor: float = 0.35

    color_baseline: int = 5
    color_step: float = 0.8
    color_cap: float = 6.0

    # Relief for 1, 2 and 3+ empty bottles.
    empty_relief_steps: Tuple[float, float, float] = (2.0, 5.0, 9.0)

    solved_credit_per_bottle: float = 2.5
    solved_credit_cap: float = 10.0

    unique_bonus: float = 6.0
    two_solution_bonus: float = 2.5
    multi_solution_penalty: float = 3.0

    many_empty_threshold: int = 3
    many_empty_ceiling: float = 24.0


DEFAULT_WEIGHTS = DifficultyWeights()


@dataclass
class DifficultyBreakdown:
    move: float = 0.0
    heuristic: float = 0.0
    fragmentation: float = 0.0
    hidden: float = 0.0
    gimmick: float = 0.0
    overlap: float = 0.0
    color: float = 0.0
    empty_relief: float = 0.0
    solved_credit: float = 0.0
    solution: float = 0.0
    total: float = 0.0
    label: DifficultyLabel = DifficultyLabel.VERY_EASY

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["label"] = self.label.value
        return {key: (round(value, 3) if isinstance(value, float) else value) for key, value in payload.items()}


def label_for_score(score: float) -> DifficultyLabel:
    for upper, label in LABEL_BANDS:
        if score < upper:
            return label
    return DifficultyLabel.VERY_HARD


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _gimmick_weight(bottle: Bottle, weights: DifficultyWeights) -> float:
    gimmick = bottle.gimmick
    if isinstance(gimmick, Cloth):
        return weights.cloth_weight
    if isinstance(gimmick, Vine):
        return weights.vine_weight
    if isinstance(gimmick, Bush):
        return weights.bush_weight
    return 0.0


def move_component(min_moves: int, state: PuzzleState, weights: DifficultyWeights) -> float:
    params = state.params
    expected = max(1.0, weights.expected_moves_factor * params.num_colors * params.capacity)
    ratio = max(0, min_moves) / expected
    return _clamp(weights.move_scale * ratio ** weights.move_exponent, 0.0, weights.move_cap)


def heuristic_component(start_h: int, weights: DifficultyWeights) -> float:
    return _clamp(weights.heuristic_scale * max(0, start_h) ** weights.heuristic_exponent, 0.0, weights.heuristic_cap)


def fragmentation_component(state: PuzzleState, weights: DifficultyWeights) -> float:
    extra = sum(max(0, bottle.color_groups() - 1) for bottle in state.bottles)
    return _clamp(weights.fragmentation_scale * extra, 0.0, weights.fragmentation_cap)


def hidden_component(state: PuzzleState, weights: DifficultyWeights) -> float:
    """Hidden slots weigh less after the first in a bottle, less still when monochrome."""
    total = 0.0
    bottles_with_hidden = 0
    for bottle in state.bottles:
        hidden = [slot.color for slot in bottle.slots if slot.hidden]
        if not hidden:
            continue
        bottles_with_hidden += 1
        marginal = (
            weights.hidden_extra_mono_weight
            if len(set(hidden)) == 1
            else weights.hidden_extra_mixed_weight
        )
        total += weights.hidden_first_weight + (len(hidden) - 1) * marginal
    if bottles_with_hidden >= 2:
        total += weights.hidden_spread_base * weights.hidden_spread_growth ** (bottles_with_hidden - 2)
    return _clamp(total, 0.0, weights.hidden_cap)


def gimmick_component(state: PuzzleState, weights: DifficultyWeights) -> float:
    units = 0.0
    count = 0
    for bottle in state.bottles:
        weight = _gimmick_weight(bottle, weights)
        if weight <= 0.0:
            continue
        count += 1
        units += weight * (bottle.size / bottle.capacity)
    if count == 0:
        return 0.0
    value = weights.gimmick_scale * (1.0 - math.exp(-weights.gimmick_saturation * units))
    value += sum(weights.gimmick_count_bonus[:count])
    value -= weights.gimmick_empty_relief * state.empty_bottle_count()
    return _clamp(value, 0.0, weights.gimmick_cap)


def color_component(state: PuzzleState, weights: DifficultyWeights) -> float:
    extra = max(0, state.params.num_colors - weights.color_baseline)
    return _clamp(weights.color_step * extra, 0.0, weights.color_cap)


def empty_relief_component(state: PuzzleState, weights: DifficultyWeights) -> float:
    empties = state.empty_bottle_count()
    if empties <= 0:
        return 0.0
    step = min(empties, len(weights.empty_relief_steps)) - 1
    return -weights.empty_relief_steps[step]


def solved_credit_component(state: PuzzleState, weights: DifficultyWeights) -> float:
    return -min(weights.solved_credit_cap, weights.solved_credit_per_bottle * state.mono_full_count())


def solution_component(result: SolveResult, weights: DifficultyWeights) -> float:
    count = result.distinct_solutions
    if result.solution_count_exhaustive and count == 1:
        return weights.unique_bonus
    if result.solution_count_exhaustive and count == 2:
        return weights.two_solution_bonus
    if count >= 3 or result.solution_count_limited:
        return -weights.multi_solution_penalty
    return 0.0


def score_difficulty(
    state: PuzzleState,
    result: SolveResult,
    weights: DifficultyWeights = DEFAULT_WEIGHTS,
) -> DifficultyBreakdown:
    """Score a solved start state in ``[0, 100]`` with a per-component breakdown."""

    breakdown = DifficultyBreakdown(
        move=move_component(result.min_moves, state, weights),
        heuristic=heuristic_component(heuristic(state), weights),
        fragmentation=fragmentation_component(state, weights),
        hidden=hidden_component(state, weights),
        gimmick=gimmick_component(state, weights),
        color=color_component(state, weights),
        empty_relief=empty_relief_component(state, weights),
        solved_credit=solved_credit_component(state, weights),
        solution=solution_component(result, weights),
    )
    breakdown.overlap = -weights.overlap_factor * min(breakdown.hidden, breakdown.gimmick)

    total = (
        breakdown.move
        + breakdown.heuristic
        + breakdown.fragmentation
        + breakdown.hidden
        + breakdown.gimmick
        + breakdown.overlap
        + breakdown.color
        + breakdown.empty_relief
        + breakdown.solved_credit
        + breakdown.solution
    )
    total = _clamp(total, SCORE_MIN, SCORE_MAX)
    if state.empty_bottle_count() >= weights.many_empty_threshold:
        total = min(total, weights.many_empty_ceiling)
    breakdown.total = total
    breakdown.label = label_for_score(total)
    return breakdown
