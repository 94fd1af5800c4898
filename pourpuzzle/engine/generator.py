"""Puzzle generation orchestration.

Per attempt:
  1. Build a candidate, either by dealing a shuffled color bag into
     planned bottle heights or by scrambling a sorted arrangement.
  2. Validate it, solve it within the time budget, and score it.
Unsolvable or malformed candidates are discarded and the attempt retried.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import AbstractSet, Dict, List, Optional, Sequence, Set, Tuple

from ..core.constants import DifficultyLabel
from ..core.exceptions import ConfigError, GenerationError
from ..core.models import (
    NO_GIMMICK,
    Bottle,
    Bush,
    Cloth,
    Gimmick,
    Move,
    NoGimmick,
    Params,
    Slot,
    Vine,
    gimmick_param,
)
from ..utils.logger import get_logger
from .difficulty import DEFAULT_WEIGHTS, DifficultyBreakdown, DifficultyWeights, score_difficulty
from .placement import FillContext, place_unit
from .solver import SearchLimits, SolveResult, solve_state
from .state import PuzzleState
from .template import TemplateBuilder, TemplateRequest, TemplateResult
from .validator import StateValidator


LOGGER = get_logger(__name__)

InitialDistribution = Sequence[Sequence[int]]


@dataclass
class GeneratorConfig:
    params: Params = field(default_factory=Params)
    seed: Optional[int] = None
    mix_min: int = 60
    mix_max: int = 180
    retry_limit: int = 30
    solve_seconds: float = 2.5
    start_mixed: bool = True
    reserved_empty: int = 2
    max_run_per_bottle: int = 2
    randomize_heights: bool = False
    presolved_retries: int = 8
    placement_probes: int = 64
    solution_cap: int = 4

    def validate(self) -> None:
        self.params.validate()
        if self.mix_min < 0 or self.mix_max < self.mix_min:
            raise ConfigError(f"Invalid mix range {self.mix_min}..{self.mix_max}")
        if self.retry_limit < 1:
            raise ConfigError("retry_limit must be at least 1")
        if self.solve_seconds <= 0:
            raise ConfigError("solve_seconds must be positive")
        if self.reserved_empty < 0:
            raise ConfigError("reserved_empty must be non-negative")

    def to_search_limits(self) -> SearchLimits:
        return SearchLimits(max_seconds=self.solve_seconds, solution_cap=self.solution_cap)


@dataclass(frozen=True)
class SupportSpec:
    """One planted unit of ``color`` guaranteeing a gimmick can unlock."""

    bottle: int
    color: int
    gimmick_bottle: int


@dataclass
class Candidate:
    state: PuzzleState
    mix_intensity: int
    scramble_moves: List[Move] = field(default_factory=list)


@dataclass
class PuzzleRecord:
    state: PuzzleState
    mix_intensity: int
    optimal_move_count: int
    distinct_optimal_solutions: int
    solution_moves: List[Move]
    difficulty_score: float
    difficulty_label: DifficultyLabel
    difficulty_breakdown: DifficultyBreakdown
    scramble_moves: List[Move] = field(default_factory=list)
    solution_count_exhaustive: bool = False
    seed: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "bottles": [bottle.colors() for bottle in self.state.bottles],
            "hidden": [
                [position for position, slot in enumerate(bottle.slots) if slot.hidden]
                for bottle in self.state.bottles
            ],
            "gimmicks": [
                {"kind": bottle.gimmick.kind.name, "target": gimmick_param(bottle.gimmick)}
                for bottle in self.state.bottles
            ],
            "mix_intensity": self.mix_intensity,
            "optimal_move_count": self.optimal_move_count,
            "distinct_optimal_solutions": self.distinct_optimal_solutions,
            "solution_count_exhaustive": self.solution_count_exhaustive,
            "solution": [move.to_notation() for move in self.solution_moves],
            "scramble": [move.to_notation() for move in self.scramble_moves],
            "difficulty_score": round(self.difficulty_score, 3),
            "difficulty_label": self.difficulty_label.value,
            "difficulty_breakdown": self.difficulty_breakdown.to_dict(),
            "seed": self.seed,
        }


class PuzzleGenerator:
    """Builds, solves and scores candidates until one is accepted."""

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        template: Optional[PuzzleState] = None,
        rng: Optional[random.Random] = None,
        weights: DifficultyWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.config = config or GeneratorConfig()
        self.config.validate()
        self.params = self.config.params
        self.rng = rng or random.Random(self.config.seed)
        self.weights = weights
        self.validator = StateValidator()
        self.template: Optional[PuzzleState] = None
        self.set_template(template)

    def set_template(self, template: Optional[PuzzleState]) -> None:
        if template is not None and len(template.bottles) != self.params.num_bottles:
            raise ConfigError(
                f"Template has {len(template.bottles)} bottles, expected {self.params.num_bottles}"
            )
        self.template = template.clone() if template is not None else None

    # ------------------------------------------------------------------
    # Public entrypoints
    # ------------------------------------------------------------------
    def make_one(self, initial: Optional[InitialDistribution] = None) -> Optional[PuzzleRecord]:
        retry_limit = self.config.retry_limit
        for attempt in range(1, retry_limit + 1):
            LOGGER.debug("Generation attempt %s/%s", attempt, retry_limit)
            try:
                candidate = self.build_candidate(initial)
                record = self.evaluate(candidate)
            except GenerationError as exc:
                LOGGER.debug("Candidate rejected: %s", exc)
                continue
            LOGGER.info(
                "Accepted candidate on attempt %s/%s: %d moves, score %.1f (%s)",
                attempt,
                retry_limit,
                record.optimal_move_count,
                record.difficulty_score,
                record.difficulty_label.value,
            )
            return record
        LOGGER.warning("No solvable candidate after %s attempts", retry_limit)
        return None

    def generate(self, initial: Optional[InitialDistribution] = None) -> PuzzleRecord:
        record = self.make_one(initial)
        if record is None:
            raise GenerationError(
                f"Unable to generate a solvable puzzle after {self.config.retry_limit} attempts"
            )
        return record

    def auto_template(self, request: TemplateRequest) -> TemplateResult:
        """Plan a gimmick template for ``request`` and install it on success."""
        heights = self.random_heights() if self.config.randomize_heights else self.left_to_right_heights()
        result = TemplateBuilder(self.params, rng=self.rng).build(request, heights)
        if result.ok:
            self.set_template(result.state)
        return result

    # ------------------------------------------------------------------
    # Candidate construction
    # ------------------------------------------------------------------
    def build_candidate(self, initial: Optional[InitialDistribution] = None) -> Candidate:
        if initial is not None:
            state = self._state_from_initial(initial)
            if self.config.start_mixed:
                candidate = Candidate(state, self.params.total_units)
            else:
                trace = self.scramble(state)
                candidate = Candidate(state, len(trace), trace)
        elif self.config.start_mixed:
            candidate = Candidate(self.random_fill(), self.params.total_units)
        else:
            state = self.scramble_start()
            trace = self.scramble(state)
            candidate = Candidate(state, len(trace), trace)
        self._apply_hidden_layout(candidate.state)
        candidate.state.refresh_locks()
        return candidate

    def _template_gimmicks(self) -> List[Gimmick]:
        if self.template is None:
            return [NO_GIMMICK] * self.params.num_bottles
        return [bottle.gimmick for bottle in self.template.bottles]

    def _state_from_initial(self, initial: InitialDistribution) -> PuzzleState:
        params = self.params
        if len(initial) > params.num_bottles:
            raise ConfigError(f"Initial layout has {len(initial)} bottles, expected {params.num_bottles}")
        gimmicks = self._template_gimmicks()
        bottles: List[Bottle] = []
        for index in range(params.num_bottles):
            column = list(initial[index]) if index < len(initial) else []
            if len(column) > params.capacity:
                raise ConfigError(f"Initial bottle {index} exceeds capacity {params.capacity}")
            bottles.append(Bottle(params.capacity, [Slot(color) for color in column], gimmicks[index]))
        return PuzzleState(params, bottles)

    # ------------------------------------------------------------------
    # Heights
    # ------------------------------------------------------------------
    def left_to_right_heights(self, reserved_empty: Optional[int] = None) -> List[int]:
        """Spread units evenly over the leftmost bottles, keeping the rest empty.

        Fewer bottles than ``reserved_empty`` asks for are left empty when the
        units would not fit otherwise.
        """
        params = self.params
        reserved = self.config.reserved_empty if reserved_empty is None else reserved_empty
        minimum = math.ceil(params.total_units / params.capacity)
        active = min(params.num_bottles, max(minimum, params.num_bottles - max(0, reserved)))
        base, extra = divmod(params.total_units, active)
        return [
            (base + (1 if index < extra else 0)) if index < active else 0
            for index in range(params.num_bottles)
        ]

    def random_heights(self) -> List[int]:
        params = self.params
        total = params.total_units
        minimum = math.ceil(total / params.capacity)
        active = self.rng.randint(minimum, min(params.num_bottles, total))
        chosen = sorted(self.rng.sample(range(params.num_bottles), active))
        heights = [0] * params.num_bottles
        for index in chosen:
            heights[index] = 1
        remaining = total - active
        while remaining > 0:
            open_bottles = [index for index in chosen if heights[index] < params.capacity]
            heights[self.rng.choice(open_bottles)] += 1
            remaining -= 1
        return heights

    def template_heights(self, template: PuzzleState) -> List[int]:
        heights = [min(bottle.size, self.params.capacity) for bottle in template.bottles]
        heights += [0] * (self.params.num_bottles - len(heights))
        if sum(heights) != self.params.total_units:
            LOGGER.warning(
                "Template height sum %d != %d; falling back to left-to-right fill",
                sum(heights),
                self.params.total_units,
            )
            return self.left_to_right_heights(reserved_empty=self.params.num_bottles)
        return heights

    def plan_heights(self) -> List[int]:
        if self.template is not None:
            return self.template_heights(self.template)
        if self.config.randomize_heights:
            return self.random_heights()
        return self.left_to_right_heights()

    # ------------------------------------------------------------------
    # Support planning
    # ------------------------------------------------------------------
    def build_support_plan(self, heights: Sequence[int], gimmicks: Sequence[Gimmick]) -> List[SupportSpec]:
        """Reserve full bottles so every Cloth target and Bush neighbour can complete.

        A Cloth gets the nearest full plain bottle, seeded with its target
        color. A Bush whose neighbours are not already reserved gets a full
        plain neighbour seeded with a color no other support uses. Support
        colors are later kept out of Cloth and Bush bottles while dealing.
        """
        capacity = self.params.capacity
        plan: List[SupportSpec] = []
        used_bottles: Set[int] = set()
        used_colors: Set[int] = set()

        def eligible(index: int) -> bool:
            if heights[index] != capacity or index in used_bottles:
                return False
            return isinstance(gimmicks[index], NoGimmick)

        for index, gimmick in enumerate(gimmicks):
            if not isinstance(gimmick, Cloth) or gimmick.target in used_colors:
                continue
            candidates = [
                j for j in range(len(heights)) if eligible(j)
            ]
            if not candidates:
                LOGGER.debug("No support bottle for Cloth on bottle %d", index)
                continue
            candidates.sort(key=lambda j: abs(j - index))
            chosen = candidates[0]
            plan.append(SupportSpec(bottle=chosen, color=gimmick.target, gimmick_bottle=index))
            used_bottles.add(chosen)
            used_colors.add(gimmick.target)

        for index, gimmick in enumerate(gimmicks):
            if not isinstance(gimmick, Bush):
                continue
            neighbours = [j for j in (index - 1, index + 1) if 0 <= j < len(heights)]
            if any(j in used_bottles for j in neighbours):
                continue
            if any(isinstance(gimmicks[j], Vine) and heights[j] == capacity for j in neighbours):
                continue
            free_colors = [c for c in range(1, self.params.num_colors + 1) if c not in used_colors]
            color_pool = free_colors or list(range(1, self.params.num_colors + 1))
            options = [
                (j, color)
                for j in neighbours
                if eligible(j)
                for color in color_pool
            ]
            if not options:
                LOGGER.debug("No support neighbour for Bush on bottle %d", index)
                continue
            chosen, color = self.rng.choice(options)
            plan.append(SupportSpec(bottle=chosen, color=color, gimmick_bottle=index))
            used_bottles.add(chosen)
            used_colors.add(color)
        return plan

    # ------------------------------------------------------------------
    # Random fill
    # ------------------------------------------------------------------
    def random_fill(self) -> PuzzleState:
        gimmicks = self._template_gimmicks()
        heights = self.plan_heights()
        plan = self.build_support_plan(heights, gimmicks)
        protected = {spec.color for spec in plan}
        retries = max(1, self.config.presolved_retries)
        for attempt in range(1, retries + 1):
            state = self.fill_bottles(heights, gimmicks, plan)
            self.fix_cloth_start(state, protected)
            if not self.presolved_bottles(state):
                return state
            LOGGER.debug("Refill %s/%s: deal contains sorted bottles", attempt, retries)
        if not self.break_presolved(state, protected):
            LOGGER.debug("Sorted bottles remain after perturbation")
        state.refresh_locks()
        return state

    def fill_bottles(
        self,
        heights: Sequence[int],
        gimmicks: Sequence[Gimmick],
        plan: Sequence[SupportSpec],
    ) -> PuzzleState:
        params = self.params
        bottles = [Bottle(params.capacity, [], gimmicks[index]) for index in range(params.num_bottles)]
        remaining: Dict[int, int] = {color: params.capacity for color in range(1, params.num_colors + 1)}

        for spec in plan:
            bottles[spec.bottle].slots.append(Slot(spec.color))
            remaining[spec.color] -= 1

        # Vine bottles are dealt a single color up front.
        reserved_colors = {spec.color for spec in plan}
        for index, bottle in enumerate(bottles):
            if not isinstance(bottle.gimmick, Vine) or heights[index] == 0:
                continue
            need = heights[index]
            options = [c for c, left in remaining.items() if left >= need and c not in reserved_colors]
            options = options or [c for c, left in remaining.items() if left >= need]
            if not options:
                continue
            color = self.rng.choice(options)
            bottle.slots.extend(Slot(color) for _ in range(need))
            remaining[color] -= need

        bag = [color for color, left in remaining.items() for _ in range(left)]
        self.rng.shuffle(bag)
        ctx = FillContext(
            bottles=bottles,
            heights=heights,
            max_run=self.config.max_run_per_bottle,
            reserved={spec.bottle: spec.color for spec in plan},
            pending=dict(remaining),
        )
        relaxed: Dict[str, int] = {}
        for color in bag:
            rule = place_unit(ctx, color, self.rng, self.config.placement_probes)
            if rule is None:
                raise GenerationError(f"No bottle has room for color {color}")
            if rule.mode != "probe":
                relaxed[rule.name] = relaxed.get(rule.name, 0) + 1
        if relaxed:
            LOGGER.debug("Relaxed placements: %s", relaxed)

        for spec in plan:
            slots = bottles[spec.bottle].slots
            position = self.rng.randrange(len(slots))
            slots[0], slots[position] = slots[position], slots[0]
        return PuzzleState(params, bottles)

    def _swap_partners(
        self,
        state: PuzzleState,
        index: int,
        avoid: int,
        protected: AbstractSet[int] = frozenset(),
    ) -> List[Tuple[int, int]]:
        """Slots in other bottles that can trade places with a unit of ``avoid``.

        Colors in ``protected`` never move into a Cloth or Bush bottle.
        """
        holder = state.bottles[index].gimmick
        holder_locks = isinstance(holder, (Cloth, Bush))
        partners: List[Tuple[int, int]] = []
        for other, bottle in enumerate(state.bottles):
            if other == index or isinstance(bottle.gimmick, Vine):
                continue
            if isinstance(bottle.gimmick, Cloth) and bottle.gimmick.target == avoid:
                continue
            if avoid in protected and isinstance(bottle.gimmick, (Cloth, Bush)):
                continue
            for position, slot in enumerate(bottle.slots):
                if slot.color == avoid:
                    continue
                if isinstance(holder, Cloth) and holder.target == slot.color:
                    continue
                if holder_locks and slot.color in protected:
                    continue
                partners.append((other, position))
        return partners

    def fix_cloth_start(self, state: PuzzleState, protected: AbstractSet[int] = frozenset()) -> int:
        """Swap Cloth targets out of their own bottles; returns swaps made."""
        swaps = 0
        for index, bottle in enumerate(state.bottles):
            gimmick = bottle.gimmick
            if not isinstance(gimmick, Cloth):
                continue
            for position, slot in enumerate(bottle.slots):
                if slot.color != gimmick.target:
                    continue
                partners = self._swap_partners(state, index, gimmick.target, protected)
                if not partners:
                    LOGGER.debug("Cloth on bottle %d keeps its target color", index)
                    break
                other, other_position = self.rng.choice(partners)
                other_slots = state.bottles[other].slots
                bottle.slots[position], other_slots[other_position] = other_slots[other_position], slot
                swaps += 1
        if swaps:
            state.refresh_locks()
        return swaps

    @staticmethod
    def presolved_bottles(state: PuzzleState) -> List[int]:
        return [
            index
            for index, bottle in enumerate(state.bottles)
            if bottle.is_mono_full() and not isinstance(bottle.gimmick, Vine)
        ]

    def break_presolved(self, state: PuzzleState, protected: AbstractSet[int] = frozenset()) -> bool:
        """Swap a unit out of every sorted non-Vine bottle; False if any remain."""
        for _ in range(2 * len(state.bottles)):
            offenders = self.presolved_bottles(state)
            if not offenders:
                return True
            index = offenders[0]
            bottle = state.bottles[index]
            partners = self._swap_partners(state, index, bottle.slots[0].color, protected)
            if not partners:
                return False
            other, other_position = self.rng.choice(partners)
            position = self.rng.randrange(len(bottle.slots))
            other_slots = state.bottles[other].slots
            bottle.slots[position], other_slots[other_position] = other_slots[other_position], bottle.slots[position]
        state.refresh_locks()
        return not self.presolved_bottles(state)

    # ------------------------------------------------------------------
    # Scramble mode
    # ------------------------------------------------------------------
    def scramble_start(self) -> PuzzleState:
        """Sorted arrangement carrying the template gimmicks."""
        state = PuzzleState.goal(self.params)
        if self.template is None:
            return state
        for index, gimmick in enumerate(self._template_gimmicks()):
            state.bottles[index].gimmick = gimmick
        for index, bottle in enumerate(state.bottles):
            gimmick = bottle.gimmick
            if not isinstance(gimmick, Cloth) or gimmick.target not in bottle.colors():
                continue
            for other, candidate in enumerate(state.bottles):
                if other == index or not candidate.is_mono_full():
                    continue
                other_gimmick = candidate.gimmick
                if isinstance(other_gimmick, Cloth) and other_gimmick.target == gimmick.target:
                    continue
                bottle.slots, candidate.slots = candidate.slots, bottle.slots
                break
        state.refresh_locks()
        return state

    def scramble(self, state: PuzzleState) -> List[Move]:
        """Apply random relaxed moves in place; returns the trace."""
        target = self.rng.randint(self.config.mix_min, self.config.mix_max)
        trace: List[Move] = []
        last: Optional[Move] = None
        for _ in range(target):
            moves = [
                move
                for move in state.legal_moves(relaxed=True)
                if last is None or not (move.source == last.target and move.target == last.source)
            ]
            if not moves:
                break
            last = state.apply(self.rng.choice(moves), relaxed=True)
            trace.append(last)
        LOGGER.debug("Scrambled with %d/%d moves", len(trace), target)
        return trace

    def _apply_hidden_layout(self, state: PuzzleState) -> None:
        """Copy the template's hidden flags onto occupied non-top positions."""
        if self.template is None:
            return
        for bottle, shape in zip(state.bottles, self.template.bottles):
            mask = [slot.hidden for slot in shape.slots]
            for position, slot in enumerate(bottle.slots):
                is_top = position == len(bottle.slots) - 1
                slot.hidden = (not is_top) and position < len(mask) and mask[position]

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def evaluate(self, candidate: Candidate) -> PuzzleRecord:
        state = candidate.state
        validation = self.validator.validate(state)
        if not validation.ok:
            raise GenerationError(f"Invalid candidate: {validation.messages}")
        if not state.has_any_move():
            raise GenerationError("Candidate has no legal moves")
        result = self.solve(state)
        if not result.solved:
            reason = "timed out" if result.timed_out else "unsolvable"
            raise GenerationError(f"Candidate {reason} (bound {result.min_moves})")
        if result.min_moves == 0:
            raise GenerationError("Candidate is already sorted")
        breakdown = score_difficulty(state, result, self.weights)
        return PuzzleRecord(
            state=state,
            mix_intensity=candidate.mix_intensity,
            optimal_move_count=result.min_moves,
            distinct_optimal_solutions=result.distinct_solutions,
            solution_moves=result.solution_moves,
            difficulty_score=breakdown.total,
            difficulty_label=breakdown.label,
            difficulty_breakdown=breakdown,
            scramble_moves=candidate.scramble_moves,
            solution_count_exhaustive=result.solution_count_exhaustive,
            seed=self.config.seed,
        )

    def solve(self, state: PuzzleState) -> SolveResult:
        return solve_state(state, self.config.to_search_limits())
