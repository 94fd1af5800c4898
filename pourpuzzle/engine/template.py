"""Auto template construction: gimmick and hidden-slot layout via CP-SAT.

A template fixes bottle heights, per-bottle gimmicks and the hidden-slot
layout; the generator then deals colors into it. Requests are checked for
feasibility first so callers get a readable reason instead of a failed
search.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ortools.sat.python import cp_model

from ..core.constants import GimmickKind
from ..core.exceptions import TemplateError
from ..core.models import BUSH, NO_GIMMICK, VINE, Bottle, Cloth, Gimmick, Params, Slot
from ..utils.logger import get_logger
from .state import PuzzleState

LOGGER = get_logger(__name__)

_LAYOUT_KINDS: Tuple[GimmickKind, ...] = (GimmickKind.CLOTH, GimmickKind.VINE, GimmickKind.BUSH)


@dataclass(frozen=True)
class TemplateRequest:
    cloth: int = 0
    vine: int = 0
    bush: int = 0
    hidden: int = 0
    # 0 means no per-bottle limit beyond the top-slot exclusion.
    hidden_per_bottle_cap: int = 0

    @property
    def gimmick_total(self) -> int:
        return self.cloth + self.vine + self.bush

    def count_for(self, kind: GimmickKind) -> int:
        return {
            GimmickKind.CLOTH: self.cloth,
            GimmickKind.VINE: self.vine,
            GimmickKind.BUSH: self.bush,
        }.get(kind, 0)


@dataclass
class TemplateResult:
    state: Optional[PuzzleState] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.state is not None


def hidden_eligibility(heights: Sequence[int], capacity: int, per_bottle_cap: int = 0) -> List[int]:
    """Hidden-eligible slots per bottle; the top slot of each bottle never is."""
    limit = per_bottle_cap if per_bottle_cap > 0 else capacity
    return [min(max(0, height - 1), limit) for height in heights]


def check_template_request(params: Params, request: TemplateRequest, heights: Sequence[int]) -> Optional[str]:
    """Return a rejection reason, or ``None`` when the request is feasible on paper."""
    if min(request.cloth, request.vine, request.bush, request.hidden, request.hidden_per_bottle_cap) < 0:
        return "Gimmick, hidden and per-bottle cap counts must be non-negative"
    if len(heights) != params.num_bottles:
        return f"Expected {params.num_bottles} bottle heights, got {len(heights)}"
    height_sum = sum(heights)
    if height_sum != params.total_units:
        return f"Height sum {height_sum} does not match colors*capacity {params.total_units}"
    usable = sum(1 for height in heights if height > 0)
    if request.gimmick_total > usable:
        return (
            f"Requested {request.gimmick_total} gimmicks but only {usable} "
            f"non-empty bottles are usable"
        )
    eligible = sum(hidden_eligibility(heights, params.capacity, request.hidden_per_bottle_cap))
    if request.hidden > eligible:
        return (
            f"Requested {request.hidden} hidden slots but only {eligible} are eligible "
            f"(top slots excluded, per-bottle cap {request.hidden_per_bottle_cap or 'none'})"
        )
    return None


class TemplateBuilder:
    """Builds a template state for a :class:`TemplateRequest`."""

    def __init__(self, params: Params, rng: Optional[random.Random] = None, time_limit: float = 5.0) -> None:
        self.params = params
        self.rng = rng or random.Random()
        self.time_limit = time_limit

    def build(self, request: TemplateRequest, heights: Sequence[int]) -> TemplateResult:
        reason = check_template_request(self.params, request, heights)
        if reason is not None:
            LOGGER.info("Template request rejected: %s", reason)
            return TemplateResult(reason=reason)
        try:
            kinds, hidden_counts = self._solve_layout(request, heights)
        except TemplateError as exc:
            LOGGER.info("Template layout failed: %s", exc)
            return TemplateResult(reason=str(exc))
        state = self._materialize(heights, kinds, hidden_counts)
        LOGGER.debug("Template built: %r", state)
        return TemplateResult(state=state)

    # ------------------------------------------------------------------
    # CP-SAT layout
    # ------------------------------------------------------------------
    def _solve_layout(
        self,
        request: TemplateRequest,
        heights: Sequence[int],
    ) -> Tuple[List[GimmickKind], List[int]]:
        count = len(heights)
        capacity = self.params.capacity
        full = [height == capacity for height in heights]
        eligible = hidden_eligibility(heights, capacity, request.hidden_per_bottle_cap)

        model = cp_model.CpModel()
        layout: Dict[Tuple[int, GimmickKind], cp_model.IntVar] = {}
        for index in range(count):
            for kind in _LAYOUT_KINDS:
                layout[(index, kind)] = model.new_bool_var(f"g_{index}_{kind.name}")
            model.add(sum(layout[(index, kind)] for kind in _LAYOUT_KINDS) <= 1)
            if heights[index] == 0:
                for kind in _LAYOUT_KINDS:
                    model.add(layout[(index, kind)] == 0)

        for kind in _LAYOUT_KINDS:
            model.add(sum(layout[(index, kind)] for index in range(count)) == request.count_for(kind))

        # A Bush needs a full neighbour that can become mono-full without
        # itself being locked: plain or Vine.
        for index in range(count):
            neighbours = [j for j in (index - 1, index + 1) if 0 <= j < count and full[j]]
            bush = layout[(index, GimmickKind.BUSH)]
            if not neighbours:
                model.add(bush == 0)
                continue
            model.add(
                sum(
                    1 - layout[(j, GimmickKind.CLOTH)] - layout[(j, GimmickKind.BUSH)]
                    for j in neighbours
                )
                >= 1
            ).only_enforce_if(bush)

        # Every Cloth gets its own plain full bottle to collect its target.
        if request.cloth > 0:
            plain_full = [
                1 - sum(layout[(j, kind)] for kind in _LAYOUT_KINDS)
                for j in range(count)
                if full[j]
            ]
            if not plain_full:
                raise TemplateError("Cloth gimmicks need at least one full bottle to collect their target")
            model.add(sum(plain_full) >= request.cloth)

        hidden_vars = [model.new_int_var(0, eligible[index], f"h_{index}") for index in range(count)]
        model.add(sum(hidden_vars) == request.hidden)

        # Random weights pick a different feasible layout per seed.
        model.maximize(
            sum(self.rng.randint(0, 100) * var for var in layout.values())
            + sum(self.rng.randint(0, 100) * var for var in hidden_vars)
        )

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = self.time_limit
        solver.parameters.num_workers = 1
        solver.parameters.random_seed = self.rng.randint(0, 2**31 - 1)
        status = solver.solve(model)
        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            raise TemplateError(
                f"No gimmick layout satisfies the support constraints "
                f"(status={solver.status_name(status)})"
            )

        kinds: List[GimmickKind] = []
        for index in range(count):
            chosen = GimmickKind.NONE
            for kind in _LAYOUT_KINDS:
                if solver.value(layout[(index, kind)]):
                    chosen = kind
            kinds.append(chosen)
        hidden_counts = [int(solver.value(var)) for var in hidden_vars]
        LOGGER.debug("CP-SAT layout in %.3fs: kinds=%s hidden=%s", solver.wall_time, kinds, hidden_counts)
        return kinds, hidden_counts

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------
    def _materialize(
        self,
        heights: Sequence[int],
        kinds: Sequence[GimmickKind],
        hidden_counts: Sequence[int],
    ) -> PuzzleState:
        capacity = self.params.capacity
        colors = list(range(1, self.params.num_colors + 1))
        unused_targets = list(colors)
        self.rng.shuffle(unused_targets)

        bottles: List[Bottle] = []
        unit = 0
        for index, height in enumerate(heights):
            # Placeholder colors in sorted order; the generator re-deals them.
            slots = [Slot((unit + k) // capacity + 1) for k in range(height)]
            unit += height
            for position in self.rng.sample(range(max(0, height - 1)), hidden_counts[index]):
                slots[position].hidden = True
            bottles.append(Bottle(capacity=capacity, slots=slots, gimmick=self._gimmick_for(kinds[index], unused_targets)))
        return PuzzleState(self.params, bottles)

    def _gimmick_for(self, kind: GimmickKind, unused_targets: List[int]) -> Gimmick:
        if kind == GimmickKind.CLOTH:
            target = unused_targets.pop() if unused_targets else self.rng.randint(1, self.params.num_colors)
            return Cloth(target=target)
        if kind == GimmickKind.VINE:
            return VINE
        if kind == GimmickKind.BUSH:
            return BUSH
        return NO_GIMMICK


def build_auto_template(
    params: Params,
    request: TemplateRequest,
    heights: Sequence[int],
    rng: Optional[random.Random] = None,
) -> TemplateResult:
    """Validate ``request`` and build a template, or return the rejection reason."""

    return TemplateBuilder(params, rng=rng).build(request, heights)
