"""Bounded optimal solver: iterative-deepening best-first search (IDA*)."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional

from ..core.models import Move
from ..utils.logger import get_logger
from .state import PuzzleState

LOGGER = get_logger(__name__)

_UNBOUNDED = sys.maxsize


@dataclass(frozen=True)
class SearchLimits:
    max_seconds: float = 2.0
    # Distinct optimal solutions are only sampled up to this many.
    solution_cap: int = 4
    # Use exact content keys instead of the rolling hash for transpositions.
    exact_keys: bool = False
    # Keep searching the solving iteration for a shorter path instead of
    # returning the first one found.
    refine_solution: bool = False


@dataclass
class SolveResult:
    """Outcome of :func:`solve_state`.

    ``min_moves`` is exact only when ``solved`` is true; otherwise it holds
    the last bound the search proved, which is a lower-bound estimate.
    """

    solved: bool = False
    timed_out: bool = False
    min_moves: int = -1
    distinct_solutions: int = 0
    solution_count_exhaustive: bool = False
    solution_count_limited: bool = False
    solution_moves: List[Move] = field(default_factory=list)
    start_heuristic: int = 0
    expanded_nodes: int = 0
    iterations: int = 0
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "solved": self.solved,
            "timed_out": self.timed_out,
            "min_moves": self.min_moves,
            "distinct_solutions": self.distinct_solutions,
            "solution_count_exhaustive": self.solution_count_exhaustive,
            "solution_count_limited": self.solution_count_limited,
            "solution": [move.to_notation() for move in self.solution_moves],
            "start_heuristic": self.start_heuristic,
            "expanded_nodes": self.expanded_nodes,
            "iterations": self.iterations,
            "elapsed_ms": round(self.elapsed_ms, 3),
        }


@dataclass
class SolutionCount:
    count: int = 0
    exhaustive: bool = False
    timed_out: bool = False
    limit_hit: bool = False


class SearchContext:
    """Mutable bookkeeping for one solve, threaded through the recursion."""

    def __init__(self, limits: SearchLimits, deadline: float) -> None:
        self.limits = limits
        self.deadline = deadline
        self.bound = 0
        self.visited: Dict[Hashable, int] = {}
        self.path: List[Move] = []
        self.best_path: Optional[List[Move]] = None
        self.timed_out = False
        self.expanded = 0

    def time_ok(self) -> bool:
        if time.perf_counter() >= self.deadline:
            self.timed_out = True
        return not self.timed_out

    def key(self, state: PuzzleState) -> Hashable:
        return state.content_key() if self.limits.exact_keys else state.state_hash()


class CountContext:
    def __init__(self, limits: SearchLimits, deadline: float, depth: int) -> None:
        self.limits = limits
        self.deadline = deadline
        self.depth = depth
        self.best_depth: Dict[Hashable, int] = {}
        self.count = 0
        self.timed_out = False
        self.limit_hit = False

    def key(self, state: PuzzleState) -> Hashable:
        return state.content_key() if self.limits.exact_keys else state.state_hash()


def heuristic(state: PuzzleState) -> int:
    """Structural move estimate used as the IDA* bound.

    Each unsorted bottle costs ``max(1, groups - 1)``; up to two empty
    bottles are credited back. Not admissible under every gimmick layout.
    """
    total = 0
    empties = 0
    for bottle in state.bottles:
        if not bottle.slots:
            empties += 1
            continue
        if not bottle.is_mono_full():
            total += max(1, bottle.color_groups() - 1)
    return max(0, total - min(2, empties))


def ordered_moves(state: PuzzleState) -> List[Move]:
    """Legal moves, pours onto a matching top color first (stable)."""
    moves = state.legal_moves()
    bottles = state.bottles

    def _prefers_match(move: Move) -> int:
        target = bottles[move.target]
        matches = bool(target.slots) and bottles[move.source].top_color() == target.top_color()
        return 0 if matches else 1

    moves.sort(key=_prefers_match)
    return moves


def solve_state(start: PuzzleState, limits: Optional[SearchLimits] = None) -> SolveResult:
    """Find the minimal move count for ``start`` within ``limits.max_seconds``."""

    limits = limits or SearchLimits()
    started = time.perf_counter()
    deadline = started + limits.max_seconds
    root = start.solve_normalized()
    result = SolveResult(start_heuristic=heuristic(root))

    if root.is_solved():
        result.solved = True
        result.min_moves = 0
        result.distinct_solutions = 1
        result.solution_count_exhaustive = True
        result.elapsed_ms = (time.perf_counter() - started) * 1000.0
        return result

    ctx = SearchContext(limits, deadline)
    bound = result.start_heuristic
    while True:
        result.iterations += 1
        ctx.visited.clear()
        ctx.bound = bound
        outcome = _bounded_dfs(ctx, root, 0, bound)
        if ctx.best_path is not None:
            result.solved = True
            result.min_moves = len(ctx.best_path)
            result.solution_moves = list(ctx.best_path)
            break
        if outcome == _UNBOUNDED or ctx.timed_out:
            # Either the clock ran out or nothing is reachable below any bound.
            result.timed_out = ctx.timed_out
            result.min_moves = bound
            break
        LOGGER.debug("Bound %d exhausted, next bound %d", bound, outcome)
        bound = outcome

    result.expanded_nodes = ctx.expanded
    if result.solved:
        counted = count_optimal_solutions(root, result.min_moves, limits, deadline)
        result.distinct_solutions = max(1, counted.count)
        result.solution_count_exhaustive = counted.exhaustive
        result.solution_count_limited = counted.limit_hit
    result.elapsed_ms = (time.perf_counter() - started) * 1000.0
    LOGGER.debug(
        "Solve finished: solved=%s timed_out=%s moves=%d nodes=%d in %.1fms",
        result.solved,
        result.timed_out,
        result.min_moves,
        result.expanded_nodes,
        result.elapsed_ms,
    )
    return result


def _bounded_dfs(ctx: SearchContext, state: PuzzleState, g: int, bound: int) -> int:
    """One IDA* probe.

    Returns ``-g`` when a solution is reached, otherwise the smallest ``f``
    above the bound (``_UNBOUNDED`` when nothing exceeded it or time ran out).
    A solution unwinds straight to the caller unless ``refine_solution`` is
    set, in which case the bound is tightened to ``g - 1`` and the rest of
    the iteration can only replace it with a shorter path.
    """
    f = g + heuristic(state)
    if f > ctx.bound:
        return f
    if state.is_solved():
        ctx.best_path = list(ctx.path)
        if ctx.limits.refine_solution:
            ctx.bound = g - 1
        return -g
    if not ctx.time_ok():
        return _UNBOUNDED

    key = ctx.key(state)
    seen_at = ctx.visited.get(key)
    if seen_at is not None and seen_at <= g:
        return _UNBOUNDED
    ctx.visited[key] = g
    ctx.expanded += 1

    smallest = _UNBOUNDED
    found = 0
    for move in ordered_moves(state):
        child = state.clone()
        child.apply(move)
        ctx.path.append(move)
        outcome = _bounded_dfs(ctx, child, g + 1, bound)
        ctx.path.pop()
        if outcome < 0:
            if not ctx.limits.refine_solution:
                return outcome
            found = outcome if found == 0 else max(found, outcome)
        elif outcome < smallest:
            smallest = outcome
        if ctx.timed_out or g >= ctx.bound:
            break
    return found if found < 0 else smallest


def count_optimal_solutions(
    root: PuzzleState,
    depth: int,
    limits: SearchLimits,
    deadline: float,
) -> SolutionCount:
    """Count distinct move sequences of exactly ``depth`` moves that solve ``root``.

    Paths that revisit a state at no better depth are pruned; counting stops
    at ``limits.solution_cap``.
    """
    ctx = CountContext(limits, deadline, depth)
    _count_dfs(ctx, root.solve_normalized(), 0)
    return SolutionCount(
        count=ctx.count,
        exhaustive=not (ctx.timed_out or ctx.limit_hit),
        timed_out=ctx.timed_out,
        limit_hit=ctx.limit_hit,
    )


def _count_dfs(ctx: CountContext, state: PuzzleState, g: int) -> None:
    if ctx.count >= ctx.limits.solution_cap:
        ctx.limit_hit = True
        return
    if time.perf_counter() >= ctx.deadline:
        ctx.timed_out = True
        return
    if state.is_solved():
        if g == ctx.depth:
            ctx.count += 1
        return
    if g >= ctx.depth:
        return

    key = ctx.key(state)
    best = ctx.best_depth.get(key)
    if best is not None and best <= g:
        return
    ctx.best_depth[key] = g

    for move in ordered_moves(state):
        child = state.clone()
        child.apply(move)
        _count_dfs(ctx, child, g + 1)
        if ctx.timed_out or ctx.limit_hit:
            return
