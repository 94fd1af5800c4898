"""Pretty-print helpers for puzzle states."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from ..core.models import Bottle, Bush, Cloth, Vine

if TYPE_CHECKING:
    from ..engine.generator import PuzzleRecord
    from ..engine.state import PuzzleState


def cell_symbol(bottle: Bottle, position: int) -> str:
    if position >= bottle.size:
        return "."
    slot = bottle.slots[position]
    return "?" if slot.hidden else str(slot.color)


def gimmick_tag(bottle: Bottle) -> str:
    gimmick = bottle.gimmick
    if isinstance(gimmick, Cloth):
        return f"C{gimmick.target}"
    if isinstance(gimmick, Vine):
        return "V"
    if isinstance(gimmick, Bush):
        return "B"
    return ""


def format_state(state: PuzzleState) -> str:
    """Render bottles as columns, top slot first, with gimmick tags underneath."""

    count = len(state.bottles)
    width = max(3, max((len(gimmick_tag(bottle)) for bottle in state.bottles), default=0) + 1)
    capacity = state.params.capacity
    lines = [" ".join(f"{index:>{width}}" for index in range(count))]
    lines.append("-" * ((width + 1) * count - 1))
    for position in reversed(range(capacity)):
        cells = [cell_symbol(bottle, position) for bottle in state.bottles]
        lines.append(" ".join(f"{cell:>{width}}" for cell in cells))
    tags = [gimmick_tag(bottle) for bottle in state.bottles]
    if any(tags):
        lines.append(" ".join(f"{tag:>{width}}" for tag in tags))
    for index in range(count):
        if state.is_locked(index):
            lines.append(f"  bottle {index} locked")
    return "\n".join(lines)


def pretty_print_state(state: PuzzleState, *, label: str | None = None, stream=None) -> None:
    stream = stream or sys.stdout
    if label:
        print(label, file=stream)
    print(format_state(state), file=stream)


def print_puzzle_stats(record: PuzzleRecord, *, stream=None, show_solution: bool = True) -> None:
    """Print the start state plus solve and difficulty stats for a generated puzzle."""

    stream = stream or sys.stdout
    state = record.state
    print(format_state(state), file=stream)

    # --- Shape ---
    params = state.params
    print(file=stream)
    print("--- Puzzle ---", file=stream)
    print(f"  Colors:        {params.num_colors}", file=stream)
    print(f"  Bottles:       {params.num_bottles} (capacity {params.capacity}, {state.empty_bottle_count()} empty)", file=stream)
    print(f"  Gimmicks:      {state.gimmick_count()}", file=stream)
    print(f"  Hidden slots:  {state.hidden_count()}", file=stream)
    print(f"  Mix:           {record.mix_intensity}", file=stream)

    # --- Solve ---
    exhaustive = "exact" if record.solution_count_exhaustive else "sampled"
    print(file=stream)
    print("--- Solve ---", file=stream)
    print(f"  Min moves:     {record.optimal_move_count}", file=stream)
    print(f"  Optimal paths: {record.distinct_optimal_solutions} ({exhaustive})", file=stream)
    if show_solution and record.solution_moves:
        print(f"  Solution:      {' '.join(move.to_notation() for move in record.solution_moves)}", file=stream)

    # --- Difficulty ---
    breakdown = record.difficulty_breakdown
    print(file=stream)
    print("--- Difficulty ---", file=stream)
    print(f"  Score:         {record.difficulty_score:.1f} ({record.difficulty_label.value})", file=stream)
    for name, value in breakdown.to_dict().items():
        if name in ("total", "label") or not value:
            continue
        print(f"  {name + ':':<15}{value:+.2f}", file=stream)

    if record.seed is not None:
        print(file=stream)
        print(f"Seed: {record.seed}", file=stream)
