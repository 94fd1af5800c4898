"""Convenience entrypoint with predefined generator settings for debugging.

Usage in a Python console (Jupyter-style)::

    import debug_main
    state = debug_main.prepare_state(num_colors=4, num_bottles=6)
    debug_main.step_build(state)
    debug_main.step_validate(state)
    debug_main.step_solve(state)
    debug_main.step_score(state)
    record = debug_main.build_record(state)

Call :func:`run_debug` for a one-liner, or execute the functions above one by
one to inspect intermediate state.
"""

from __future__ import annotations

import logging
import random
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, List, Optional

from pourpuzzle.core.exceptions import GenerationError, PourPuzzleError
from pourpuzzle.core.models import Params
from pourpuzzle.engine.difficulty import score_difficulty
from pourpuzzle.engine.generator import GeneratorConfig, PuzzleGenerator, PuzzleRecord
from pourpuzzle.engine.template import TemplateRequest
from pourpuzzle.io.puzzle_store import load_rows, rows_dataframe
from pourpuzzle.utils.logger import configure_logging
from pourpuzzle.utils.pretty import pretty_print_state, print_puzzle_stats

DEFAULT_DEBUG_ARGS: Dict[str, Any] = {
    "num_colors": 6,
    "num_bottles": 8,
    "capacity": 4,
    "seed": None,
    "start_mixed": True,
    "mix_min": 60,
    "mix_max": 180,
    "solve_seconds": 2.5,
    "randomize_heights": False,
    "cloth": 1,
    "vine": 0,
    "bush": 1,
    "hidden": 2,
    "hidden_per_bottle_cap": 1,
}

LOGGER = logging.getLogger(__name__)


def prepare_state(**overrides: Any) -> Dict[str, Any]:
    """Return a mutable state dictionary used by the step helpers."""

    args = {**DEFAULT_DEBUG_ARGS, **overrides}
    configure_logging()
    params = Params(
        num_colors=int(args["num_colors"]),
        num_bottles=int(args["num_bottles"]),
        capacity=int(args["capacity"]),
    )
    config_kwargs: Dict[str, Any] = {
        "params": params,
        "seed": int(args["seed"]) if args.get("seed") is not None else None,
    }
    optional_fields: Dict[str, Any] = {
        "start_mixed": bool,
        "mix_min": int,
        "mix_max": int,
        "retry_limit": int,
        "solve_seconds": float,
        "reserved_empty": int,
        "max_run_per_bottle": int,
        "randomize_heights": bool,
    }
    for field_name, caster in optional_fields.items():
        if field_name in args:
            config_kwargs[field_name] = caster(args[field_name])
    config = GeneratorConfig(**config_kwargs)

    request = TemplateRequest(
        cloth=int(args.get("cloth", 0)),
        vine=int(args.get("vine", 0)),
        bush=int(args.get("bush", 0)),
        hidden=int(args.get("hidden", 0)),
        hidden_per_bottle_cap=int(args.get("hidden_per_bottle_cap", 0)),
    )
    generator = PuzzleGenerator(config)
    template_reason = ""
    if request.gimmick_total or request.hidden:
        template = generator.auto_template(request)
        template_reason = template.reason
        if template.ok:
            pretty_print_state(template.state, label="Template:")
        else:
            LOGGER.warning("Auto template rejected: %s", template.reason)
    return {
        "config": config,
        "generator": generator,
        "template_reason": template_reason,
        "candidate": None,
        "validation": None,
        "solve": None,
        "breakdown": None,
    }


def step_build(state: Dict[str, Any]):
    state["candidate"] = state["generator"].build_candidate()
    state["validation"] = None
    state["solve"] = None
    state["breakdown"] = None
    pretty_print_state(state["candidate"].state, label="Candidate:")
    return state["candidate"]


def step_validate(state: Dict[str, Any]):
    candidate = state["candidate"]
    if candidate is None:
        raise RuntimeError("State has no candidate. Call step_build() first.")
    state["validation"] = state["generator"].validator.validate(candidate.state)
    return state["validation"]


def step_solve(state: Dict[str, Any]):
    candidate = state["candidate"]
    if candidate is None:
        raise RuntimeError("State has no candidate. Call step_build() first.")
    state["solve"] = state["generator"].solve(candidate.state)
    LOGGER.info("Solve: %s", state["solve"].to_dict())
    return state["solve"]


def step_score(state: Dict[str, Any]):
    result = state["solve"]
    if result is None or not result.solved:
        raise RuntimeError("Candidate is not solved. Call step_solve() first.")
    state["breakdown"] = score_difficulty(state["candidate"].state, result, state["generator"].weights)
    return state["breakdown"]


def build_record(state: Dict[str, Any]) -> PuzzleRecord:
    candidate = state["candidate"]
    result = state["solve"]
    breakdown = state["breakdown"]
    if candidate is None or result is None or breakdown is None:
        raise RuntimeError("Run step_build(), step_solve() and step_score() first.")
    return PuzzleRecord(
        state=candidate.state,
        mix_intensity=candidate.mix_intensity,
        optimal_move_count=result.min_moves,
        distinct_optimal_solutions=result.distinct_solutions,
        solution_moves=result.solution_moves,
        difficulty_score=breakdown.total,
        difficulty_label=breakdown.label,
        difficulty_breakdown=breakdown,
        scramble_moves=candidate.scramble_moves,
        solution_count_exhaustive=result.solution_count_exhaustive,
        seed=state["config"].seed,
    )


def run_debug(**overrides: Any) -> PuzzleRecord:
    """Execute the pipeline step by step, retrying rejected candidates."""

    max_runs = int(overrides.pop("max_runs", 30))
    state = prepare_state(**overrides)
    if state["template_reason"]:
        raise GenerationError(f"Template rejected: {state['template_reason']}")
    for attempt in range(1, max_runs + 1):
        step_build(state)
        validation = step_validate(state)
        if not validation.ok:
            LOGGER.warning("Attempt %s/%s invalid: %s", attempt, max_runs, validation.messages)
            continue
        if not state["candidate"].state.has_any_move():
            LOGGER.warning("Attempt %s/%s has no legal moves", attempt, max_runs)
            continue
        result = step_solve(state)
        if not result.solved or result.min_moves == 0:
            LOGGER.warning("Attempt %s/%s not accepted (solved=%s)", attempt, max_runs, result.solved)
            continue
        step_score(state)
        record = build_record(state)
        print_puzzle_stats(record)
        return record
    raise GenerationError(f"Unable to generate a puzzle after {max_runs} attempts")


def generate_batch(count: int, workers: int = 4, **overrides: Any) -> List[PuzzleRecord]:
    """Run :func:`run_debug` ``count`` times on a thread pool with independent seeds."""

    base_seed = overrides.pop("seed", DEFAULT_DEBUG_ARGS.get("seed"))
    seeder = random.Random(base_seed)
    seeds = [
        base_seed + index if base_seed is not None else seeder.randint(0, 1_000_000)
        for index in range(count)
    ]
    records: List[PuzzleRecord] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(run_debug, seed=seed, **overrides): seed for seed in seeds}
        for future in as_completed(futures):
            seed = futures[future]
            try:
                records.append(future.result())
            except PourPuzzleError as exc:
                LOGGER.warning("Batch run with seed %s failed: %s", seed, exc)
    return records


def load_records_dataframe(path: Path | str, *, limit: Optional[int] = 10):
    """Return the stored puzzle rows as a pandas DataFrame.

    ``limit`` controls how many rows are printed (``None`` disables the preview).
    """

    df = rows_dataframe(load_rows(path))
    if limit is not None:
        print(df.head(limit))
    return df


def main() -> None:  # pragma: no cover - manual helper
    record = run_debug()
    print(f"Seed: {record.seed}")
    print(f"Min moves: {record.optimal_move_count}")
    print(f"Difficulty: {record.difficulty_score:.1f} ({record.difficulty_label.value})")


if __name__ == "__main__":
    main()
