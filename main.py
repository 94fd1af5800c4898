"""CLI entrypoint for the pour puzzle generator."""

from __future__ import annotations

import argparse
import json
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pourpuzzle.core.exceptions import ConfigError
from pourpuzzle.core.models import Params
from pourpuzzle.engine.generator import GeneratorConfig, PuzzleGenerator, PuzzleRecord
from pourpuzzle.engine.template import TemplateRequest
from pourpuzzle.io.puzzle_store import encode_record, load_rows, next_index, save_rows, summarize_rows
from pourpuzzle.utils.logger import configure_logging, get_logger, parse_level
from pourpuzzle.utils.pretty import print_puzzle_stats


LOGGER = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate color-sorting pour puzzles with optimal solutions and difficulty scores",
    )
    parser.add_argument("--colors", type=int, default=6, help="Number of colors")
    parser.add_argument("--bottles", type=int, default=8, help="Number of bottles")
    parser.add_argument("--capacity", type=int, default=4, help="Units per bottle")
    parser.add_argument("--count", type=int, default=1, help="Number of puzzles to generate")
    parser.add_argument("--seed", type=int, default=None, help="Base random seed; puzzle i uses seed + i")
    parser.add_argument(
        "--scramble",
        action="store_true",
        help="Scramble a sorted arrangement instead of dealing a random fill",
    )
    parser.add_argument("--mix-min", type=int, default=60, help="Minimum scramble moves")
    parser.add_argument("--mix-max", type=int, default=180, help="Maximum scramble moves")
    parser.add_argument("--retries", type=int, default=30, help="Candidate attempts per puzzle")
    parser.add_argument(
        "--solve-seconds",
        type=float,
        default=2.5,
        help="Solver wall-clock budget per candidate",
    )
    parser.add_argument("--reserved-empty", type=int, default=2, help="Bottles kept empty in the deal")
    parser.add_argument(
        "--max-run",
        type=int,
        default=2,
        help="Maximum same-color run per bottle in the deal (0 disables)",
    )
    parser.add_argument("--randomize-heights", action="store_true", help="Randomize bottle fill heights")
    parser.add_argument("--cloth", type=int, default=0, help="Cloth gimmicks in the auto template")
    parser.add_argument("--vine", type=int, default=0, help="Vine gimmicks in the auto template")
    parser.add_argument("--bush", type=int, default=0, help="Bush gimmicks in the auto template")
    parser.add_argument("--hidden", type=int, default=0, help="Hidden slots in the auto template")
    parser.add_argument(
        "--hidden-per-bottle",
        type=int,
        default=0,
        help="Maximum hidden slots per bottle (0 = no cap)",
    )
    parser.add_argument("--workers", type=int, default=1, help="Parallel generator threads")
    parser.add_argument("--csv", type=Path, default=Path("puzzles.csv"), help="CSV file to append to")
    parser.add_argument("--no-csv", action="store_true", help="Do not write the CSV file")
    parser.add_argument("--output", type=Path, help="Optional path to JSON output")
    parser.add_argument("--quiet", action="store_true", help="Do not print each puzzle")
    parser.add_argument("--log-file", type=Path, help="Also write log output to this file")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def build_request(args: argparse.Namespace) -> Optional[TemplateRequest]:
    request = TemplateRequest(
        cloth=args.cloth,
        vine=args.vine,
        bush=args.bush,
        hidden=args.hidden,
        hidden_per_bottle_cap=args.hidden_per_bottle,
    )
    if request.gimmick_total == 0 and request.hidden == 0:
        return None
    return request


def generate_indexed(
    position: int,
    config: GeneratorConfig,
    request: Optional[TemplateRequest],
) -> Tuple[int, Optional[PuzzleRecord], str]:
    """Generate one puzzle; returns ``(position, record, failure_reason)``."""

    generator = PuzzleGenerator(config)
    if request is not None:
        template = generator.auto_template(request)
        if not template.ok:
            return position, None, template.reason
    record = generator.make_one()
    if record is None:
        return position, None, f"no solvable candidate after {config.retry_limit} attempts"
    return position, record, ""


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(parse_level(args.log_level), log_file=args.log_file)

    if args.count < 1:
        parser.error("--count must be at least 1")
    if args.workers < 1:
        parser.error("--workers must be at least 1")

    base = GeneratorConfig(
        params=Params(num_colors=args.colors, num_bottles=args.bottles, capacity=args.capacity),
        seed=args.seed,
        mix_min=args.mix_min,
        mix_max=args.mix_max,
        retry_limit=args.retries,
        solve_seconds=args.solve_seconds,
        start_mixed=not args.scramble,
        reserved_empty=args.reserved_empty,
        max_run_per_bottle=args.max_run,
        randomize_heights=args.randomize_heights,
    )
    try:
        base.validate()
    except ConfigError as exc:
        parser.error(str(exc))
    request = build_request(args)

    seeder = random.Random(args.seed)
    configs = [
        replace(base, seed=(args.seed + position) if args.seed is not None else seeder.randint(0, 1_000_000))
        for position in range(args.count)
    ]

    outcomes: List[Tuple[int, Optional[PuzzleRecord], str]] = []
    with ThreadPoolExecutor(max_workers=args.workers) as executor:
        futures = [
            executor.submit(generate_indexed, position, config, request)
            for position, config in enumerate(configs)
        ]
        for future in futures:
            outcomes.append(future.result())

    records: List[PuzzleRecord] = []
    for position, record, reason in sorted(outcomes, key=lambda item: item[0]):
        if record is None:
            LOGGER.warning("Puzzle %d (seed %s) failed: %s", position, configs[position].seed, reason)
            continue
        records.append(record)
        if not args.quiet:
            print_puzzle_stats(record)
            print()

    if not records:
        parser.exit(1, "No puzzles generated\n")

    if not args.no_csv:
        start = next_index(args.csv)
        rows = [encode_record(start + offset, record) for offset, record in enumerate(records)]
        save_rows(args.csv, rows, append=True)
        summary = summarize_rows(load_rows(args.csv))
        if not summary.empty:
            print(summary.to_string())

    if args.output:
        payload: Dict[str, Any] = {
            "params": {
                "num_colors": base.params.num_colors,
                "num_bottles": base.params.num_bottles,
                "capacity": base.params.capacity,
            },
            "puzzles": [record.to_dict() for record in records],
        }
        args.output.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        LOGGER.info("Wrote %d puzzles to %s", len(records), args.output)


if __name__ == "__main__":  # pragma: no cover
    main()
