"""CSV persistence for generated puzzles.

One row per puzzle. ``map`` lists each bottle bottom to top, zero-padded
to capacity, bottles joined by ``#``; an empty bottle is an empty token.
Colors above 9 are written as ``[nn]`` so every other cell stays a single
digit. ``slot_gimmick`` holds per-bottle hidden masks and
``stack_gimmick`` per-bottle ``kind_param`` pairs.
"""

from __future__ import annotations

import csv
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List

from ..core.constants import EMPTY
from ..core.exceptions import ConfigError, RecordDecodeError
from ..core.models import Bottle, Params, Slot, gimmick_from_code, gimmick_param
from ..engine.state import PuzzleState
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..engine.generator import PuzzleRecord


LOGGER = get_logger(__name__)

FIELDNAMES = (
    "index",
    "map",
    "slot_gimmick",
    "stack_gimmick",
    "NumberOfItem",
    "NumberOfSlot",
    "NumberOfStack",
    "MixCount",
    "MinMoves",
    "DifficultyScore",
    "DifficultyLabel",
)

_CELL_PATTERN = re.compile(r"\[(\d+)\]|(\d)")


@dataclass
class PuzzleRow:
    index: int
    map: str
    slot_gimmick: str
    stack_gimmick: str
    NumberOfItem: int
    NumberOfSlot: int
    NumberOfStack: int
    MixCount: int
    MinMoves: int
    DifficultyScore: float
    DifficultyLabel: str

    def to_csv_dict(self) -> dict:
        payload = asdict(self)
        payload["DifficultyScore"] = f"{self.DifficultyScore:.3f}"
        return payload


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------
def _encode_cell(color: int) -> str:
    return str(color) if color < 10 else f"[{color}]"


def encode_map(state: PuzzleState) -> str:
    tokens: List[str] = []
    for bottle in state.bottles:
        if bottle.is_empty():
            tokens.append("")
            continue
        cells = bottle.colors() + [EMPTY] * bottle.free_capacity()
        tokens.append("".join(_encode_cell(color) for color in cells))
    return "#".join(tokens)


def encode_slot_gimmick(state: PuzzleState) -> str:
    return "#".join(
        "".join(
            "1" if position < bottle.size and bottle.slots[position].hidden else "0"
            for position in range(bottle.capacity)
        )
        for bottle in state.bottles
    )


def encode_stack_gimmick(state: PuzzleState) -> str:
    return "#".join(
        f"{int(bottle.gimmick.kind)}_{gimmick_param(bottle.gimmick)}" for bottle in state.bottles
    )


def encode_state(
    index: int,
    state: PuzzleState,
    mix_count: int,
    min_moves: int,
    difficulty_score: float,
    difficulty_label: str,
) -> PuzzleRow:
    return PuzzleRow(
        index=index,
        map=encode_map(state),
        slot_gimmick=encode_slot_gimmick(state),
        stack_gimmick=encode_stack_gimmick(state),
        NumberOfItem=state.params.num_colors,
        NumberOfSlot=state.params.capacity,
        NumberOfStack=state.params.num_bottles,
        MixCount=mix_count,
        MinMoves=min_moves,
        DifficultyScore=difficulty_score,
        DifficultyLabel=difficulty_label,
    )


def encode_record(index: int, record: "PuzzleRecord") -> PuzzleRow:
    return encode_state(
        index,
        record.state,
        record.mix_intensity,
        record.optimal_move_count,
        record.difficulty_score,
        record.difficulty_label.value,
    )


# ----------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------
def _decode_cells(token: str) -> List[int]:
    cells: List[int] = []
    position = 0
    while position < len(token):
        match = _CELL_PATTERN.match(token, position)
        if match is None:
            raise RecordDecodeError(f"Unexpected character {token[position]!r} in map token {token!r}")
        bracketed, digit = match.groups()
        cells.append(int(bracketed if bracketed is not None else digit))
        position = match.end()
    return cells


def decode_row(row: PuzzleRow) -> PuzzleState:
    """Rebuild the state stored in ``row``; raises :class:`RecordDecodeError`."""

    params = Params(num_colors=row.NumberOfItem, num_bottles=row.NumberOfStack, capacity=row.NumberOfSlot)
    try:
        params.validate()
    except ConfigError as exc:
        raise RecordDecodeError(f"Row {row.index}: {exc}") from exc

    columns = row.map.split("#")
    masks = row.slot_gimmick.split("#") if row.slot_gimmick else []
    gimmicks = row.stack_gimmick.split("#") if row.stack_gimmick else []
    if len(columns) != params.num_bottles:
        raise RecordDecodeError(
            f"Row {row.index}: map has {len(columns)} bottles, expected {params.num_bottles}"
        )

    bottles: List[Bottle] = []
    for index, token in enumerate(columns):
        colors = [color for color in _decode_cells(token) if color != EMPTY]
        if len(colors) > params.capacity:
            raise RecordDecodeError(f"Row {row.index}: bottle {index} exceeds capacity")
        mask = masks[index] if index < len(masks) else ""
        slots = [
            Slot(color, position < len(mask) and mask[position] == "1")
            for position, color in enumerate(colors)
        ]
        bottle = Bottle(capacity=params.capacity, slots=slots)
        if index < len(gimmicks) and gimmicks[index]:
            parts = gimmicks[index].split("_")
            if len(parts) != 2:
                raise RecordDecodeError(f"Row {row.index}: bad gimmick token {gimmicks[index]!r}")
            try:
                bottle.gimmick = gimmick_from_code(int(parts[0]), int(parts[1]))
            except ValueError as exc:
                raise RecordDecodeError(f"Row {row.index}: bad gimmick token {gimmicks[index]!r}") from exc
        bottles.append(bottle)

    state = PuzzleState(params, bottles)
    state.refresh_locks()
    return state


def _row_from_csv(raw: dict) -> PuzzleRow:
    missing = [name for name in FIELDNAMES if raw.get(name) is None]
    if missing:
        raise RecordDecodeError(f"Missing columns: {', '.join(missing)}")
    if None in raw:
        raise RecordDecodeError(f"{len(raw[None])} extra cell(s) beyond {len(FIELDNAMES)} columns")
    try:
        return PuzzleRow(
            index=int(raw["index"]),
            map=raw["map"],
            slot_gimmick=raw["slot_gimmick"],
            stack_gimmick=raw["stack_gimmick"],
            NumberOfItem=int(raw["NumberOfItem"]),
            NumberOfSlot=int(raw["NumberOfSlot"]),
            NumberOfStack=int(raw["NumberOfStack"]),
            MixCount=int(raw["MixCount"]),
            MinMoves=int(raw["MinMoves"]),
            DifficultyScore=float(raw["DifficultyScore"]),
            DifficultyLabel=raw["DifficultyLabel"],
        )
    except ValueError as exc:
        raise RecordDecodeError(f"Malformed numeric field: {exc}") from exc


# ----------------------------------------------------------------------
# Files
# ----------------------------------------------------------------------
def save_rows(path: Path | str, rows: Iterable[PuzzleRow], append: bool = True) -> int:
    """Write ``rows``; the header is written only for a new or truncated file."""

    location = Path(path)
    location.parent.mkdir(parents=True, exist_ok=True)
    write_header = not append or not location.exists() or location.stat().st_size == 0
    count = 0
    with location.open("a" if append else "w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=FIELDNAMES)
        if write_header:
            writer.writeheader()
        for row in rows:
            writer.writerow(row.to_csv_dict())
            count += 1
    LOGGER.info("Saved %d puzzle rows to %s", count, location)
    return count


def load_rows(path: Path | str) -> List[PuzzleRow]:
    """Load rows, skipping malformed ones with a warning. Missing file yields []."""

    location = Path(path)
    if not location.exists():
        return []
    rows: List[PuzzleRow] = []
    with location.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        for line_number, raw in enumerate(reader, start=2):
            try:
                rows.append(_row_from_csv(raw))
            except RecordDecodeError as exc:
                LOGGER.warning("Skipping %s line %d: %s", location, line_number, exc)
    return rows


def next_index(path: Path | str) -> int:
    rows = load_rows(path)
    return max((row.index for row in rows), default=0) + 1


# ----------------------------------------------------------------------
# Reporting
# ----------------------------------------------------------------------
def rows_dataframe(rows: Iterable[PuzzleRow]):
    """Return ``rows`` as a pandas DataFrame with the CSV column order."""

    try:
        import pandas as pd
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "Batch reporting requires pandas. Install it via 'pip install pandas'."
        ) from exc

    return pd.DataFrame([asdict(row) for row in rows], columns=list(FIELDNAMES))


def summarize_rows(rows: Iterable[PuzzleRow]):
    """Per-label counts plus move and score statistics."""

    frame = rows_dataframe(rows)
    if frame.empty:
        return frame
    summary = frame.groupby("DifficultyLabel").agg(
        puzzles=("index", "count"),
        min_moves_mean=("MinMoves", "mean"),
        min_moves_max=("MinMoves", "max"),
        score_mean=("DifficultyScore", "mean"),
    )
    return summary.sort_values("score_mean")
