"""Deterministic integrity checks for puzzle states."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import List

from ..core.constants import EMPTY
from ..core.exceptions import ValidationError
from ..core.models import Cloth, Vine
from ..utils.logger import get_logger
from .state import PuzzleState


LOGGER = get_logger(__name__)


@dataclass
class ValidationResult:
    ok: bool
    messages: List[str]


class StateValidator:
    """Runs structural validation over a candidate or decoded state."""

    def __init__(self, require_monochrome_vines: bool = True) -> None:
        self.require_monochrome_vines = require_monochrome_vines

    def validate(self, state: PuzzleState) -> ValidationResult:
        try:
            self._check_shape(state)
            self._check_capacities(state)
            self._check_colors(state)
            self._check_color_totals(state)
            self._check_gimmicks(state)
        except ValidationError as exc:
            LOGGER.debug("Validation failed: %s", exc)
            return ValidationResult(ok=False, messages=[str(exc)])
        return ValidationResult(ok=True, messages=[])

    def _check_shape(self, state: PuzzleState) -> None:
        params = state.params
        if len(state.bottles) != params.num_bottles:
            raise ValidationError(
                f"Expected {params.num_bottles} bottles, found {len(state.bottles)}"
            )
        total = state.total_units()
        if total != params.total_units:
            raise ValidationError(
                f"Height sum {total} != colors*capacity {params.total_units}"
            )

    def _check_capacities(self, state: PuzzleState) -> None:
        for index, bottle in enumerate(state.bottles):
            if bottle.capacity != state.params.capacity:
                raise ValidationError(
                    f"Bottle {index} capacity {bottle.capacity} != {state.params.capacity}"
                )
            if bottle.size > bottle.capacity:
                raise ValidationError(
                    f"Bottle {index} holds {bottle.size} units over capacity {bottle.capacity}"
                )

    def _check_colors(self, state: PuzzleState) -> None:
        for index, bottle in enumerate(state.bottles):
            for position, slot in enumerate(bottle.slots):
                if slot.color == EMPTY or not 1 <= slot.color <= state.params.num_colors:
                    raise ValidationError(
                        f"Invalid color {slot.color} in bottle {index} slot {position}"
                    )

    def _check_color_totals(self, state: PuzzleState) -> None:
        counts = Counter(slot.color for bottle in state.bottles for slot in bottle.slots)
        for color in range(1, state.params.num_colors + 1):
            if counts.get(color, 0) != state.params.capacity:
                raise ValidationError(
                    f"Color {color} has {counts.get(color, 0)} units, expected {state.params.capacity}"
                )

    def _check_gimmicks(self, state: PuzzleState) -> None:
        for index, bottle in enumerate(state.bottles):
            gimmick = bottle.gimmick
            if isinstance(gimmick, Cloth) and not 1 <= gimmick.target <= state.params.num_colors:
                raise ValidationError(f"Cloth on bottle {index} targets unknown color {gimmick.target}")
            if (
                isinstance(gimmick, Vine)
                and self.require_monochrome_vines
                and len(set(bottle.colors())) > 1
            ):
                raise ValidationError(f"Vine bottle {index} is not monochrome")
