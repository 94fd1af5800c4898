"""Shared constants and enumerations for the pour puzzle."""

from __future__ import annotations

from enum import Enum
from typing import Tuple


EMPTY = 0
MAX_COLORS = 20
MIN_CAPACITY = 2
MAX_CAPACITY = 50


class GimmickKind(int, Enum):
    """Per-bottle rule modifiers. Values are the persisted kind codes."""

    NONE = 0
    CLOTH = 1
    VINE = 2
    BUSH = 3


class DifficultyLabel(str, Enum):
    """Difficulty bands reported for generated puzzles."""

    VERY_EASY = "Very Easy"
    EASY = "Easy"
    NORMAL = "Normal"
    HARD = "Hard"
    VERY_HARD = "Very Hard"


# Upper score bound (exclusive) of each band, checked in order.
LABEL_BANDS: Tuple[Tuple[float, DifficultyLabel], ...] = (
    (10.0, DifficultyLabel.VERY_EASY),
    (25.0, DifficultyLabel.EASY),
    (60.0, DifficultyLabel.NORMAL),
    (72.0, DifficultyLabel.HARD),
)

SCORE_MIN = 0.0
SCORE_MAX = 100.0
