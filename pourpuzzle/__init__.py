"""Color-sorting pour puzzle toolkit.

This package exposes the public API surface via:

- ``pourpuzzle.engine.generator.PuzzleGenerator``: builds, solves and scores puzzles.
- ``pourpuzzle.engine.solver.solve_state``: bounded optimal solver.
- ``pourpuzzle.engine.template.build_auto_template``: gimmick template planning.
- ``pourpuzzle.io.puzzle_store`` helpers: CSV persistence.
"""

from .core.models import Params
from .engine.generator import GeneratorConfig, PuzzleGenerator, PuzzleRecord
from .engine.solver import SearchLimits, solve_state
from .engine.state import PuzzleState

__all__ = [
    "GeneratorConfig",
    "Params",
    "PuzzleGenerator",
    "PuzzleRecord",
    "PuzzleState",
    "SearchLimits",
    "solve_state",
]

__version__ = "0.1.0"
