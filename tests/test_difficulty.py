import unittest

from pourpuzzle.core.constants import DifficultyLabel
from pourpuzzle.core.models import NO_GIMMICK, VINE, Params
from pourpuzzle.engine.difficulty import (
    DEFAULT_WEIGHTS,
    empty_relief_component,
    gimmick_component,
    hidden_component,
    label_for_score,
    score_difficulty,
    solution_component,
)
from pourpuzzle.engine.solver import SearchLimits, SolveResult, solve_state
from pourpuzzle.engine.state import PuzzleState


class LabelTests(unittest.TestCase):
    def test_band_edges(self) -> None:
        cases = [
            (0.0, DifficultyLabel.VERY_EASY),
            (9.99, DifficultyLabel.VERY_EASY),
            (10.0, DifficultyLabel.EASY),
            (24.9, DifficultyLabel.EASY),
            (25.0, DifficultyLabel.NORMAL),
            (59.9, DifficultyLabel.NORMAL),
            (60.0, DifficultyLabel.HARD),
            (71.9, DifficultyLabel.HARD),
            (72.0, DifficultyLabel.VERY_HARD),
            (100.0, DifficultyLabel.VERY_HARD),
        ]
        for score, label in cases:
            with self.subTest(score=score):
                self.assertEqual(label_for_score(score), label)


class ComponentTests(unittest.TestCase):
    def test_solution_uniqueness_bonus_and_penalty(self) -> None:
        unique = SolveResult(solved=True, distinct_solutions=1, solution_count_exhaustive=True)
        pair = SolveResult(solved=True, distinct_solutions=2, solution_count_exhaustive=True)
        many = SolveResult(solved=True, distinct_solutions=4, solution_count_limited=True)
        self.assertAlmostEqual(solution_component(unique, DEFAULT_WEIGHTS), 6.0)
        self.assertAlmostEqual(solution_component(pair, DEFAULT_WEIGHTS), 2.5)
        self.assertAlmostEqual(solution_component(many, DEFAULT_WEIGHTS), -3.0)

    def test_empty_relief_steps(self) -> None:
        def relief(empties: int) -> float:
            columns = [[1, 1]] + [[] for _ in range(empties)]
            return empty_relief_component(PuzzleState.from_colors(columns, capacity=2), DEFAULT_WEIGHTS)

        self.assertEqual(relief(0), 0.0)
        self.assertEqual(relief(1), -2.0)
        self.assertEqual(relief(2), -5.0)
        self.assertEqual(relief(4), -9.0)

    def test_hidden_extra_slots_weigh_less_when_monochrome(self) -> None:
        mono = PuzzleState.from_colors([[1, 1, 2], [2, 2, 1]], capacity=3, hidden=[[True, True, False], []])
        mixed = PuzzleState.from_colors([[1, 2, 2], [2, 1, 1]], capacity=3, hidden=[[True, True, False], []])
        self.assertAlmostEqual(hidden_component(mono, DEFAULT_WEIGHTS), 1.6 + 0.45)
        self.assertAlmostEqual(hidden_component(mixed, DEFAULT_WEIGHTS), 1.6 + 0.9)

    def test_gimmick_component_zero_without_gimmicks(self) -> None:
        plain = PuzzleState.from_colors([[1, 2], [2, 1], []], capacity=2)
        self.assertEqual(gimmick_component(plain, DEFAULT_WEIGHTS), 0.0)
        with_vine = PuzzleState.from_colors(
            [[1, 1], [2, 2], []],
            capacity=2,
            gimmicks=[VINE, NO_GIMMICK, NO_GIMMICK],
        )
        self.assertGreater(gimmick_component(with_vine, DEFAULT_WEIGHTS), 0.0)


class ScoreTests(unittest.TestCase):
    def test_score_is_clamped_and_labelled(self) -> None:
        state = PuzzleState.from_colors([[1, 2], [2, 1], []], capacity=2)
        result = solve_state(state, SearchLimits(max_seconds=5.0))
        breakdown = score_difficulty(state, result)
        self.assertGreaterEqual(breakdown.total, 0.0)
        self.assertLessEqual(breakdown.total, 100.0)
        self.assertEqual(breakdown.label, label_for_score(breakdown.total))
        self.assertEqual(breakdown.to_dict()["label"], breakdown.label.value)

    def test_many_empty_bottles_cap_the_score(self) -> None:
        state = PuzzleState.from_colors(
            [[1, 2, 3], [3, 1, 2], [2, 3, 1], [], [], []],
            capacity=3,
        )
        result = SolveResult(
            solved=True,
            min_moves=40,
            distinct_solutions=1,
            solution_count_exhaustive=True,
        )
        breakdown = score_difficulty(state, result)
        self.assertLessEqual(breakdown.total, 24.0)
        self.assertIn(breakdown.label, (DifficultyLabel.VERY_EASY, DifficultyLabel.EASY))

    def test_longer_solutions_score_higher(self) -> None:
        state = PuzzleState.goal(Params(num_colors=6, num_bottles=8, capacity=4))
        short = score_difficulty(state, SolveResult(solved=True, min_moves=5, distinct_solutions=3))
        long = score_difficulty(state, SolveResult(solved=True, min_moves=25, distinct_solutions=3))
        self.assertGreater(long.move, short.move)
        self.assertGreaterEqual(long.total, short.total)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
