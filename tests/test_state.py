import random
import unittest
from collections import Counter

from pourpuzzle.core.exceptions import ConfigError, IllegalMoveError
from pourpuzzle.core.models import BUSH, NO_GIMMICK, VINE, Cloth, Move, Params
from pourpuzzle.engine.solver import SearchLimits, solve_state
from pourpuzzle.engine.state import PuzzleState, replay


class PourLegalityTests(unittest.TestCase):
    def test_amount_is_limited_by_chunk_and_free_capacity(self) -> None:
        state = PuzzleState.from_colors([[1, 2, 2], [2], []], capacity=3, num_colors=2)
        self.assertEqual(state.can_pour(0, 1), 2)
        self.assertEqual(state.can_pour(0, 2), 2)
        self.assertIsNone(state.can_pour(1, 0))

    def test_rejects_same_index_invalid_index_and_empty_source(self) -> None:
        state = PuzzleState.from_colors([[1, 2], [2], []], capacity=2, num_colors=2)
        self.assertIsNone(state.can_pour(0, 0))
        self.assertIsNone(state.can_pour(0, 5))
        self.assertIsNone(state.can_pour(-1, 0))
        self.assertIsNone(state.can_pour(2, 0))

    def test_rejects_full_destination_and_color_mismatch(self) -> None:
        state = PuzzleState.from_colors([[1], [2], [1, 2]], capacity=2, num_colors=2)
        self.assertIsNone(state.can_pour(0, 1))
        self.assertIsNone(state.can_pour(0, 2))

    def test_relaxed_pour_ignores_color_but_not_vine(self) -> None:
        state = PuzzleState.from_colors(
            [[1], [2], [2, 1]],
            capacity=2,
            num_colors=2,
            gimmicks=[NO_GIMMICK, VINE, NO_GIMMICK],
        )
        self.assertIsNone(state.can_pour(0, 1, relaxed=True))
        self.assertIsNone(state.can_pour(2, 1))
        self.assertIsNone(state.can_pour(2, 1, relaxed=True))
        state = PuzzleState.from_colors([[1], [2], [2, 1]], capacity=2, num_colors=2)
        self.assertEqual(state.can_pour(0, 1, relaxed=True), 1)

    def test_vine_never_pours_out(self) -> None:
        state = PuzzleState.from_colors(
            [[1, 1], [2], [2]],
            capacity=2,
            gimmicks=[VINE, NO_GIMMICK, NO_GIMMICK],
        )
        self.assertIsNone(state.can_pour(0, 1))
        self.assertEqual(state.can_pour(1, 2), 1)

    def test_hidden_top_blocks_outgoing_pours(self) -> None:
        state = PuzzleState.from_colors(
            [[1, 2], [2], [1]],
            capacity=2,
            hidden=[[False, True], [], []],
        )
        self.assertEqual(state.bottles[0].top_chunk(), 0)
        self.assertIsNone(state.can_pour(0, 1))


class ApplyTests(unittest.TestCase):
    def test_apply_moves_units_and_reveals_new_tops(self) -> None:
        state = PuzzleState.from_colors(
            [[1, 2, 2], [], [1, 1]],
            capacity=3,
            num_colors=2,
            hidden=[[True, False, False], [], [False, False]],
        )
        applied = state.apply(Move(0, 1))
        self.assertEqual(applied, Move(0, 1, 2))
        self.assertEqual(state.bottles[0].colors(), [1])
        self.assertFalse(state.bottles[0].slots[0].hidden)
        self.assertEqual(state.bottles[1].colors(), [2, 2])

    def test_apply_illegal_move_raises(self) -> None:
        state = PuzzleState.from_colors([[1], [2], []], capacity=2, num_colors=2)
        with self.assertRaises(IllegalMoveError):
            state.apply(Move(0, 1))
        with self.assertRaises(IllegalMoveError):
            state.apply(Move(0, 9))

    def test_apply_rejects_amount_above_legal(self) -> None:
        state = PuzzleState.from_colors([[1, 1], [1], [2, 2]], capacity=3, num_colors=2)
        with self.assertRaises(IllegalMoveError):
            state.apply(Move(0, 1, 3))

    def test_replay_leaves_original_untouched(self) -> None:
        state = PuzzleState.from_colors([[1, 2], [2, 1], []], capacity=2)
        moved = replay(state, [Move(0, 2), Move(1, 0)])
        self.assertEqual(state.bottles[0].colors(), [1, 2])
        self.assertEqual(moved.bottles[0].colors(), [1, 1])
        partial = replay(state, [Move(0, 2), Move(1, 0)], steps=1)
        self.assertEqual(partial.bottles[2].colors(), [2])

    def test_explicit_amount_pours_hidden_units_of_the_top_color(self) -> None:
        state = PuzzleState.from_colors(
            [[2, 1, 1], [1], [2, 2], []],
            capacity=3,
            hidden=[[False, True, False], [], [], []],
        )
        self.assertEqual(state.can_pour(0, 1), 1)
        with self.assertRaises(IllegalMoveError):
            state.clone().apply(Move(0, 3, 3))
        self.assertEqual(state.clone().apply(Move(0, 1)), Move(0, 1, 1))

        applied = state.apply(Move(0, 1, 2))
        self.assertEqual(applied, Move(0, 1, 2))
        self.assertEqual(state.bottles[1].colors(), [1, 1, 1])
        self.assertEqual(state.hidden_count(), 0)
        self.assertEqual(state.bottles[0].colors(), [2])

    def test_solution_of_hidden_state_replays(self) -> None:
        state = PuzzleState.from_colors(
            [[2, 1, 1], [1], [2, 2], []],
            capacity=3,
            hidden=[[False, True, False], [], [], []],
        )
        result = solve_state(state, SearchLimits(max_seconds=5.0))
        self.assertTrue(result.solved)
        self.assertEqual(result.min_moves, 2)
        self.assertTrue(replay(state, result.solution_moves).is_solved())
        self.assertEqual(state.hidden_count(), 1)


class ReachableStateTests(unittest.TestCase):
    def test_random_walk_conserves_units_and_capacity(self) -> None:
        start = PuzzleState.from_colors(
            [[1, 2, 3, 1], [3, 2, 1, 2], [2, 3, 1, 3], [], []],
            capacity=4,
            gimmicks=[NO_GIMMICK, BUSH, NO_GIMMICK, NO_GIMMICK, Cloth(target=2)],
            hidden=[[True, True, False, False], [False, True, False, False], [True, False, False, False], [], []],
        )
        colors = Counter(color for bottle in start.bottles for color in bottle.colors())
        for seed in range(6):
            with self.subTest(seed=seed):
                rng = random.Random(seed)
                state = start.clone()
                for _ in range(200):
                    moves = state.legal_moves(relaxed=seed % 2 == 1)
                    if not moves:
                        break
                    move = rng.choice(moves)
                    applied = state.apply(move, relaxed=seed % 2 == 1)
                    self.assertEqual(applied.amount, move.amount)
                    self.assertEqual(state.total_units(), 12)
                    self.assertEqual(
                        Counter(color for bottle in state.bottles for color in bottle.colors()),
                        colors,
                    )
                    for bottle in state.bottles:
                        self.assertLessEqual(bottle.size, bottle.capacity)
                        if bottle.slots:
                            self.assertFalse(bottle.slots[-1].hidden)


class LockTests(unittest.TestCase):
    def test_cloth_unlocks_when_target_completed(self) -> None:
        state = PuzzleState.from_colors(
            [[1, 2], [1], [2], []],
            capacity=2,
            gimmicks=[NO_GIMMICK, NO_GIMMICK, Cloth(target=1), NO_GIMMICK],
        )
        self.assertTrue(state.is_locked(2))
        self.assertIsNone(state.can_pour(2, 3))
        self.assertIsNone(state.can_pour(0, 2))

        state.apply(Move(0, 3))
        state.apply(Move(0, 1))
        self.assertFalse(state.is_locked(2))
        self.assertEqual(state.can_pour(3, 2), 1)

    def test_bush_needs_mono_full_neighbour(self) -> None:
        locked = PuzzleState.from_colors(
            [[2], [2], [1, 1]],
            capacity=2,
            gimmicks=[BUSH, NO_GIMMICK, NO_GIMMICK],
        )
        self.assertTrue(locked.is_locked(0))
        self.assertIsNone(locked.can_pour(1, 0))

        unlocked = PuzzleState.from_colors(
            [[1, 1], [2], [2], []],
            capacity=2,
            gimmicks=[NO_GIMMICK, BUSH, NO_GIMMICK, NO_GIMMICK],
        )
        self.assertFalse(unlocked.is_locked(1))
        self.assertEqual(unlocked.can_pour(1, 2), 1)

    def test_refresh_locks_is_idempotent(self) -> None:
        state = PuzzleState.from_colors(
            [[1, 2], [1], [2], []],
            capacity=2,
            gimmicks=[BUSH, NO_GIMMICK, Cloth(target=1), NO_GIMMICK],
        )
        before = state.locks
        state.refresh_locks()
        state.refresh_locks()
        self.assertEqual(state.locks, before)


class StateSummaryTests(unittest.TestCase):
    def test_goal_is_solved(self) -> None:
        goal = PuzzleState.goal(Params(num_colors=3, num_bottles=5, capacity=4))
        self.assertTrue(goal.is_solved())
        self.assertEqual(goal.empty_bottle_count(), 2)
        self.assertEqual(goal.mono_full_count(), 3)

    def test_mixed_state_is_not_solved(self) -> None:
        state = PuzzleState.from_colors([[1, 2], [2, 1], []], capacity=2)
        self.assertFalse(state.is_solved())
        self.assertTrue(state.has_any_move())

    def test_hash_tracks_content_and_hidden_flags(self) -> None:
        state = PuzzleState.from_colors([[1, 2], [2, 1], []], capacity=2)
        clone = state.clone()
        self.assertEqual(state.state_hash(), clone.state_hash())
        self.assertEqual(state.content_key(), clone.content_key())

        clone.bottles[0].slots[0].hidden = True
        self.assertNotEqual(state.state_hash(), clone.state_hash())
        self.assertEqual(clone.solve_normalized().content_key(), state.content_key())

        moved = state.clone()
        moved.apply(Move(0, 2))
        self.assertNotEqual(state.state_hash(), moved.state_hash())

    def test_move_notation(self) -> None:
        self.assertEqual(Move(0, 1, 2).to_notation(), "0->1x2")
        self.assertEqual(Move(0, 1, 2).reversed(), Move(1, 0, 2))


class ParamsTests(unittest.TestCase):
    def test_validate_rejects_bad_shapes(self) -> None:
        for params in (
            Params(num_colors=0, num_bottles=2, capacity=4),
            Params(num_colors=21, num_bottles=30, capacity=4),
            Params(num_colors=3, num_bottles=5, capacity=1),
            Params(num_colors=4, num_bottles=3, capacity=4),
        ):
            with self.subTest(params=params):
                with self.assertRaises(ConfigError):
                    params.validate()
        Params().validate()
        self.assertEqual(Params().total_units, 24)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
