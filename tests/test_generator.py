import unittest
from unittest import mock

from pourpuzzle.core.exceptions import ConfigError, GenerationError
from pourpuzzle.core.models import BUSH, NO_GIMMICK, Bush, Cloth, Params, Vine
from pourpuzzle.engine.generator import Candidate, GeneratorConfig, PuzzleGenerator
from pourpuzzle.engine.state import PuzzleState, replay
from pourpuzzle.engine.template import TemplateRequest
from pourpuzzle.engine.validator import StateValidator
from pourpuzzle.io.puzzle_store import encode_map


SMALL = Params(num_colors=3, num_bottles=5, capacity=3)


def _config(**overrides) -> GeneratorConfig:
    values = {"params": SMALL, "seed": 7, "solve_seconds": 5.0}
    values.update(overrides)
    return GeneratorConfig(**values)


class HeightTests(unittest.TestCase):
    def test_left_to_right_respects_reserved_empty(self) -> None:
        generator = PuzzleGenerator(_config())
        self.assertEqual(generator.left_to_right_heights(), [3, 3, 3, 0, 0])
        self.assertEqual(generator.left_to_right_heights(reserved_empty=0), [2, 2, 2, 2, 1])
        self.assertEqual(generator.left_to_right_heights(reserved_empty=4), [3, 3, 3, 0, 0])

    def test_random_heights_sum_exactly(self) -> None:
        for seed in range(10):
            with self.subTest(seed=seed):
                heights = PuzzleGenerator(_config(seed=seed)).random_heights()
                self.assertEqual(sum(heights), SMALL.total_units)
                self.assertEqual(len(heights), SMALL.num_bottles)
                self.assertTrue(all(0 <= h <= SMALL.capacity for h in heights))

    def test_template_heights_fall_back_on_bad_sum(self) -> None:
        generator = PuzzleGenerator(_config())
        template = PuzzleState.from_colors([[1, 1], [2], [], [], []], capacity=3, num_colors=3)
        self.assertEqual(generator.template_heights(template), [3, 3, 3, 0, 0])


class SupportPlanTests(unittest.TestCase):
    def test_cloth_support_is_nearest_other_full_bottle(self) -> None:
        generator = PuzzleGenerator(_config())
        gimmicks = [Cloth(target=2), NO_GIMMICK, NO_GIMMICK, NO_GIMMICK, NO_GIMMICK]
        plan = generator.build_support_plan([3, 3, 3, 0, 0], gimmicks)
        self.assertEqual(len(plan), 1)
        self.assertEqual(plan[0].bottle, 1)
        self.assertEqual(plan[0].color, 2)
        self.assertEqual(plan[0].gimmick_bottle, 0)

    def test_bush_support_is_adjacent(self) -> None:
        generator = PuzzleGenerator(_config())
        gimmicks = [NO_GIMMICK, BUSH, NO_GIMMICK, NO_GIMMICK, NO_GIMMICK]
        plan = generator.build_support_plan([3, 3, 3, 0, 0], gimmicks)
        self.assertEqual(len(plan), 1)
        self.assertIn(plan[0].bottle, (0, 2))
        self.assertEqual(plan[0].gimmick_bottle, 1)


class FillTests(unittest.TestCase):
    def test_fix_cloth_start_moves_target_out(self) -> None:
        generator = PuzzleGenerator(_config(params=Params(num_colors=3, num_bottles=4, capacity=3)))
        state = PuzzleState.from_colors(
            [[1, 2, 1], [2, 2, 3], [3, 3, 1], []],
            capacity=3,
            gimmicks=[Cloth(target=1), NO_GIMMICK, NO_GIMMICK, NO_GIMMICK],
        )
        swaps = generator.fix_cloth_start(state)
        self.assertEqual(swaps, 2)
        self.assertNotIn(1, state.bottles[0].colors())
        self.assertTrue(StateValidator().validate(state).ok)

    def test_random_fill_is_valid_and_not_presorted(self) -> None:
        generator = PuzzleGenerator(_config())
        for _ in range(5):
            state = generator.random_fill()
            self.assertTrue(StateValidator().validate(state).ok)
            self.assertEqual(state.heights(), [3, 3, 3, 0, 0])
            self.assertEqual(generator.presolved_bottles(state), [])


class MakeOneTests(unittest.TestCase):
    def test_random_fill_record(self) -> None:
        record = PuzzleGenerator(_config()).make_one()
        self.assertIsNotNone(record)
        self.assertGreaterEqual(record.optimal_move_count, 1)
        self.assertEqual(record.mix_intensity, SMALL.total_units)
        self.assertTrue(replay(record.state, record.solution_moves).is_solved())
        self.assertTrue(0.0 <= record.difficulty_score <= 100.0)
        self.assertEqual(record.difficulty_label, record.difficulty_breakdown.label)
        self.assertEqual(record.seed, 7)
        self.assertEqual(record.to_dict()["optimal_move_count"], record.optimal_move_count)

    def test_same_seed_same_puzzle(self) -> None:
        first = PuzzleGenerator(_config(seed=11)).make_one()
        second = PuzzleGenerator(_config(seed=11)).make_one()
        self.assertIsNotNone(first)
        self.assertIsNotNone(second)
        self.assertEqual(encode_map(first.state), encode_map(second.state))

    def test_scramble_mode_keeps_trace(self) -> None:
        record = PuzzleGenerator(_config(start_mixed=False, mix_min=5, mix_max=10)).make_one()
        self.assertIsNotNone(record)
        self.assertEqual(record.mix_intensity, len(record.scramble_moves))
        self.assertLessEqual(len(record.scramble_moves), 10)
        for previous, current in zip(record.scramble_moves, record.scramble_moves[1:]):
            self.assertFalse(
                current.source == previous.target and current.target == previous.source
            )

    def test_initial_distribution_is_used(self) -> None:
        generator = PuzzleGenerator(_config(retry_limit=1))
        record = generator.make_one(initial=[[1, 2, 3], [3, 1, 2], [2, 3, 1]])
        self.assertIsNotNone(record)
        self.assertEqual(record.state.bottles[0].colors(), [1, 2, 3])

    def test_auto_template_cloth(self) -> None:
        generator = PuzzleGenerator(_config(seed=3))
        template = generator.auto_template(TemplateRequest(cloth=1))
        self.assertTrue(template.ok, template.reason)
        record = generator.make_one()
        self.assertIsNotNone(record)
        cloth_bottles = [b for b in record.state.bottles if isinstance(b.gimmick, Cloth)]
        self.assertEqual(len(cloth_bottles), 1)
        self.assertNotIn(cloth_bottles[0].gimmick.target, cloth_bottles[0].colors())

    def test_cloth_bush_vine_template_is_accepted(self) -> None:
        params = Params(num_colors=4, num_bottles=6, capacity=3)
        for seed in range(4):
            with self.subTest(seed=seed):
                generator = PuzzleGenerator(_config(params=params, seed=seed))
                template = generator.auto_template(TemplateRequest(cloth=1, vine=1, bush=1))
                self.assertTrue(template.ok, template.reason)
                record = generator.make_one()
                self.assertIsNotNone(record)
                kinds = [type(bottle.gimmick) for bottle in record.state.bottles]
                self.assertEqual(kinds.count(Cloth), 1)
                self.assertEqual(kinds.count(Bush), 1)
                self.assertEqual(kinds.count(Vine), 1)
                self.assertTrue(replay(record.state, record.solution_moves).is_solved())

    def test_support_colors_stay_out_of_locked_bottles(self) -> None:
        params = Params(num_colors=4, num_bottles=6, capacity=3)
        generator = PuzzleGenerator(_config(params=params, seed=5))
        template = generator.auto_template(TemplateRequest(cloth=1, vine=1, bush=1))
        self.assertTrue(template.ok, template.reason)
        gimmicks = [bottle.gimmick for bottle in template.state.bottles]
        heights = generator.template_heights(template.state)
        plan = generator.build_support_plan(heights, gimmicks)
        support_colors = {spec.color for spec in plan}
        self.assertTrue(support_colors)
        for _ in range(10):
            state = generator.fill_bottles(heights, gimmicks, plan)
            for bottle in state.bottles:
                if isinstance(bottle.gimmick, (Cloth, Bush)):
                    self.assertFalse(support_colors & set(bottle.colors()))

    def test_hidden_template_records_replay(self) -> None:
        params = Params(num_colors=4, num_bottles=6, capacity=3)
        for seed in range(4):
            with self.subTest(seed=seed):
                generator = PuzzleGenerator(_config(params=params, seed=seed))
                template = generator.auto_template(TemplateRequest(hidden=4, hidden_per_bottle_cap=2))
                self.assertTrue(template.ok, template.reason)
                record = generator.make_one()
                self.assertIsNotNone(record)
                self.assertEqual(record.state.hidden_count(), 4)
                self.assertTrue(replay(record.state, record.solution_moves).is_solved())

    def test_candidate_without_moves_is_rejected(self) -> None:
        generator = PuzzleGenerator(_config(params=Params(num_colors=2, num_bottles=2, capacity=3)))
        stuck = PuzzleState.from_colors([[1, 2, 1], [2, 1, 2]], capacity=3)
        with self.assertRaises(GenerationError):
            generator.evaluate(Candidate(stuck, 6))

    def test_generate_raises_when_nothing_found(self) -> None:
        generator = PuzzleGenerator(_config())
        with mock.patch.object(PuzzleGenerator, "make_one", return_value=None):
            with self.assertRaises(GenerationError):
                generator.generate()

    def test_invalid_mix_range(self) -> None:
        with self.assertRaises(ConfigError):
            PuzzleGenerator(_config(mix_min=10, mix_max=5))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
