# Unit tests for the peephole optimizer
import random
import unittest

from bfc_instructions import (
    SetValue,
    AddValue,
    AddPointer,
    Input,
    Output,
    BeginLoop,
    EndLoop,
    wrap_i8,
)
from bfc_optimizer import PeepholeOptimizer, optimize


class TestNoChange(unittest.TestCase):
    def test_single_instructions_pass_through(self):
        for insn in (SetValue(5), AddValue(5), AddPointer(3), Input(), Output(), BeginLoop(), EndLoop()):
            self.assertEqual(optimize([insn]), [insn])

    def test_io_breaks_merging(self):
        seq = [AddValue(1), Output(), AddValue(1)]
        self.assertEqual(optimize(seq), seq)


class TestValueRules(unittest.TestCase):
    def test_add_zero_dropped(self):
        self.assertEqual(optimize([AddValue(0)]), [])
        self.assertEqual(optimize([Output(), AddValue(0), Input()]), [Output(), Input()])

    def test_add_add_merges(self):
        self.assertEqual(optimize([AddValue(5), AddValue(3)]), [AddValue(8)])

    def test_add_add_cancels(self):
        self.assertEqual(optimize([AddValue(1), AddValue(-1)]), [])

    def test_add_add_wraps(self):
        self.assertEqual(optimize([AddValue(100), AddValue(100)]), [AddValue(-56)])
        self.assertEqual(optimize([AddValue(-128), AddValue(-1)]), [AddValue(127)])

    def test_set_add_folds(self):
        self.assertEqual(optimize([SetValue(5), AddValue(3)]), [SetValue(8)])
        self.assertEqual(optimize([SetValue(127), AddValue(1)]), [SetValue(-128)])

    def test_set_overrides(self):
        self.assertEqual(optimize([SetValue(5), SetValue(3)]), [SetValue(3)])
        self.assertEqual(optimize([AddValue(5), SetValue(3)]), [SetValue(3)])

    def test_chained_rewrites_reach_fixpoint(self):
        seq = [AddValue(2), AddValue(3), SetValue(1), AddValue(4), AddValue(-4)]
        self.assertEqual(optimize(seq), [SetValue(1)])

    def test_merge_properties_for_all_pairs(self):
        rng = random.Random(1234)
        for _ in range(200):
            a = rng.randint(-128, 127)
            b = rng.randint(-128, 127)
            expected_add = [AddValue(a + b)] if wrap_i8(a + b) != 0 else []
            if a == 0:
                expected_add = [AddValue(b)] if b != 0 else []
            self.assertEqual(optimize([AddValue(a), AddValue(b)]), expected_add)
            expected_set = [SetValue(a + b)] if b != 0 else [SetValue(a)]
            self.assertEqual(optimize([SetValue(a), AddValue(b)]), expected_set)
            self.assertEqual(optimize([SetValue(a), SetValue(b)]), [SetValue(b)])


class TestPointerRules(unittest.TestCase):
    def test_pointer_moves_merge(self):
        self.assertEqual(optimize([AddPointer(1)] * 5), [AddPointer(5)])
        self.assertEqual(optimize([AddPointer(3), AddPointer(-1)]), [AddPointer(2)])

    def test_pointer_moves_are_not_wrapped(self):
        self.assertEqual(optimize([AddPointer(1)] * 300), [AddPointer(300)])

    def test_pointer_moves_cancel_to_zero_move(self):
        # no rule removes AddPointer(0); it is a no-op for the generator
        self.assertEqual(optimize([AddPointer(1), AddPointer(-1)]), [AddPointer(0)])


class TestLoopRules(unittest.TestCase):
    def test_add_after_loop_becomes_set(self):
        self.assertEqual(optimize([EndLoop(), AddValue(5)]), [EndLoop(), SetValue(5)])

    def test_set_zero_after_loop_dropped(self):
        self.assertEqual(optimize([EndLoop(), SetValue(0)]), [EndLoop()])

    def test_clear_loop_becomes_set_zero(self):
        self.assertEqual(optimize([BeginLoop(), AddValue(-1), EndLoop()]), [SetValue(0)])
        self.assertEqual(optimize([Output(), BeginLoop(), AddValue(1), EndLoop()]),
                         [Output(), SetValue(0)])

    def test_odd_step_loop_uses_parity(self):
        self.assertEqual(optimize([Input(), BeginLoop(), AddValue(3), EndLoop()]),
                         [Input(), SetValue(0)])

    def test_even_step_loop_kept(self):
        seq = [Input(), BeginLoop(), AddValue(2), EndLoop()]
        self.assertEqual(optimize(seq), seq)

    def test_longer_body_not_collapsed(self):
        seq = [Input(), BeginLoop(), Output(), AddValue(-1), EndLoop()]
        self.assertEqual(optimize(seq), seq)

    def test_clear_loop_then_set_folds(self):
        seq = [Input(), BeginLoop(), AddValue(-1), EndLoop(), AddValue(7)]
        self.assertEqual(optimize(seq), [Input(), SetValue(7)])

    def test_clear_loop_after_loop_is_dropped(self):
        seq = [Input(), BeginLoop(), Output(), EndLoop(), BeginLoop(), AddValue(-1), EndLoop()]
        self.assertEqual(optimize(seq), [Input(), BeginLoop(), Output(), EndLoop()])

    def test_dead_loop_after_set_zero(self):
        self.assertEqual(optimize([SetValue(0), BeginLoop()]), [SetValue(0)])
        seq = [SetValue(0), BeginLoop(), AddValue(1), EndLoop()]
        self.assertEqual(optimize(seq), [SetValue(0)])

    def test_dead_loop_after_loop(self):
        self.assertEqual(optimize([EndLoop(), BeginLoop()]), [EndLoop()])

    def test_dead_loop_discards_nested_loops(self):
        seq = [Input(), BeginLoop(), Output(), EndLoop(),
               BeginLoop(), BeginLoop(), Input(), EndLoop(), AddPointer(1), EndLoop(),
               Output()]
        self.assertEqual(optimize(seq), [Input(), BeginLoop(), Output(), EndLoop(), Output()])

    def test_suppression_state(self):
        opt = PeepholeOptimizer()
        opt.extend([EndLoop(), BeginLoop(), BeginLoop()])
        self.assertTrue(opt.suppressing)
        opt.push(EndLoop())
        self.assertTrue(opt.suppressing)
        opt.push(EndLoop())
        self.assertFalse(opt.suppressing)
        opt.push(Output())
        self.assertEqual(opt.result(), [EndLoop(), Output()])

    def test_leading_loop_is_kept(self):
        seq = [BeginLoop(), Output(), EndLoop()]
        self.assertEqual(optimize(seq), seq)


class TestProperties(unittest.TestCase):
    ALPHABET = [AddValue(1), AddValue(-1), AddPointer(1), AddPointer(-1),
                Input(), Output(), BeginLoop(), EndLoop(), SetValue(0), SetValue(4)]

    def _random_programs(self, count=300, seed=42):
        rng = random.Random(seed)
        for _ in range(count):
            yield [rng.choice(self.ALPHABET) for _ in range(rng.randint(0, 40))]

    def test_never_emits_add_zero(self):
        for program in self._random_programs():
            self.assertNotIn(AddValue(0), optimize(program))

    def test_idempotent(self):
        for program in self._random_programs():
            once = optimize(program)
            self.assertEqual(optimize(once), once)

    def test_total_over_unbalanced_input(self):
        optimize([EndLoop(), EndLoop(), EndLoop()])
        optimize([BeginLoop()] * 10)
        optimize([SetValue(0), BeginLoop(), BeginLoop(), EndLoop()])

    def test_result_is_a_copy(self):
        opt = PeepholeOptimizer()
        opt.push(Output())
        opt.result().append(Input())
        self.assertEqual(opt.result(), [Output()])


if __name__ == "__main__":
    unittest.main()
