# Unit tests for the lexer and the instruction model
import unittest

from bfc_instructions import (
    SetValue,
    AddValue,
    AddPointer,
    Input,
    Output,
    BeginLoop,
    EndLoop,
    DebugLog,
    format_listing,
    interleave_debug_log,
    wrap_i8,
)
from bfc_lexer import BfLexer, LexerConfig, ParseError, parse

HELLO_WORLD = ("++++++++++[>+++++++>++++++++++>+++>+<<<<-]>++.>+.+++++++..+++.>++."
               "<<+++++++++++++++.>.+++.------.--------.>+.>.")


class TestInstructions(unittest.TestCase):
    def test_wrap_i8(self):
        self.assertEqual(wrap_i8(127), 127)
        self.assertEqual(wrap_i8(128), -128)
        self.assertEqual(wrap_i8(-129), 127)
        self.assertEqual(wrap_i8(256), 0)

    def test_cell_payloads_wrap_on_construction(self):
        self.assertEqual(AddValue(255), AddValue(-1))
        self.assertEqual(SetValue(300).value, 44)

    def test_pointer_payload_not_wrapped(self):
        self.assertEqual(AddPointer(1 << 40).value, 1 << 40)

    def test_variants_are_distinct(self):
        self.assertNotEqual(SetValue(1), AddValue(1))
        self.assertNotEqual(BeginLoop(), EndLoop())
        self.assertEqual(Output(), Output())

    def test_listing(self):
        listing = format_listing([SetValue(1), BeginLoop(), AddPointer(-2), EndLoop(), Output()])
        self.assertEqual(listing.splitlines(), [
            "SetValue(1)",
            "BeginLoop",
            "    AddPointer(-2)",
            "EndLoop",
            "Output",
        ])

    def test_interleave_debug_log(self):
        self.assertEqual(interleave_debug_log([]), [DebugLog()])
        self.assertEqual(interleave_debug_log([Input(), Output()]),
                         [DebugLog(), Input(), DebugLog(), Output(), DebugLog()])


class TestLexer(unittest.TestCase):
    def test_raw_tokens(self):
        lexer = BfLexer(LexerConfig(optimize=False))
        self.assertEqual(lexer.parse("+-<>,.[]"), [
            AddValue(1), AddValue(-1), AddPointer(-1), AddPointer(1),
            Input(), Output(), BeginLoop(), EndLoop(),
        ])

    def test_comments_ignored(self):
        self.assertEqual(parse("hello + world\n+ !", optimize=False), [AddValue(1), AddValue(1)])
        self.assertEqual(parse("no commands here"), [])

    def test_parse_runs_optimizer(self):
        self.assertEqual(parse("+++>>-<"), [AddValue(3), AddPointer(2), AddValue(-1), AddPointer(-1)])
        self.assertEqual(parse(",[-]+++"), [Input(), SetValue(3)])

    def test_hello_world_canonical_form(self):
        insns = parse(HELLO_WORLD)
        self.assertEqual(insns[:3], [AddValue(10), BeginLoop(), AddPointer(1)])
        self.assertEqual(insns.count(BeginLoop()), 1)
        self.assertEqual(insns.count(Output()), 13)
        # the loop body moves 1+1+1+1-4 cells
        self.assertIn(AddPointer(-4), insns)

    def test_positions(self):
        tokens = list(BfLexer().iter_tokens("a+\n .["))
        self.assertEqual([(str(t), line, col) for t, line, col in tokens],
                         [("AddValue(1)", 1, 1), ("Output", 2, 1), ("BeginLoop", 2, 2)])

    def test_unmatched_close(self):
        with self.assertRaises(ParseError) as cm:
            parse("+\n+]")
        self.assertIn("unmatched ']'", str(cm.exception))
        self.assertIn("line 2, col 1", str(cm.exception))

    def test_unmatched_open(self):
        with self.assertRaises(ParseError) as cm:
            parse("[[]")
        self.assertIn("unmatched '['", str(cm.exception))
        self.assertIn("line 1, col 0", str(cm.exception))

    def test_balance_check_can_be_disabled(self):
        lexer = BfLexer(LexerConfig(check_balance=False))
        self.assertEqual(lexer.parse("]"), [EndLoop()])

    def test_parse_error_is_syntax_error(self):
        self.assertTrue(issubclass(ParseError, SyntaxError))


if __name__ == "__main__":
    unittest.main()
