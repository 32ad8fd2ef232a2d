# bfc_lexer.py
# Lexer for the bfc tape language
# Author: Violet Magenta / VACU Technologies
# License: MIT
"""
Maps source characters to instructions and feeds them into the peephole
optimizer. Every character outside the eight commands is a comment.

The only source diagnostic is an unmatched loop delimiter, reported as a
ParseError with 1-based line and 0-based column.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from bfc_instructions import (
    Instruction,
    AddValue,
    AddPointer,
    Input,
    Output,
    BeginLoop,
    EndLoop,
)
from bfc_optimizer import PeepholeOptimizer

LOG = logging.getLogger("bfc.lexer")

_COMMANDS: Dict[str, Instruction] = {
    '+': AddValue(1),
    '-': AddValue(-1),
    '>': AddPointer(1),
    '<': AddPointer(-1),
    ',': Input(),
    '.': Output(),
    '[': BeginLoop(),
    ']': EndLoop(),
}


class ParseError(SyntaxError):
    pass


@dataclass
class LexerConfig:
    optimize: bool = True         # route instructions through the peephole optimizer
    check_balance: bool = True    # reject unmatched '[' / ']'


class BfLexer:
    def __init__(self, config: Optional[LexerConfig] = None):
        self.config = config or LexerConfig()

    # Iterator API: yields (instruction, lineno, col) in source order
    def iter_tokens(self, code: str) -> Iterator[Tuple[Instruction, int, int]]:
        lineno, col = 1, 0
        for ch in code:
            insn = _COMMANDS.get(ch)
            if insn is not None:
                yield insn, lineno, col
            if ch == '\n':
                lineno += 1
                col = 0
            else:
                col += 1

    def tokenize(self, code: str) -> List[Instruction]:
        """Raw instructions in source order, without optimization."""
        return [insn for insn, _, _ in self._checked_tokens(code)]

    def parse(self, code: str) -> List[Instruction]:
        """Lex ``code`` and return the instruction sequence (canonical when optimizing)."""
        if not self.config.optimize:
            return self.tokenize(code)
        opt = PeepholeOptimizer()
        raw = 0
        for insn, _, _ in self._checked_tokens(code):
            opt.push(insn)
            raw += 1
        result = opt.result()
        LOG.debug("lexed %d instructions, %d after optimization", raw, len(result))
        return result

    def _checked_tokens(self, code: str) -> Iterator[Tuple[Instruction, int, int]]:
        # the whole source is scanned before anything is yielded, so a
        # diagnostic is raised before any instruction reaches the consumer
        tokens = list(self.iter_tokens(code or ""))
        if self.config.check_balance:
            self._check_balance(tokens)
        return iter(tokens)

    @staticmethod
    def _check_balance(tokens: List[Tuple[Instruction, int, int]]) -> None:
        open_loops: List[Tuple[int, int]] = []
        for insn, lineno, col in tokens:
            if isinstance(insn, BeginLoop):
                open_loops.append((lineno, col))
            elif isinstance(insn, EndLoop):
                if not open_loops:
                    raise ParseError(f"ParseError: unmatched ']' at line {lineno}, col {col}")
                open_loops.pop()
        if open_loops:
            lineno, col = open_loops[-1]
            raise ParseError(f"ParseError: unmatched '[' at line {lineno}, col {col}")


def parse(code: str, optimize: bool = True) -> List[Instruction]:
    return BfLexer(LexerConfig(optimize=optimize)).parse(code)
