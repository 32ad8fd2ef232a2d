# bfc_instructions.py
# Instruction model shared by the bfc lexer, optimizer and code generator
# Author: Violet Magenta / VACU Technologies
# License: MIT
"""
Instruction set of the tape language after lexing.

Every instruction is a frozen dataclass deriving from ``Instruction`` so that
sequences compare by value (``[AddValue(3)] == [AddValue(3)]``). Cell payloads
(``SetValue`` / ``AddValue``) are normalized to the signed 8-bit range on
construction; ``AddPointer`` payloads are left unbounded because pointer
wrapping is a code-generation policy.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List


def wrap_i8(value: int) -> int:
    """Reduce ``value`` into [-128, 127] with two's complement wraparound."""
    return ((int(value) + 128) % 256) - 128


class Instruction:
    """Base class of the closed instruction variant."""

    __slots__ = ()

    def __str__(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class SetValue(Instruction):
    value: int = 0

    def __post_init__(self):
        object.__setattr__(self, "value", wrap_i8(self.value))

    def __str__(self) -> str:
        return f"SetValue({self.value})"


@dataclass(frozen=True)
class AddValue(Instruction):
    value: int = 0

    def __post_init__(self):
        object.__setattr__(self, "value", wrap_i8(self.value))

    def __str__(self) -> str:
        return f"AddValue({self.value})"


@dataclass(frozen=True)
class AddPointer(Instruction):
    value: int = 0

    def __str__(self) -> str:
        return f"AddPointer({self.value})"


@dataclass(frozen=True)
class Input(Instruction):
    pass


@dataclass(frozen=True)
class Output(Instruction):
    pass


@dataclass(frozen=True)
class BeginLoop(Instruction):
    pass


@dataclass(frozen=True)
class EndLoop(Instruction):
    pass


@dataclass(frozen=True)
class DebugLog(Instruction):
    pass


def format_listing(instructions: Iterable[Instruction]) -> str:
    """Render one instruction per line, indenting loop bodies."""
    lines = []
    depth = 0
    for insn in instructions:
        if isinstance(insn, EndLoop) and depth > 0:
            depth -= 1
        lines.append("    " * depth + str(insn))
        if isinstance(insn, BeginLoop):
            depth += 1
    return "\n".join(lines)


def interleave_debug_log(instructions: Iterable[Instruction]) -> List[Instruction]:
    """
    Debug instrumentation pass: put a DebugLog before every instruction and
    one after the last, so each operation is preceded by a state dump.
    """
    result: List[Instruction] = [DebugLog()]
    for insn in instructions:
        result.append(insn)
        result.append(DebugLog())
    return result
