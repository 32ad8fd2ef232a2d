# bfc_optimizer.py
# Online peephole optimizer for bfc instruction streams
# Author: Violet Magenta / VACU Technologies
# License: MIT
"""
Peephole optimizer that keeps its output canonical on every insertion.

Each pushed instruction is matched against the last emitted instruction (and,
for the single-instruction loop rule, the one before it). A rule either drops
the incoming instruction, appends it, or pops emitted entries and replaces the
incoming instruction with a rewritten one, which is then matched again. Rules
only ever shrink the output or replace an instruction by a more canonical one,
so the loop terminates.

Rules (last emitted, incoming):
 - _,            AddValue(0)   -> drop incoming
 - AddValue(a),  AddValue(b)   -> AddValue(a + b)
 - SetValue(a),  AddValue(b)   -> SetValue(a + b)
 - Set/AddValue, SetValue(c)   -> SetValue(c)
 - AddPointer(a), AddPointer(b) -> AddPointer(a + b)
 - BeginLoop AddValue(odd), EndLoop -> SetValue(0)
 - EndLoop,      AddValue(v)   -> EndLoop, SetValue(v)
 - EndLoop,      SetValue(0)   -> drop incoming
 - SetValue(0) or EndLoop, BeginLoop -> discard the whole loop (dead code)
"""

from __future__ import annotations
import logging
from typing import Iterable, List, Optional

from bfc_instructions import (
    Instruction,
    SetValue,
    AddValue,
    AddPointer,
    BeginLoop,
    EndLoop,
)

LOG = logging.getLogger("bfc.optimizer")


class PeepholeOptimizer:
    def __init__(self):
        self._list: List[Instruction] = []
        # nesting depth of the dead loop being discarded; 0 means normal mode
        self._suppress_depth = 0

    # -------------------------
    # Public API
    # -------------------------
    def push(self, insn: Instruction) -> None:
        if self._suppress_depth:
            self._discard(insn)
            return

        pending: Optional[Instruction] = insn
        while pending is not None:
            pending = self._rewrite(pending)

    def extend(self, instructions: Iterable[Instruction]) -> None:
        for insn in instructions:
            self.push(insn)

    def result(self) -> List[Instruction]:
        return list(self._list)

    @property
    def suppressing(self) -> bool:
        return self._suppress_depth != 0

    # -------------------------
    # Internals
    # -------------------------
    def _discard(self, insn: Instruction) -> None:
        if isinstance(insn, BeginLoop):
            self._suppress_depth += 1
        elif isinstance(insn, EndLoop):
            self._suppress_depth -= 1

    def _rewrite(self, insn: Instruction) -> Optional[Instruction]:
        """
        Apply one rule to ``insn``. Returns the instruction that must be
        matched next, or None once ``insn`` was dropped or appended.
        """
        out = self._list
        last = out[-1] if out else None

        if isinstance(insn, AddValue):
            if insn.value == 0:
                return None
            if isinstance(last, AddValue):
                out.pop()
                return AddValue(last.value + insn.value)
            if isinstance(last, SetValue):
                out.pop()
                return SetValue(last.value + insn.value)
            if isinstance(last, EndLoop):
                # the cell is zero right after a loop exits
                return SetValue(insn.value)

        elif isinstance(insn, SetValue):
            if isinstance(last, (SetValue, AddValue)):
                out.pop()
                return insn
            if isinstance(last, EndLoop) and insn.value == 0:
                return None

        elif isinstance(insn, AddPointer):
            if isinstance(last, AddPointer):
                out.pop()
                return AddPointer(last.value + insn.value)

        elif isinstance(insn, EndLoop):
            # parity only: an odd step is assumed to always reach zero
            if (isinstance(last, AddValue) and last.value % 2 != 0
                    and len(out) >= 2 and isinstance(out[-2], BeginLoop)):
                out.pop()
                out.pop()
                return SetValue(0)

        elif isinstance(insn, BeginLoop):
            if isinstance(last, EndLoop) or (isinstance(last, SetValue) and last.value == 0):
                LOG.debug("eliding dead loop after %s at output position %d", last, len(out))
                self._suppress_depth = 1
                return None

        out.append(insn)
        return None


def optimize(instructions: Iterable[Instruction]) -> List[Instruction]:
    """Run the peephole optimizer over a whole sequence."""
    opt = PeepholeOptimizer()
    opt.extend(instructions)
    result = opt.result()
    LOG.debug("optimized instruction stream to %d instructions", len(result))
    return result
