# bfc_llvm_ir_codegen.py
# bfc → LLVM IR Code Generator
# Author: Violet Magenta / VACU Technologies
# License: MIT
"""
LLVM IR code generator for canonical bfc instruction streams.

The generator walks the instruction list exactly once and builds a single
entry function (default name ``brainfuck``) returning an i32:

 - prologue: malloc the tape, zero it with a generated counting loop, set
   the index variable to 0 and the cell-address variable to the tape base
 - one lowering per instruction, appended to the "current" block
 - loops lowered through a stack of {header, footer} block pairs
 - pointer moves checked according to the machine's OverflowPolicy
 - optional debug instrumentation through one shared internal routine
 - epilogue: load the current cell, free the tape, return the cell value;
   under ``abort`` a shared abort block frees the tape and returns -1

Backend helpers (target machines, verification, the new pass manager and
object emission) live here as well so that callers never touch
llvmlite.binding directly.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Union

from llvmlite import ir, binding

from bfc_instructions import Instruction, interleave_debug_log
from bfc_lexer import BfLexer, LexerConfig

LOG = logging.getLogger("bfc.codegen")

I8 = ir.IntType(8)
I32 = ir.IntType(32)
I64 = ir.IntType(64)
VOID = ir.VoidType()
I8_PTR = I8.as_pointer()

ABORT_EXIT_CODE = -1
DEFAULT_CAPACITY = 4096


class CodegenError(RuntimeError):
    pass


class UnmatchedLoopError(CodegenError):
    pass


class BackendError(RuntimeError):
    """A failure reported by LLVM or the host toolchain; message kept verbatim."""


class OverflowPolicy(Enum):
    UNDEFINED = "undefined"
    WRAP = "wrap"
    ABORT = "abort"


@dataclass
class MachineConfig:
    capacity: int = DEFAULT_CAPACITY
    overflow: OverflowPolicy = OverflowPolicy.UNDEFINED
    debug: bool = False
    emit_main: bool = False
    function_name: str = "brainfuck"
    read_symbol: str = "getchar"
    write_symbol: str = "putchar"
    target_triple: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.overflow, str):
            self.overflow = OverflowPolicy(self.overflow)
        if int(self.capacity) <= 0:
            raise ValueError(f"memory capacity must be positive, got {self.capacity}")
        self.capacity = int(self.capacity)


@dataclass
class GeneratedProgram:
    module: ir.Module
    function_name: str

    def __str__(self) -> str:
        return str(self.module)


@dataclass
class _LoopContext:
    header: ir.Block
    footer: ir.Block


class _StackVar:
    """A mutable local kept in an entry-block alloca."""

    def __init__(self, builder: ir.IRBuilder, ty: ir.Type, name: str):
        self.ptr = builder.alloca(ty, name=name)
        self.name = name

    def load(self, builder: ir.IRBuilder, name: str = "") -> ir.Value:
        return builder.load(self.ptr, name=name or self.name)

    def store(self, builder: ir.IRBuilder, value: ir.Value) -> None:
        builder.store(value, self.ptr)


# -------------------------
# Backend helpers
# -------------------------
_llvm_initialized = False


def initialize_llvm() -> None:
    global _llvm_initialized
    if _llvm_initialized:
        return
    binding.initialize_native_target()
    binding.initialize_native_asmprinter()
    _llvm_initialized = True


def create_target_machine(triple: Optional[str] = None, opt_level: int = 2,
                          reloc: str = "default") -> binding.TargetMachine:
    initialize_llvm()
    triple = triple or binding.get_default_triple()
    try:
        target = binding.Target.from_triple(triple)
    except RuntimeError as e:
        raise BackendError(str(e)) from e
    LOG.debug("target machine for %s (opt=%d, reloc=%s)", triple, opt_level, reloc)
    return target.create_target_machine(opt=max(0, min(3, int(opt_level))), reloc=reloc)


def parse_and_verify(module: Union[ir.Module, str]) -> binding.ModuleRef:
    initialize_llvm()
    try:
        llvm_mod = binding.parse_assembly(str(module))
        llvm_mod.verify()
    except RuntimeError as e:
        raise BackendError(str(e)) from e
    return llvm_mod


def optimize_module(llvm_mod: binding.ModuleRef, opt_level: int = 2,
                    target_machine: Optional[binding.TargetMachine] = None) -> binding.ModuleRef:
    """Run the default -O<level> pipeline of the new pass manager in place."""
    level = max(0, min(3, int(opt_level)))
    tm = target_machine or create_target_machine(llvm_mod.triple or None, level)
    llvm_mod.data_layout = str(tm.target_data)
    if level == 0:
        return llvm_mod
    pto = binding.PipelineTuningOptions(speed_level=level)
    pb = binding.create_pass_builder(tm, pto)
    pm = pb.getModulePassManager()
    pm.run(llvm_mod, pb)
    return llvm_mod


def emit_object(module: ir.Module, path: Union[str, Path], opt_level: int = 2,
                triple: Optional[str] = None) -> Path:
    """Verify, optimize and write ``module`` as a relocatable object file."""
    tm = create_target_machine(triple or module.triple or None, opt_level, reloc="pic")
    llvm_mod = parse_and_verify(module)
    optimize_module(llvm_mod, opt_level, tm)
    try:
        obj = tm.emit_object(llvm_mod)
    except RuntimeError as e:
        raise BackendError(str(e)) from e
    path = Path(path)
    try:
        path.write_bytes(obj)
    except OSError as e:
        raise BackendError(f"cannot write object file {path}: {e}") from e
    LOG.debug("wrote %d bytes of object code to %s", len(obj), path)
    return path


# -------------------------
# Code generator
# -------------------------
class BfLLVMCodegen:
    def __init__(self, machine: Optional[MachineConfig] = None,
                 lexer_config: Optional[LexerConfig] = None):
        self.machine = machine or MachineConfig()
        self.lexer = BfLexer(lexer_config)
        self.module: Optional[ir.Module] = None
        self.function: Optional[ir.Function] = None
        self.builder: Optional[ir.IRBuilder] = None
        self._loop_stack: List[_LoopContext] = []
        self._abort_block: Optional[ir.Block] = None
        self._debug_routine: Optional[ir.Function] = None

    # -------------------------
    # Public API
    # -------------------------
    def generate(self, code: str) -> GeneratedProgram:
        """Lex, optimize and lower source text."""
        return self.generate_from_instructions(self.lexer.parse(code))

    def generate_from_instructions(self, instructions: Iterable[Instruction]) -> GeneratedProgram:
        machine = self.machine
        instructions = list(instructions)
        if machine.debug:
            instructions = interleave_debug_log(instructions)

        self._reset()
        self._declare_runtime()
        self._emit_prologue()

        for index, insn in enumerate(instructions):
            self._lower(index, insn)

        if self._loop_stack:
            raise UnmatchedLoopError(
                f"{len(self._loop_stack)} BeginLoop instruction(s) left open at end of stream")

        self._emit_epilogue()
        if self._abort_block is not None:
            self._emit_abort()
        if machine.emit_main:
            self._emit_main()

        LOG.debug("lowered %d instructions into %d blocks (overflow=%s, debug=%s)",
                  len(instructions), len(self.function.blocks),
                  machine.overflow.value, machine.debug)
        return GeneratedProgram(self.module, machine.function_name)

    def get_module(self) -> ir.Module:
        return self.module

    def dump_ir(self) -> str:
        return str(self.module)

    def verify(self) -> binding.ModuleRef:
        return parse_and_verify(self.module)

    def optimized_ir(self, opt_level: int = 2) -> str:
        llvm_mod = self.verify()
        optimize_module(llvm_mod, opt_level,
                        create_target_machine(self.module.triple or None, opt_level))
        return str(llvm_mod)

    def emit_object(self, path: Union[str, Path], opt_level: int = 2) -> Path:
        return emit_object(self.module, path, opt_level, self.module.triple or None)

    # -------------------------
    # Module setup
    # -------------------------
    def _reset(self):
        machine = self.machine
        self.module = ir.Module(name="bfc")
        self.module.triple = machine.target_triple or binding.get_default_triple()
        self._loop_stack = []
        self._abort_block = None
        self._debug_routine = None
        self._capacity = ir.Constant(I64, machine.capacity)

    def _declare_runtime(self):
        machine = self.machine
        self._malloc = ir.Function(self.module, ir.FunctionType(I8_PTR, [I64]), name="malloc")
        self._free = ir.Function(self.module, ir.FunctionType(VOID, [I8_PTR]), name="free")
        self._read = ir.Function(self.module, ir.FunctionType(I32, []), name=machine.read_symbol)
        self._write = ir.Function(self.module, ir.FunctionType(I32, [I32]), name=machine.write_symbol)
        self.function = ir.Function(self.module, ir.FunctionType(I32, []),
                                    name=machine.function_name)

    def _emit_prologue(self):
        func = self.function
        entry = func.append_basic_block("entry")
        zero_cond = func.append_basic_block("zero.cond")
        zero_body = func.append_basic_block("zero.body")
        zero_done = func.append_basic_block("zero.done")
        b = self.builder = ir.IRBuilder(entry)

        self._index = _StackVar(b, I64, "index")
        self._cell = _StackVar(b, I8_PTR, "cell")
        self._memory = b.call(self._malloc, [self._capacity], name="memory")
        b.branch(zero_cond)

        # the allocator is not trusted to hand out zeroed memory
        b.position_at_end(zero_cond)
        counter = b.phi(I64, name="i")
        counter.add_incoming(ir.Constant(I64, 0), entry)
        more = b.icmp_unsigned("<", counter, self._capacity, name="more")
        b.cbranch(more, zero_body, zero_done)

        b.position_at_end(zero_body)
        b.store(ir.Constant(I8, 0), b.gep(self._memory, [counter], name="ptr"))
        counter.add_incoming(b.add(counter, ir.Constant(I64, 1), name="i.next"), zero_body)
        b.branch(zero_cond)

        b.position_at_end(zero_done)
        self._index.store(b, ir.Constant(I64, 0))
        self._cell.store(b, self._memory)

    def _emit_epilogue(self):
        b = self.builder
        if b.block.is_terminated:
            return
        result = b.load(self._cell.load(b), name="result")
        b.call(self._free, [self._memory])
        b.ret(b.sext(result, I32, name="exit_code"))

    def _emit_abort(self):
        b = ir.IRBuilder(self._abort_block)
        b.call(self._free, [self._memory])
        b.ret(ir.Constant(I32, ABORT_EXIT_CODE))

    def _emit_main(self):
        main = ir.Function(self.module, ir.FunctionType(I32, []), name="main")
        b = ir.IRBuilder(main.append_basic_block("entry"))
        b.ret(b.call(self.function, [], name="result"))

    def _get_abort_block(self) -> ir.Block:
        if self._abort_block is None:
            self._abort_block = self.function.append_basic_block("bounds.abort")
        return self._abort_block

    # -------------------------
    # Instruction dispatch
    # -------------------------
    def _lower(self, index: int, insn: Instruction):
        method = getattr(self, f"_lower_{type(insn).__name__}", None)
        if method is None:
            raise CodegenError(f"Unknown instruction: {insn!r}")
        method(index, insn)

    def _lower_SetValue(self, index: int, insn):
        b = self.builder
        b.store(ir.Constant(I8, insn.value), self._cell.load(b))

    def _lower_AddValue(self, index: int, insn):
        b = self.builder
        ptr = self._cell.load(b)
        total = b.add(b.load(ptr, name="val"), ir.Constant(I8, insn.value), name="sum")
        b.store(total, ptr)

    def _lower_AddPointer(self, index: int, insn):
        b = self.builder
        policy = self.machine.overflow
        idx = b.add(self._index.load(b), ir.Constant(I64, insn.value), name="index.next")
        if policy is OverflowPolicy.WRAP:
            idx = b.urem(idx, self._capacity, name="index.wrap")
        self._index.store(b, idx)

        if policy is OverflowPolicy.ABORT:
            in_bounds = b.icmp_unsigned("<", idx, self._capacity, name="in_bounds")
            ok = self.function.append_basic_block("bounds.ok")
            b.cbranch(in_bounds, ok, self._get_abort_block())
            b.position_at_end(ok)

        self._cell.store(b, b.gep(self._memory, [idx], name="ptr"))

    def _lower_Input(self, index: int, insn):
        b = self.builder
        ch = b.call(self._read, [], name="chr")
        b.store(b.trunc(ch, I8, name="byte"), self._cell.load(b))

    def _lower_Output(self, index: int, insn):
        b = self.builder
        val = b.load(self._cell.load(b), name="val")
        b.call(self._write, [b.zext(val, I32, name="chr")])

    def _lower_BeginLoop(self, index: int, insn):
        b = self.builder
        func = self.function
        header = func.append_basic_block("loop.header")
        body = func.append_basic_block("loop.body")
        footer = func.append_basic_block("loop.footer")

        # goto header; header: if (*cell == 0) goto footer; else goto body;
        b.branch(header)
        b.position_at_end(header)
        val = b.load(self._cell.load(b), name="val")
        is_zero = b.icmp_unsigned("==", val, ir.Constant(I8, 0), name="is_zero")
        b.cbranch(is_zero, footer, body)

        b.position_at_end(body)
        self._loop_stack.append(_LoopContext(header, footer))

    def _lower_EndLoop(self, index: int, insn):
        if not self._loop_stack:
            raise UnmatchedLoopError(
                f"EndLoop at instruction {index} has no matching BeginLoop")
        context = self._loop_stack.pop()
        b = self.builder
        b.branch(context.header)
        b.position_at_end(context.footer)

    def _lower_DebugLog(self, index: int, insn):
        b = self.builder
        routine = self._get_debug_routine()
        b.call(routine, [ir.Constant(I64, index), self._memory, self._capacity,
                         self._index.load(b)])

    # -------------------------
    # Debug routine
    # -------------------------
    def _get_debug_routine(self) -> ir.Function:
        if self._debug_routine is None:
            self._debug_routine = self._emit_debug_routine()
        return self._debug_routine

    def _emit_debug_routine(self) -> ir.Function:
        """
        void bfc_debug_log(i64 insn, i8* memory, i64 capacity, i64 index)

        Output layout per call: "<insn:6> <index:6> <cell:3> <cell:3> ...\n"
        """
        fnty = ir.FunctionType(VOID, [I64, I8_PTR, I64, I64])
        func = ir.Function(self.module, fnty, name="bfc_debug_log")
        func.linkage = "internal"
        insn_index, memory, capacity, index = func.args
        insn_index.name, memory.name, capacity.name, index.name = "insn", "memory", "capacity", "index"

        entry = func.append_basic_block("entry")
        cond = func.append_basic_block("dump.cond")
        body = func.append_basic_block("dump.body")
        done = func.append_basic_block("dump.done")
        b = ir.IRBuilder(entry)

        self._emit_decimal(b, insn_index, 6)
        self._emit_char(b, " ")
        self._emit_decimal(b, index, 6)
        b.branch(cond)

        b.position_at_end(cond)
        counter = b.phi(I64, name="i")
        counter.add_incoming(ir.Constant(I64, 0), entry)
        more = b.icmp_unsigned("!=", counter, capacity, name="more")
        b.cbranch(more, body, done)

        b.position_at_end(body)
        self._emit_char(b, " ")
        val = b.load(b.gep(memory, [counter], name="ptr"), name="val")
        self._emit_decimal(b, b.zext(val, I64, name="val.wide"), 3)
        counter.add_incoming(b.add(counter, ir.Constant(I64, 1), name="i.next"), b.block)
        b.branch(cond)

        b.position_at_end(done)
        self._emit_char(b, "\n")
        b.ret_void()
        return func

    def _emit_char(self, b: ir.IRBuilder, ch: str):
        b.call(self._write, [ir.Constant(I32, ord(ch))])

    def _emit_decimal(self, b: ir.IRBuilder, value: ir.Value, width: int):
        """
        Print ``value`` (i64, unsigned) as exactly ``width`` decimal digits.

        Only the low ``width`` digits are kept: with width 6, an index of
        1234567 prints as 234567.
        """
        ten = ir.Constant(I64, 10)
        zero_char = ir.Constant(I64, ord("0"))
        for place in reversed(range(width)):
            digit = b.udiv(value, ir.Constant(I64, 10 ** place), name="digit")
            digit = b.urem(digit, ten, name="digit")
            digit = b.add(digit, zero_char, name="digit")
            b.call(self._write, [b.trunc(digit, I32, name="digit")])
