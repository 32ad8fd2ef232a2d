# bfc_jit_aot_runner.py
# JIT execution of bfc programs through LLVM MCJIT
# Author: Violet Magenta / VACU Technologies
# License: MIT
"""
Runs generated programs in-process and reports their exit code.

C runtime symbols used by generated code (malloc, free and the byte I/O
primitives) are registered explicitly with LLVM's symbol table from the
process C library. When input bytes are supplied or output is captured, the
I/O primitives are renamed in the generated module and bound to ctypes
callbacks, so the program talks to Python buffers instead of the C stdio
streams.
"""

from __future__ import annotations
import ctypes
import ctypes.util
import dataclasses
import logging
import sys
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from llvmlite import binding

from bfc_instructions import Instruction
from bfc_lexer import BfLexer
from bfc_llvm_ir_codegen import (
    ABORT_EXIT_CODE,
    BackendError,
    BfLLVMCodegen,
    GeneratedProgram,
    MachineConfig,
    create_target_machine,
    initialize_llvm,
    optimize_module,
    parse_and_verify,
)

LOG = logging.getLogger("bfc.runner")

READ_BYTE = ctypes.CFUNCTYPE(ctypes.c_int)
WRITE_BYTE = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_int)

CAPTURE_READ_SYMBOL = "bfc_jit_read_byte"
CAPTURE_WRITE_SYMBOL = "bfc_jit_write_byte"

_libc = None


def _load_libc() -> ctypes.CDLL:
    global _libc
    if _libc is None:
        _libc = ctypes.CDLL(ctypes.util.find_library("c"))
    return _libc


def _address_of(func) -> int:
    return ctypes.cast(func, ctypes.c_void_p).value


@dataclass
class RunResult:
    exit_code: int
    output: Optional[bytes] = None

    @property
    def aborted(self) -> bool:
        return self.exit_code == ABORT_EXIT_CODE


class _ByteChannel:
    """Python side of the redirected read / write primitives."""

    def __init__(self, input_bytes: Optional[bytes], capture_output: bool):
        self.input = input_bytes
        self.pos = 0
        self.capture_output = capture_output
        self.output = bytearray()
        self.read_cb = READ_BYTE(self._read)
        self.write_cb = WRITE_BYTE(self._write)

    def _read(self) -> int:
        if self.input is None:
            data = sys.stdin.buffer.read(1)
            return data[0] if data else -1
        if self.pos >= len(self.input):
            return -1
        value = self.input[self.pos]
        self.pos += 1
        return value

    def _write(self, value: int) -> int:
        self.output.append(value & 0xFF)
        return value

    def finish(self) -> Optional[bytes]:
        data = bytes(self.output)
        if self.capture_output:
            return data
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
        return None


class BfRunner:
    """
    Compile and execute programs with MCJIT.

    ``opt_level`` selects the optimization pipeline run on the module before
    it is handed to the JIT (0 disables it).
    """

    def __init__(self, machine: Optional[MachineConfig] = None, opt_level: int = 0):
        self.machine = machine or MachineConfig()
        self.opt_level = opt_level
        self.lexer = BfLexer()

    # ------------------------
    # High-level run
    # ------------------------
    def run(self, program: Union[str, Sequence[Instruction]],
            input_bytes: Optional[bytes] = None,
            capture_output: bool = False) -> RunResult:
        if isinstance(program, str):
            instructions = self.lexer.parse(program)
        else:
            instructions = list(program)

        machine = dataclasses.replace(self.machine, emit_main=False)
        redirect = capture_output or input_bytes is not None
        if redirect:
            machine = dataclasses.replace(machine, read_symbol=CAPTURE_READ_SYMBOL,
                                          write_symbol=CAPTURE_WRITE_SYMBOL)
        generated = BfLLVMCodegen(machine).generate_from_instructions(instructions)
        channel = _ByteChannel(input_bytes, capture_output) if redirect else None
        return self.run_module(generated, channel)

    def run_module(self, generated: GeneratedProgram,
                   channel: Optional[_ByteChannel] = None) -> RunResult:
        self._register_symbols(channel)
        llvm_mod = parse_and_verify(generated.module)
        if self.opt_level:
            optimize_module(llvm_mod, self.opt_level)

        engine = self._create_execution_engine()
        engine.add_module(llvm_mod)
        engine.finalize_object()
        engine.run_static_constructors()

        address = engine.get_function_address(generated.function_name)
        if not address:
            raise BackendError(f"function {generated.function_name} not found in JIT module")
        entry = ctypes.CFUNCTYPE(ctypes.c_int32)(address)

        LOG.debug("running %s via MCJIT", generated.function_name)
        exit_code = entry()
        LOG.debug("%s returned %d", generated.function_name, exit_code)

        if channel is None:
            # putchar output sits in the C stdio buffer until flushed
            _load_libc().fflush(None)
            return RunResult(exit_code)
        return RunResult(exit_code, channel.finish())

    # ------------------------
    # Engine lifecycle
    # ------------------------
    def _create_execution_engine(self) -> binding.ExecutionEngine:
        initialize_llvm()
        target_machine = create_target_machine(opt_level=self.opt_level)
        backing_mod = binding.parse_assembly("")
        return binding.create_mcjit_compiler(backing_mod, target_machine)

    def _register_symbols(self, channel: Optional[_ByteChannel]) -> None:
        libc = _load_libc()
        binding.add_symbol("malloc", _address_of(libc.malloc))
        binding.add_symbol("free", _address_of(libc.free))
        if channel is None:
            binding.add_symbol(self.machine.read_symbol, _address_of(libc.getchar))
            binding.add_symbol(self.machine.write_symbol, _address_of(libc.putchar))
        else:
            binding.add_symbol(CAPTURE_READ_SYMBOL, _address_of(channel.read_cb))
            binding.add_symbol(CAPTURE_WRITE_SYMBOL, _address_of(channel.write_cb))


def run_source(code: str, machine: Optional[MachineConfig] = None,
               input_bytes: Optional[bytes] = None, capture_output: bool = False) -> RunResult:
    return BfRunner(machine).run(code, input_bytes=input_bytes, capture_output=capture_output)
