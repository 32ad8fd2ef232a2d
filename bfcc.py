# bfcc.py
# bfc CLI Compiler
# Author: Violet Magenta / VACU Technologies
# License: MIT
"""
Command-line driver: read source → lex → optimize → generate, then stop at
the requested output stage.

Stages (--emit):
  instructions  canonical instruction listing
  llvm          unoptimized LLVM IR
  llvm-opt      optimized LLVM IR
  obj           object file (<stem>.o)
  exe           linked executable (<stem>)
  run           JIT execution; the program's result becomes the exit code
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from bfc_instructions import format_listing
from bfc_lexer import BfLexer, ParseError
from bfc_llvm_ir_codegen import (
    BackendError,
    BfLLVMCodegen,
    CodegenError,
    DEFAULT_CAPACITY,
    MachineConfig,
    OverflowPolicy,
)
from bfc_exe_backend_emitter import BfEmitter, EmitterConfig
from bfc_jit_aot_runner import BfRunner

LOG = logging.getLogger("bfcc")

STAGES = ("instructions", "llvm", "llvm-opt", "obj", "exe", "run")


def _positive_int(text: str) -> int:
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {text!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bfcc", description="bfc ahead-of-time compiler (LLVM backend)")
    parser.add_argument("file", type=argparse.FileType("r"), help="source file ('-' for stdin)")
    parser.add_argument("-o", "--output", type=str, default=None,
                        help="output path (default: stdout for text stages, <stem>[.o] otherwise)")
    parser.add_argument("--emit", type=str, choices=STAGES, default="llvm", help="output stage")
    parser.add_argument("-m", "--memory", type=_positive_int, default=DEFAULT_CAPACITY,
                        help=f"number of memory cells (default {DEFAULT_CAPACITY})")
    parser.add_argument("--overflow", type=str, choices=[p.value for p in OverflowPolicy],
                        default=OverflowPolicy.UNDEFINED.value,
                        help="pointer overflow policy")
    parser.add_argument("--debug", action="store_true", help="instrument every instruction with a state dump")
    parser.add_argument("-O", "--opt-level", type=int, choices=range(0, 4), default=2,
                        help="LLVM optimization level (default 2)")
    parser.add_argument("--target", type=str, default=None, help="target triple (default: host)")
    parser.add_argument("--cc", type=str, default=None, help="linker driver (default: $BFC_CC or cc)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def _default_output(args: argparse.Namespace, suffix: str) -> Path:
    if args.output:
        return Path(args.output)
    name = getattr(args.file, "name", "<stdin>")
    stem = "program" if name.startswith("<") else Path(name).stem
    return Path(stem + suffix)


def _write_text(args: argparse.Namespace, text: str) -> None:
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


def compile_and_run(args: argparse.Namespace) -> int:
    code = args.file.read()
    instructions = BfLexer().parse(code)
    LOG.debug("%d canonical instructions", len(instructions))

    if args.emit == "instructions":
        _write_text(args, format_listing(instructions))
        return 0

    machine = MachineConfig(
        capacity=args.memory,
        overflow=OverflowPolicy(args.overflow),
        debug=args.debug,
        target_triple=args.target,
    )

    if args.emit in ("llvm", "llvm-opt"):
        codegen = BfLLVMCodegen(machine)
        codegen.generate_from_instructions(instructions)
        if args.emit == "llvm":
            codegen.verify()
            _write_text(args, codegen.dump_ir())
        else:
            _write_text(args, codegen.optimized_ir(args.opt_level))
        return 0

    if args.emit in ("obj", "exe"):
        emitter = BfEmitter(machine, EmitterConfig(opt_level=args.opt_level, cc=args.cc))
        if args.emit == "obj":
            path = emitter.emit_object(instructions, _default_output(args, ".o"), emit_main=True)
        else:
            path = emitter.emit_executable(instructions, _default_output(args, ""))
        LOG.info("wrote %s", path)
        return 0

    result = BfRunner(machine, opt_level=args.opt_level).run(instructions)
    LOG.debug("program exited with %d", result.exit_code)
    return result.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(message)s")

    try:
        return compile_and_run(args)
    except (ParseError, CodegenError, BackendError, OSError) as e:
        if args.verbose:
            LOG.exception("compilation failed")
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        if args.file is not sys.stdin:
            args.file.close()


if __name__ == "__main__":
    sys.exit(main())
