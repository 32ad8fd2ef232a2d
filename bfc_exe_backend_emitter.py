# bfc_exe_backend_emitter.py
# bfc object and executable emitter (via LLVM + host C compiler driver)
# Author: Violet Magenta / VACU Technologies
# License: MIT

from __future__ import annotations
import dataclasses
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from bfc_instructions import Instruction
from bfc_llvm_ir_codegen import BackendError, BfLLVMCodegen, MachineConfig, emit_object

LOG = logging.getLogger("bfc.emitter")


@dataclass
class EmitterConfig:
    opt_level: int = 2
    cc: Optional[str] = None          # linker driver; falls back to $BFC_CC, then "cc"
    link_timeout: float = 120.0

    def linker(self) -> str:
        return self.cc or os.environ.get("BFC_CC") or "cc"


class BfEmitter:
    def __init__(self, machine: Optional[MachineConfig] = None,
                 config: Optional[EmitterConfig] = None):
        self.machine = machine or MachineConfig()
        self.config = config or EmitterConfig()

    def emit_object(self, instructions: Iterable[Instruction], path: Union[str, Path],
                    emit_main: bool = False) -> Path:
        machine = dataclasses.replace(self.machine, emit_main=emit_main)
        generated = BfLLVMCodegen(machine).generate_from_instructions(instructions)
        return emit_object(generated.module, path, self.config.opt_level,
                           machine.target_triple)

    def emit_executable(self, instructions: Iterable[Instruction],
                        path: Union[str, Path]) -> Path:
        path = Path(path)
        with tempfile.TemporaryDirectory(prefix="bfc-") as tmp:
            obj_path = self.emit_object(instructions, Path(tmp) / f"{path.name}.o",
                                        emit_main=True)
            self.link(obj_path, path)
        LOG.info("Built executable: %s", path)
        return path

    def link(self, object_path: Path, out_path: Path) -> Path:
        cc = self.config.linker()
        resolved = shutil.which(cc)
        if resolved is None:
            raise BackendError(f"linker not found: {cc}")
        cmd = [resolved, str(object_path), "-o", str(out_path)]
        LOG.debug("linking: %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True,
                                  timeout=self.config.link_timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise BackendError(f"link failed: {e}") from e
        if proc.returncode != 0:
            raise BackendError(proc.stderr.strip() or f"{cc} exited with status {proc.returncode}")
        return out_path
