# sockops/bpf/compiler.py - Program unit compilation
"""
Compiles sockops C sources into loadable BPF objects with clang.
"""

import os
import subprocess
from pathlib import Path
from typing import List, Optional
import logging

from sockops.bpf.tool import CommandRunner, Runner
from sockops.errors import CompileError


# Upper bound on a single clang run, in seconds
DEFAULT_COMPILE_TIMEOUT = 5 * 60

SOURCE_SUBDIR = 'sockops'


class ClangCompiler:
    """
    Compiler collaborator: turns one C source into one BPF object.
    """

    def __init__(self, clang: str = 'clang', include_dirs: Optional[List[str]] = None,
                 extra_flags: Optional[List[str]] = None, runner: Optional[Runner] = None):
        self.clang = clang
        self.include_dirs = list(include_dirs or [])
        self.extra_flags = list(extra_flags or [])
        self.runner = runner or CommandRunner()
        self.logger = logging.getLogger(__name__)

    def build_args(self, source: str, dest: str) -> List[str]:
        args = [self.clang, '-O2', '-g', '-target', 'bpf', '-Wall']
        for include in self.include_dirs:
            args.append(f"-I{include}")
        args.extend(self.extra_flags)
        args.extend(['-c', source, '-o', dest])
        return args

    def compile(self, source: str, dest: str, timeout: Optional[float] = None):
        """
        Compile ``source`` into ``dest``.

        Args:
            source: Path to the C source
            dest: Path of the object file to produce
            timeout: Seconds before the compiler is killed

        Raises:
            CompileError: compiler missing, timed out or exited nonzero
        """
        args = self.build_args(source, dest)
        self.logger.debug(f"Compile: {' '.join(args)}")

        try:
            result = self.runner(args, timeout=timeout)
        except FileNotFoundError as e:
            raise CompileError(source, f"{self.clang} not found") from e
        except subprocess.TimeoutExpired as e:
            raise CompileError(source, f"timed out after {timeout}s") from e
        except OSError as e:
            raise CompileError(source, f"cannot run {self.clang}: {e}") from e

        if not result.ok:
            raise CompileError(source, f"exit status {result.returncode}: {result.output.strip()}")


class UnitCompiler:
    """
    Compiles program units found under ``<bpf_dir>/sockops`` into the state directory.
    """

    def __init__(self, compiler: ClangCompiler, bpf_dir: str, state_dir: str,
                 timeout: float = DEFAULT_COMPILE_TIMEOUT):
        self.compiler = compiler
        self.bpf_dir = bpf_dir
        self.state_dir = state_dir
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def source_path(self, source_name: str) -> str:
        return os.path.join(self.bpf_dir, SOURCE_SUBDIR, source_name)

    def object_path(self, object_name: str) -> str:
        return os.path.abspath(os.path.join(self.state_dir, object_name))

    def compile(self, source_name: str, object_name: str) -> str:
        """
        Compile one program unit.

        Args:
            source_name: C source file name, relative to the sockops source directory
            object_name: Object file name, placed in the state directory

        Returns:
            Absolute path of the compiled object

        Raises:
            CompileError: the compiler failed; the error names the source file
        """
        src = self.source_path(source_name)
        dst = self.object_path(object_name)

        Path(dst).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.compiler.compile(src, dst, timeout=self.timeout)
        except CompileError:
            raise
        except OSError as e:
            raise CompileError(src, str(e)) from e

        self.logger.debug(f"Compiled {src} -> {dst}")
        return dst
