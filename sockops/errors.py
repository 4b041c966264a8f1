# sockops/errors.py - Exception hierarchy
"""
Exceptions raised while compiling, loading and attaching sockops programs.
"""

from typing import List, Optional, Sequence


class SockopsError(RuntimeError):
    """Base class for all sockops lifecycle errors."""


class CompileError(SockopsError):
    """
    Compiling a program unit failed.

    Covers a bad source file, a missing or crashed compiler and compile timeouts.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"failed compile {source}: {reason}")


class ToolInvocationError(SockopsError):
    """
    An external tool exited nonzero, timed out or could not be started.
    """

    def __init__(self, message: str, command: Optional[Sequence[str]] = None,
                 returncode: Optional[int] = None, output: str = ""):
        self.message = message
        self.command = list(command or [])
        self.returncode = returncode
        self.output = output

        detail = output.strip()
        super().__init__(f"{message}: {detail}" if detail else message)


class ResolutionError(SockopsError):
    """An expected identifier could not be recovered from tool output."""


class MountError(SockopsError):
    """The cgroup2 filesystem could not be mounted at the requested path."""


class PipelineError(SockopsError):
    """
    An enable pipeline aborted on a failed step.

    Steps that already ran are not compensated, so the unit is left in a
    partial state until it is disabled.
    """

    def __init__(self, unit: str, step: str, completed: List[str], cause: Exception):
        self.unit = unit
        self.step = step
        self.completed = list(completed)
        self.cause = cause
        super().__init__(f"{unit}: step '{step}' failed: {cause}")
