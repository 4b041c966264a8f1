# sockops/bpf/tool.py - External tool invocation
"""
Runs external tools (bpftool, clang, mount) and builds bpftool argument vectors.

All results are the combined stdout/stderr text of the tool; no structured
output mode is used.
"""

import subprocess
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import logging

from sockops.errors import ToolInvocationError


@dataclass
class CommandResult:
    """
    Outcome of a single external command.
    """
    args: List[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        """True when the command exited zero"""
        return self.returncode == 0


class CommandRunner:
    """
    Runs a command to completion and captures combined output.

    Raises FileNotFoundError when the executable is missing and
    subprocess.TimeoutExpired when ``timeout`` elapses; callers translate
    these into their own error kinds.
    """

    def __call__(self, args: List[str], timeout: Optional[float] = None) -> CommandResult:
        completed = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
        return CommandResult(args=list(args), returncode=completed.returncode,
                             output=completed.stdout or "")


Runner = Callable[..., CommandResult]


@dataclass
class BpfTool:
    """
    Thin wrapper around the bpftool binary.

    Every invocation is logged at DEBUG with its argument vector and,
    when a metrics sink is attached, counted and timed.
    """
    binary: str = 'bpftool'
    runner: Runner = field(default_factory=CommandRunner)
    timeout: Optional[float] = None
    metrics: Optional[object] = None

    def __post_init__(self):
        self.logger = logging.getLogger(__name__)

    def run(self, args: List[str], action: str, error: str) -> CommandResult:
        """
        Run bpftool with ``args``.

        Args:
            args: Arguments after the binary name
            action: Short description used in the debug log (e.g. "Load BPF Object")
            error: Message for the ToolInvocationError raised on failure

        Returns:
            CommandResult of a successful run

        Raises:
            ToolInvocationError: nonzero exit, timeout, or the binary could not be run
        """
        argv = [self.binary] + list(args)
        self.logger.debug(f"{action}: {' '.join(argv)}")

        command = self._command_name(args)
        started = time.monotonic()
        try:
            result = self.runner(argv, timeout=self.timeout)
        except FileNotFoundError as e:
            self._record(command, 'missing', started)
            raise ToolInvocationError(f"{error}: {self.binary} not found", argv) from e
        except subprocess.TimeoutExpired as e:
            self._record(command, 'timeout', started)
            raise ToolInvocationError(f"{error}: timed out after {self.timeout}s", argv) from e
        except OSError as e:
            self._record(command, 'error', started)
            raise ToolInvocationError(f"{error}: {e}", argv) from e

        if not result.ok:
            self._record(command, 'failure', started)
            raise ToolInvocationError(error, argv, result.returncode, result.output)

        self._record(command, 'success', started)
        return result

    # Argument vectors

    def prog_load(self, obj: str, pin_path: str, map_args: List[str]) -> CommandResult:
        """#bpftool -m prog load $obj $pin [map name X pinned Y]..."""
        args = ['-m', 'prog', 'load', obj, pin_path] + list(map_args)
        return self.run(args, 'Load BPF Object', f"Failed to load {obj}")

    def prog_show_pinned(self, pin_path: str, name: str) -> CommandResult:
        return self.run(['prog', 'show', 'pinned', pin_path], 'Show BPF program',
                        f"Failed to show prog {name}")

    def map_show_id(self, map_id: str) -> CommandResult:
        return self.run(['map', 'show', 'id', str(map_id)], 'Show BPF map',
                        f"Failed to show map {map_id}")

    def map_pin(self, map_id: int, pin_path: str, name: str) -> CommandResult:
        return self.run(['map', 'pin', 'id', str(map_id), pin_path], 'Map pin',
                        f"Failed to pin map {map_id}({name})")

    def cgroup_attach(self, cgroup: str, pin_path: str, name: str) -> CommandResult:
        return self.run(['cgroup', 'attach', cgroup, 'sock_ops', 'pinned', pin_path],
                        'Attach BPF Object', f"Failed to attach {name}")

    def cgroup_detach(self, cgroup: str, pin_path: str, name: str) -> CommandResult:
        return self.run(['cgroup', 'detach', cgroup, 'sock_ops', 'pinned', pin_path],
                        'Detach BPF Object', f"Failed to detach {name}")

    def prog_attach_map(self, prog_id: int, attach_type: str, map_id: int) -> CommandResult:
        return self.run(['prog', 'attach', 'id', str(prog_id), attach_type, 'id', str(map_id)],
                        'Map Attach BPF Object',
                        f"Failed to attach prog({prog_id}) to map({map_id})")

    @staticmethod
    def _command_name(args: List[str]) -> str:
        words = [a for a in args if not a.startswith('-')]
        return ' '.join(words[:2])

    def _record(self, command: str, outcome: str, started: float):
        if self.metrics is not None:
            self.metrics.record_tool(self.binary, command, outcome,
                                     time.monotonic() - started)
