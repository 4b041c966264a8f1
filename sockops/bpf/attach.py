# sockops/bpf/attach.py - Program attachment
"""
Attaches pinned programs to the cgroup sock_ops hook or to sockmaps.
"""

from typing import Callable, Union
import logging

from sockops.bpf.pinfs import PinnedNamespace
from sockops.bpf.tool import BpfTool


MSG_VERDICT = 'msg_verdict'
STREAM_VERDICT = 'stream_verdict'
STREAM_PARSER = 'stream_parser'

MAP_ATTACH_TYPES = (MSG_VERDICT, STREAM_VERDICT, STREAM_PARSER)


class AttachController:
    """
    Attaches and detaches sockops programs.

    ``cgroup_root`` is either a path or a callable returning one, so the
    controller follows the root chosen by the cgroup mount gate.
    """

    def __init__(self, bpftool: BpfTool, namespace: PinnedNamespace,
                 cgroup_root: Union[str, Callable[[], str]]):
        self.bpftool = bpftool
        self.namespace = namespace
        self._cgroup_root = cgroup_root
        self.logger = logging.getLogger(__name__)

    @property
    def cgroup_root(self) -> str:
        if callable(self._cgroup_root):
            return self._cgroup_root()
        return self._cgroup_root

    def attach_to_cgroup(self, pin_name: str):
        """
        Attach the pinned sock_ops program to the cgroup root.

        Raises:
            ToolInvocationError: bpftool failed
        """
        cgroup = self.cgroup_root
        self.bpftool.cgroup_attach(cgroup, self.namespace.program_path(pin_name), pin_name)
        self.logger.debug(f"Attached {pin_name} to cgroup {cgroup}")

    def detach_from_cgroup(self, pin_name: str):
        cgroup = self.cgroup_root
        self.bpftool.cgroup_detach(cgroup, self.namespace.program_path(pin_name), pin_name)
        self.logger.debug(f"Detached {pin_name} from cgroup {cgroup}")

    def attach_to_map(self, prog_id: int, map_id: int, attach_type: str):
        """
        Attach a loaded program to a map in a verdict or parser role.

        Args:
            prog_id: Kernel id of the program
            map_id: Kernel id of the sockmap
            attach_type: One of msg_verdict, stream_verdict, stream_parser

        Raises:
            ValueError: unknown attach type
            ToolInvocationError: bpftool failed
        """
        if attach_type not in MAP_ATTACH_TYPES:
            raise ValueError(f"Unknown map attach type: {attach_type}")

        self.bpftool.prog_attach_map(prog_id, attach_type, map_id)
        self.logger.debug(f"Attached prog {prog_id} to map {map_id} as {attach_type}")
