# sockops/bpf/pinner.py - Map pinning
"""
Pins maps into the globals area so later loads find them by name.
"""

import logging

from sockops.bpf.pinfs import PinnedNamespace
from sockops.bpf.tool import BpfTool
from sockops.errors import ResolutionError


class MapPinner:
    """
    Persists a map id under a stable name in the globals area.
    """

    def __init__(self, bpftool: BpfTool, namespace: PinnedNamespace):
        self.bpftool = bpftool
        self.namespace = namespace
        self.logger = logging.getLogger(__name__)

    def pin(self, map_name: str, map_id: int) -> str:
        """
        Pin map ``map_id`` as ``<globals>/<map_name>``.

        Returns:
            Path of the pin

        Raises:
            ResolutionError: map_id is not a valid id
            ToolInvocationError: bpftool failed, e.g. the name is taken
        """
        if map_id <= 0:
            raise ResolutionError(f"Refusing to pin {map_name}: invalid map id {map_id}")

        self.namespace.ensure_globals()
        path = self.namespace.map_path(map_name)
        self.bpftool.map_pin(map_id, path, map_name)
        self.logger.debug(f"Pinned map {map_id} as {path}")
        return path
