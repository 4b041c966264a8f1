# sockops/bpf/loader.py - Program loading
"""
Loads compiled objects into the kernel with bpftool and "unloads" them by
removing their pin files.
"""

import os
from typing import Iterable, List
import logging

from sockops.bpf.pinfs import PinnedNamespace
from sockops.bpf.tool import BpfTool


class Loader:
    """
    Loads BPF objects, reusing shared maps already pinned in the globals area.
    """

    def __init__(self, bpftool: BpfTool, namespace: PinnedNamespace, shared_maps: Iterable[str]):
        """
        Initialize the loader.

        Args:
            bpftool: bpftool wrapper used for the load command
            namespace: Pinned object namespace the program is pinned into
            shared_maps: Names of globals maps a new program must reuse
        """
        self.bpftool = bpftool
        self.namespace = namespace
        self.shared_maps = set(shared_maps)
        self.logger = logging.getLogger(__name__)

    def reusable_maps(self) -> List[str]:
        """
        Select the pinned globals maps a newly loaded program should reuse.

        Returns:
            Sorted list of map names present in the globals area and allow-listed
        """
        try:
            entries = self.namespace.list_globals()
        except FileNotFoundError:
            self.logger.debug(f"No globals area at {self.namespace.globals_dir}")
            return []

        selected = []
        for name in entries:
            # Ignore all backing files
            if name.startswith('..'):
                continue
            if name in self.shared_maps:
                selected.append(name)

        return selected

    def map_args(self) -> List[str]:
        args = []
        for name in self.reusable_maps():
            args.extend(['map', 'name', name, 'pinned', self.namespace.map_path(name)])
        return args

    def load(self, object_path: str, pin_name: str):
        """
        Load ``object_path`` and pin the program as ``pin_name``.

        Raises:
            ToolInvocationError: bpftool rejected the object
        """
        self.bpftool.prog_load(object_path, self.namespace.program_path(pin_name), self.map_args())
        self.logger.debug(f"Loaded {object_path} as {pin_name}")

    def unload(self, pin_name: str) -> bool:
        """
        Remove the pin file for ``pin_name``.

        The kernel frees the object once nothing references it. A missing pin
        is not an error.

        Returns:
            False if the pin exists but could not be removed
        """
        path = self.namespace.program_path(pin_name)
        try:
            os.remove(path)
        except FileNotFoundError:
            return True
        except OSError as e:
            self.logger.warning(f"Failed to remove {path}: {e}")
            return False

        self.logger.debug(f"Removed {path}")
        return True
