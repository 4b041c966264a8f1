# sockops/bpf/pinfs.py - Pinned object namespace
"""
Path layout of the BPF filesystem used for pinned programs and maps.

    <map_root>/<program pin name>          pinned programs
    <map_root>/<map_prefix>/<map name>     long-lived maps ("globals")
"""

import os
from pathlib import Path
from typing import List


class PinnedNamespace:
    """
    Builds paths inside the pinned object namespace.
    """

    def __init__(self, map_root: str, map_prefix: str = 'tc/globals'):
        self.map_root = str(map_root)
        self.map_prefix = map_prefix

    def root(self) -> str:
        return self.map_root

    def program_path(self, pin_name: str) -> str:
        """Path of a pinned program (or any name relative to the root)."""
        return os.path.join(self.map_root, pin_name)

    @property
    def globals_dir(self) -> str:
        return os.path.join(self.map_root, self.map_prefix)

    def map_path(self, map_name: str) -> str:
        return os.path.join(self.globals_dir, map_name)

    def map_pin_name(self, map_name: str) -> str:
        """Name of a globals map relative to the root, as accepted by program_path()."""
        return f"{self.map_prefix}/{map_name}"

    def list_globals(self) -> List[str]:
        """
        List entries of the globals area.

        Raises:
            FileNotFoundError: the globals area does not exist
        """
        return sorted(entry.name for entry in os.scandir(self.globals_dir))

    def ensure_globals(self):
        Path(self.globals_dir).mkdir(parents=True, exist_ok=True)

    def exists(self, pin_name: str) -> bool:
        return os.path.lexists(self.program_path(pin_name))
