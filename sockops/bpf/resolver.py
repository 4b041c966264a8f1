# sockops/bpf/resolver.py - Kernel identifier resolution
"""
Recovers the kernel-assigned program and map identifiers of a pinned program.

bpftool is only available through its human readable output, so the
identifiers are scraped from text such as::

    17: sock_ops  name bpf_sockops  tag 0a1b2c3d4e5f6071  gpl
            loaded_at 2024-01-01T00:00:00+0000  uid 0
            xlated 1024B  jited 640B  memlock 4096B  map_ids 5,9

Identifiers are only valid while the object stays loaded and are never cached.
"""

from typing import List, Optional
import logging

from sockops.bpf.pinfs import PinnedNamespace
from sockops.bpf.tool import BpfTool
from sockops.errors import ResolutionError


class Introspector:
    """
    Source of program and map descriptions.
    """

    def program_info(self, pin_name: str) -> str:
        raise NotImplementedError

    def map_info(self, map_id: str) -> str:
        raise NotImplementedError


class BpftoolIntrospector(Introspector):
    """
    Describes pinned programs and maps with ``bpftool prog show`` / ``map show``.
    """

    def __init__(self, bpftool: BpfTool, namespace: PinnedNamespace):
        self.bpftool = bpftool
        self.namespace = namespace

    def program_info(self, pin_name: str) -> str:
        return self.bpftool.prog_show_pinned(self.namespace.program_path(pin_name), pin_name).output

    def map_info(self, map_id: str) -> str:
        return self.bpftool.map_show_id(map_id).output


def parse_program_id(output: str) -> Optional[int]:
    """
    Extract the program id from ``prog show`` output.

    Args:
        output: Tool output, first token looks like "17:"

    Returns:
        The id, or None if the first token is not "<digits>:..."
    """
    fields = output.split()
    if not fields or ':' not in fields[0]:
        return None

    head = fields[0].split(':', 1)[0]
    if not head.isdigit():
        return None
    return int(head)


def parse_map_ids(output: str) -> List[str]:
    """
    Extract the candidate map ids following the ``map_ids`` token.

    Returns:
        Ids in the order the tool printed them, empty if there is no list
    """
    fields = output.split()
    for i, token in enumerate(fields):
        if token == 'map_ids':
            if i + 1 >= len(fields):
                return []
            return [mid for mid in fields[i + 1].split(',') if mid]
    return []


class IdentifierResolver:
    """
    Resolves program and map ids of pinned programs.

    Program id lookup fails hard. Map id lookup by hint fails soft and
    returns 0 when no candidate matches; callers decide whether that matters
    (see require_map_id()).
    """

    def __init__(self, introspector: Introspector):
        self.introspector = introspector
        self.logger = logging.getLogger(__name__)

    def program_id(self, pin_name: str) -> int:
        """
        Get the id of the program pinned as ``pin_name``.

        Raises:
            ResolutionError: output empty or not in the expected format
            ToolInvocationError: introspection failed
        """
        output = self.introspector.program_info(pin_name)

        prog_id = parse_program_id(output)
        if prog_id is None:
            raise ResolutionError(f"Failed to find prog {pin_name}: unexpected output {output.strip()[:80]!r}")
        return prog_id

    def map_id(self, pin_name: str, hint: str) -> int:
        """
        Find the first map used by ``pin_name`` whose description contains ``hint``.

        Substring matching on tool output is order dependent: when several maps
        match, the first id in the program's map_ids list wins.

        Returns:
            The map id, or 0 if no map matched

        Raises:
            ToolInvocationError: introspection of the program or a map failed
        """
        output = self.introspector.program_info(pin_name)

        for candidate in parse_map_ids(output):
            if not candidate.isdigit():
                self.logger.warning(f"Ignoring malformed map id {candidate!r} of {pin_name}")
                continue

            description = self.introspector.map_info(candidate)
            self.logger.debug(f"mapid({hint}): {description.strip()}")

            if hint in description:
                return int(candidate)

        self.logger.warning(f"No map matching {hint!r} found for {pin_name}")
        return 0

    def require_map_id(self, pin_name: str, hint: str) -> int:
        """
        Like map_id(), but a missing map is a ResolutionError.
        """
        map_id = self.map_id(pin_name, hint)
        if map_id <= 0:
            raise ResolutionError(f"No map matching {hint!r} attached to {pin_name}")
        return map_id
