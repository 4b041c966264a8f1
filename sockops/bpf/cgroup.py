# sockops/bpf/cgroup.py - cgroup2 mount handling
"""
Ensures a cgroup2 filesystem is mounted where sock_ops programs get attached.

Having several cgroup2 mounts is harmless, so the mount is made at the
configured root even if the system already has one elsewhere.
"""

import os
import re
import subprocess
import threading
from typing import Optional
import logging

from sockops.bpf.tool import CommandRunner, Runner
from sockops.errors import MountError


DEFAULT_CGROUP_ROOT = '/run/cilium/cgroupv2'
FILESYSTEM_TYPE_CGROUP2 = 'cgroup2'

_OCTAL_ESCAPE = re.compile(r'\\([0-7]{3})')


def _unescape(field: str) -> str:
    # /proc/mounts escapes space, tab, newline and backslash as \ooo
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def find_mount(mounts_text: str, path: str) -> Optional[str]:
    """
    Find the filesystem type mounted at ``path``.

    Args:
        mounts_text: Contents of /proc/mounts
        path: Mount point to look for, relative or through symlinks

    Returns:
        Filesystem type of the topmost mount at ``path``, or None
    """
    # the kernel lists absolute paths with symlinks resolved
    target = os.path.realpath(os.path.abspath(path))
    fstype = None

    for line in mounts_text.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        if os.path.normpath(_unescape(parts[1])) == target:
            # Later entries are mounted over earlier ones
            fstype = parts[2]

    return fstype


class CgroupMountGate:
    """
    Mounts cgroup2 at most once per gate.

    The first call to ensure_mounted() does the work; every later call, with
    any path and from any thread, returns the first call's result. Tests build
    a fresh gate per case.
    """

    def __init__(self, default_root: str = DEFAULT_CGROUP_ROOT,
                 mounts_file: str = '/proc/mounts', mount_binary: str = 'mount',
                 runner: Optional[Runner] = None):
        self.default_root = default_root
        self.mounts_file = mounts_file
        self.mount_binary = mount_binary
        self.runner = runner or CommandRunner()

        self.cgroup_root = default_root
        self.error: Optional[MountError] = None

        self._lock = threading.Lock()
        self._done = False
        self._mounted = False
        self.logger = logging.getLogger(__name__)

    @property
    def done(self) -> bool:
        return self._done

    def ensure_mounted(self, path: str = '') -> bool:
        """
        Check or mount the cgroup2 filesystem at ``path``.

        A failure is not fatal: it is logged, and socket redirection simply
        stays unavailable.

        Args:
            path: Mount point, the default root when empty

        Returns:
            True if cgroup2 is mounted at the chosen root
        """
        with self._lock:
            if self._done:
                return self._mounted
            self._done = True

            root = path or self.default_root
            self.cgroup_root = root

            try:
                self._check_or_mount(root)
            except MountError as e:
                self.error = e
                self.logger.warning(f"cgroup2 unavailable, sockmap will be disabled: {e}")
                return False

            self._mounted = True
            self.logger.info(f"Mounted Cgroup2 filesystem {root}")
            return True

    def _check_or_mount(self, root: str):
        self._prepare_mount_point(root)

        mount_point = os.path.realpath(os.path.abspath(root))
        fstype = self.mounted_fstype(mount_point)
        if fstype is None:
            self._mount(mount_point)
        elif fstype != FILESYSTEM_TYPE_CGROUP2:
            raise MountError(
                f"Mount in the custom directory {root} has a different filesystem than cgroup2 ({fstype})")

    def _prepare_mount_point(self, root: str):
        try:
            if not os.path.isdir(root):
                if os.path.lexists(root):
                    raise MountError(f"{root} is a file which is not a directory")
                os.makedirs(root, 0o755)
        except OSError as e:
            raise MountError(f"Unable to create cgroup mount directory: {e}") from e

    def mounted_fstype(self, root: str) -> Optional[str]:
        """Filesystem type mounted at root, None if nothing is."""
        try:
            with open(self.mounts_file, 'r') as f:
                text = f.read()
        except OSError as e:
            raise MountError(f"Failed to read {self.mounts_file}: {e}") from e
        return find_mount(text, root)

    def _mount(self, root: str):
        args = [self.mount_binary, '-t', FILESYSTEM_TYPE_CGROUP2, 'none', root]
        self.logger.debug(f"Mount: {' '.join(args)}")
        try:
            result = self.runner(args)
        except (OSError, subprocess.SubprocessError) as e:
            raise MountError(f"failed to mount {root}: {e}") from e

        if not result.ok:
            raise MountError(f"failed to mount {root}: {result.output.strip()}")
