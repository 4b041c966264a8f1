# sockops/utils/helpers.py - Helper functions
"""
Prerequisite checks for loading socket redirection programs.
"""

import os
import platform
import shutil
from typing import List, Tuple
import logging


logger = logging.getLogger(__name__)

# sk_msg programs and BPF_SK_MSG_VERDICT attach need 4.17
MIN_KERNEL_VERSION = (4, 17)


def check_root_privileges() -> bool:
    """
    Check if running with root privileges.

    Returns:
        True if running as root, False otherwise
    """
    return os.geteuid() == 0 if hasattr(os, 'geteuid') else False


def check_tool_installed(binary: str) -> bool:
    """
    Check if an external tool is on PATH (or is an existing path).
    """
    return shutil.which(binary) is not None


def parse_kernel_version(release: str) -> Tuple[int, int, int]:
    """
    Parse a kernel release string.

    Args:
        release: e.g. "5.15.0-91-generic"

    Returns:
        Tuple of (major, minor, patch) version numbers, zeros where unparsable
    """
    version_str = release.strip().split('-')[0]
    parts = version_str.split('.')

    numbers = []
    for part in parts[:3]:
        digits = ''
        for ch in part:
            if not ch.isdigit():
                break
            digits += ch
        numbers.append(int(digits) if digits else 0)

    while len(numbers) < 3:
        numbers.append(0)

    return tuple(numbers)


def check_kernel_version() -> Tuple[int, int, int]:
    """
    Get Linux kernel version.
    """
    return parse_kernel_version(platform.release())


def check_sockmap_support() -> bool:
    """
    Check if the kernel is new enough for sockmap redirection.
    """
    major, minor, _ = check_kernel_version()

    if (major, minor) < MIN_KERNEL_VERSION:
        logger.warning(f"Kernel version {major}.{minor} does not support sk_msg "
                       f"({MIN_KERNEL_VERSION[0]}.{MIN_KERNEL_VERSION[1]}+ required)")
        return False

    return True


def prerequisite_checks(config) -> List[Tuple[str, bool]]:
    """
    Run all prerequisite checks.

    Args:
        config: Config providing tool names and the map root

    Returns:
        List of (check name, passed) tuples
    """
    bpftool = config.get('tools.bpftool', 'bpftool')
    clang = config.get('tools.clang', 'clang')
    map_root = config.get('paths.map_root')

    return [
        ("Root privileges", check_root_privileges()),
        ("Kernel sockmap support", check_sockmap_support()),
        (f"{bpftool} installed", check_tool_installed(bpftool)),
        (f"{clang} installed", check_tool_installed(clang)),
        (f"BPF filesystem at {map_root}", os.path.isdir(map_root)),
    ]


def check_prerequisites(config) -> bool:
    """
    Check all prerequisites for managing sockops programs.

    Returns:
        True if all prerequisites are met, False otherwise
    """
    all_passed = True

    print("Checking prerequisites...")
    for name, passed in prerequisite_checks(config):
        status = "✓" if passed else "✗"
        print(f"  {status} {name}")

        if not passed:
            all_passed = False

    return all_passed
