# sockops/__init__.py - Socket redirection program lifecycle manager
"""
Compiles, loads, pins and attaches the sockops/sk_msg programs that
redirect TCP traffic between local sockets or to a user space proxy.

Module level entry points operate on a process-wide default controller
built from the default configuration; use configure() to replace it.
"""

import threading
from typing import Optional

from sockops.units.controller import SockopsController
from sockops.utils.config import Config

__version__ = '0.1.0'

_default: Optional[SockopsController] = None
_default_lock = threading.Lock()


def configure(config: Optional[Config] = None, **kwargs) -> SockopsController:
    """Build the default controller from ``config``."""
    global _default
    with _default_lock:
        _default = SockopsController(config, **kwargs)
        return _default


def default_controller() -> SockopsController:
    global _default
    with _default_lock:
        if _default is None:
            _default = SockopsController()
        return _default


def ensure_cgroup_mounted(path: str = '') -> bool:
    return default_controller().ensure_cgroup_mounted(path)


def sockmap_enable():
    return default_controller().sockmap_enable()


def sockmap_disable():
    return default_controller().sockmap_disable()


def skmsg_enable():
    return default_controller().skmsg_enable()


def skmsg_disable():
    return default_controller().skmsg_disable()


def ktls_enable():
    return default_controller().ktls_enable()


def ktls_disable(purge_maps: bool = False):
    return default_controller().ktls_disable(purge_maps=purge_maps)
