# tests/conftest.py - Shared fixtures
"""
Fixtures shared by the test modules.
"""

import pytest

from sockops.utils.config import Config
from tests.fakes import FakeCompiler, FakeKernel


@pytest.fixture
def config(tmp_path):
    """Config pointing every path into tmp_path."""
    cfg = Config()
    cfg.set('paths.map_root', str(tmp_path / 'bpffs'))
    cfg.set('paths.state_dir', str(tmp_path / 'state'))
    cfg.set('paths.bpf_dir', str(tmp_path / 'bpf'))
    cfg.set('paths.cgroup_root', str(tmp_path / 'cgroup'))
    (tmp_path / 'bpffs').mkdir()
    return cfg


@pytest.fixture
def kernel():
    return FakeKernel()


@pytest.fixture
def compiler():
    return FakeCompiler()


@pytest.fixture
def controller(config, kernel, compiler):
    from sockops.units.controller import SockopsController

    return SockopsController(config, runner=kernel, compiler=compiler)
