# tests/test_controller.py - Tests for the lifecycle controller
"""
Unit tests for SockopsController and the module level entry points.
"""

import os
import threading
from pathlib import Path

import pytest

import sockops
from sockops.bpf.cgroup import CgroupMountGate
from sockops.errors import PipelineError
from sockops.units.features import STATUS_ENABLED
from sockops.utils.config import Config
from tests.fakes import FakeCompiler, FakeKernel


def sample(controller, name, **labels):
    return controller.metrics.registry.get_sample_value(name, labels)


def pinned_id(path):
    return int(Path(path).read_text().split()[1])


def make_config(base):
    config = Config()
    for key in ('map_root', 'state_dir', 'bpf_dir', 'cgroup_root'):
        config.set(f'paths.{key}', str(base / key))
    (base / 'map_root').mkdir(parents=True)
    return config


class TestSockopsController:
    """Test cases for SockopsController"""

    def test_units(self, controller):
        assert sorted(controller.units) == ['ktls', 'skmsg', 'sockmap']

    def test_unknown_unit(self, controller):
        with pytest.raises(ValueError):
            controller.enable('xdp')

    def test_paths_from_config(self, controller, config):
        assert controller.namespace.root() == config.get('paths.map_root')
        assert controller.mount_gate.cgroup_root == config.get('paths.cgroup_root')
        assert controller.compiler.timeout == 300

    def test_transition_metrics(self, controller):
        controller.sockmap_enable()

        assert sample(controller, 'sockops_unit_transitions_total',
                      unit='sockmap', transition='enable', outcome='success') == 1
        assert sample(controller, 'sockops_unit_enabled', unit='sockmap') == 1

        controller.sockmap_disable()

        assert sample(controller, 'sockops_unit_enabled', unit='sockmap') == 0
        assert sample(controller, 'sockops_tool_invocations_total',
                      tool='bpftool', command='cgroup detach', outcome='success') == 1

    def test_failed_enable_metrics(self, controller, kernel):
        kernel.fail['prog load'] = "Error: failed to open object file"

        with pytest.raises(PipelineError):
            controller.skmsg_enable()

        assert sample(controller, 'sockops_unit_transitions_total',
                      unit='skmsg', transition='enable', outcome='failure') == 1
        assert sample(controller, 'sockops_tool_invocations_total',
                      tool='bpftool', command='prog load', outcome='failure') == 1

    def test_attach_uses_mounted_root(self, config, kernel, compiler, tmp_path):
        mounts = tmp_path / 'mounts'
        custom = tmp_path / 'custom_cg'
        mounts.write_text(f"cgroup2 {os.path.realpath(custom)} cgroup2 rw 0 0\n")
        gate = CgroupMountGate(default_root=config.get('paths.cgroup_root'), mounts_file=str(mounts))
        controller = sockops.SockopsController(config, runner=kernel, compiler=compiler, mount_gate=gate)

        assert controller.ensure_cgroup_mounted(str(custom))
        controller.sockmap_enable()

        assert {cg for cg, _ in kernel.cgroup_attachments} == {str(custom)}

    def _run_concurrently(self, *enables):
        barrier = threading.Barrier(len(enables))
        errors = []

        def run(enable):
            barrier.wait()
            try:
                enable()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run, args=(enable,)) for enable in enables]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return errors

    def test_different_units_concurrently(self, controller, kernel, config):
        errors = self._run_concurrently(controller.sockmap_enable, controller.skmsg_enable)

        assert errors == []
        assert controller.status()['sockmap'] == STATUS_ENABLED
        assert controller.status()['skmsg'] == STATUS_ENABLED

        ns = controller.namespace
        pins = ['bpf_sockops', 'bpf_redir', 'bpf_redir_ing', 'bpf_redir_parser']
        ids = {pin: pinned_id(ns.program_path(pin)) for pin in pins}
        for pin, prog_id in ids.items():
            assert kernel.program_at(ns.program_path(pin))['id'] == prog_id
        assert len(set(ids.values())) == len(pins)

        assert kernel.maps[pinned_id(ns.map_path('sock_ops_map'))]['name'] == 'sock_ops_map'
        assert kernel.cgroup_attachments == {(config.get('paths.cgroup_root'), ids['bpf_sockops'])}
        assert sorted(prog_id for prog_id, _, _ in kernel.map_attachments) == sorted(
            ids[pin] for pin in pins[1:])

    def test_different_units_on_independent_backends(self, tmp_path):
        first, second = FakeKernel(), FakeKernel()
        sockmap = sockops.SockopsController(make_config(tmp_path / 'a'), runner=first,
                                            compiler=FakeCompiler())
        skmsg = sockops.SockopsController(make_config(tmp_path / 'b'), runner=second,
                                          compiler=FakeCompiler())

        errors = self._run_concurrently(sockmap.sockmap_enable, skmsg.skmsg_enable)

        assert errors == []
        assert sockmap.status() == {'sockmap': 'enabled', 'skmsg': 'disabled', 'ktls': 'disabled'}
        assert skmsg.status() == {'sockmap': 'disabled', 'skmsg': 'enabled', 'ktls': 'disabled'}

        sockops_pin = sockmap.namespace.program_path('bpf_sockops')
        assert pinned_id(sockops_pin) == first.program_at(sockops_pin)['id']
        assert first.map_attachments == []
        assert {prog_id for _, prog_id in first.cgroup_attachments} == {pinned_id(sockops_pin)}

        for pin in ('bpf_redir', 'bpf_redir_ing', 'bpf_redir_parser'):
            path = skmsg.namespace.program_path(pin)
            assert pinned_id(path) == second.program_at(path)['id']
        assert second.cgroup_attachments == set()
        assert len(second.map_attachments) == 3


class TestEntryPoints:
    """Test cases for the module level entry points"""

    @pytest.fixture(autouse=True)
    def reset_default(self, monkeypatch):
        monkeypatch.setattr(sockops, '_default', None)

    def test_configure(self, config):
        kernel = FakeKernel()
        controller = sockops.configure(config, runner=kernel, compiler=FakeCompiler())

        assert sockops.default_controller() is controller

        sockops.sockmap_enable()
        sockops.skmsg_enable()
        sockops.ktls_enable()

        assert controller.status() == {'sockmap': 'enabled', 'skmsg': 'enabled', 'ktls': 'enabled'}

        sockops.ktls_disable(purge_maps=True)
        sockops.skmsg_disable()
        sockops.sockmap_disable()

        assert controller.status() == {'sockmap': 'disabled', 'skmsg': 'disabled', 'ktls': 'disabled'}
        assert kernel.cgroup_attachments == set()

    def test_default_controller_is_shared(self):
        assert sockops.default_controller() is sockops.default_controller()
