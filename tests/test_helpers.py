# tests/test_helpers.py - Tests for prerequisite checks
"""
Unit tests for kernel version parsing and prerequisite checks.
"""

from sockops.utils import helpers
from sockops.utils.config import Config


class TestKernelVersion:
    """Test cases for kernel version handling"""

    def test_parse_release(self):
        assert helpers.parse_kernel_version('5.15.0-91-generic') == (5, 15, 0)
        assert helpers.parse_kernel_version('6.8.12') == (6, 8, 12)

    def test_parse_short_and_odd(self):
        assert helpers.parse_kernel_version('4.19') == (4, 19, 0)
        assert helpers.parse_kernel_version('6.1.55+rpt') == (6, 1, 55)
        assert helpers.parse_kernel_version('garbage') == (0, 0, 0)

    def test_sockmap_support(self, monkeypatch):
        monkeypatch.setattr(helpers.platform, 'release', lambda: '4.17.0')
        assert helpers.check_sockmap_support()

        monkeypatch.setattr(helpers.platform, 'release', lambda: '4.14.330')
        assert not helpers.check_sockmap_support()


class TestPrerequisites:
    """Test cases for prerequisite checks"""

    def test_check_names(self, tmp_path):
        config = Config()
        config.set('paths.map_root', str(tmp_path))
        config.set('tools.bpftool', 'definitely-not-bpftool')

        checks = dict(helpers.prerequisite_checks(config))

        assert checks['definitely-not-bpftool installed'] is False
        assert checks[f"BPF filesystem at {tmp_path}"] is True
        assert 'Root privileges' in checks

    def test_check_prerequisites_prints(self, monkeypatch, capsys):
        monkeypatch.setattr(helpers, 'prerequisite_checks',
                            lambda config: [('Root privileges', True), ('clang installed', False)])

        assert not helpers.check_prerequisites(Config())

        out = capsys.readouterr().out
        assert '✓ Root privileges' in out
        assert '✗ clang installed' in out
