# tests/test_compiler.py - Tests for program compilation
"""
Unit tests for ClangCompiler and UnitCompiler.
"""

import os
import subprocess

import pytest

from sockops.bpf.compiler import ClangCompiler, UnitCompiler, DEFAULT_COMPILE_TIMEOUT
from sockops.errors import CompileError
from tests.fakes import FakeCompiler, RecordingRunner


class TestClangCompiler:
    """Test cases for ClangCompiler"""

    def test_build_args(self):
        compiler = ClangCompiler(include_dirs=['/var/lib/cilium/bpf', '/var/lib/cilium/bpf/include'],
                                 extra_flags=['-DENABLE_IPV4'])

        args = compiler.build_args('/src/bpf_sockops.c', '/state/bpf_sockops.o')

        assert args[:6] == ['clang', '-O2', '-g', '-target', 'bpf', '-Wall']
        assert '-I/var/lib/cilium/bpf' in args
        assert '-I/var/lib/cilium/bpf/include' in args
        assert '-DENABLE_IPV4' in args
        assert args[-4:] == ['-c', '/src/bpf_sockops.c', '-o', '/state/bpf_sockops.o']

    def test_compile_passes_timeout(self):
        runner = RecordingRunner()
        ClangCompiler(runner=runner).compile('a.c', 'a.o', timeout=300)

        assert runner.calls[0][1] == 300

    def test_nonzero_exit_raises(self):
        runner = RecordingRunner(returncode=1, output="a.c:3:1: error: expected ';'\n")

        with pytest.raises(CompileError) as excinfo:
            ClangCompiler(runner=runner).compile('/src/a.c', '/state/a.o')

        assert excinfo.value.source == '/src/a.c'
        assert "expected ';'" in str(excinfo.value)
        assert str(excinfo.value).startswith('failed compile /src/a.c')

    def test_timeout_raises(self):
        def runner(args, timeout=None):
            raise subprocess.TimeoutExpired(args, timeout)

        with pytest.raises(CompileError, match='timed out'):
            ClangCompiler(runner=runner).compile('a.c', 'a.o', timeout=1)

    def test_missing_compiler_raises(self):
        def runner(args, timeout=None):
            raise FileNotFoundError(args[0])

        with pytest.raises(CompileError, match='not found'):
            ClangCompiler(clang='clang-17', runner=runner).compile('a.c', 'a.o')

    def test_unexecutable_compiler_raises(self):
        def runner(args, timeout=None):
            raise PermissionError(13, 'Permission denied', args[0])

        with pytest.raises(CompileError, match='Permission denied'):
            ClangCompiler(runner=runner).compile('a.c', 'a.o')


class TestUnitCompiler:
    """Test cases for UnitCompiler"""

    def test_paths(self, tmp_path):
        units = UnitCompiler(FakeCompiler(), str(tmp_path / 'bpf'), str(tmp_path / 'state'))

        assert units.source_path('bpf_redir.c') == str(tmp_path / 'bpf' / 'sockops' / 'bpf_redir.c')
        assert units.object_path('bpf_redir.o') == str(tmp_path / 'state' / 'bpf_redir.o')

    def test_object_path_is_absolute(self):
        units = UnitCompiler(FakeCompiler(), 'bpf', 'state')

        assert os.path.isabs(units.object_path('bpf_redir.o'))

    def test_compile_creates_state_dir(self, tmp_path):
        fake = FakeCompiler()
        units = UnitCompiler(fake, str(tmp_path / 'bpf'), str(tmp_path / 'state' / 'nested'))

        dst = units.compile('bpf_sockops.c', 'bpf_sockops.o')

        assert os.path.exists(dst)
        assert fake.calls == [(units.source_path('bpf_sockops.c'), dst, DEFAULT_COMPILE_TIMEOUT)]

    def test_compile_failure_names_source(self, tmp_path):
        units = UnitCompiler(FakeCompiler(fail_on=['bpf_redir.c']), str(tmp_path), str(tmp_path))

        with pytest.raises(CompileError) as excinfo:
            units.compile('bpf_redir.c', 'bpf_redir.o')

        assert excinfo.value.source.endswith('bpf_redir.c')

    def test_os_error_becomes_compile_error(self, tmp_path):
        class Broken:
            def compile(self, source, dest, timeout=None):
                raise PermissionError(13, 'Permission denied', dest)

        units = UnitCompiler(Broken(), str(tmp_path), str(tmp_path))

        with pytest.raises(CompileError, match='Permission denied'):
            units.compile('bpf_redir.c', 'bpf_redir.o')
