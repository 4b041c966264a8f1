# sockops/bpf/__init__.py - Kernel program primitives
"""
Primitives wrapping the external tools that manage BPF programs and maps.

This module provides:
- tool.py: Command runner and bpftool argument vectors
- pinfs.py: Pinned object namespace layout
- compiler.py: Program unit compilation with clang
- loader.py: Loading objects and removing their pins
- resolver.py: Program and map id resolution from bpftool output
- attach.py: cgroup and map attachment
- pinner.py: Pinning maps into the globals area
- cgroup.py: One-time cgroup2 mount
"""
