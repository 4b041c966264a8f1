# sockops/exporters/__init__.py - Exporters module
"""
Exporters for lifecycle metrics and status output.

This module provides:
- prometheus.py: Prometheus metrics
- stdout.py: Console output
"""
