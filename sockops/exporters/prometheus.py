# sockops/exporters/prometheus.py - Prometheus metrics exporter
"""
Exports sockops lifecycle metrics in Prometheus format.
Provides the text exposition format and a textfile for node_exporter.
"""

from prometheus_client import (
    CollectorRegistry, Counter, Gauge, Histogram,
    generate_latest, write_to_textfile,
)
from typing import Optional
import logging


class SockopsMetrics:
    """
    Counts external tool invocations and unit transitions.

    Each instance owns its registry, so several controllers (and tests)
    can coexist in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the metrics.

        Args:
            registry: Registry to register with (a private one by default)
        """
        self.registry = registry or CollectorRegistry()
        self.logger = logging.getLogger(__name__)

        self.tool_invocations = Counter(
            'sockops_tool_invocations_total',
            'External tool invocations',
            ['tool', 'command', 'outcome'],
            registry=self.registry
        )

        self.tool_duration = Histogram(
            'sockops_tool_duration_seconds',
            'Duration of external tool invocations in seconds',
            ['tool', 'command'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 30, 120, 300],
            registry=self.registry
        )

        self.unit_transitions = Counter(
            'sockops_unit_transitions_total',
            'Feature unit enable/disable transitions',
            ['unit', 'transition', 'outcome'],
            registry=self.registry
        )

        self.unit_enabled = Gauge(
            'sockops_unit_enabled',
            'Whether the feature unit was last enabled successfully',
            ['unit'],
            registry=self.registry
        )

    def record_tool(self, tool: str, command: str, outcome: str, duration: float):
        """
        Record one tool invocation.

        Args:
            tool: Binary name
            command: Subcommand, e.g. "prog load"
            outcome: success, failure, timeout, missing or error
            duration: Seconds the invocation took
        """
        self.tool_invocations.labels(tool=tool, command=command, outcome=outcome).inc()
        self.tool_duration.labels(tool=tool, command=command).observe(duration)

    def record_transition(self, unit: str, transition: str, ok: bool):
        outcome = 'success' if ok else 'failure'
        self.unit_transitions.labels(unit=unit, transition=transition, outcome=outcome).inc()

        if transition == 'enable':
            self.unit_enabled.labels(unit=unit).set(1 if ok else 0)
        elif transition == 'disable':
            self.unit_enabled.labels(unit=unit).set(0)

    def write_textfile(self, path: str):
        """
        Write current metrics for the node_exporter textfile collector.
        """
        write_to_textfile(path, self.registry)
        self.logger.debug(f"Wrote metrics to {path}")

    def get_metrics_text(self) -> str:
        """
        Get current metrics in Prometheus text format.
        """
        return generate_latest(self.registry).decode('utf-8')
