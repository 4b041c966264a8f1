# sockops/exporters/stdout.py - Console output exporter
"""
Prints unit status and transition results in human-readable format.
"""

from typing import Dict
from colorama import Fore, Style, init
import logging


# Initialize colorama
init(autoreset=True)


class StdoutExporter:
    """
    Prints unit states with colored output.
    """

    STATUS_COLORS = {
        'enabled': Fore.GREEN,
        'partial': Fore.YELLOW,
        'disabled': Fore.RED,
    }

    def __init__(self, use_colors: bool = True):
        """
        Initialize the stdout exporter.

        Args:
            use_colors: Whether to use colored output
        """
        self.use_colors = use_colors
        self.logger = logging.getLogger(__name__)

    def format_status(self, status: Dict[str, str]) -> str:
        """
        Render a unit -> state table.

        Args:
            status: Mapping of unit name to enabled/partial/disabled
        """
        lines = [f"{'Unit':<10} {'State':<10}", '-' * 21]
        for unit, state in status.items():
            color = self._get_status_color(state)
            reset = Style.RESET_ALL if color else ''
            lines.append(f"{unit:<10} {color}{state:<10}{reset}")
        return '\n'.join(lines)

    def print_status(self, status: Dict[str, str]):
        print(self.format_status(status))

    def print_result(self, unit: str, transition: str, result):
        """
        Print the steps a transition went through.

        Args:
            unit: Unit name
            transition: enable or disable
            result: PipelineResult
        """
        color = self._color(Fore.GREEN if result.ok else Fore.YELLOW)
        reset = Style.RESET_ALL if color else ''
        print(f"{color}{unit} {transition}d{reset} ({len(result.completed)} steps)")

        for step in result.failed:
            print(f"  {self._color(Fore.YELLOW)}! {step}{reset}")

    def _get_status_color(self, state: str) -> str:
        return self._color(self.STATUS_COLORS.get(state, ''))

    def _color(self, code: str) -> str:
        if not self.use_colors:
            return ""
        return code
