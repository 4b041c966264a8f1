# sockops/units/pipeline.py - Ordered lifecycle steps
"""
Enable and disable transitions expressed as ordered lists of named steps.

Two policies exist:

- ABORT: stop at the first failing step and raise PipelineError. Completed
  steps are not compensated, so the unit may be left partially enabled.
- BEST_EFFORT: run every step, log failures and carry on. Used for disable,
  which must be safe to call from any state.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging

from sockops.errors import PipelineError


ABORT = 'abort'
BEST_EFFORT = 'best_effort'


@dataclass
class Step:
    """
    One named action of a transition.
    """
    name: str
    action: Callable[[], object]


@dataclass
class PipelineResult:
    """
    What a pipeline did.
    """
    unit: str
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    # kernel ids resolved by the steps, e.g. "sock_ops_map.map_id"
    ids: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class Pipeline:
    """
    Runs steps in order under a failure policy.
    """

    def __init__(self, unit: str, steps: List[Step], policy: str = ABORT,
                 ids: Optional[Dict[str, int]] = None):
        if policy not in (ABORT, BEST_EFFORT):
            raise ValueError(f"Unknown pipeline policy: {policy}")

        self.unit = unit
        self.steps = list(steps)
        self.policy = policy
        self.ids = ids if ids is not None else {}
        self.logger = logging.getLogger(__name__)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def run(self) -> PipelineResult:
        """
        Execute every step.

        Returns:
            PipelineResult listing completed (and, for BEST_EFFORT, failed) steps

        Raises:
            PipelineError: an ABORT pipeline hit a failing step
        """
        result = PipelineResult(unit=self.unit, ids=self.ids)

        for step in self.steps:
            self.logger.debug(f"{self.unit}: {step.name}")
            try:
                step.action()
            except Exception as e:
                if self.policy == ABORT:
                    raise PipelineError(self.unit, step.name, result.completed, e) from e

                self.logger.warning(f"{self.unit}: {step.name} failed: {e}")
                result.failed.append(step.name)
                continue

            result.completed.append(step.name)

        return result
