# tests/test_pipeline.py - Tests for step pipelines
"""
Unit tests for Pipeline failure policies.
"""

import pytest

from sockops.errors import PipelineError
from sockops.units.pipeline import Pipeline, Step, ABORT, BEST_EFFORT


def fail():
    raise RuntimeError("boom")


class TestPipeline:
    """Test cases for Pipeline"""

    def test_runs_in_order(self):
        seen = []
        steps = [Step(name, lambda name=name: seen.append(name)) for name in ('a', 'b', 'c')]

        result = Pipeline('unit', steps).run()

        assert seen == ['a', 'b', 'c']
        assert result.completed == ['a', 'b', 'c']
        assert result.ok

    def test_abort_stops_at_failure(self):
        seen = []
        steps = [
            Step('a', lambda: seen.append('a')),
            Step('b', fail),
            Step('c', lambda: seen.append('c')),
        ]

        with pytest.raises(PipelineError) as excinfo:
            Pipeline('skmsg', steps, policy=ABORT).run()

        err = excinfo.value
        assert seen == ['a']
        assert err.unit == 'skmsg'
        assert err.step == 'b'
        assert err.completed == ['a']
        assert isinstance(err.cause, RuntimeError)
        assert err.__cause__ is err.cause

    def test_best_effort_continues(self):
        seen = []
        steps = [
            Step('a', fail),
            Step('b', lambda: seen.append('b')),
            Step('c', fail),
        ]

        result = Pipeline('sockmap', steps, policy=BEST_EFFORT).run()

        assert seen == ['b']
        assert result.completed == ['b']
        assert result.failed == ['a', 'c']
        assert not result.ok

    def test_empty(self):
        assert Pipeline('ktls', []).run().ok

    def test_resolved_ids_returned(self):
        ids = {}
        steps = [Step('resolve', lambda: ids.update({'sock_ops_map.map_id': 9}))]

        result = Pipeline('sockmap', steps, ids=ids).run()

        assert result.ids == {'sock_ops_map.map_id': 9}

    def test_no_ids_by_default(self):
        assert Pipeline('u', [Step('x', lambda: None)]).run().ids == {}

    def test_step_names(self):
        pipeline = Pipeline('u', [Step('x', lambda: None), Step('y', lambda: None)])
        assert pipeline.step_names == ['x', 'y']

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            Pipeline('u', [], policy='retry')
