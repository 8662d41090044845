"""Tests for execution outcome aggregation."""

import threading

import pytest

from fleetops.aggregator import ExecutionAggregator
from fleetops.types import ExecutionUnit, UnitStatus


def _unit(unit_id, status):
    unit = ExecutionUnit(id=unit_id, action_id="ping", target=unit_id)
    if status is UnitStatus.SKIPPED:
        unit.skip("unreachable", "connectivity")
    elif status is not UnitStatus.PENDING:
        unit.start()
        if status is UnitStatus.SUCCEEDED:
            unit.succeed()
        elif status is UnitStatus.FAILED:
            unit.fail("boom", "execution")
    return unit


class TestExecutionAggregator:
    """Tests for ExecutionAggregator."""

    def test_counts(self):
        """Test summary counts per status."""
        aggregator = ExecutionAggregator("ping")
        aggregator.record(_unit("a", UnitStatus.SUCCEEDED))
        aggregator.record(_unit("b", UnitStatus.FAILED))
        aggregator.record(_unit("c", UnitStatus.SKIPPED))

        summary = aggregator.summarize()
        assert summary.total == 3
        assert (summary.succeeded, summary.failed, summary.skipped) == (1, 1, 1)
        assert summary.ended_at is not None

    def test_record_is_idempotent(self):
        """Test recording the same unit id twice does not double count."""
        aggregator = ExecutionAggregator("ping")
        unit = _unit("a", UnitStatus.SUCCEEDED)
        aggregator.record(unit)
        aggregator.record(unit)

        summary = aggregator.summarize()
        assert summary.total == 1
        assert summary.succeeded == 1

    def test_rerecord_replaces_entry(self):
        """Test re-recording a unit id keeps the latest state."""
        aggregator = ExecutionAggregator("ping")
        unit = ExecutionUnit(id="a", action_id="ping")
        aggregator.record(unit)
        unit.start()
        unit.fail("boom", "execution")
        aggregator.record(unit)

        assert aggregator.summarize().failed == 1

    def test_order_preserved(self):
        """Test units keep the order they were first recorded in."""
        aggregator = ExecutionAggregator("ping")
        for name in ("c", "a", "b"):
            aggregator.record(_unit(name, UnitStatus.SUCCEEDED))
        assert [u.id for u in aggregator.summarize().units] == ["c", "a", "b"]

    def test_non_terminal_rejected(self):
        """Test summarizing with running units is an error."""
        aggregator = ExecutionAggregator("ping")
        aggregator.record(_unit("a", UnitStatus.RUNNING))
        with pytest.raises(ValueError, match="still running"):
            aggregator.summarize()

    def test_partial_summary(self):
        """Test partial summaries count only terminal units."""
        aggregator = ExecutionAggregator("ping")
        aggregator.record(_unit("a", UnitStatus.SUCCEEDED))
        aggregator.record(_unit("b", UnitStatus.PENDING))

        summary = aggregator.summarize(allow_partial=True)
        assert summary.total == 1
        assert summary.total == summary.succeeded + summary.failed + summary.skipped
        assert len(summary.units) == 2
        assert summary.ended_at is None
        assert [u.id for u in aggregator.pending()] == ["b"]

    def test_call_level_error(self):
        """Test a call-level error is carried to the summary."""
        aggregator = ExecutionAggregator("reboot")
        aggregator.set_error("Unknown action 'reboot'", "catalog")
        summary = aggregator.summarize()
        assert summary.error == "Unknown action 'reboot'"
        assert summary.error_type == "catalog"
        assert summary.total == 0

    def test_concurrent_record(self):
        """Test recording from many threads loses nothing."""
        aggregator = ExecutionAggregator("ping")
        units = [_unit(f"h{i}", UnitStatus.SUCCEEDED) for i in range(200)]

        def record_slice(start):
            for unit in units[start::4]:
                aggregator.record(unit)

        threads = [threading.Thread(target=record_slice, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert aggregator.summarize().succeeded == 200
