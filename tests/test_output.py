"""Tests for output formatting."""

import io
import json
from datetime import datetime, timezone

from rich.console import Console

from fleetops.catalog import default_catalog
from fleetops.output import (
    actions_table,
    format_actions_json,
    format_summary_json,
    format_summary_text,
    tick_table,
)
from fleetops.types import (
    CheckOutcome,
    CheckResult,
    CheckResultStatus,
    DispatchSummary,
    ExecutionUnit,
    RemediationOutcome,
    TickRecord,
    utcnow,
)


def _summary():
    ok = ExecutionUnit(id="ws-01", action_id="ping", target="ws-01")
    ok.start()
    ok.succeed({"ping": "pong"})
    skipped = ExecutionUnit(id="ws-02", action_id="ping", target="ws-02")
    skipped.skip("unreachable", "connectivity")
    return DispatchSummary(
        action_id="ping",
        total=2,
        succeeded=1,
        skipped=1,
        units=[ok, skipped],
        started_at=utcnow(),
        ended_at=utcnow(),
    )


def _render(renderable):
    buffer = io.StringIO()
    Console(file=buffer, width=140, color_system=None).print(renderable)
    return buffer.getvalue()


class TestSummaryOutput:
    """Tests for dispatch summary output."""

    def test_json(self):
        """Test JSON output carries counts, units and a timestamp."""
        data = json.loads(format_summary_json(_summary()))
        assert data["total"] == 2
        assert data["units"][1]["error"] == "unreachable"
        assert "timestamp" in data
        assert "duration" in data

    def test_text(self):
        """Test the table lists every unit and the totals."""
        text = format_summary_text(_summary())
        assert "ws-01" in text
        assert "succeeded" in text
        assert "unreachable" in text
        assert "ping=pong" in text
        assert "1 skipped" in text

    def test_call_level_error(self):
        """Test a call-level error is printed under the table."""
        summary = DispatchSummary(action_id="reboot", error="Unknown action 'reboot'")
        assert "Unknown action 'reboot'" in format_summary_text(summary)


class TestOtherTables:
    """Tests for tick and catalog output."""

    def test_tick_table(self):
        """Test tick table shows results and remediation details."""
        record = TickRecord(
            tick_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            results=(
                CheckResult("disk_space", CheckOutcome(False, "4% free"), CheckResultStatus.REMEDIATED,
                            RemediationOutcome(True, "purged 12 file(s)")),
            ),
            actions_applied_this_tick=1,
        )
        text = _render(tick_table(record))
        assert "disk_space" in text
        assert "purged 12 file(s)" in text
        assert "actions applied: 1" in text

    def test_actions(self):
        """Test catalog listing in both formats."""
        descriptors = default_catalog().list_actions()
        assert "restart_service" in _render(actions_table(descriptors))
        data = json.loads(format_actions_json(descriptors))
        assert {d["id"] for d in data} >= {"ping", "flush_dns"}
