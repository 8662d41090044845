"""Tests for the remediation loop."""

import asyncio
import json
from unittest.mock import AsyncMock
from datetime import datetime, timezone

import pytest

from fleetops.exceptions import LoopError
from fleetops.health import HealthCheckRegistry
from fleetops.history import TickHistoryLog
from fleetops.loop import LoopContext, LoopState, RemediationLoop
from fleetops.notify import NotificationRouter
from fleetops.types import (
    CheckOutcome,
    CheckResultStatus,
    HealthCheck,
    RemediationOutcome,
    Severity,
    TickRecord,
)

from conftest import RecordingChannel


class ScriptedCheck:
    """Health check with a fixed probe answer that counts calls."""

    def __init__(self, name, healthy=True, remediation=None, probe_error=None, remediate_error=None):
        self.name = name
        self.healthy = healthy
        self.remediation = remediation or RemediationOutcome(applied=True, detail="fixed")
        self.probe_error = probe_error
        self.remediate_error = remediate_error
        self.probes = 0
        self.remediations = 0

    def probe(self, ctx):
        self.probes += 1
        if self.probe_error:
            raise self.probe_error
        return CheckOutcome(healthy=self.healthy, detail="ok" if self.healthy else "broken")

    def remediate(self, ctx):
        self.remediations += 1
        if self.remediate_error:
            raise self.remediate_error
        return self.remediation

    def as_check(self):
        return HealthCheck(self.name, self.probe, self.remediate)


class SleepRecorder:
    """Injected sleep that returns immediately."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _loop(checks, **kwargs):
    registry = HealthCheckRegistry([c.as_check() for c in checks])
    return RemediationLoop(registry, **kwargs)


class TestTick:
    """Tests for a single tick."""

    @pytest.mark.asyncio
    async def test_one_unhealthy_check_remediated(self):
        """Test only the unhealthy check is remediated and notified once."""
        channel = RecordingChannel()
        checks = [ScriptedCheck("a"), ScriptedCheck("b", healthy=False), ScriptedCheck("c")]
        loop = _loop(checks, notifier=NotificationRouter([channel]))

        record = await loop.tick()

        assert len(record.results) == 3
        assert record.results[1].outcome.healthy is False
        assert record.results[1].remediation.applied is True
        assert record.results[1].status is CheckResultStatus.REMEDIATED
        assert loop.context.actions_today == 1
        assert record.actions_applied_this_tick == 1
        assert len(channel.sent) == 1
        assert channel.sent[0][2] is Severity.SUCCESS

    @pytest.mark.asyncio
    async def test_healthy_check_never_remediated(self):
        """Test remediation is not invoked for healthy checks."""
        check = ScriptedCheck("a")
        loop = _loop([check])
        record = await loop.tick()
        assert check.remediations == 0
        assert record.results[0].status is CheckResultStatus.HEALTHY
        assert record.results[0].remediation is None
        assert record.healthy

    @pytest.mark.asyncio
    async def test_probe_error_does_not_abort_tick(self):
        """Test a raising probe is unhealthy and later checks still run."""
        failing = ScriptedCheck("a", probe_error=RuntimeError("sensor gone"))
        later = ScriptedCheck("b")
        loop = _loop([failing, later])

        record = await loop.tick()

        assert record.results[0].outcome.healthy is False
        assert record.results[0].outcome.detail == "probe error: sensor gone"
        assert later.probes == 1
        assert len(record.results) == 2

    @pytest.mark.asyncio
    async def test_remediation_error_recorded(self):
        """Test a raising remediation is recorded as failed and notified."""
        channel = RecordingChannel()
        check = ScriptedCheck("a", healthy=False, remediate_error=OSError("read-only fs"))
        loop = _loop([check, ScriptedCheck("b")], notifier=NotificationRouter([channel]))

        record = await loop.tick()

        result = record.results[0]
        assert result.status is CheckResultStatus.FAILED
        assert result.remediation.applied is False
        assert "read-only fs" in result.remediation.error
        assert loop.context.actions_today == 0
        assert channel.sent[0][2] is Severity.ERROR
        assert record.results[1].status is CheckResultStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_remediation_not_applied(self):
        """Test a remediation that declines is a failed result."""
        check = ScriptedCheck("a", healthy=False, remediation=RemediationOutcome(False, "nothing to do"))
        loop = _loop([check])
        record = await loop.tick()
        assert record.results[0].status is CheckResultStatus.FAILED
        assert loop.context.actions_today == 0

    @pytest.mark.asyncio
    async def test_wrong_probe_return_type(self):
        """Test a probe returning the wrong type counts as a probe error."""
        registry = HealthCheckRegistry([
            HealthCheck("a", lambda ctx: True, lambda ctx: RemediationOutcome(False)),
        ])
        record = await RemediationLoop(registry).tick()
        assert record.results[0].outcome.detail.startswith("probe error:")

    @pytest.mark.asyncio
    async def test_async_probe_and_remediation(self):
        """Test coroutine probes and remediations are awaited."""

        async def probe(ctx):
            await asyncio.sleep(0)
            return CheckOutcome(False, "down")

        async def remediate(ctx):
            return RemediationOutcome(True, "restarted")

        loop = RemediationLoop(HealthCheckRegistry([HealthCheck("svc", probe, remediate)]))
        record = await loop.tick()
        assert record.results[0].status is CheckResultStatus.REMEDIATED

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_propagate(self):
        """Test a failing notifier never changes the tick outcome."""

        class Exploding:
            async def notify(self, title, message, severity):
                raise RuntimeError("router broke")

        loop = _loop([ScriptedCheck("a", healthy=False)], notifier=Exploding())
        record = await loop.tick()
        assert record.results[0].status is CheckResultStatus.REMEDIATED
        assert loop.context.actions_today == 1

    @pytest.mark.asyncio
    async def test_tick_uses_clock(self):
        """Test the tick timestamp comes from the injected clock."""
        fixed = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        loop = _loop([ScriptedCheck("a")], clock=lambda: fixed)
        record = await loop.tick()
        assert record.tick_at == fixed
        assert loop.context.last_tick is record

    @pytest.mark.asyncio
    async def test_history_file(self, tmp_path):
        """Test each tick is appended to the history log."""
        path = tmp_path / "ticks.jsonl"
        loop = _loop([ScriptedCheck("a", healthy=False)], history_log=TickHistoryLog(path))

        await loop.tick()
        await loop.tick()

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        entry = json.loads(lines[1])
        assert entry["actions_today"] == 2
        assert entry["results"][0]["status"] == "remediated"


class TestRun:
    """Tests for the loop lifecycle."""

    @pytest.mark.asyncio
    async def test_run_once(self):
        """Test run_once ticks once and stops without sleeping."""
        sleep = SleepRecorder()
        loop = _loop([ScriptedCheck("a")], sleep=sleep)

        context = await loop.run(run_once=True)

        assert context.ticks == 1
        assert sleep.delays == []
        assert loop.state is LoopState.STOPPED
        assert loop.registry.frozen

    @pytest.mark.asyncio
    async def test_max_ticks_sleeps_interval(self):
        """Test ticks are separated by the configured interval."""
        sleep = SleepRecorder()
        loop = _loop([ScriptedCheck("a")], interval_minutes=15, sleep=sleep)

        context = await loop.run(max_ticks=3)

        assert context.ticks == 3
        assert sleep.delays == [900, 900]

    @pytest.mark.asyncio
    async def test_fractional_interval(self):
        """Test fractional minutes are converted to seconds."""
        sleep = AsyncMock()
        loop = _loop([ScriptedCheck("a")], interval_minutes=0.5, sleep=sleep)

        await loop.run(max_ticks=2)

        sleep.assert_awaited_once_with(30.0)

    @pytest.mark.asyncio
    async def test_zero_interval_rejected(self):
        """Test a continuous loop refuses a zero interval before ticking."""
        loop = _loop([ScriptedCheck("a")], interval_minutes=0, sleep=SleepRecorder())

        with pytest.raises(ValueError, match="must be positive"):
            await loop.run(max_ticks=3)

        assert loop.context.ticks == 0
        assert loop.state is LoopState.IDLE

    @pytest.mark.asyncio
    async def test_zero_interval_run_once(self):
        """Test a single tick does not need an interval."""
        loop = _loop([ScriptedCheck("a")], interval_minutes=0, sleep=SleepRecorder())
        context = await loop.run(run_once=True)
        assert context.ticks == 1

    @pytest.mark.asyncio
    async def test_actions_today_accumulates(self):
        """Test the remediation counter keeps counting across ticks."""
        loop = _loop([ScriptedCheck("a", healthy=False)], sleep=SleepRecorder())
        context = await loop.run(max_ticks=4)
        assert context.actions_today == 4

    @pytest.mark.asyncio
    async def test_stop_at_tick_boundary(self):
        """Test a stop request lets the current tick finish."""
        loop = None

        def probe(ctx):
            loop.stop()
            return CheckOutcome(True)

        registry = HealthCheckRegistry([
            HealthCheck("a", probe, lambda ctx: RemediationOutcome(False)),
            HealthCheck("b", lambda ctx: CheckOutcome(True), lambda ctx: RemediationOutcome(False)),
        ])
        loop = RemediationLoop(registry, sleep=SleepRecorder())

        context = await loop.run()

        assert context.ticks == 1
        assert len(context.last_tick.results) == 2
        assert loop.stop_requested

    @pytest.mark.asyncio
    async def test_stop_interrupts_sleep(self):
        """Test stopping while sleeping ends the wait early."""
        loop = _loop([ScriptedCheck("a")], interval_minutes=60)
        task = asyncio.create_task(loop.run())
        for _ in range(50):
            if loop.state is LoopState.SLEEPING:
                break
            await asyncio.sleep(0.01)

        loop.stop()
        context = await asyncio.wait_for(task, timeout=2)

        assert context.ticks == 1
        assert loop.state is LoopState.STOPPED

    @pytest.mark.asyncio
    async def test_loop_fault_in_run_once_raises(self):
        """Test a fault in the loop body raises LoopError in run_once mode."""

        def broken_clock():
            raise RuntimeError("clock broke")

        loop = _loop([ScriptedCheck("a")], clock=broken_clock)
        with pytest.raises(LoopError, match="clock broke"):
            await loop.run(run_once=True)
        assert loop.context.errors == 1
        assert loop.state is LoopState.STOPPED

    @pytest.mark.asyncio
    async def test_loop_fault_backs_off_and_resumes(self):
        """Test a loop body fault is logged, backed off, and ticking resumes."""
        calls = 0

        def flaky_clock():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("transient")
            return datetime.now(timezone.utc)

        sleep = SleepRecorder()
        loop = _loop([ScriptedCheck("a")], clock=flaky_clock, sleep=sleep,
                     interval_minutes=10, error_backoff=5)

        context = await loop.run(max_ticks=2)

        assert context.errors == 1
        assert context.ticks == 1
        assert sleep.delays == [5]

    @pytest.mark.asyncio
    async def test_cannot_run_twice(self):
        """Test a stopped loop cannot be started again."""
        loop = _loop([ScriptedCheck("a")])
        await loop.run(run_once=True)
        with pytest.raises(RuntimeError):
            await loop.run(run_once=True)


class TestLoopContext:
    """Tests for LoopContext."""

    def test_history_bounded(self):
        """Test history drops the oldest records first."""
        context = LoopContext(max_history=2)
        records = [TickRecord(datetime.now(timezone.utc), ()) for _ in range(3)]
        for record in records:
            context.append(record)
        assert context.history == records[1:]
        assert context.ticks == 3
