"""Health monitor and remediation loop for FleetOps.

The loop ticks on an interval. Each tick runs every registered health
probe in order; an unhealthy probe triggers that check's remediation. A
failing probe or remediation is recorded and the tick carries on with the
next check. Once every check has a result the tick is appended to the
loop history as an immutable TickRecord.

State machine:

    IDLE -> TICKING -> (SLEEPING -> TICKING)* -> STOPPED

A stop request is honored at tick boundaries only; a tick in progress
always runs to completion.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from .exceptions import LoopError, ProbeError, RemediationError
from .health import HealthCheckRegistry
from .history import TickHistoryLog
from .inventory import local_host
from .logging import log_performance
from .notify import NotificationRouter
from .types import (
    CheckOutcome,
    CheckResult,
    CheckResultStatus,
    ExecutionContext,
    HealthCheck,
    RemediationOutcome,
    Severity,
    TickRecord,
    utcnow,
)
from .utils import call_inline

logger = logging.getLogger(__name__)

DEFAULT_ERROR_BACKOFF = 60.0


class LoopState(str, Enum):
    """Remediation loop lifecycle state."""

    IDLE = "idle"
    TICKING = "ticking"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


@dataclass
class LoopContext:
    """All mutable state owned by one remediation loop.

    Attributes:
        actions_today: Remediations applied since the loop was created.
            Never reset while the process runs.
        history: Tick records, oldest first
        max_history: Records kept in memory (oldest dropped first)
        ticks: Ticks completed
        errors: Ticks that failed inside the loop body itself
        elevated: Whether checks run with administrative privileges
    """

    actions_today: int = 0
    history: list[TickRecord] = field(default_factory=list)
    max_history: int = 1440
    ticks: int = 0
    errors: int = 0
    elevated: bool = False

    @property
    def last_tick(self) -> TickRecord | None:
        return self.history[-1] if self.history else None

    def append(self, record: TickRecord) -> None:
        self.history.append(record)
        del self.history[: -self.max_history]
        self.ticks += 1


class RemediationLoop:
    """Recurring scheduler that probes health checks and remediates failures.

    Attributes:
        registry: Checks run on every tick
        notifier: Router told about remediations (optional)
        interval_minutes: Minutes between ticks
        error_backoff: Seconds to wait after a fault in the loop body
        history_log: Append-only tick log file (optional)
        context: Loop state (counters, history)
        state: Current LoopState

    Example:
        >>> loop = RemediationLoop(registry, notifier=router, interval_minutes=15)
        >>> record = await loop.tick()           # a single pass
        >>> await loop.run(run_once=True)        # IDLE -> TICKING -> STOPPED
    """

    def __init__(
        self,
        registry: HealthCheckRegistry,
        notifier: NotificationRouter | None = None,
        interval_minutes: float = 60.0,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
        history_log: TickHistoryLog | None = None,
        context: LoopContext | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.registry = registry
        self.notifier = notifier
        self.interval_minutes = interval_minutes
        self.error_backoff = error_backoff
        self.history_log = history_log
        self.context = context or LoopContext()
        self.state = LoopState.IDLE
        self._sleep_func = sleep
        self._clock = clock
        self._stop = asyncio.Event()

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60

    def stop(self) -> None:
        """Ask the loop to stop at the next tick boundary."""
        logger.info("Stop requested")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    async def tick(self) -> TickRecord:
        """Run every check once and append the resulting TickRecord."""
        checks = self.registry.all()
        ctx = ExecutionContext(elevated=self.context.elevated, host=local_host())
        tick_at = self._clock()
        results: list[CheckResult] = []
        applied = 0

        with log_performance(logger, "Tick", checks=len(checks)):
            for check in checks:
                result = await self._run_check(check, ctx)
                if result.status is CheckResultStatus.REMEDIATED:
                    applied += 1
                results.append(result)

        record = TickRecord(tick_at=tick_at, results=tuple(results), actions_applied_this_tick=applied)
        self.context.append(record)
        if self.history_log is not None:
            self.history_log.append(record, actions_today=self.context.actions_today)

        logger.info(
            f"Tick complete: {record.count(CheckResultStatus.HEALTHY)} healthy, "
            f"{record.count(CheckResultStatus.REMEDIATED)} remediated, "
            f"{record.count(CheckResultStatus.FAILED)} failed "
            f"(actions today: {self.context.actions_today})"
        )
        return record

    async def _probe(self, check: HealthCheck, ctx: ExecutionContext) -> CheckOutcome:
        try:
            outcome = await call_inline(check.probe, ctx)
            if not isinstance(outcome, CheckOutcome):
                raise ProbeError(f"probe returned {type(outcome).__name__}, expected CheckOutcome")
        except Exception as e:
            logger.warning(f"Probe {check.name} raised: {e}")
            return CheckOutcome(healthy=False, detail=f"probe error: {e}")
        return outcome

    async def _remediate(self, check: HealthCheck, ctx: ExecutionContext) -> RemediationOutcome:
        try:
            outcome = await call_inline(check.remediate, ctx)
            if not isinstance(outcome, RemediationOutcome):
                raise RemediationError(
                    f"remediation returned {type(outcome).__name__}, expected RemediationOutcome"
                )
        except Exception as e:
            logger.warning(f"Remediation {check.name} raised: {e}")
            return RemediationOutcome(applied=False, detail=f"remediation error: {e}", error=str(e))
        return outcome

    async def _run_check(self, check: HealthCheck, ctx: ExecutionContext) -> CheckResult:
        outcome = await self._probe(check, ctx)
        if outcome.healthy:
            logger.debug(f"Check {check.name} healthy: {outcome.detail}")
            return CheckResult(check.name, outcome, CheckResultStatus.HEALTHY)

        logger.warning(f"Check {check.name} unhealthy: {outcome.detail}")
        remediation = await self._remediate(check, ctx)

        if remediation.applied:
            self.context.actions_today += 1
            logger.info(f"Remediated {check.name}: {remediation.detail}")
            await self._notify(
                f"Remediated: {check.name}",
                f"{outcome.detail} -> {remediation.detail}",
                Severity.SUCCESS,
            )
            return CheckResult(check.name, outcome, CheckResultStatus.REMEDIATED, remediation)

        reason = remediation.error or remediation.detail or "remediation not applied"
        logger.error(f"Remediation of {check.name} failed: {reason}")
        await self._notify(f"Remediation failed: {check.name}", f"{outcome.detail} -> {reason}", Severity.ERROR)
        return CheckResult(check.name, outcome, CheckResultStatus.FAILED, remediation)

    async def _notify(self, title: str, message: str, severity: Severity) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(title, message, severity)
        except Exception as e:
            logger.warning(f"Notification failed: {e}")

    async def _sleep(self, seconds: float) -> None:
        """Wait between ticks; a stop request ends the wait early."""
        if self._sleep_func is not None:
            await self._sleep_func(seconds)
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self, run_once: bool = False, max_ticks: int | None = None) -> LoopContext:
        """Run the loop until stopped.

        Args:
            run_once: Run a single tick, then stop
            max_ticks: Stop after this many ticks (None = until stopped)

        Returns:
            The loop context

        Raises:
            LoopError: In run_once mode, if the loop body itself faulted
            RuntimeError: If the loop was already started
            ValueError: If the interval is not positive and run_once is False
        """
        if self.state is not LoopState.IDLE:
            raise RuntimeError(f"Loop cannot start from state {self.state.value}")
        if not run_once and self.interval_seconds <= 0:
            raise ValueError(f"interval_minutes must be positive, got {self.interval_minutes}")

        self.registry.freeze()
        logger.info(
            f"Remediation loop starting: {len(self.registry)} check(s), "
            f"interval {self.interval_minutes} min, run_once={run_once}"
        )
        attempts = 0
        try:
            while not self._stop.is_set():
                self.state = LoopState.TICKING
                try:
                    await self.tick()
                except Exception as e:
                    self.context.errors += 1
                    logger.exception("Remediation loop tick failed")
                    if run_once:
                        raise LoopError(f"Tick failed: {e}") from e
                    delay = self.error_backoff
                else:
                    delay = self.interval_seconds
                attempts += 1

                if run_once or (max_ticks is not None and attempts >= max_ticks):
                    break
                if self._stop.is_set():
                    break

                self.state = LoopState.SLEEPING
                logger.debug(f"Sleeping {delay:.0f}s until next tick")
                await self._sleep(delay)
        finally:
            self.state = LoopState.STOPPED
            logger.info(f"Remediation loop stopped after {attempts} tick(s)")

        return self.context
