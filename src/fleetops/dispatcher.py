"""Fleet dispatch for FleetOps.

Runs one catalog action against a list of target hosts. Preconditions that
make the whole call pointless (unknown action, missing elevation, a local
only action aimed at remote hosts) are checked before any host is touched.
After that every host is handled in isolation: an unreachable host is
skipped, a failing host is recorded as failed, and neither affects the
others. The caller always gets a DispatchSummary back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .aggregator import ExecutionAggregator
from .catalog import ActionCatalog
from .connectivity import ConnectivityProbe
from .exceptions import CatalogError, ErrorTypes, FleetOpsError
from .inventory import Inventory
from .logging import get_logger, log_performance
from .notify import NotificationRouter
from .types import (
    ActionDescriptor,
    ActionResult,
    DispatchSummary,
    ExecutionContext,
    ExecutionUnit,
    HostConfig,
    Severity,
    UnitStatus,
)
from .utils import call_maybe_async

logger = logging.getLogger(__name__)

REASON_ELEVATION = "elevation required"
REASON_REMOTE = "remote not supported"
REASON_UNREACHABLE = "unreachable"
REASON_TIMEOUT = "timeout"
REASON_DEADLINE = "deadline exceeded"
REASON_CANCELLED = "cancelled"


class DispatchMode(str, Enum):
    """How units of one dispatch are executed."""

    SYNC = "sync"    # one target at a time, in order
    ASYNC = "async"  # all targets concurrently


@dataclass
class DispatcherContext:
    """Caller state passed into every dispatch.

    Attributes:
        elevated: Whether the caller has administrative privileges
        dry_run: Report what would run without invoking actions
        recent: Most recent summaries, newest last
        max_recent: How many summaries to keep in ``recent``
    """

    elevated: bool = False
    dry_run: bool = False
    recent: list[DispatchSummary] = field(default_factory=list)
    max_recent: int = 20

    def remember(self, summary: DispatchSummary) -> None:
        self.recent.append(summary)
        del self.recent[: -self.max_recent]


async def invoke_action(
    descriptor: ActionDescriptor,
    ctx: ExecutionContext,
    params: dict[str, Any],
) -> ActionResult:
    """Invoke an action and validate what it returns."""
    result = await call_maybe_async(descriptor.invoke, ctx, params)
    if not isinstance(result, ActionResult):
        raise FleetOpsError(
            f"Action {descriptor.id} returned {type(result).__name__}, expected ActionResult",
            error_type=ErrorTypes.EXECUTION,
        )
    return result


async def run_unit(
    unit: ExecutionUnit,
    descriptor: ActionDescriptor,
    ctx: ExecutionContext,
    params: dict[str, Any],
    aggregator: ExecutionAggregator,
) -> None:
    """Run one unit from Pending to a terminal status.

    Every failure of the action is recorded on the unit. Only cancellation
    escapes, leaving the unit Running for the caller to settle.
    """
    unit.start()
    aggregator.record(unit)

    if ctx.dry_run:
        unit.succeed({"dry_run": True, "would_execute": descriptor.id, "target": unit.target})
        aggregator.record(unit)
        return

    try:
        result = await invoke_action(descriptor, ctx, params)
    except asyncio.CancelledError:
        raise
    except FleetOpsError as e:
        logger.error(f"Action {descriptor.id} failed on {unit.target or unit.id}: {e}")
        unit.fail(str(e), e.error_type)
    except Exception as e:
        logger.exception(f"Action {descriptor.id} raised on {unit.target or unit.id}")
        unit.fail(f"{type(e).__name__}: {e}", ErrorTypes.EXECUTION)
    else:
        if result.ok:
            unit.succeed(result.output)
        else:
            unit.fail(result.error or "action reported failure", ErrorTypes.EXECUTION, result.output)
    aggregator.record(unit)


def expire_unit(unit: ExecutionUnit) -> None:
    """Settle a unit abandoned at the deadline."""
    if unit.status is UnitStatus.RUNNING:
        unit.fail(REASON_TIMEOUT, ErrorTypes.TIMEOUT)
    elif unit.status is UnitStatus.PENDING:
        unit.skip(REASON_DEADLINE, ErrorTypes.TIMEOUT)


def cancel_unit(unit: ExecutionUnit) -> None:
    """Settle a unit whose dispatch was cancelled."""
    if unit.status is UnitStatus.RUNNING:
        unit.fail(REASON_CANCELLED, ErrorTypes.ABORTED)
    elif unit.status is UnitStatus.PENDING:
        unit.skip(REASON_CANCELLED, ErrorTypes.ABORTED)


class DispatchHandle:
    """Handle on a dispatch launched in the background.

    Example:
        >>> handle = dispatcher.launch("ping", ["ws-01", "ws-02"])
        >>> handle.summary().total      # poll: terminal units so far
        0
        >>> summary = await handle.wait()
    """

    def __init__(
        self,
        action_id: str,
        aggregator: ExecutionAggregator,
        task: "asyncio.Task[DispatchSummary]",
    ) -> None:
        self.action_id = action_id
        self._aggregator = aggregator
        self._task = task

    def done(self) -> bool:
        return self._task.done()

    def summary(self) -> DispatchSummary:
        """Snapshot of the dispatch so far."""
        if self._task.done() and not self._task.cancelled():
            return self._task.result()
        return self._aggregator.summarize(allow_partial=True)

    async def wait(self) -> DispatchSummary:
        """Wait for every unit to finish and return the final summary."""
        return await self._task

    def cancel(self) -> None:
        """Cancel the dispatch; unfinished units are settled as cancelled."""
        self._task.cancel()


class RemoteDispatcher:
    """Runs catalog actions against target hosts.

    Attributes:
        catalog: Actions that can be dispatched
        probe: Connectivity probe run before each host
        notifier: Router notified when a dispatch completes (optional)
        inventory: Resolves target names to connection details
        max_parallel: Concurrent units in ASYNC mode

    Example:
        >>> dispatcher = RemoteDispatcher(default_catalog())
        >>> summary = await dispatcher.dispatch("ping", ["ws-01", "ws-02"])
        >>> print(f"{summary.succeeded}/{summary.total} succeeded")
    """

    def __init__(
        self,
        catalog: ActionCatalog,
        probe: ConnectivityProbe | None = None,
        notifier: NotificationRouter | None = None,
        inventory: Inventory | None = None,
        max_parallel: int = 10,
    ) -> None:
        self.catalog = catalog
        self.probe = probe or ConnectivityProbe()
        self.notifier = notifier
        self.inventory = inventory or Inventory()
        self.max_parallel = max_parallel

    async def dispatch(
        self,
        action_id: str,
        targets: list[str],
        params: dict[str, Any] | None = None,
        mode: DispatchMode = DispatchMode.SYNC,
        ctx: DispatcherContext | None = None,
        timeout: float | None = None,
    ) -> DispatchSummary:
        """Run an action against every target and return the summary.

        Args:
            action_id: Catalog id of the action
            targets: Host names (duplicates are dropped)
            params: Parameters passed to the action
            mode: SYNC runs targets one by one, ASYNC runs them concurrently
            ctx: Caller context (elevation, dry run, recent summaries)
            timeout: Overall deadline in seconds (optional)

        Returns:
            DispatchSummary with one unit per target
        """
        aggregator = ExecutionAggregator(action_id)
        return await self._run(aggregator, action_id, targets, params, mode, ctx, timeout)

    def launch(
        self,
        action_id: str,
        targets: list[str],
        params: dict[str, Any] | None = None,
        ctx: DispatcherContext | None = None,
        timeout: float | None = None,
    ) -> DispatchHandle:
        """Start an ASYNC dispatch in the background and return a handle.

        Must be called from a running event loop.
        """
        aggregator = ExecutionAggregator(action_id)
        task = asyncio.create_task(
            self._run(aggregator, action_id, targets, params, DispatchMode.ASYNC, ctx, timeout)
        )
        return DispatchHandle(action_id, aggregator, task)

    async def _run(
        self,
        aggregator: ExecutionAggregator,
        action_id: str,
        targets: list[str],
        params: dict[str, Any] | None,
        mode: DispatchMode,
        ctx: DispatcherContext | None,
        timeout: float | None,
    ) -> DispatchSummary:
        ctx = ctx or DispatcherContext()
        params = dict(params or {})
        log = get_logger(__name__, action=action_id, mode=mode.value)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        names = list(dict.fromkeys(name.strip() for name in targets if name.strip()))
        units = [ExecutionUnit(id=name, action_id=action_id, target=name) for name in names]
        for unit in units:
            aggregator.record(unit)

        with log_performance(logger, f"Dispatch {action_id}", targets=len(units)):
            try:
                descriptor = self.catalog.lookup(action_id)
            except CatalogError as e:
                log.error("Unknown action, skipping all targets", targets=len(units))
                return await self._abort(aggregator, units, str(e), e.error_type, ctx)

            if descriptor.requires_elevation and not ctx.elevated:
                log.warning("Action requires elevation, skipping all targets")
                return await self._abort(
                    aggregator, units, REASON_ELEVATION, ErrorTypes.ELEVATION, ctx
                )

            hosts = {name: self.inventory.resolve(name) for name in names}
            if not descriptor.supports_remote and any(h.is_remote for h in hosts.values()):
                log.warning("Action is local-only, rejecting remote targets")
                return await self._abort(
                    aggregator, units, REASON_REMOTE, ErrorTypes.REMOTE_UNSUPPORTED, ctx
                )

            if not units:
                return await self._finish(aggregator, ctx)

            probed = await self.probe.probe_many(list(hosts.values()))
            runnable: list[ExecutionUnit] = []
            for unit in units:
                target = probed[unit.id]
                if target.usable:
                    runnable.append(unit)
                else:
                    log.info("Skipping unreachable target", target=unit.id, detail=target.detail)
                    unit.skip(REASON_UNREACHABLE, ErrorTypes.CONNECTIVITY)
                    aggregator.record(unit)

            if mode is DispatchMode.SYNC:
                await self._run_sequential(runnable, descriptor, hosts, params, ctx, aggregator, deadline)
            else:
                await self._run_concurrent(runnable, descriptor, hosts, params, ctx, aggregator, deadline)

            return await self._finish(aggregator, ctx)

    def _unit_context(self, host: HostConfig, ctx: DispatcherContext) -> ExecutionContext:
        return ExecutionContext(elevated=ctx.elevated, host=host, dry_run=ctx.dry_run)

    async def _run_sequential(
        self,
        units: list[ExecutionUnit],
        descriptor: ActionDescriptor,
        hosts: dict[str, HostConfig],
        params: dict[str, Any],
        ctx: DispatcherContext,
        aggregator: ExecutionAggregator,
        deadline: float | None,
    ) -> None:
        loop = asyncio.get_running_loop()
        for index, unit in enumerate(units):
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                expire_unit(unit)
                aggregator.record(unit)
                continue
            coro = run_unit(unit, descriptor, self._unit_context(hosts[unit.id], ctx), params, aggregator)
            try:
                await asyncio.wait_for(coro, timeout=remaining)
            except asyncio.TimeoutError:
                logger.warning(f"Action {descriptor.id} timed out on {unit.id}")
                expire_unit(unit)
                aggregator.record(unit)
            except asyncio.CancelledError:
                logger.warning(f"Dispatch of {descriptor.id} cancelled at {unit.id}")
                for left in units[index:]:
                    cancel_unit(left)
                    aggregator.record(left)
                raise

    async def _run_concurrent(
        self,
        units: list[ExecutionUnit],
        descriptor: ActionDescriptor,
        hosts: dict[str, HostConfig],
        params: dict[str, Any],
        ctx: DispatcherContext,
        aggregator: ExecutionAggregator,
        deadline: float | None,
    ) -> None:
        if not units:
            return

        semaphore = asyncio.Semaphore(self.max_parallel)

        async def bounded(unit: ExecutionUnit) -> None:
            async with semaphore:
                await run_unit(unit, descriptor, self._unit_context(hosts[unit.id], ctx), params, aggregator)

        tasks = {asyncio.create_task(bounded(unit)): unit for unit in units}
        remaining = None
        if deadline is not None:
            remaining = max(0.0, deadline - asyncio.get_running_loop().time())

        try:
            _, pending = await asyncio.wait(tasks.keys(), timeout=remaining)
        except asyncio.CancelledError:
            # asyncio.wait does not cancel the tasks it waits on
            logger.warning(f"Dispatch of {descriptor.id} cancelled with {len(tasks)} unit(s) in flight")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            for unit in tasks.values():
                if not unit.is_terminal:
                    cancel_unit(unit)
                aggregator.record(unit)
            raise
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Deadline reached with {len(pending)} unit(s) unfinished")
            await asyncio.gather(*pending, return_exceptions=True)

        for task, unit in tasks.items():
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Unit {unit.id} crashed: {task.exception()}")
                if unit.status is UnitStatus.RUNNING:
                    unit.fail(str(task.exception()), ErrorTypes.EXECUTION)
            if not unit.is_terminal:
                expire_unit(unit)
            aggregator.record(unit)

    async def _abort(
        self,
        aggregator: ExecutionAggregator,
        units: list[ExecutionUnit],
        reason: str,
        error_type: str,
        ctx: DispatcherContext,
    ) -> DispatchSummary:
        """Skip every unit without probing and finish the call."""
        for unit in units:
            unit.skip(reason, error_type)
            aggregator.record(unit)
        aggregator.set_error(reason, error_type)
        return await self._finish(aggregator, ctx)

    async def _finish(self, aggregator: ExecutionAggregator, ctx: DispatcherContext) -> DispatchSummary:
        summary = aggregator.summarize()
        ctx.remember(summary)
        logger.info(
            f"Dispatch {summary.action_id}: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        if self.notifier is not None:
            severity = Severity.INFO if summary.is_success() and not summary.error else Severity.WARNING
            message = (
                f"{summary.succeeded}/{summary.total} succeeded, "
                f"{summary.failed} failed, {summary.skipped} skipped"
            )
            if summary.error:
                message += f" ({summary.error})"
            await self.notifier.notify(f"Dispatch {summary.action_id} complete", message, severity)
        return summary
