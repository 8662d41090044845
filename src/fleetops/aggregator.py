"""Outcome aggregation for FleetOps.

The aggregator is shared bookkeeping for the dispatcher (one unit per host)
and the batch runner (one unit per step). It does no I/O.
"""

import threading

from .types import DispatchSummary, ExecutionUnit, UnitStatus, utcnow


class ExecutionAggregator:
    """Accumulates execution units into a DispatchSummary.

    Recording is safe under concurrent calls and idempotent per unit id:
    recording the same id again replaces the earlier entry.

    Example:
        >>> aggregator = ExecutionAggregator("ping")
        >>> aggregator.record(unit_a)
        >>> aggregator.record(unit_b)
        >>> summary = aggregator.summarize()
        >>> summary.total == summary.succeeded + summary.failed + summary.skipped
        True
    """

    def __init__(self, action_id: str) -> None:
        self.action_id = action_id
        self.started_at = utcnow()
        self._units: dict[str, ExecutionUnit] = {}
        self._lock = threading.Lock()
        self.error: str | None = None
        self.error_type: str | None = None

    def record(self, unit: ExecutionUnit) -> None:
        """Record (or re-record) a unit."""
        with self._lock:
            self._units[unit.id] = unit

    def set_error(self, error: str, error_type: str) -> None:
        """Record a call-level error on the summary."""
        with self._lock:
            self.error = error
            self.error_type = error_type

    def units(self) -> list[ExecutionUnit]:
        with self._lock:
            return list(self._units.values())

    def pending(self) -> list[ExecutionUnit]:
        """Recorded units that have not reached a terminal status."""
        return [unit for unit in self.units() if not unit.is_terminal]

    def summarize(self, allow_partial: bool = False) -> DispatchSummary:
        """Build the summary from the recorded units.

        Only terminal units are counted, so the summary invariant holds even
        for a partial snapshot.

        Args:
            allow_partial: Permit non-terminal units (polling snapshots)

        Raises:
            ValueError: If a unit is not terminal and allow_partial is False
        """
        units = self.units()
        counts = {UnitStatus.SUCCEEDED: 0, UnitStatus.FAILED: 0, UnitStatus.SKIPPED: 0}
        for unit in units:
            if unit.status in counts:
                counts[unit.status] += 1
            elif not allow_partial:
                raise ValueError(f"Unit {unit.id} is still {unit.status.value}")

        succeeded = counts[UnitStatus.SUCCEEDED]
        failed = counts[UnitStatus.FAILED]
        skipped = counts[UnitStatus.SKIPPED]
        complete = all(unit.is_terminal for unit in units)
        return DispatchSummary(
            action_id=self.action_id,
            total=succeeded + failed + skipped,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            units=units,
            error=self.error,
            error_type=self.error_type,
            started_at=self.started_at,
            ended_at=utcnow() if complete else None,
        )
