"""Type definitions for FleetOps.

This module defines the core data types shared by the dispatcher, the batch
runner and the remediation loop. Every record that crosses a component
boundary is a dataclass; nothing is passed around as a bare dictionary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from getpass import getuser
from typing import Any, Awaitable, Callable, Union

from .exceptions import InvalidTransitionError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class HostConfig:
    """Connection details for a single fleet host.

    Attributes:
        name: Name the operator uses for the host (e.g., "ws-042")
        address: Hostname or IP address to connect to
        port: SSH port (default: 22)
        user: SSH username (default: current user)
        connection: "ssh" for remote hosts, "local" for this machine
        vars: Additional host variables (ssh key, password, ping port)

    Example:
        >>> host = HostConfig(name="ws-042", address="10.0.4.42")
        >>> host.is_local
        False
        >>> HostConfig(name="localhost", address="127.0.0.1", connection="local").is_local
        True
    """

    name: str
    address: str
    port: int = 22
    user: str = field(default_factory=getuser)
    connection: str = "ssh"
    vars: dict[str, Any] = field(default_factory=dict)

    @property
    def is_local(self) -> bool:
        """Check if this host runs actions in-process (no SSH)."""
        return self.connection == "local"

    @property
    def is_remote(self) -> bool:
        """Check if this host is reached over SSH."""
        return not self.is_local

    def get_var(self, key: str, default: Any = None) -> Any:
        """Get a host variable by key with optional default."""
        return self.vars.get(key, default)


@dataclass
class ExecutionContext:
    """What an action sees when it is invoked.

    Attributes:
        elevated: Whether the caller runs with administrative privileges
        host: Host the action runs against (None for local batch steps)
        dry_run: If True, actions must not change anything
        extra: Free-form values for collaborators (inventory vars, etc.)
    """

    elevated: bool = False
    host: HostConfig | None = None
    dry_run: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_local(self) -> bool:
        """Check if the action runs on this machine."""
        return self.host is None or self.host.is_local


@dataclass
class ActionResult:
    """Result returned by an action implementation.

    Attributes:
        ok: Whether the action succeeded
        output: Action output data
        error: Error message if the action failed

    Example:
        >>> ActionResult.success_result({"ping": "pong"}).ok
        True
        >>> ActionResult.error_result("disk full").error
        'disk full'
    """

    ok: bool
    output: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def success_result(cls, output: dict[str, Any] | None = None) -> "ActionResult":
        """Create a successful result."""
        return cls(ok=True, output=output or {})

    @classmethod
    def error_result(cls, error: str, output: dict[str, Any] | None = None) -> "ActionResult":
        """Create a failed result."""
        return cls(ok=False, output=output or {}, error=error)


ActionFunc = Callable[
    [ExecutionContext, dict[str, Any]],
    Union[ActionResult, Awaitable[ActionResult]],
]


@dataclass(frozen=True)
class ActionDescriptor:
    """A catalog entry: display metadata plus the callable that does the work.

    Attributes:
        id: Catalog key (e.g., "disk_usage")
        name: Human-readable name
        category: Menu category (e.g., "diagnostics", "maintenance")
        invoke: Callable ``(ctx, params) -> ActionResult``, sync or async
        requires_elevation: Whether administrative privileges are required
        supports_remote: Whether the action can run against remote targets
        description: One-line description for listings
    """

    id: str
    name: str
    category: str
    invoke: ActionFunc
    requires_elevation: bool = False
    supports_remote: bool = False
    description: str = ""


@dataclass
class Target:
    """Reachability of one host, as measured by the connectivity probe.

    ``transport_available`` is never True when ``reachable`` is False.
    """

    host_name: str
    reachable: bool = False
    transport_available: bool = False
    last_probed_at: datetime | None = None
    detail: str = ""

    @property
    def usable(self) -> bool:
        """Check if actions can run against this target."""
        return self.reachable and self.transport_available


class UnitStatus(str, Enum):
    """Lifecycle status of an execution unit."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (UnitStatus.SUCCEEDED, UnitStatus.FAILED, UnitStatus.SKIPPED)


@dataclass
class ExecutionUnit:
    """One host of a dispatch, or one step of a batch.

    Transitions happen exactly once: Pending -> Running -> Succeeded/Failed,
    or Pending -> Skipped when a precondition fails before the unit runs.

    Attributes:
        id: Unit identifier, unique within one summary
        action_id: Catalog id of the action this unit runs
        target: Host name (None for local batch steps)
        status: Current status
        started_at: When the unit started running
        ended_at: When the unit reached a terminal status
        error: Error or skip reason
        error_type: Error classification (see ErrorTypes)
        output: Action output for succeeded/failed units
    """

    id: str
    action_id: str
    target: str | None = None
    status: UnitStatus = UnitStatus.PENDING
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None
    error_type: str | None = None
    output: dict[str, Any] = field(default_factory=dict)

    def _require(self, expected: UnitStatus, new: UnitStatus) -> None:
        if self.status is not expected:
            raise InvalidTransitionError(
                f"Unit {self.id}: cannot move from {self.status.value} to {new.value}"
            )

    def start(self) -> None:
        """Move Pending -> Running."""
        self._require(UnitStatus.PENDING, UnitStatus.RUNNING)
        self.status = UnitStatus.RUNNING
        self.started_at = utcnow()

    def succeed(self, output: dict[str, Any] | None = None) -> None:
        """Move Running -> Succeeded."""
        self._require(UnitStatus.RUNNING, UnitStatus.SUCCEEDED)
        self.status = UnitStatus.SUCCEEDED
        self.output = output or {}
        self.ended_at = utcnow()

    def fail(
        self,
        error: str,
        error_type: str,
        output: dict[str, Any] | None = None,
    ) -> None:
        """Move Running -> Failed."""
        self._require(UnitStatus.RUNNING, UnitStatus.FAILED)
        self.status = UnitStatus.FAILED
        self.error = error
        self.error_type = error_type
        self.output = output or {}
        self.ended_at = utcnow()

    def skip(self, reason: str, error_type: str) -> None:
        """Move Pending -> Skipped."""
        self._require(UnitStatus.PENDING, UnitStatus.SKIPPED)
        self.status = UnitStatus.SKIPPED
        self.error = reason
        self.error_type = error_type
        self.ended_at = utcnow()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration(self) -> float | None:
        """Seconds between start and end, if the unit ran."""
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "id": self.id,
            "action_id": self.action_id,
            "target": self.target,
            "status": self.status.value,
            "started_at": _isoformat(self.started_at),
            "ended_at": _isoformat(self.ended_at),
        }
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        if self.output:
            result["output"] = self.output
        return result


@dataclass
class DispatchSummary:
    """Aggregated outcome of a dispatch or a batch.

    ``total == succeeded + failed + skipped`` always holds.

    Attributes:
        action_id: Action dispatched (or the batch/template name)
        total: Number of terminal units
        succeeded: Units that ran and succeeded
        failed: Units that ran and failed
        skipped: Units never attempted
        units: Units in the order they were created
        error: Call-level error (e.g., unknown action)
        error_type: Classification of the call-level error
        started_at: When the dispatch began
        ended_at: When the summary was finalized
    """

    action_id: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    units: list[ExecutionUnit] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    def is_success(self) -> bool:
        """Check if no unit failed."""
        return self.failed == 0

    def unit_for(self, target: str) -> ExecutionUnit | None:
        """Find the unit for a target host or unit id."""
        for unit in self.units:
            if unit.target == target or unit.id == target:
                return unit
        return None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "action_id": self.action_id,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "started_at": _isoformat(self.started_at),
            "ended_at": _isoformat(self.ended_at),
            "units": [unit.to_dict() for unit in self.units],
        }
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
        return result


class Severity(str, Enum):
    """Notification severity."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.SUCCESS: 1,
    Severity.WARNING: 2,
    Severity.ERROR: 3,
}


@dataclass(frozen=True)
class CheckOutcome:
    """Result of a health probe."""

    healthy: bool
    detail: str = ""


@dataclass(frozen=True)
class RemediationOutcome:
    """Result of a remediation attempt."""

    applied: bool
    detail: str = ""
    error: str | None = None


ProbeFunc = Callable[[ExecutionContext], Union[CheckOutcome, Awaitable[CheckOutcome]]]
RemediateFunc = Callable[
    [ExecutionContext], Union[RemediationOutcome, Awaitable[RemediationOutcome]]
]


@dataclass(frozen=True)
class HealthCheck:
    """A named probe paired with the remediation that fixes it.

    Attributes:
        name: Unique check name (e.g., "disk_space", "service:cron")
        probe: ``(ctx) -> CheckOutcome``, sync or async
        remediate: ``(ctx) -> RemediationOutcome``, sync or async
        description: One-line description for listings
    """

    name: str
    probe: ProbeFunc
    remediate: RemediateFunc
    description: str = ""


class CheckResultStatus(str, Enum):
    """Terminal result of one check within a tick."""

    HEALTHY = "healthy"
    REMEDIATED = "remediated"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckResult:
    """Per-check entry of a tick record."""

    check_name: str
    outcome: CheckOutcome
    status: CheckResultStatus
    remediation: RemediationOutcome | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "check": self.check_name,
            "status": self.status.value,
            "healthy": self.outcome.healthy,
            "detail": self.outcome.detail,
        }
        if self.remediation is not None:
            result["remediation"] = {
                "applied": self.remediation.applied,
                "detail": self.remediation.detail,
            }
            if self.remediation.error:
                result["remediation"]["error"] = self.remediation.error
        return result


@dataclass(frozen=True)
class TickRecord:
    """Immutable summary of one pass over all health checks."""

    tick_at: datetime
    results: tuple[CheckResult, ...]
    actions_applied_this_tick: int = 0

    @property
    def healthy(self) -> bool:
        """Check if every check was healthy without remediation."""
        return all(r.status is CheckResultStatus.HEALTHY for r in self.results)

    def count(self, status: CheckResultStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "tick_at": self.tick_at.isoformat(),
            "actions_applied": self.actions_applied_this_tick,
            "results": [r.to_dict() for r in self.results],
        }
