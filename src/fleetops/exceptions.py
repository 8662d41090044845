"""FleetOps exceptions and error classification.

Per-check and per-target failures are converted into typed outcomes at the
boundary where they occur. These exceptions exist for the few cases that
abort a call (unknown action, invalid configuration) and for carrying an
error classification from the point of failure to the unit that records it.
"""

from typing import Any


class ErrorTypes:
    """Error classifications recorded on execution units and summaries."""

    CATALOG = "catalog"
    ELEVATION = "elevation"
    REMOTE_UNSUPPORTED = "remote_unsupported"
    CONNECTIVITY = "connectivity"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    ABORTED = "aborted"
    PROBE = "probe"
    REMEDIATION = "remediation"
    UNKNOWN = "unknown"


class FleetOpsError(Exception):
    """Base class for FleetOps errors.

    Attributes:
        msg: Human-readable error message
        error_type: Classification from ErrorTypes
        details: Additional structured fields

    Example:
        raise FleetOpsError("Something broke", error_type=ErrorTypes.UNKNOWN, host="ws-01")
    """

    error_type = ErrorTypes.UNKNOWN

    def __init__(self, msg: str, error_type: str | None = None, **details: Any) -> None:
        super().__init__(msg)
        self.msg = msg
        if error_type is not None:
            self.error_type = error_type
        self.details: dict[str, Any] = details

    def __str__(self) -> str:
        return self.msg

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"error": self.msg, "error_type": self.error_type, **self.details}


class CatalogError(FleetOpsError):
    """Raised when an action id is not in the catalog."""

    error_type = ErrorTypes.CATALOG

    def __init__(self, action_id: str) -> None:
        super().__init__(f"Unknown action '{action_id}'", action_id=action_id)
        self.action_id = action_id


class ProbeError(FleetOpsError):
    """A health check's probe function faulted."""

    error_type = ErrorTypes.PROBE


class RemediationError(FleetOpsError):
    """A remediation was attempted and failed."""

    error_type = ErrorTypes.REMEDIATION


class ConnectivityError(FleetOpsError):
    """A target is unreachable or its transport is unavailable."""

    error_type = ErrorTypes.CONNECTIVITY


class ExecutionError(FleetOpsError):
    """An action ran against a reachable target and failed."""

    error_type = ErrorTypes.EXECUTION


class LoopError(FleetOpsError):
    """An unexpected fault in the remediation loop body itself."""


class ConfigError(FleetOpsError):
    """Invalid configuration file or value."""


class InvalidTransitionError(FleetOpsError):
    """An execution unit was moved through an illegal status transition."""
