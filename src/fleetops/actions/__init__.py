"""Built-in FleetOps actions.

Actions are plain functions ``(ctx, params) -> ActionResult``. This module
describes them for the catalog:

    from fleetops.catalog import ActionCatalog
    from fleetops.actions import BUILTIN_ACTIONS

    catalog = ActionCatalog(BUILTIN_ACTIONS)
"""

from ..types import ActionDescriptor
from .command import command_action, run_command, run_local
from .diagnostics import disk_usage_action, ping_action, system_report_action
from .maintenance import (
    clear_temp_action,
    flush_dns_action,
    purge_stale_files,
    restart_service_action,
)

BUILTIN_ACTIONS: tuple[ActionDescriptor, ...] = (
    ActionDescriptor(
        id="ping",
        name="Ping",
        category="diagnostics",
        invoke=ping_action,
        supports_remote=True,
        description="Check that the host answers and can run actions",
    ),
    ActionDescriptor(
        id="system_report",
        name="System report",
        category="diagnostics",
        invoke=system_report_action,
        supports_remote=True,
        description="Collect OS, CPU, memory and disk facts",
    ),
    ActionDescriptor(
        id="disk_usage",
        name="Disk usage",
        category="diagnostics",
        invoke=disk_usage_action,
        supports_remote=True,
        description="Report disk usage of a path and flag a full disk",
    ),
    ActionDescriptor(
        id="command",
        name="Run command",
        category="maintenance",
        invoke=command_action,
        supports_remote=True,
        description="Run a shell command; non-zero exit is a failure",
    ),
    ActionDescriptor(
        id="clear_temp",
        name="Clear temp files",
        category="maintenance",
        invoke=clear_temp_action,
        description="Remove stale files from a temp directory",
    ),
    ActionDescriptor(
        id="restart_service",
        name="Restart service",
        category="maintenance",
        invoke=restart_service_action,
        requires_elevation=True,
        supports_remote=True,
        description="Restart a systemd unit",
    ),
    ActionDescriptor(
        id="flush_dns",
        name="Flush DNS cache",
        category="network",
        invoke=flush_dns_action,
        requires_elevation=True,
        description="Flush the local resolver cache",
    ),
)

__all__ = [
    "BUILTIN_ACTIONS",
    "clear_temp_action",
    "command_action",
    "disk_usage_action",
    "flush_dns_action",
    "ping_action",
    "purge_stale_files",
    "restart_service_action",
    "run_command",
    "run_local",
    "system_report_action",
]
