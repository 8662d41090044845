"""FleetOps - health monitoring, remediation and fleet-wide actions.

A remediation loop keeps the local machine healthy, and a dispatcher runs
catalog actions against many hosts at once.

Quick Start:
    from fleetops import RemoteDispatcher, default_catalog

    dispatcher = RemoteDispatcher(default_catalog())
    summary = await dispatcher.dispatch("ping", ["ws-01", "ws-02"])
    print(summary.succeeded, summary.failed, summary.skipped)
"""

__version__ = "0.1.0"

from fleetops.catalog import ActionCatalog, default_catalog
from fleetops.dispatcher import DispatcherContext, DispatchMode, RemoteDispatcher
from fleetops.health import HealthCheckRegistry
from fleetops.loop import RemediationLoop
from fleetops.notify import NotificationRouter

__all__ = [
    "__version__",
    "ActionCatalog",
    "default_catalog",
    "DispatcherContext",
    "DispatchMode",
    "RemoteDispatcher",
    "HealthCheckRegistry",
    "RemediationLoop",
    "NotificationRouter",
]
