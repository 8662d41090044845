"""Built-in FleetOps health checks.

Usage:
    from fleetops.checks import build_registry

    registry = build_registry(config.checks)
"""

from ..config import CheckSettings
from ..health import HealthCheckRegistry
from .system import disk_space_check, dns_check, endpoint_check, service_check


def build_registry(settings: CheckSettings) -> HealthCheckRegistry:
    """Register the built-in checks enabled by ``settings``.

    Order: disk space, services (in configured order), DNS, endpoints.
    """
    registry = HealthCheckRegistry()
    registry.register(
        disk_space_check(
            path=settings.disk_path,
            min_free_percent=settings.min_free_percent,
            temp_dirs=list(settings.temp_dirs),
            max_age_days=settings.temp_max_age_days,
        )
    )
    for service in settings.services:
        registry.register(service_check(service))
    if settings.dns_host:
        registry.register(dns_check(settings.dns_host))
    for url in settings.endpoints:
        registry.register(endpoint_check(url))
    return registry


__all__ = [
    "build_registry",
    "disk_space_check",
    "dns_check",
    "endpoint_check",
    "service_check",
]
