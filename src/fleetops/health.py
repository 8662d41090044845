"""Health check registry for FleetOps."""

from collections.abc import Iterator

from .types import HealthCheck


class HealthCheckRegistry:
    """Ordered collection of health checks.

    Checks are registered at startup. Registration order is execution order
    within a tick, which keeps tick logs reproducible.

    Example:
        >>> registry = HealthCheckRegistry()
        >>> registry.register(HealthCheck("disk_space", probe, remediate))
        >>> registry.freeze()
        >>> [c.name for c in registry.all()]
        ['disk_space']
    """

    def __init__(self, checks: list[HealthCheck] | None = None) -> None:
        self._checks: list[HealthCheck] = []
        self._frozen = False
        for check in checks or []:
            self.register(check)

    def register(self, check: HealthCheck) -> None:
        """Add a check.

        Raises:
            RuntimeError: If the registry has been frozen
            ValueError: If a check with the same name exists
        """
        if self._frozen:
            raise RuntimeError(f"Cannot register {check.name}: registry is frozen")
        if any(existing.name == check.name for existing in self._checks):
            raise ValueError(f"Duplicate health check: {check.name}")
        self._checks.append(check)

    def freeze(self) -> None:
        """Close registration; the loop freezes the registry when it starts."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def all(self) -> tuple[HealthCheck, ...]:
        return tuple(self._checks)

    def get(self, name: str) -> HealthCheck | None:
        for check in self._checks:
            if check.name == name:
                return check
        return None

    def __len__(self) -> int:
        return len(self._checks)

    def __iter__(self) -> Iterator[HealthCheck]:
        return iter(tuple(self._checks))
