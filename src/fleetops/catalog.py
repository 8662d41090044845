"""Action catalog for FleetOps.

The catalog is a closed registry populated once at startup. It maps an
action id to its ActionDescriptor; an unknown id is a single error path
(CatalogError) rather than a fall-through default.

Usage:
    from fleetops.catalog import default_catalog

    catalog = default_catalog()
    descriptor = catalog.lookup("disk_usage")
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .exceptions import CatalogError
from .types import ActionDescriptor


class ActionCatalog:
    """Immutable mapping of action ids to descriptors.

    Example:
        >>> catalog = ActionCatalog([ActionDescriptor("ping", "Ping", "diagnostics", invoke)])
        >>> catalog.lookup("ping").name
        'Ping'
        >>> "reboot" in catalog
        False
    """

    def __init__(self, descriptors: Iterable[ActionDescriptor]) -> None:
        table: dict[str, ActionDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in table:
                raise ValueError(f"Duplicate action id: {descriptor.id}")
            table[descriptor.id] = descriptor
        self._table: Mapping[str, ActionDescriptor] = MappingProxyType(table)

    def lookup(self, action_id: str) -> ActionDescriptor:
        """Get a descriptor by id.

        Raises:
            CatalogError: If the id is not registered
        """
        try:
            return self._table[action_id]
        except KeyError:
            raise CatalogError(action_id) from None

    def get(self, action_id: str) -> ActionDescriptor | None:
        """Get a descriptor by id, or None."""
        return self._table.get(action_id)

    def list_actions(self) -> list[ActionDescriptor]:
        """All descriptors sorted by category, then id."""
        return sorted(self._table.values(), key=lambda d: (d.category, d.id))

    def ids(self) -> list[str]:
        return list(self._table.keys())

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._table

    def __len__(self) -> int:
        return len(self._table)


def default_catalog() -> ActionCatalog:
    """Build the catalog of built-in actions."""
    from .actions import BUILTIN_ACTIONS

    return ActionCatalog(BUILTIN_ACTIONS)
