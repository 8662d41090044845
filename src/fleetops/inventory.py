"""Fleet inventory for FleetOps.

Maps the host names an operator types on the command line to connection
details. An inventory file is optional: a name that is not in the
inventory is treated as an SSH host at that same address, and the local
machine's names always resolve to a local host.
"""

import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .types import HostConfig

_LOCAL_ALIASES = {"localhost", "127.0.0.1", "::1", "."}


def is_local_name(name: str) -> bool:
    """Check if a target name refers to this machine."""
    lowered = name.strip().lower()
    if lowered in _LOCAL_ALIASES:
        return True
    hostname = socket.gethostname().lower()
    return lowered in (hostname, hostname.split(".")[0])


def local_host(name: str = "localhost") -> HostConfig:
    """HostConfig for in-process execution on this machine."""
    return HostConfig(name=name, address="127.0.0.1", connection="local")


@dataclass
class HostGroup:
    """A group of hosts with shared variables.

    Attributes:
        name: Group name (e.g., "workstations", "print_servers")
        hosts: Dictionary mapping host names to HostConfig objects
        vars: Group-level variables inherited by all hosts
    """

    name: str
    hosts: dict[str, HostConfig] = field(default_factory=dict)
    vars: dict[str, Any] = field(default_factory=dict)

    def add_host(self, host: HostConfig) -> None:
        self.hosts[host.name] = host


@dataclass
class Inventory:
    """Hosts known to FleetOps, organized in groups.

    Example:
        >>> inventory = Inventory()
        >>> group = HostGroup(name="workstations")
        >>> group.add_host(HostConfig(name="ws-01", address="10.0.4.1"))
        >>> inventory.add_group(group)
        >>> inventory.resolve("ws-01").address
        '10.0.4.1'
    """

    groups: dict[str, HostGroup] = field(default_factory=dict)

    def add_group(self, group: HostGroup) -> None:
        self.groups[group.name] = group

    def get_all_hosts(self) -> dict[str, HostConfig]:
        """All unique hosts across groups, first group wins."""
        hosts: dict[str, HostConfig] = {}
        for group in self.groups.values():
            for host_name, host in group.hosts.items():
                hosts.setdefault(host_name, host)
        return hosts

    def resolve(self, name: str) -> HostConfig:
        """Connection details for a target name.

        Inventory entries take precedence; local names become local hosts;
        anything else is an SSH host at the given address.
        """
        host = self.get_all_hosts().get(name)
        if host is not None:
            return host
        if is_local_name(name):
            return local_host(name)
        return HostConfig(name=name, address=name)

    def expand_targets(self, targets: list[str]) -> list[str]:
        """Expand ``@group`` entries into host names, keeping order and dropping duplicates."""
        names: list[str] = []
        for entry in targets:
            entry = entry.strip()
            if not entry:
                continue
            if entry.startswith("@"):
                group = self.groups.get(entry[1:])
                if group is None:
                    raise ConfigError(f"Unknown inventory group: {entry[1:]}")
                candidates = list(group.hosts.keys())
            else:
                candidates = [entry]
            for name in candidates:
                if name not in names:
                    names.append(name)
        return names


def _host_from_vars(host_name: str, host_data: dict[str, Any], group_vars: dict[str, Any]) -> HostConfig:
    """Create a HostConfig from a host variables dictionary."""
    merged = {**group_vars, **host_data}
    standard_fields = {"address", "port", "user", "connection"}

    kwargs: dict[str, Any] = {
        "name": host_name,
        "address": merged.get("address", host_name),
        "port": int(merged.get("port", 22)),
        "connection": merged.get("connection", "local" if is_local_name(host_name) else "ssh"),
        "vars": {k: v for k, v in merged.items() if k not in standard_fields},
    }
    if merged.get("user"):
        kwargs["user"] = merged["user"]
    return HostConfig(**kwargs)


def load_inventory(inventory_file: str | Path) -> Inventory:
    """Load an inventory from a YAML file.

    Expected structure:

        workstations:
          vars:
            user: ops
          hosts:
            ws-01:
              address: 10.0.4.1
            ws-02:
              address: 10.0.4.2
              port: 2222

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    path = Path(inventory_file)
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load inventory {path}: {e}") from e

    inventory = Inventory()
    if not data:
        return inventory
    if not isinstance(data, dict):
        raise ConfigError(f"Inventory {path} must be a mapping of groups")

    for group_name, group_data in data.items():
        if not isinstance(group_data, dict):
            continue
        group = HostGroup(name=group_name)
        if isinstance(group_data.get("vars"), dict):
            group.vars = group_data["vars"]
        hosts = group_data.get("hosts") or {}
        if isinstance(hosts, list):
            hosts = {name: {} for name in hosts}
        for host_name, host_data in hosts.items():
            if not isinstance(host_data, dict):
                host_data = {}
            group.add_host(_host_from_vars(host_name, host_data, group.vars))
        inventory.add_group(group)

    return inventory
