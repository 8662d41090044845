"""SSH transport for FleetOps, built on asyncssh.

Remote actions run one command per session: ``run_on_host`` opens a
connection to the inventory host, runs the command and closes it.
``can_connect`` is the transport check used by the connectivity probe.

Host variables read from the inventory:
    ssh_private_key_file: Private key to authenticate with
    ssh_password: Password to authenticate with
    known_hosts: known_hosts file to verify against
    host_key_checking: False disables host key verification
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any

import asyncssh

from .exceptions import ConnectivityError
from .types import HostConfig

logger = logging.getLogger(__name__)

# asyncssh treats an omitted known_hosts option as "use ~/.ssh/known_hosts"
DEFAULT_KNOWN_HOSTS = ()


@dataclass(frozen=True)
class SSHSettings:
    """How to reach one host over SSH.

    Attributes:
        address: Hostname or IP address
        port: SSH port
        username: Login user
        password: Password, if not using keys
        client_keys: Private key files
        known_hosts: known_hosts path, None to skip verification, or
            DEFAULT_KNOWN_HOSTS for asyncssh's default
        connect_timeout: Seconds allowed for the handshake
    """

    address: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    client_keys: tuple[str, ...] = ()
    known_hosts: Any = DEFAULT_KNOWN_HOSTS
    connect_timeout: float = 30.0

    @classmethod
    def from_host(cls, host: HostConfig, connect_timeout: float = 30.0) -> "SSHSettings":
        key_file = host.get_var("ssh_private_key_file")
        if host.get_var("host_key_checking") is False:
            known_hosts = None
        else:
            known_hosts = host.get_var("known_hosts", DEFAULT_KNOWN_HOSTS)
        return cls(
            address=host.address,
            port=host.port,
            username=host.user,
            password=host.get_var("ssh_password"),
            client_keys=(os.path.expanduser(key_file),) if key_file else (),
            known_hosts=known_hosts,
            connect_timeout=connect_timeout,
        )

    def connect_options(self) -> dict[str, Any]:
        """Keyword arguments for ``asyncssh.connect``."""
        options: dict[str, Any] = {
            "host": self.address,
            "port": self.port,
            "connect_timeout": self.connect_timeout,
        }
        optional = {
            "username": self.username,
            "password": self.password,
            "client_keys": list(self.client_keys),
        }
        options.update({key: value for key, value in optional.items() if value})
        if self.known_hosts != DEFAULT_KNOWN_HOSTS:
            options["known_hosts"] = self.known_hosts
        return options


class SSHSession:
    """One SSH connection, open for the duration of an ``async with`` block.

    Example:
        async with SSHSession(host) as session:
            stdout, stderr, rc = await session.run("uptime")
    """

    def __init__(self, host: HostConfig, connect_timeout: float = 30.0) -> None:
        self.host = host
        self.settings = SSHSettings.from_host(host, connect_timeout)
        self._conn: asyncssh.SSHClientConnection | None = None

    async def __aenter__(self) -> "SSHSession":
        logger.debug(f"Connecting to {self.host.name} ({self.settings.address}:{self.settings.port})")
        self._conn = await asyncssh.connect(**self.settings.connect_options())
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._conn is not None:
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None

    async def run(self, command: str, timeout: float = 300) -> tuple[str, str, int]:
        """Run ``command``; a timeout returns rc -1 instead of raising."""
        if self._conn is None:
            raise RuntimeError("SSHSession is not open")
        logger.debug(f"Running on {self.host.name}: {command[:100]}")
        try:
            result = await asyncio.wait_for(self._conn.run(command, check=False), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Command on {self.host.name} timed out after {timeout}s")
            return "", f"Command timed out after {timeout}s", -1
        # No exit status (killed by a signal or dropped channel) is not success
        rc = -1 if result.returncode is None else result.returncode
        return str(result.stdout or ""), str(result.stderr or ""), rc


async def can_connect(host: HostConfig, timeout: float) -> bool:
    """Whether an SSH session to ``host`` opens within ``timeout`` seconds."""
    options = SSHSettings.from_host(host, connect_timeout=timeout).connect_options()
    try:
        conn = await asyncio.wait_for(asyncssh.connect(**options), timeout=timeout)
    except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
        logger.debug(f"SSH transport check failed for {host.name}: {e}")
        return False
    conn.close()
    await conn.wait_closed()
    return True


async def run_on_host(host: HostConfig, command: str, timeout: float = 300) -> tuple[str, str, int]:
    """Open a session to ``host``, run one command, close it.

    Raises:
        ConnectivityError: If the session cannot be opened or drops
    """
    try:
        async with SSHSession(host) as session:
            return await session.run(command, timeout=timeout)
    except (OSError, asyncssh.Error) as e:
        raise ConnectivityError(f"SSH to {host.name} failed: {e}", host=host.name) from e
