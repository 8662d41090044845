"""Connectivity probing for FleetOps.

Before an action runs against a host, the dispatcher asks two questions:
is the host alive, and does its remote-execution endpoint answer. The
second question is only asked when the first one is answered yes.

Probing never raises. Every failure, including a misbehaving transport,
is recorded as False on the returned Target.
"""

import asyncio
import logging
from typing import Protocol

from .ssh import can_connect
from .types import HostConfig, Target, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0


class HostTransport(Protocol):
    """Reachability checks consumed by the probe."""

    async def ping(self, host: HostConfig, timeout: float) -> bool:
        """Lightweight liveness check."""
        ...

    async def test_transport(self, host: HostConfig, timeout: float) -> bool:
        """Check that the remote-execution endpoint responds."""
        ...


class TcpSshTransport:
    """Liveness by TCP connect, transport availability by SSH handshake.

    The liveness port defaults to the host's SSH port; set the host var
    ``ping_port`` to check another port.
    """

    async def ping(self, host: HostConfig, timeout: float) -> bool:
        port = int(host.get_var("ping_port", host.port))
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host.address, port), timeout=timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Liveness check failed for {host.name} ({host.address}:{port}): {e}")
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def test_transport(self, host: HostConfig, timeout: float) -> bool:
        return await can_connect(host, timeout)


class ConnectivityProbe:
    """Tests reachability of hosts through a HostTransport.

    Attributes:
        transport: Transport performing the actual checks
        timeout: Per-check timeout in seconds

    Example:
        >>> probe = ConnectivityProbe(TcpSshTransport(), timeout=3)
        >>> target = await probe.probe(HostConfig(name="ws-01", address="10.0.4.1"))
        >>> target.reachable, target.transport_available
        (True, True)
    """

    def __init__(
        self,
        transport: HostTransport | None = None,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        self.transport = transport or TcpSshTransport()
        self.timeout = timeout

    async def probe(self, host: HostConfig, timeout: float | None = None) -> Target:
        """Probe one host. Never raises."""
        timeout = self.timeout if timeout is None else timeout
        target = Target(host_name=host.name, last_probed_at=utcnow())

        if host.is_local:
            target.reachable = True
            target.transport_available = True
            target.detail = "local"
            return target

        try:
            target.reachable = bool(await self.transport.ping(host, timeout))
        except Exception as e:
            logger.warning(f"Liveness check raised for {host.name}: {e}")
            target.reachable = False

        if not target.reachable:
            target.detail = "host did not answer liveness check"
            return target

        try:
            target.transport_available = bool(await self.transport.test_transport(host, timeout))
        except Exception as e:
            logger.warning(f"Transport check raised for {host.name}: {e}")
            target.transport_available = False

        target.detail = "ok" if target.transport_available else "remote transport unavailable"
        return target

    async def probe_many(self, hosts: list[HostConfig]) -> dict[str, Target]:
        """Probe hosts concurrently, keyed by host name."""
        targets = await asyncio.gather(*(self.probe(host) for host in hosts))
        return {target.host_name: target for target in targets}
