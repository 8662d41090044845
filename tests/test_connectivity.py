"""Tests for connectivity probing."""

import asyncio

import pytest

from fleetops.connectivity import ConnectivityProbe, TcpSshTransport
from fleetops.types import HostConfig

from conftest import FakeTransport


def _host(name):
    return HostConfig(name=name, address=f"{name}.example.com")


class TestConnectivityProbe:
    """Tests for ConnectivityProbe."""

    @pytest.mark.asyncio
    async def test_reachable_host(self):
        """Test a host answering both checks is usable."""
        probe = ConnectivityProbe(FakeTransport())
        target = await probe.probe(_host("a"))
        assert target.reachable
        assert target.transport_available
        assert target.usable
        assert target.last_probed_at is not None

    @pytest.mark.asyncio
    async def test_unreachable_skips_transport_check(self):
        """Test transport is not tested when ping fails."""
        transport = FakeTransport(down={"a"})
        target = await ConnectivityProbe(transport).probe(_host("a"))
        assert not target.reachable
        assert not target.transport_available
        assert transport.tested == []

    @pytest.mark.asyncio
    async def test_transport_unavailable(self):
        """Test a reachable host without transport is not usable."""
        transport = FakeTransport(no_transport={"a"})
        target = await ConnectivityProbe(transport).probe(_host("a"))
        assert target.reachable
        assert not target.transport_available
        assert not target.usable
        assert "transport" in target.detail

    @pytest.mark.asyncio
    async def test_transport_error_never_raises(self):
        """Test a raising transport is recorded as unreachable."""
        transport = FakeTransport(raises={"a"})
        target = await ConnectivityProbe(transport).probe(_host("a"))
        assert not target.reachable
        assert not target.transport_available

    @pytest.mark.asyncio
    async def test_local_host_short_circuits(self):
        """Test local hosts are usable without touching the transport."""
        transport = FakeTransport()
        host = HostConfig(name="localhost", address="127.0.0.1", connection="local")
        target = await ConnectivityProbe(transport).probe(host)
        assert target.usable
        assert transport.pinged == []

    @pytest.mark.asyncio
    async def test_probe_many(self):
        """Test probing several hosts keyed by name."""
        transport = FakeTransport(down={"b"})
        targets = await ConnectivityProbe(transport).probe_many([_host("a"), _host("b")])
        assert set(targets) == {"a", "b"}
        assert targets["a"].usable
        assert not targets["b"].reachable


class TestTcpSshTransport:
    """Tests for the TCP liveness check."""

    @pytest.mark.asyncio
    async def test_ping_open_port(self):
        """Test ping succeeds against a listening port."""
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            host = HostConfig(name="srv", address="127.0.0.1", port=port)
            assert await TcpSshTransport().ping(host, timeout=2)
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_ping_closed_port(self):
        """Test ping fails against a closed port."""
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        host = HostConfig(name="srv", address="127.0.0.1", port=port)
        assert not await TcpSshTransport().ping(host, timeout=2)
