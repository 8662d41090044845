"""Tests for the SSH transport."""

from types import SimpleNamespace

import pytest

from fleetops import ssh
from fleetops.exceptions import ConnectivityError
from fleetops.ssh import SSHSession, SSHSettings, can_connect, run_on_host
from fleetops.types import HostConfig

HOST = HostConfig(name="ws-01", address="10.0.4.1", user="ops")


class FakeConnection:
    """Minimal stand-in for an asyncssh connection."""

    def __init__(self, stdout="ok\n", stderr="", rc=0):
        self.result = SimpleNamespace(stdout=stdout, stderr=stderr, returncode=rc)
        self.commands = []
        self.closed = False

    async def run(self, command, check=False):
        self.commands.append(command)
        return self.result

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


@pytest.fixture
def fake_connect(monkeypatch):
    """Replace asyncssh.connect; returns the list of option dicts used."""
    conn = FakeConnection(stdout="up 3 days\n")
    calls = []

    async def connect(**options):
        calls.append(options)
        return conn

    monkeypatch.setattr(ssh.asyncssh, "connect", connect)
    return SimpleNamespace(conn=conn, calls=calls)


@pytest.fixture
def refuse_connect(monkeypatch):
    async def refuse(**options):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(ssh.asyncssh, "connect", refuse)


class TestSSHSettings:
    """Tests for SSH connection settings."""

    def test_default_options(self):
        """Test defaults leave known_hosts to asyncssh."""
        options = SSHSettings("ws-01").connect_options()
        assert options == {"host": "ws-01", "port": 22, "connect_timeout": 30.0}

    def test_disable_host_key_checking(self):
        """Test known_hosts=None is passed through."""
        options = SSHSettings("ws-01", known_hosts=None).connect_options()
        assert options["known_hosts"] is None

    def test_from_host(self):
        """Test inventory variables map to connection options."""
        host = HostConfig(
            name="ws-02",
            address="10.0.4.2",
            port=2222,
            user="ops",
            vars={"ssh_private_key_file": "/keys/fleet", "host_key_checking": False},
        )
        options = SSHSettings.from_host(host, connect_timeout=5).connect_options()
        assert options == {
            "host": "10.0.4.2",
            "port": 2222,
            "connect_timeout": 5,
            "username": "ops",
            "client_keys": ["/keys/fleet"],
            "known_hosts": None,
        }


class TestSession:
    """Tests for SSHSession and run_on_host."""

    @pytest.mark.asyncio
    async def test_session_runs_and_closes(self, fake_connect):
        """Test commands share one connection that is closed on exit."""
        async with SSHSession(HOST) as session:
            assert await session.run("uptime") == ("up 3 days\n", "", 0)
            await session.run("true")

        assert len(fake_connect.calls) == 1
        assert fake_connect.conn.commands == ["uptime", "true"]
        assert fake_connect.conn.closed

    @pytest.mark.asyncio
    async def test_run_requires_open_session(self):
        """Test running outside the context manager is an error."""
        with pytest.raises(RuntimeError):
            await SSHSession(HOST).run("uptime")

    @pytest.mark.asyncio
    async def test_run_on_host(self, fake_connect):
        """Test run_on_host returns the command output."""
        stdout, _, rc = await run_on_host(HOST, "uptime")
        assert stdout == "up 3 days\n"
        assert rc == 0
        assert fake_connect.calls[0]["host"] == "10.0.4.1"

    @pytest.mark.asyncio
    async def test_missing_exit_status_is_failure(self, fake_connect):
        """Test a command that ends without an exit status reports rc -1."""
        fake_connect.conn.result.returncode = None
        stdout, _, rc = await run_on_host(HOST, "reboot")
        assert stdout == "up 3 days\n"
        assert rc == -1

    @pytest.mark.asyncio
    async def test_nonzero_exit_status_kept(self, fake_connect):
        """Test a real exit status is passed through unchanged."""
        fake_connect.conn.result.returncode = 3
        _, _, rc = await run_on_host(HOST, "false")
        assert rc == 3

    @pytest.mark.asyncio
    async def test_run_on_host_connect_failure(self, refuse_connect):
        """Test a failed connection raises ConnectivityError."""
        with pytest.raises(ConnectivityError, match="ws-01"):
            await run_on_host(HOST, "uptime")


class TestCanConnect:
    """Tests for the transport check."""

    @pytest.mark.asyncio
    async def test_open(self, fake_connect):
        """Test an opened session counts as available and is closed."""
        assert await can_connect(HOST, timeout=1)
        assert fake_connect.conn.closed

    @pytest.mark.asyncio
    async def test_refused(self, refuse_connect):
        """Test a refused connection is reported as False."""
        assert not await can_connect(HOST, timeout=1)
