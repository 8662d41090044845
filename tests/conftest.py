"""Shared fixtures and fakes for FleetOps tests."""

import logging

import pytest

from fleetops.catalog import ActionCatalog
from fleetops.connectivity import ConnectivityProbe
from fleetops.notify import NotificationChannel, NotificationRouter
from fleetops.types import ActionDescriptor, ActionResult, HostConfig, Severity


class FakeTransport:
    """Transport with per-host answers that records every call."""

    def __init__(self, down=(), no_transport=(), raises=()):
        self.down = set(down)
        self.no_transport = set(no_transport)
        self.raises = set(raises)
        self.pinged: list[str] = []
        self.tested: list[str] = []

    async def ping(self, host: HostConfig, timeout: float) -> bool:
        self.pinged.append(host.name)
        if host.name in self.raises:
            raise RuntimeError("transport exploded")
        return host.name not in self.down

    async def test_transport(self, host: HostConfig, timeout: float) -> bool:
        self.tested.append(host.name)
        return host.name not in self.no_transport


class RecordingChannel(NotificationChannel):
    """Channel that keeps every notification it receives."""

    name = "recording"

    def __init__(self):
        self.sent: list[tuple[str, str, Severity]] = []

    async def notify(self, title: str, message: str, severity: Severity) -> None:
        self.sent.append((title, message, severity))


class FailingChannel(NotificationChannel):
    """Channel whose delivery always fails."""

    name = "failing"

    async def notify(self, title: str, message: str, severity: Severity) -> None:
        raise ConnectionError("webhook down")


class RecordingAction:
    """Action callable that records the targets it ran against."""

    def __init__(self, fail_on=(), raise_on=()):
        self.fail_on = set(fail_on)
        self.raise_on = set(raise_on)
        self.calls: list[str] = []

    def __call__(self, ctx, params):
        name = ctx.host.name if ctx.host else "local"
        self.calls.append(name)
        if name in self.raise_on:
            raise RuntimeError(f"boom on {name}")
        if name in self.fail_on:
            return ActionResult.error_result(f"failed on {name}")
        return ActionResult.success_result({"host": name, **params})


def make_descriptor(action_id="ping", invoke=None, **kwargs) -> ActionDescriptor:
    kwargs.setdefault("supports_remote", True)
    return ActionDescriptor(
        id=action_id,
        name=action_id.title(),
        category=kwargs.pop("category", "diagnostics"),
        invoke=invoke or RecordingAction(),
        **kwargs,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def probe(transport):
    return ConnectivityProbe(transport, timeout=1)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def router(channel):
    return NotificationRouter([channel])


@pytest.fixture
def action():
    return RecordingAction()


@pytest.fixture
def catalog(action):
    return ActionCatalog([make_descriptor("ping", action)])


@pytest.fixture(autouse=True)
def restore_root_logger():
    """configure_logging replaces root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
