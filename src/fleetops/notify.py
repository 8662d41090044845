"""Notification routing for FleetOps.

Remediations and dispatch completions are reported through pluggable
channels. Notification is fire-and-forget: a channel that fails is logged
and otherwise ignored, so it can never turn a successful remediation or
dispatch into a failure.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx

from .config import NotifySettings
from .types import Severity

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class NotificationChannel(ABC):
    """Base class for notification sinks."""

    name = "channel"

    @abstractmethod
    async def notify(self, title: str, message: str, severity: Severity) -> None:
        """Deliver one notification."""
        pass

    async def close(self) -> None:
        """Release any resources held by the channel."""
        pass


class NullChannel(NotificationChannel):
    """Discards every notification."""

    name = "null"

    async def notify(self, title: str, message: str, severity: Severity) -> None:
        pass


class LogChannel(NotificationChannel):
    """Writes notifications to a logger, severity mapped to log level."""

    name = "log"

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logging.getLogger("fleetops.notifications")

    async def notify(self, title: str, message: str, severity: Severity) -> None:
        self.log.log(_LOG_LEVELS[severity], f"[{severity.value.upper()}] {title}: {message}")


class WebhookChannel(NotificationChannel):
    """Posts notifications as JSON to a webhook URL.

    The payload carries a ``text`` field so chat webhooks that only look at
    ``text`` still render something readable.

    Example:
        >>> channel = WebhookChannel("https://hooks.example.com/T000/B000")
        >>> await channel.notify("Remediated: disk_space", "Purged 42 files", Severity.SUCCESS)
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}
        self._client = client
        self._owns_client = client is None

    def build_payload(self, title: str, message: str, severity: Severity) -> dict[str, Any]:
        return {
            "title": title,
            "message": message,
            "severity": severity.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "text": f"[{severity.value.upper()}] {title}: {message}",
        }

    async def notify(self, title: str, message: str, severity: Severity) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        response = await self._client.post(
            self.url,
            json=self.build_payload(title, message, severity),
            headers=self.headers,
        )
        response.raise_for_status()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class NotificationRouter:
    """Fans a notification out to every configured channel.

    Attributes:
        channels: Channels to deliver to
        min_severity: Notifications below this severity are dropped
        sent: Number of notify() calls that passed the severity filter

    Example:
        >>> router = NotificationRouter([LogChannel()])
        >>> await router.notify("Dispatch complete", "3/3 succeeded", Severity.INFO)
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        min_severity: Severity = Severity.INFO,
    ) -> None:
        self.channels = list(channels or [])
        self.min_severity = min_severity
        self.sent = 0

    async def notify(self, title: str, message: str, severity: Severity = Severity.INFO) -> None:
        """Deliver to all channels. Never raises."""
        if severity.rank < self.min_severity.rank:
            return
        self.sent += 1
        for channel in self.channels:
            try:
                await channel.notify(title, message, severity)
            except Exception as e:
                logger.warning(f"Notification via {channel.name} failed: {e}")

    async def close(self) -> None:
        for channel in self.channels:
            try:
                await channel.close()
            except Exception as e:
                logger.debug(f"Closing {channel.name} channel failed: {e}")


def build_router(settings: NotifySettings, enabled: bool = True) -> NotificationRouter:
    """Build a router from NotifySettings.

    A disabled router drops everything; otherwise notifications go to the
    log and, when a URL is configured, to the webhook.
    """
    if not enabled:
        return NotificationRouter([NullChannel()])

    channels: list[NotificationChannel] = []
    if settings.log:
        channels.append(LogChannel())
    if settings.webhook_url:
        channels.append(
            WebhookChannel(settings.webhook_url, timeout=settings.timeout, headers=settings.headers)
        )
    if not channels:
        channels.append(NullChannel())
    return NotificationRouter(channels, min_severity=Severity(settings.min_severity))
