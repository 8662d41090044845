"""Built-in health checks for the machine running the remediation loop.

Each factory returns a HealthCheck whose probe is read-only and whose
remediation is bounded and idempotent.
"""

import asyncio
import shlex
import shutil
from typing import Any

import httpx

from ..actions.command import run_local
from ..actions.maintenance import flush_dns_action, purge_stale_files, restart_service_action
from ..types import (
    ActionResult,
    CheckOutcome,
    ExecutionContext,
    HealthCheck,
    RemediationOutcome,
)


def _from_action(result: ActionResult, success_detail: str) -> RemediationOutcome:
    if result.ok:
        return RemediationOutcome(applied=True, detail=success_detail)
    return RemediationOutcome(applied=False, detail="remediation failed", error=result.error)


def disk_space_check(
    path: str = "/",
    min_free_percent: float = 10.0,
    temp_dirs: list[str] | None = None,
    max_age_days: float = 7,
) -> HealthCheck:
    """Free space on ``path`` must stay at or above ``min_free_percent``.

    Remediation purges stale files from ``temp_dirs``.
    """

    def probe(ctx: ExecutionContext) -> CheckOutcome:
        usage = shutil.disk_usage(path)
        free_percent = round(usage.free / usage.total * 100, 1) if usage.total else 0.0
        detail = f"{free_percent}% free on {path}"
        return CheckOutcome(healthy=free_percent >= min_free_percent, detail=detail)

    def remediate(ctx: ExecutionContext) -> RemediationOutcome:
        removed = 0
        freed = 0
        for directory in temp_dirs or []:
            result = purge_stale_files(directory, max_age_days, dry_run=ctx.dry_run)
            removed += result["removed"]
            freed += result["bytes_freed"]
        if removed == 0:
            return RemediationOutcome(applied=False, detail="no stale temp files to purge")
        return RemediationOutcome(applied=True, detail=f"purged {removed} file(s), {freed} bytes")

    return HealthCheck(
        name="disk_space",
        probe=probe,
        remediate=remediate,
        description=f"At least {min_free_percent}% free on {path}",
    )


def service_check(name: str) -> HealthCheck:
    """A systemd unit must be active; remediation restarts it."""

    async def probe(ctx: ExecutionContext) -> CheckOutcome:
        stdout, _, rc = await run_local(f"systemctl is-active {shlex.quote(name)}", timeout=30)
        state = stdout.strip() or "unknown"
        return CheckOutcome(healthy=rc == 0, detail=f"{name} is {state}")

    async def remediate(ctx: ExecutionContext) -> RemediationOutcome:
        result = await restart_service_action(ctx, {"name": name})
        return _from_action(result, f"restarted {name}")

    return HealthCheck(
        name=f"service:{name}",
        probe=probe,
        remediate=remediate,
        description=f"systemd unit {name} is active",
    )


def dns_check(hostname: str) -> HealthCheck:
    """``hostname`` must resolve; remediation flushes the resolver cache."""

    async def probe(ctx: ExecutionContext) -> CheckOutcome:
        loop = asyncio.get_running_loop()
        try:
            infos = await asyncio.wait_for(loop.getaddrinfo(hostname, None), timeout=10)
        except (OSError, asyncio.TimeoutError) as e:
            return CheckOutcome(healthy=False, detail=f"{hostname} does not resolve: {e}")
        addresses = sorted({info[4][0] for info in infos})
        return CheckOutcome(healthy=True, detail=f"{hostname} -> {', '.join(addresses)}")

    async def remediate(ctx: ExecutionContext) -> RemediationOutcome:
        result = await flush_dns_action(ctx, {})
        return _from_action(result, "flushed resolver cache")

    return HealthCheck(
        name="dns",
        probe=probe,
        remediate=remediate,
        description=f"{hostname} resolves",
    )


def endpoint_check(url: str, timeout: float = 10.0, **client_options: Any) -> HealthCheck:
    """An HTTP endpoint must answer with a status below 400.

    There is no automatic fix for a remote endpoint, so its remediation is
    never applied and the failure is reported.
    """

    async def probe(ctx: ExecutionContext) -> CheckOutcome:
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, **client_options) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            return CheckOutcome(healthy=False, detail=f"{url} unreachable: {e}")
        healthy = response.status_code < 400
        return CheckOutcome(healthy=healthy, detail=f"{url} answered {response.status_code}")

    def remediate(ctx: ExecutionContext) -> RemediationOutcome:
        return RemediationOutcome(applied=False, detail="no automatic remediation for endpoints")

    return HealthCheck(
        name=f"endpoint:{url}",
        probe=probe,
        remediate=remediate,
        description=f"{url} answers",
    )
