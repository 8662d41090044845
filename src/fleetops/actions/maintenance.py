"""Maintenance actions: temp cleanup, service restart, DNS cache flush.

Each action is idempotent: running it twice leaves the system in the same
state as running it once.
"""

import logging
import shlex
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any

from ..types import ActionResult, ExecutionContext
from .command import run_command

logger = logging.getLogger(__name__)


def purge_stale_files(
    directory: str | Path,
    max_age_days: float,
    dry_run: bool = False,
) -> dict[str, Any]:
    """Delete regular files under ``directory`` not modified for ``max_age_days``.

    Files that vanish or cannot be removed are counted as errors and skipped.

    Returns:
        Dict with removed, bytes_freed and errors counts
    """
    root = Path(directory)
    cutoff = time.time() - max_age_days * 86400
    removed = 0
    freed = 0
    errors = 0

    if not root.is_dir():
        return {"path": str(root), "removed": 0, "bytes_freed": 0, "errors": 0, "missing": True}

    for path in root.rglob("*"):
        try:
            if path.is_symlink() or not path.is_file():
                continue
            stat = path.stat()
            if stat.st_mtime >= cutoff:
                continue
            if not dry_run:
                path.unlink()
            removed += 1
            freed += stat.st_size
        except OSError as e:
            logger.debug(f"Cannot remove {path}: {e}")
            errors += 1

    return {"path": str(root), "removed": removed, "bytes_freed": freed, "errors": errors}


async def clear_temp_action(ctx: ExecutionContext, params: dict[str, Any]) -> ActionResult:
    """Remove stale files from a temp directory on this machine.

    Params:
        path: Directory to clean (default: the system temp dir)
        days: Minimum age in days of files to remove (default 7)
    """
    path = str(params.get("path") or tempfile.gettempdir())
    try:
        days = float(params.get("days", 7))
    except ValueError:
        return ActionResult.error_result(f"Invalid days value: {params.get('days')}")

    result = purge_stale_files(path, days, dry_run=ctx.dry_run)
    result["changed"] = result["removed"] > 0 and not ctx.dry_run
    logger.info(f"Cleared {result['removed']} file(s) from {path}")
    return ActionResult.success_result(result)


async def restart_service_action(ctx: ExecutionContext, params: dict[str, Any]) -> ActionResult:
    """Restart a systemd unit on the target.

    Params:
        name: Unit name (required)
    """
    name = params.get("name")
    if not name:
        return ActionResult.error_result("Missing required parameter: name")

    cmd = f"systemctl restart {shlex.quote(str(name))}"
    if ctx.dry_run:
        return ActionResult.success_result({"changed": False, "would_run": cmd})

    stdout, stderr, rc = await run_command(ctx, cmd, timeout=120)
    if rc != 0:
        return ActionResult.error_result(
            f"Restart of {name} failed: {stderr.strip() or rc}",
            {"rc": rc, "stderr": stderr.strip()},
        )
    return ActionResult.success_result({"changed": True, "service": name})


FLUSH_DNS_COMMANDS = (
    ("resolvectl", "resolvectl flush-caches"),
    ("systemd-resolve", "systemd-resolve --flush-caches"),
    ("ipconfig", "ipconfig /flushdns"),
    ("dscacheutil", "dscacheutil -flushcache"),
)


def flush_dns_command() -> str | None:
    """The resolver-cache flush command available on this machine."""
    for binary, cmd in FLUSH_DNS_COMMANDS:
        if shutil.which(binary):
            return cmd
    return None


async def flush_dns_action(ctx: ExecutionContext, params: dict[str, Any]) -> ActionResult:
    """Flush the local resolver cache."""
    cmd = flush_dns_command()
    if cmd is None:
        return ActionResult.error_result("No supported DNS cache flush command found")
    if ctx.dry_run:
        return ActionResult.success_result({"changed": False, "would_run": cmd})

    _, stderr, rc = await run_command(ctx, cmd, timeout=60)
    if rc != 0:
        return ActionResult.error_result(f"DNS flush failed: {stderr.strip() or rc}")
    return ActionResult.success_result({"changed": True, "command": cmd})
