"""Command execution for FleetOps actions.

Runs a shell command on the host an action targets: in a local subprocess
for this machine, over SSH for remote hosts.
"""

import asyncio
import logging
from typing import Any

from ..ssh import run_on_host
from ..types import ActionResult, ExecutionContext

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 300.0


async def run_local(cmd: str, timeout: float = DEFAULT_COMMAND_TIMEOUT) -> tuple[str, str, int]:
    """Run a shell command on this machine.

    Returns:
        Tuple of (stdout, stderr, return_code); rc is -1 on timeout
    """
    proc = await asyncio.create_subprocess_shell(
        cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return "", f"Command timed out after {timeout}s", -1
    return stdout.decode(errors="replace"), stderr.decode(errors="replace"), proc.returncode or 0


async def run_command(
    ctx: ExecutionContext,
    cmd: str,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
) -> tuple[str, str, int]:
    """Run a command on the action's host."""
    host = ctx.host
    if host is None or host.is_local:
        return await run_local(cmd, timeout)
    return await run_on_host(host, cmd, timeout=timeout)


async def command_action(ctx: ExecutionContext, params: dict[str, Any]) -> ActionResult:
    """Run ``params["cmd"]``; non-zero exit status is a failure.

    Params:
        cmd: Shell command to run (required)
        timeout: Seconds before the command is abandoned (default 300)
    """
    cmd = params.get("cmd")
    if not cmd:
        return ActionResult.error_result("Missing required parameter: cmd")

    if ctx.dry_run:
        return ActionResult.success_result({"changed": False, "would_run": cmd})

    timeout = float(params.get("timeout", DEFAULT_COMMAND_TIMEOUT))
    stdout, stderr, rc = await run_command(ctx, cmd, timeout)
    output = {"cmd": cmd, "rc": rc, "stdout": stdout.strip(), "stderr": stderr.strip()}
    if rc != 0:
        return ActionResult.error_result(f"Command exited with status {rc}", output)
    return ActionResult.success_result(output)
