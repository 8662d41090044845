"""Diagnostic actions: connectivity, system facts, disk usage.

None of these change anything on the target.
"""

import getpass
import os
import platform
import shlex
import shutil
import socket
from typing import Any

from ..types import ActionResult, ExecutionContext
from .command import run_command


async def ping_action(ctx: ExecutionContext, params: dict[str, Any]) -> ActionResult:
    """Echo ``params["data"]`` (default "pong") from the target.

    Remote targets answer through SSH, so success proves the remote
    transport works end to end.
    """
    data = str(params.get("data", "pong"))
    if ctx.is_local:
        return ActionResult.success_result({"changed": False, "ping": data})

    stdout, stderr, rc = await run_command(ctx, f"echo {shlex.quote(data)}", timeout=30)
    if rc != 0:
        return ActionResult.error_result(f"ping failed: {stderr.strip() or rc}")
    return ActionResult.success_result({"changed": False, "ping": stdout.strip()})


def gather_local_facts(path: str = "/") -> dict[str, Any]:
    """Collect basic facts about this machine."""
    facts: dict[str, Any] = {
        "system": platform.system(),
        "node": platform.node(),
        "release": platform.release(),
        "version": platform.version(),
        "machine": platform.machine(),
        "python_version": platform.python_version(),
        "hostname": socket.gethostname(),
        "user": getpass.getuser(),
        "cpu_count": os.cpu_count(),
    }
    if hasattr(os, "getloadavg"):
        facts["load_average"] = [round(v, 2) for v in os.getloadavg()]

    usage = shutil.disk_usage(path)
    facts["disk"] = {
        "path": path,
        "total_bytes": usage.total,
        "free_bytes": usage.free,
        "used_percent": round(usage.used / usage.total * 100, 1) if usage.total else 0.0,
    }

    try:
        with open("/proc/meminfo", encoding="utf-8") as f:
            meminfo = dict(line.split(":", 1) for line in f if ":" in line)
        facts["memory"] = {
            "total_kb": int(meminfo["MemTotal"].split()[0]),
            "available_kb": int(meminfo.get("MemAvailable", meminfo["MemFree"]).split()[0]),
        }
    except (OSError, KeyError, ValueError):
        pass
    return facts


REMOTE_FACTS_COMMAND = "uname -snrm; uptime; df -P / | tail -1"


async def system_report_action(ctx: ExecutionContext, params: dict[str, Any]) -> ActionResult:
    """Collect a system report from the target."""
    path = str(params.get("path", "/"))
    if ctx.is_local:
        return ActionResult.success_result({"changed": False, "facts": gather_local_facts(path)})

    stdout, stderr, rc = await run_command(ctx, REMOTE_FACTS_COMMAND, timeout=60)
    if rc != 0:
        return ActionResult.error_result(f"system report failed: {stderr.strip() or rc}")
    lines = stdout.strip().splitlines()
    facts: dict[str, Any] = {"uname": lines[0] if lines else ""}
    if len(lines) > 1:
        facts["uptime"] = lines[1].strip()
    if len(lines) > 2:
        facts["disk"] = parse_df_line(lines[2])
    return ActionResult.success_result({"changed": False, "facts": facts})


def parse_df_line(line: str) -> dict[str, Any]:
    """Parse one line of ``df -P`` output.

    Example:
        >>> parse_df_line("/dev/sda1 102400 51200 51200 50% /")["used_percent"]
        50.0
    """
    parts = line.split()
    if len(parts) < 6:
        return {"raw": line}
    return {
        "filesystem": parts[0],
        "total_kb": int(parts[1]),
        "used_kb": int(parts[2]),
        "available_kb": int(parts[3]),
        "used_percent": float(parts[4].rstrip("%")),
        "mount": parts[5],
    }


async def disk_usage_action(ctx: ExecutionContext, params: dict[str, Any]) -> ActionResult:
    """Report disk usage of ``params["path"]``.

    Fails when used space is at or above ``params["max_used_percent"]``
    (default 90).
    """
    path = str(params.get("path", "/"))
    limit = float(params.get("max_used_percent", 90))

    if ctx.is_local:
        try:
            usage = shutil.disk_usage(path)
        except OSError as e:
            return ActionResult.error_result(f"Cannot read disk usage of {path}: {e}")
        used_percent = round(usage.used / usage.total * 100, 1) if usage.total else 0.0
        output: dict[str, Any] = {
            "path": path,
            "total_bytes": usage.total,
            "free_bytes": usage.free,
            "used_percent": used_percent,
        }
    else:
        stdout, stderr, rc = await run_command(ctx, f"df -P {shlex.quote(path)} | tail -1", timeout=60)
        if rc != 0:
            return ActionResult.error_result(f"df failed: {stderr.strip() or rc}")
        output = parse_df_line(stdout.strip())
        output["path"] = path
        used_percent = output.get("used_percent", 0.0)

    output["changed"] = False
    output["max_used_percent"] = limit
    if used_percent >= limit:
        return ActionResult.error_result(f"{path} is {used_percent}% full (limit {limit}%)", output)
    return ActionResult.success_result(output)
