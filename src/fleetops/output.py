"""Output formatting for FleetOps.

Summaries are printed as rich tables for operators, or as JSON for
scripts and saved reports.
"""

import io
import json
from datetime import datetime, timezone
from typing import Any, Iterable

from rich.console import Console
from rich.table import Table

from .types import (
    ActionDescriptor,
    CheckResultStatus,
    DispatchSummary,
    HealthCheck,
    TickRecord,
    UnitStatus,
)

STATUS_STYLES = {
    UnitStatus.SUCCEEDED: "green",
    UnitStatus.FAILED: "red",
    UnitStatus.SKIPPED: "yellow",
    UnitStatus.RUNNING: "cyan",
    UnitStatus.PENDING: "dim",
}

CHECK_STYLES = {
    CheckResultStatus.HEALTHY: "green",
    CheckResultStatus.REMEDIATED: "yellow",
    CheckResultStatus.FAILED: "red",
}


def format_summary_json(summary: DispatchSummary) -> str:
    """Format a summary as JSON.

    Example:
        >>> parsed = json.loads(format_summary_json(summary))
        >>> parsed["total"] == parsed["succeeded"] + parsed["failed"] + parsed["skipped"]
        True
    """
    output: dict[str, Any] = summary.to_dict()
    if summary.duration is not None:
        output["duration"] = round(summary.duration, 3)
    output["timestamp"] = datetime.now(timezone.utc).isoformat()
    return json.dumps(output, indent=2, default=str)


def summary_table(summary: DispatchSummary) -> Table:
    """Per-unit table for a dispatch or batch summary."""
    table = Table(title=f"{summary.action_id}", title_justify="left")
    table.add_column("Unit")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Detail", overflow="fold")

    for unit in summary.units:
        style = STATUS_STYLES.get(unit.status, "")
        duration = f"{unit.duration:.2f}s" if unit.duration is not None else "-"
        detail = unit.error or ""
        if not detail and unit.output:
            detail = ", ".join(
                f"{k}={v}" for k, v in unit.output.items() if not isinstance(v, (dict, list))
            )
        table.add_row(unit.target or unit.id, f"[{style}]{unit.status.value}[/{style}]", duration, detail)

    table.caption = (
        f"total {summary.total}: {summary.succeeded} succeeded, "
        f"{summary.failed} failed, {summary.skipped} skipped"
    )
    return table


def render_summary(summary: DispatchSummary, console: Console) -> None:
    """Print a summary table, plus the call-level error if any."""
    console.print(summary_table(summary))
    if summary.error:
        console.print(f"[red]Error:[/red] {summary.error}")


def format_summary_text(summary: DispatchSummary, width: int = 120) -> str:
    """Render a summary table to plain text."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, color_system=None, force_terminal=False)
    render_summary(summary, console)
    return buffer.getvalue()


def tick_table(record: TickRecord) -> Table:
    """Per-check table for one tick."""
    table = Table(title=f"Tick {record.tick_at.isoformat(timespec='seconds')}", title_justify="left")
    table.add_column("Check")
    table.add_column("Result")
    table.add_column("Detail", overflow="fold")

    for result in record.results:
        style = CHECK_STYLES[result.status]
        detail = result.outcome.detail
        if result.remediation is not None:
            detail += f" -> {result.remediation.error or result.remediation.detail}"
        table.add_row(result.check_name, f"[{style}]{result.status.value}[/{style}]", detail)

    table.caption = f"actions applied: {record.actions_applied_this_tick}"
    return table


def actions_table(descriptors: Iterable[ActionDescriptor]) -> Table:
    table = Table(title="Actions", title_justify="left")
    table.add_column("Id")
    table.add_column("Category")
    table.add_column("Remote")
    table.add_column("Elevation")
    table.add_column("Description")
    for d in descriptors:
        table.add_row(
            d.id,
            d.category,
            "yes" if d.supports_remote else "no",
            "required" if d.requires_elevation else "-",
            d.description,
        )
    return table


def format_actions_json(descriptors: Iterable[ActionDescriptor]) -> str:
    return json.dumps(
        [
            {
                "id": d.id,
                "name": d.name,
                "category": d.category,
                "supports_remote": d.supports_remote,
                "requires_elevation": d.requires_elevation,
                "description": d.description,
            }
            for d in descriptors
        ],
        indent=2,
    )


def checks_table(checks: Iterable[HealthCheck]) -> Table:
    table = Table(title="Health checks", title_justify="left")
    table.add_column("#", justify="right")
    table.add_column("Check")
    table.add_column("Description")
    for index, check in enumerate(checks, start=1):
        table.add_row(str(index), check.name, check.description)
    return table
