"""Command-line interface for FleetOps."""

import asyncio
import signal
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from fleetops import __version__
from fleetops.batch import BatchRunner, load_template, parse_steps
from fleetops.catalog import default_catalog
from fleetops.checks import build_registry
from fleetops.config import FleetConfig, load_config
from fleetops.connectivity import ConnectivityProbe
from fleetops.dispatcher import DispatcherContext, DispatchMode, RemoteDispatcher
from fleetops.exceptions import ConfigError, LoopError
from fleetops.history import TickHistoryLog
from fleetops.inventory import Inventory, load_inventory
from fleetops.logging import configure_logging, get_logger, resolve_level
from fleetops.loop import RemediationLoop
from fleetops.notify import NotificationRouter, build_router
from fleetops.output import (
    actions_table,
    checks_table,
    format_actions_json,
    format_summary_json,
    render_summary,
    tick_table,
)
from fleetops.types import DispatchSummary
from fleetops.utils import is_elevated, parse_key_values, split_list

logger = get_logger("fleetops.cli")

FORMAT_CHOICE = click.Choice(["text", "json"])


def _setup_logging(
    verbose: int,
    log_level: Optional[str] = None,
    log_file: Optional[str | Path] = None,
    output_format: str = "text",
) -> None:
    # JSON output must stay parseable; logs still go to the file if given
    configure_logging(
        level=resolve_level(verbose, log_level),
        log_file=log_file,
        quiet_console=(output_format == "json"),
    )


def _load_config(config_file: Optional[str]) -> FleetConfig:
    try:
        return load_config(config_file)
    except ConfigError as e:
        raise click.ClickException(str(e))


def _parse_params(params: Optional[str]) -> dict[str, str]:
    try:
        return parse_key_values(params)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--params")


def _emit_summary(summary: DispatchSummary, output_format: str) -> None:
    """Print a summary and exit 1 if any unit failed."""
    if output_format == "json":
        click.echo(format_summary_json(summary))
        if summary.failed > 0:
            raise SystemExit(1)
        return

    render_summary(summary, Console())
    if summary.failed > 0:
        raise click.ClickException(f"{summary.failed} unit(s) failed")


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """FleetOps - health checks, remediation and fleet-wide actions."""
    if version:
        click.echo(f"fleetops {__version__}")
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--interval", type=float, default=None,
              help="Minutes between ticks (default: from config, else 60)")
@click.option("--run-once", is_flag=True, help="Run a single tick and exit")
@click.option("--notify", is_flag=True, help="Send notifications for remediations")
@click.option("--config", "config_file", type=click.Path(), default=None,
              help="Config file (default: ~/.fleetops/config.yml)")
@click.option("--history-file", type=click.Path(), default=None,
              help="Append each tick as a JSON line to this file")
@click.option("--log-file", type=click.Path(), default=None,
              help="Write logs to file (in addition to console)")
@click.option("--log-level", type=click.Choice(["trace", "debug", "info", "warning", "error"]),
              default=None, help="Set log level explicitly (overrides -v)")
@click.option("-v", "--verbose", count=True,
              help="Increase verbosity: -v=info, -vv=debug, -vvv=trace")
def healthloop(
    interval: Optional[float],
    run_once: bool,
    notify: bool,
    config_file: Optional[str],
    history_file: Optional[str],
    log_file: Optional[str],
    log_level: Optional[str],
    verbose: int,
) -> None:
    """Run health checks on an interval and remediate what is unhealthy.

    Stops cleanly on SIGINT/SIGTERM at the next tick boundary.

    Examples:

        fleetops healthloop --run-once -v

        fleetops healthloop --interval 15 --notify --history-file ~/.fleetops/ticks.jsonl
    """
    config = _load_config(config_file)
    _setup_logging(verbose, log_level, log_file or config.log_file)

    if interval is not None:
        if interval < 0 or (interval == 0 and not run_once):
            raise click.BadParameter("must be positive", param_hint="--interval")
        config.loop.interval_minutes = interval
    history_path = history_file or config.loop.history_file

    registry = build_registry(config.checks)
    if len(registry) == 0:
        raise click.ClickException("No health checks configured")

    async def run_loop() -> RemediationLoop:
        router = build_router(config.notify) if notify else None
        loop = RemediationLoop(
            registry,
            notifier=router,
            interval_minutes=config.loop.interval_minutes,
            error_backoff=config.loop.error_backoff_seconds,
            history_log=TickHistoryLog(history_path) if history_path else None,
        )
        loop.context.elevated = is_elevated()

        event_loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                event_loop.add_signal_handler(sig, loop.stop)
                installed.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Signal handlers unavailable", signal=sig.name)
        try:
            await loop.run(run_once=run_once)
        finally:
            for sig in installed:
                event_loop.remove_signal_handler(sig)
            if router is not None:
                await router.close()
        return loop

    try:
        loop = asyncio.run(run_loop())
    except LoopError as e:
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        click.echo("Interrupted, stopping")
        return

    record = loop.context.last_tick
    if run_once and record is not None:
        Console().print(tick_table(record))


@cli.command()
@click.option("--action", "-a", "action_id", required=True, help="Action id from the catalog")
@click.option("--targets", "-t", required=True,
              help="Comma-separated host names; @group expands an inventory group")
@click.option("--async", "run_async", is_flag=True, help="Run all targets concurrently")
@click.option("--params", "-p", default=None, help="Action parameters: key=value,key2=value2")
@click.option("--inventory", "-i", type=click.Path(exists=True), default=None,
              help="Inventory file (YAML format)")
@click.option("--timeout", type=float, default=None, help="Overall deadline in seconds")
@click.option("--probe-timeout", type=float, default=None,
              help="Per-target connectivity probe timeout in seconds")
@click.option("--parallel", type=int, default=10, help="Maximum concurrent targets with --async")
@click.option("--format", "-f", "output_format", type=FORMAT_CHOICE, default="text",
              help="Output format")
@click.option("--notify", is_flag=True, help="Send a notification when the dispatch completes")
@click.option("--dry-run", is_flag=True, help="Show what would run without invoking actions")
@click.option("--config", "config_file", type=click.Path(), default=None,
              help="Config file (default: ~/.fleetops/config.yml)")
@click.option("--log-file", type=click.Path(), default=None,
              help="Write logs to file (in addition to console)")
@click.option("-v", "--verbose", count=True,
              help="Increase verbosity: -v=info, -vv=debug, -vvv=trace")
def dispatch(
    action_id: str,
    targets: str,
    run_async: bool,
    params: Optional[str],
    inventory: Optional[str],
    timeout: Optional[float],
    probe_timeout: Optional[float],
    parallel: int,
    output_format: str,
    notify: bool,
    dry_run: bool,
    config_file: Optional[str],
    log_file: Optional[str],
    verbose: int,
) -> None:
    """Run one action against a set of targets.

    Unreachable targets are skipped. Exits 1 if any target failed.

    Examples:

        fleetops dispatch -a ping -t ws-01,ws-02

        fleetops dispatch -a command -t @workstations --async -p "cmd=uptime"

        fleetops dispatch -a restart_service -t ws-01 -p name=nginx --dry-run
    """
    config = _load_config(config_file)
    _setup_logging(verbose, log_file=log_file or config.log_file, output_format=output_format)

    parsed_params = _parse_params(params)
    if timeout is not None and timeout <= 0:
        raise click.BadParameter("must be positive", param_hint="--timeout")
    if parallel < 1:
        raise click.BadParameter("must be at least 1", param_hint="--parallel")

    inventory_file = inventory or config.inventory
    try:
        inv = load_inventory(inventory_file) if inventory_file else Inventory()
        names = inv.expand_targets(split_list(targets))
    except ConfigError as e:
        raise click.ClickException(str(e))

    probe = ConnectivityProbe(timeout=probe_timeout or config.probe.timeout)
    mode = DispatchMode.ASYNC if run_async else DispatchMode.SYNC
    ctx = DispatcherContext(elevated=is_elevated(), dry_run=dry_run)

    async def run() -> DispatchSummary:
        router: NotificationRouter | None = build_router(config.notify) if notify else None
        dispatcher = RemoteDispatcher(
            default_catalog(), probe=probe, notifier=router, inventory=inv, max_parallel=parallel
        )
        try:
            return await dispatcher.dispatch(
                action_id, names, parsed_params, mode=mode, ctx=ctx, timeout=timeout
            )
        finally:
            if router is not None:
                await router.close()

    _emit_summary(asyncio.run(run()), output_format)


@cli.command()
@click.option("--steps", "-s", default=None, help="Comma-separated action ids, run in order")
@click.option("--continue-on-error", "continue_on_error", flag_value=True, default=None,
              help="Keep going after a failed step")
@click.option("--template", "-T", type=click.Path(exists=True), default=None,
              help="Batch template file (YAML format)")
@click.option("--params", "-p", default=None,
              help="Parameters for every step given with --steps: key=value,key2=value2")
@click.option("--format", "-f", "output_format", type=FORMAT_CHOICE, default="text",
              help="Output format")
@click.option("--dry-run", is_flag=True, help="Show what would run without invoking actions")
@click.option("--log-file", type=click.Path(), default=None,
              help="Write logs to file (in addition to console)")
@click.option("-v", "--verbose", count=True,
              help="Increase verbosity: -v=info, -vv=debug, -vvv=trace")
def batch(
    steps: Optional[str],
    continue_on_error: Optional[bool],
    template: Optional[str],
    params: Optional[str],
    output_format: str,
    dry_run: bool,
    log_file: Optional[str],
    verbose: int,
) -> None:
    """Run several actions in order on this machine.

    The first failed step skips the rest unless --continue-on-error is
    given. Exits 1 if any step failed.

    Examples:

        fleetops batch --steps clear_temp,disk_usage

        fleetops batch --template weekly.yml --continue-on-error
    """
    _setup_logging(verbose, log_file=log_file, output_format=output_format)

    if bool(steps) == bool(template):
        raise click.UsageError("Give exactly one of --steps or --template")

    runner = BatchRunner(default_catalog())
    ctx = DispatcherContext(elevated=is_elevated(), dry_run=dry_run)

    if template:
        try:
            loaded = load_template(template)
        except ConfigError as e:
            raise click.ClickException(str(e))
        coro = runner.run_template(loaded, ctx=ctx, continue_on_error=continue_on_error)
    else:
        step_list = parse_steps(steps, _parse_params(params))
        coro = runner.run(step_list, continue_on_error=bool(continue_on_error), ctx=ctx)

    _emit_summary(asyncio.run(coro), output_format)


@cli.group()
def actions() -> None:
    """Action catalog commands."""
    pass


@actions.command("list")
@click.option("--format", "-f", "output_format", type=FORMAT_CHOICE, default="text",
              help="Output format")
def actions_list(output_format: str) -> None:
    """List the actions that can be dispatched."""
    descriptors = default_catalog().list_actions()
    if output_format == "json":
        click.echo(format_actions_json(descriptors))
    else:
        Console().print(actions_table(descriptors))


@cli.group()
def checks() -> None:
    """Health check commands."""
    pass


@checks.command("list")
@click.option("--config", "config_file", type=click.Path(), default=None,
              help="Config file (default: ~/.fleetops/config.yml)")
def checks_list(config_file: Optional[str]) -> None:
    """List the health checks the loop would run, in order."""
    config = _load_config(config_file)
    Console().print(checks_table(build_registry(config.checks)))


def main() -> None:
    """Package entry point for the FleetOps command-line interface."""
    cli()


if __name__ == "__main__":
    cli()
