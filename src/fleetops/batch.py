"""Batch and template runner for FleetOps.

A batch is an ordered list of catalog actions executed on this machine,
one step at a time. With ``continue_on_error`` off, the first failed step
stops the batch and every later step is skipped.

Templates are batches saved as YAML:

    name: monthly-maintenance
    description: Clean up and report
    continue_on_error: false
    steps:
      - action: clear_temp
        params: {path: /var/tmp, days: 14}
      - action: disk_usage
      - action: system_report
        name: final report
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .aggregator import ExecutionAggregator
from .catalog import ActionCatalog
from .dispatcher import REASON_ELEVATION, DispatcherContext, run_unit
from .exceptions import ConfigError, ErrorTypes
from .inventory import local_host
from .logging import log_performance
from .types import DispatchSummary, ExecutionContext, ExecutionUnit, UnitStatus
from .utils import split_list

logger = logging.getLogger(__name__)

REASON_ABORTED = "aborted by prior failure"


@dataclass
class BatchStep:
    """One step of a batch.

    Attributes:
        action_id: Catalog id of the action
        params: Parameters for this step only
        name: Optional label shown in output
    """

    action_id: str
    params: dict[str, Any] = field(default_factory=dict)
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.action_id


@dataclass
class BatchTemplate:
    """A named, saved batch."""

    name: str
    steps: list[BatchStep]
    description: str = ""
    continue_on_error: bool = False


def parse_steps(text: str | None, params: dict[str, Any] | None = None) -> list[BatchStep]:
    """Build steps from a comma-separated action list.

    ``params`` is given to every step.

    Example:
        >>> [s.action_id for s in parse_steps("clear_temp,disk_usage")]
        ['clear_temp', 'disk_usage']
    """
    return [BatchStep(action_id=action_id, params=dict(params or {})) for action_id in split_list(text)]


def load_template(path: str | Path) -> BatchTemplate:
    """Load a batch template from YAML.

    Raises:
        ConfigError: If the file is missing or malformed
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load template {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        raise ConfigError(f"Template {path} must be a mapping with a 'steps' list")

    steps: list[BatchStep] = []
    for index, entry in enumerate(data["steps"], start=1):
        if isinstance(entry, str):
            entry = {"action": entry}
        if not isinstance(entry, dict) or not entry.get("action"):
            raise ConfigError(f"Template {path}: step {index} needs an 'action'")
        step_params = entry.get("params") or {}
        if not isinstance(step_params, dict):
            raise ConfigError(f"Template {path}: step {index} params must be a mapping")
        steps.append(BatchStep(action_id=str(entry["action"]), params=step_params, name=entry.get("name")))

    return BatchTemplate(
        name=str(data.get("name") or path.stem),
        steps=steps,
        description=str(data.get("description") or ""),
        continue_on_error=bool(data.get("continue_on_error", False)),
    )


class BatchRunner:
    """Runs an ordered list of actions with continue-or-abort semantics.

    Example:
        >>> runner = BatchRunner(default_catalog())
        >>> summary = await runner.run(parse_steps("clear_temp,disk_usage"))
        >>> [u.status for u in summary.units]
        [<UnitStatus.SUCCEEDED: 'succeeded'>, <UnitStatus.SUCCEEDED: 'succeeded'>]
    """

    def __init__(self, catalog: ActionCatalog) -> None:
        self.catalog = catalog

    async def run(
        self,
        steps: list[BatchStep],
        continue_on_error: bool = False,
        ctx: DispatcherContext | None = None,
        name: str = "batch",
    ) -> DispatchSummary:
        """Run steps in order and return the summary.

        Args:
            steps: Steps to run
            continue_on_error: Keep going after a failed step
            ctx: Caller context (elevation, dry run, recent summaries)
            name: Label used as the summary's action id
        """
        ctx = ctx or DispatcherContext()
        aggregator = ExecutionAggregator(name)
        units = [
            ExecutionUnit(id=f"step-{index}:{step.action_id}", action_id=step.action_id)
            for index, step in enumerate(steps, start=1)
        ]
        for unit in units:
            aggregator.record(unit)

        unknown = [step.action_id for step in steps if step.action_id not in self.catalog]
        if unknown:
            reason = f"Unknown action(s): {', '.join(dict.fromkeys(unknown))}"
            logger.error(f"Batch {name}: {reason}")
            return self._abort(aggregator, units, reason, ErrorTypes.CATALOG, ctx)

        descriptors = [self.catalog.lookup(step.action_id) for step in steps]
        if not ctx.elevated and any(d.requires_elevation for d in descriptors):
            logger.warning(f"Batch {name}: a step requires elevation")
            return self._abort(aggregator, units, REASON_ELEVATION, ErrorTypes.ELEVATION, ctx)

        exec_ctx = ExecutionContext(elevated=ctx.elevated, host=local_host(), dry_run=ctx.dry_run)
        aborted = False
        with log_performance(logger, f"Batch {name}", steps=len(steps)):
            for step, descriptor, unit in zip(steps, descriptors, units):
                if aborted:
                    unit.skip(REASON_ABORTED, ErrorTypes.ABORTED)
                    aggregator.record(unit)
                    continue

                logger.info(f"Batch {name}: running {step.label}")
                await run_unit(unit, descriptor, exec_ctx, dict(step.params), aggregator)

                if unit.status is UnitStatus.FAILED:
                    logger.warning(f"Batch {name}: step {step.label} failed: {unit.error}")
                    if not continue_on_error:
                        aborted = True

        summary = aggregator.summarize()
        ctx.remember(summary)
        return summary

    async def run_template(
        self,
        template: BatchTemplate,
        ctx: DispatcherContext | None = None,
        continue_on_error: bool | None = None,
    ) -> DispatchSummary:
        """Run a loaded template; ``continue_on_error`` overrides the template's flag."""
        flag = template.continue_on_error if continue_on_error is None else continue_on_error
        return await self.run(template.steps, continue_on_error=flag, ctx=ctx, name=template.name)

    def _abort(
        self,
        aggregator: ExecutionAggregator,
        units: list[ExecutionUnit],
        reason: str,
        error_type: str,
        ctx: DispatcherContext,
    ) -> DispatchSummary:
        for unit in units:
            unit.skip(reason, error_type)
            aggregator.record(unit)
        aggregator.set_error(reason, error_type)
        summary = aggregator.summarize()
        ctx.remember(summary)
        return summary
