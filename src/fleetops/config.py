"""Configuration for FleetOps.

Settings come from a YAML file (default ``~/.fleetops/config.yml``) with a
few environment overrides. Every section is optional; missing keys fall
back to the dataclass defaults.

Example config.yml:

    loop:
      interval_minutes: 15
      history_file: ~/.fleetops/ticks.jsonl
    notify:
      webhook_url: https://hooks.example.com/T000/B000
      min_severity: warning
    probe:
      timeout: 3
    checks:
      disk_path: /
      min_free_percent: 10
      services: [cron, cups]
      dns_host: intranet.example.com
      endpoints: [https://intranet.example.com/health]
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError
from .types import Severity

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".fleetops"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yml"

ENV_WEBHOOK_URL = "FLEETOPS_WEBHOOK_URL"
ENV_INTERVAL_MINUTES = "FLEETOPS_INTERVAL_MINUTES"
ENV_LOG_FILE = "FLEETOPS_LOG_FILE"


@dataclass
class LoopSettings:
    """Remediation loop settings.

    Attributes:
        interval_minutes: Minutes between ticks
        error_backoff_seconds: Pause after an unexpected loop fault
        history_file: Optional append-only JSON-lines tick log
    """

    interval_minutes: float = 60.0
    error_backoff_seconds: float = 60.0
    history_file: Path | None = None


@dataclass
class NotifySettings:
    """Notification settings.

    Attributes:
        webhook_url: Webhook to post notifications to (optional)
        timeout: Webhook request timeout in seconds
        min_severity: Drop notifications below this severity
        log: Also write notifications to the log
        headers: Extra HTTP headers for the webhook
    """

    webhook_url: str | None = None
    timeout: float = 10.0
    min_severity: Severity = Severity.INFO
    log: bool = True
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ProbeSettings:
    """Connectivity probe settings."""

    timeout: float = 5.0


@dataclass
class CheckSettings:
    """Built-in health check settings.

    Attributes:
        disk_path: Filesystem path whose free space is checked
        min_free_percent: Minimum free space before the check is unhealthy
        temp_dirs: Directories purged when disk space is low
        temp_max_age_days: Files older than this are purged
        services: systemd units that must be active
        dns_host: Hostname that must resolve (check disabled if unset)
        endpoints: HTTP URLs that must answer with a non-error status
    """

    disk_path: str = "/"
    min_free_percent: float = 10.0
    temp_dirs: list[str] = field(default_factory=lambda: [tempfile.gettempdir()])
    temp_max_age_days: int = 7
    services: list[str] = field(default_factory=list)
    dns_host: str | None = None
    endpoints: list[str] = field(default_factory=list)


@dataclass
class FleetConfig:
    """Top-level FleetOps configuration."""

    loop: LoopSettings = field(default_factory=LoopSettings)
    notify: NotifySettings = field(default_factory=NotifySettings)
    probe: ProbeSettings = field(default_factory=ProbeSettings)
    checks: CheckSettings = field(default_factory=CheckSettings)
    inventory: Path | None = None
    log_file: Path | None = None


def _build_section(cls: type, name: str, data: Any) -> Any:
    """Instantiate a settings dataclass from a mapping, ignoring unknown keys."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")

    known = {f.name for f in fields(cls)}
    for key in data:
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {name}.{key}")
    try:
        return cls(**{k: v for k, v in data.items() if k in known})
    except TypeError as e:
        raise ConfigError(f"Invalid config section '{name}': {e}") from e


def _validate(config: FleetConfig) -> FleetConfig:
    try:
        config.loop.interval_minutes = float(config.loop.interval_minutes)
        config.loop.error_backoff_seconds = float(config.loop.error_backoff_seconds)
        config.probe.timeout = float(config.probe.timeout)
        config.notify.timeout = float(config.notify.timeout)
        config.checks.min_free_percent = float(config.checks.min_free_percent)
        config.notify.min_severity = Severity(config.notify.min_severity)
    except ValueError as e:
        raise ConfigError(f"Invalid config value: {e}") from e

    if config.loop.interval_minutes <= 0:
        raise ConfigError("loop.interval_minutes must be positive")
    if config.probe.timeout <= 0:
        raise ConfigError("probe.timeout must be positive")
    if not 0 <= config.checks.min_free_percent <= 100:
        raise ConfigError("checks.min_free_percent must be between 0 and 100")

    if config.loop.history_file is not None:
        config.loop.history_file = Path(config.loop.history_file).expanduser()
    if config.inventory is not None:
        config.inventory = Path(config.inventory).expanduser()
    if config.log_file is not None:
        config.log_file = Path(config.log_file).expanduser()
    return config


def config_from_dict(data: dict[str, Any] | None) -> FleetConfig:
    """Build a FleetConfig from parsed YAML data."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")

    sections = {"loop", "notify", "probe", "checks", "inventory", "log_file"}
    for key in data:
        if key not in sections:
            logger.warning(f"Ignoring unknown config key: {key}")

    config = FleetConfig(
        loop=_build_section(LoopSettings, "loop", data.get("loop")),
        notify=_build_section(NotifySettings, "notify", data.get("notify")),
        probe=_build_section(ProbeSettings, "probe", data.get("probe")),
        checks=_build_section(CheckSettings, "checks", data.get("checks")),
        inventory=data.get("inventory"),
        log_file=data.get("log_file"),
    )
    return _validate(config)


def apply_env_overrides(config: FleetConfig, environ: dict[str, str] | None = None) -> FleetConfig:
    """Apply FLEETOPS_* environment variables on top of file settings."""
    env = os.environ if environ is None else environ

    if env.get(ENV_WEBHOOK_URL):
        config.notify.webhook_url = env[ENV_WEBHOOK_URL]
    if env.get(ENV_INTERVAL_MINUTES):
        try:
            config.loop.interval_minutes = float(env[ENV_INTERVAL_MINUTES])
        except ValueError as e:
            raise ConfigError(f"Invalid {ENV_INTERVAL_MINUTES}: {env[ENV_INTERVAL_MINUTES]}") from e
        if config.loop.interval_minutes <= 0:
            raise ConfigError(f"{ENV_INTERVAL_MINUTES} must be positive")
    if env.get(ENV_LOG_FILE):
        config.log_file = Path(env[ENV_LOG_FILE]).expanduser()
    return config


def load_config(
    config_file: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> FleetConfig:
    """Load configuration from a file plus environment overrides.

    Args:
        config_file: Path to a YAML config file. When None, the default
            location is used if it exists; otherwise defaults apply.
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigError: If an explicitly given file is missing or invalid
    """
    if config_file is None:
        path = DEFAULT_CONFIG_FILE
        if not path.exists():
            return apply_env_overrides(FleetConfig(), environ)
    else:
        path = Path(config_file).expanduser()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load config {path}: {e}") from e

    logger.debug(f"Loaded config from {path}")
    return apply_env_overrides(config_from_dict(data), environ)
