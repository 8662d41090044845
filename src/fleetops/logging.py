"""Logging setup for FleetOps.

Log levels follow the CLI's ``-v`` count (warning, info, debug, trace) or an
explicit ``--log-level`` name. The console handler can be silenced while a
file handler keeps recording, which is how JSON output stays parseable.

Usage:
    configure_logging(level=logging.INFO, log_file="~/.fleetops/fleetops.log")

    log = get_logger("fleetops.dispatcher", action="ping")
    log.info("Skipping unreachable target", target="ws-03")
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

CONSOLE_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DETAIL_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"

# Index is the -v count
VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG, TRACE)

LEVEL_NAMES = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Marks handlers installed by configure_logging so reconfiguring leaves others alone
_HANDLER_MARK = "_fleetops_handler"


def get_level_from_verbosity(verbosity: int) -> int:
    """Map a ``-v`` count to a log level; anything past -vvv is TRACE."""
    return VERBOSITY_LEVELS[max(0, min(verbosity, len(VERBOSITY_LEVELS) - 1))]


def get_level_from_name(level_name: str) -> int:
    """Map a level name (any case) to a log level.

    Raises:
        ValueError: If the name is not a known level
    """
    try:
        return LEVEL_NAMES[level_name.lower()]
    except KeyError:
        raise ValueError(
            f"Invalid log level: {level_name}. Valid levels: {', '.join(LEVEL_NAMES)}"
        ) from None


def resolve_level(verbosity: int, level_name: str | None = None) -> int:
    """An explicit level name wins over the verbosity count."""
    if level_name:
        return get_level_from_name(level_name)
    return get_level_from_verbosity(verbosity)


def _mark(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_MARK, True)
    return handler


def configure_logging(
    level: int = logging.WARNING,
    log_file: str | Path | None = None,
    file_level: int | None = None,
    quiet_console: bool = False,
) -> None:
    """Install the FleetOps console handler and, optionally, a file handler.

    Calling this again replaces the handlers from the previous call.

    Args:
        level: Console level
        log_file: Append logs to this file as well
        file_level: Level for the file handler (defaults to ``level``)
        quiet_console: Only let CRITICAL records reach the console
    """
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, _HANDLER_MARK, False)]:
        root.removeHandler(handler)
        handler.close()

    console_level = logging.CRITICAL if quiet_console else level
    console = _mark(logging.StreamHandler())
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(DETAIL_FORMAT if level <= logging.DEBUG else CONSOLE_FORMAT))
    root.addHandler(console)
    active_levels = [console_level]

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _mark(logging.FileHandler(path, encoding="utf-8"))
        file_handler.setLevel(file_level if file_level is not None else level)
        file_handler.setFormatter(logging.Formatter(DETAIL_FORMAT))
        root.addHandler(file_handler)
        active_levels.append(file_handler.level)

    root.setLevel(min(active_levels))


def _format_context(context: dict[str, Any]) -> str:
    return ", ".join(f"{key}={value}" for key, value in context.items())


@contextmanager
def log_performance(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    threshold: float | None = None,
    **context: Any,
) -> Iterator[None]:
    """Log how long ``operation`` took.

    A failed operation is always logged, at WARNING, then the exception
    propagates. ``threshold`` suppresses fast successful runs.

    Example:
        >>> with log_performance(logger, "Tick", checks=4):
        ...     await loop.tick()
        INFO: Tick completed in 0.312s (checks=4)
    """
    suffix = f" ({_format_context(context)})" if context else ""
    start = time.perf_counter()
    try:
        yield
    except BaseException:
        logger.warning(f"{operation} failed after {time.perf_counter() - start:.3f}s{suffix}")
        raise
    duration = time.perf_counter() - start
    if threshold is None or duration >= threshold:
        logger.log(level, f"{operation} completed in {duration:.3f}s{suffix}")


class ContextLogger:
    """Logger that appends bound ``key=value`` context to each message.

    Example:
        >>> log = ContextLogger("fleetops.dispatcher", action="ping")
        >>> log.bind(target="ws-01").info("Unit started")
        INFO [fleetops.dispatcher] Unit started (action=ping, target=ws-01)
    """

    def __init__(self, name: str, **context: Any) -> None:
        self.logger = logging.getLogger(name)
        self.context: dict[str, Any] = dict(context)

    def bind(self, **context: Any) -> "ContextLogger":
        """A new logger with extra context; this one is unchanged."""
        return ContextLogger(self.logger.name, **{**self.context, **context})

    def log(self, level: int, message: str, exc_info: bool = False, **extra: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        context = {**self.context, **extra}
        if context:
            message = f"{message} ({_format_context(context)})"
        self.logger.log(level, message, exc_info=exc_info)

    def trace(self, message: str, **extra: Any) -> None:
        self.log(TRACE, message, **extra)

    def debug(self, message: str, **extra: Any) -> None:
        self.log(logging.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.log(logging.INFO, message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self.log(logging.WARNING, message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self.log(logging.ERROR, message, **extra)

    def exception(self, message: str, **extra: Any) -> None:
        self.log(logging.ERROR, message, exc_info=True, **extra)


def get_logger(name: str, **context: Any) -> ContextLogger:
    """Get a context logger for ``name``."""
    return ContextLogger(name, **context)
