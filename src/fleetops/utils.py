"""Small helpers shared across FleetOps."""

import asyncio
import inspect
import os
from typing import Any, Callable


async def call_maybe_async(func: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async callable and return its result.

    Coroutine functions are awaited on the running loop. Plain functions
    run in a worker thread so they do not block sibling tasks.
    """
    if inspect.iscoroutinefunction(func):
        result = await func(*args)
    else:
        result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def call_inline(func: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async callable on the current thread."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def is_elevated() -> bool:
    """Check if the current process has administrative privileges."""
    if hasattr(os, "geteuid"):
        return os.geteuid() == 0
    try:
        import ctypes

        return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
    except (AttributeError, OSError):
        return False


def parse_key_values(text: str | None) -> dict[str, str]:
    """Parse ``k=v,k2=v2`` into a dictionary.

    Values may themselves contain ``=``; only the first one splits.

    Raises:
        ValueError: If a pair has no ``=`` or an empty key

    Example:
        >>> parse_key_values("path=/var/tmp,days=7")
        {'path': '/var/tmp', 'days': '7'}
        >>> parse_key_values("")
        {}
    """
    if not text:
        return {}

    result: dict[str, str] = {}
    for pair in text.split(","):
        pair = pair.strip()
        if not pair:
            continue
        if "=" not in pair:
            raise ValueError(f"Invalid parameter format: '{pair}'. Expected key=value format.")
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid parameter format: '{pair}'. Key must not be empty.")
        result[key] = value.strip()
    return result


def split_list(text: str | None) -> list[str]:
    """Split a comma-separated list, dropping empty entries."""
    if not text:
        return []
    return [item.strip() for item in text.split(",") if item.strip()]
