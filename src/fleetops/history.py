"""Append-only tick history for FleetOps.

Each tick of the remediation loop is written as one JSON line so operators
can follow what the loop did. The file is written only; the loop never
reads it back.
"""

import json
import logging
import threading
from pathlib import Path

from .types import TickRecord

logger = logging.getLogger(__name__)


class TickHistoryLog:
    """JSON-lines log of tick records.

    Example:
        >>> log = TickHistoryLog(Path("~/.fleetops/ticks.jsonl").expanduser())
        >>> log.append(record, actions_today=3)
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, record: TickRecord, actions_today: int | None = None) -> None:
        """Append one record. I/O errors are logged, not raised."""
        entry = record.to_dict()
        if actions_today is not None:
            entry["actions_today"] = actions_today
        line = json.dumps(entry, sort_keys=True)
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            logger.warning(f"Could not write tick history to {self.path}: {e}")
