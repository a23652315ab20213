"""
Run audit trail.

One JSON object per orchestrator run, appended to a file so operators can see
which topologies were created or updated and how each run ended.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class RunEvent:
    """
    Audit record of one create or update run.

    outcome is a deploy outcome value, or "error" when the run raised.
    """

    assembly: str
    environment: str
    update: bool
    outcome: str
    message: str = ""


@dataclass(frozen=True)
class AuditLogger:
    path: Path

    def record(self, event: RunEvent) -> None:
        payload: dict[str, Any] = asdict(event)
        if isinstance(event.outcome, Enum):
            payload["outcome"] = event.outcome.value
        payload["ts_unix"] = int(time.time())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(payload, sort_keys=True) + "\n")

    def events(self) -> list[dict[str, Any]]:
        """Recorded events, oldest first. Empty when nothing was recorded."""
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
