"""
Progress tracking for the orchestrator.

Values run from 0 to 100 and never decrease. Observers are notified only when
the value moves forward.
"""

from __future__ import annotations

from typing import Callable, Optional

ProgressCallback = Callable[[int], None]


class ProgressTracker:
    """Monotonic 0 to 100 progress indicator."""

    def __init__(self, on_progress: Optional[ProgressCallback] = None) -> None:
        self._on_progress = on_progress
        self._value = 0
        self.history: list[int] = []

    @property
    def value(self) -> int:
        return self._value

    def update(self, value: int) -> None:
        value = max(0, min(100, int(value)))
        if value <= self._value and self.history:
            return
        self._value = value
        self.history.append(value)
        if self._on_progress is not None:
            self._on_progress(value)

    def finish(self) -> None:
        self.update(100)
