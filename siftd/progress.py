"""
Progress reporting for siftd indexing runs.

A run goes through two counted stages: scanning files (fingerprint and
chunk) and embedding batches. Each step emits a ProgressEvent with a rate
and ETA for the stage it belongs to.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class ProgressStage(str, Enum):
    SCAN = "scan"
    EMBED = "embed"


@dataclass
class ProgressEvent:
    """
    Event emitted during an indexing run.

    Attributes:
        stage: Which part of the run is progressing
        current: Steps completed in this stage (files or batches)
        total: Steps the stage will take
        item: File just scanned, or a batch label
        elapsed_seconds: Time since the stage started
        eta_seconds: Estimated time remaining (None if unknown)
        rate: Steps per second
    """
    stage: ProgressStage
    current: int
    total: int
    item: str
    elapsed_seconds: float
    eta_seconds: Optional[float] = None
    rate: float = 0.0

    @property
    def fraction(self) -> float:
        return self.current / self.total if self.total else 1.0


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressReporter:
    """
    Counts steps of one stage and reports them with a rate and ETA.

    The callback is invoked synchronously from the indexing thread.
    """

    def __init__(self, stage: ProgressStage, total: int, callback: Optional[ProgressCallback] = None):
        """
        Args:
            stage: Stage being tracked
            total: Number of steps the stage will take
            callback: Receives a ProgressEvent after every step
        """
        self.stage = stage
        self.total = total
        self.current = 0
        self.start_time = time.monotonic()
        self.callback = callback

    def update(self, item: str) -> ProgressEvent:
        """Record one completed step."""
        self.current += 1
        elapsed = time.monotonic() - self.start_time

        rate = self.current / elapsed if elapsed > 0 else 0.0
        remaining = self.total - self.current
        eta = remaining / rate if rate > 0 else None

        event = ProgressEvent(
            stage=self.stage,
            current=self.current,
            total=self.total,
            item=item,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
            rate=rate,
        )

        if self.callback:
            self.callback(event)

        return event

    @staticmethod
    def format_eta(seconds: Optional[float]) -> str:
        """
        Format ETA in human-readable form.

        Returns:
            Formatted string like "2m 30s", "1h 15m", or "unknown"
        """
        if seconds is None:
            return "unknown"

        minutes, secs = divmod(int(seconds), 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        return f"{secs}s"

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format a duration like "2.5s", "1m 30s" or "1h 15m"."""
        if seconds < 60:
            return f"{seconds:.1f}s"

        minutes, secs = divmod(int(seconds), 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m {secs}s"

    def get_summary(self) -> str:
        elapsed = time.monotonic() - self.start_time
        rate = self.current / elapsed if elapsed > 0 else 0
        unit = "files" if self.stage == ProgressStage.SCAN else "batches"
        return (
            f"Processed {self.current}/{self.total} {unit} "
            f"in {self.format_duration(elapsed)} "
            f"({rate:.1f} {unit}/sec)"
        )
