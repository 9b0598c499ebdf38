"""Progress tracking for batches of monitor checks."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field

from content_monitor.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProgressTracker:
    """Track progress of a batch of monitor checks."""

    total: int
    processed: int = 0
    failed: int = 0
    outcomes: Counter[str] = field(default_factory=Counter)
    errors: list[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.monotonic)

    def record_outcome(self, outcome: str) -> None:
        """Record a completed check and the outcome it produced."""
        self.processed += 1
        self.outcomes[outcome] += 1

    def record_failure(self, error: str) -> None:
        """Record a check that raised instead of producing an outcome."""
        self.processed += 1
        self.failed += 1
        self.errors.append(error)

    @property
    def elapsed_seconds(self) -> float:
        """Time elapsed since start."""
        return time.monotonic() - self.start_time

    @property
    def progress_percentage(self) -> float:
        """Percentage of total items processed."""
        if self.total == 0:
            return 100.0
        return (self.processed / self.total) * 100.0

    def log_progress(self, every_n: int = 10) -> None:
        """Log progress every N items."""
        if self.processed % every_n == 0 or self.processed == self.total:
            logger.info(
                "check_progress",
                processed=self.processed,
                total=self.total,
                failed=self.failed,
                percentage=f"{self.progress_percentage:.1f}%",
                elapsed=f"{self.elapsed_seconds:.1f}s",
            )

    def summary(self) -> dict[str, int | float | list[str]]:
        """Return summary statistics, one key per outcome seen."""
        result: dict[str, int | float | list[str]] = {
            "processed": self.processed,
            "failed": self.failed,
        }
        for outcome, count in sorted(self.outcomes.items()):
            result[outcome] = count
        result["duration_seconds"] = round(self.elapsed_seconds, 2)
        result["errors"] = self.errors
        return result
