"""Metrics collection for ranking runs."""

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import ClassVar

from dropfeed.cache.models import RefreshOutcome, UserRefreshResult


# Most recent refresh durations kept for percentiles
MAX_DURATION_SAMPLES = 10_000


@dataclass
class EngineMetrics:
    """Metrics for batch ranking runs.

    Attributes:
        runs_total: Trigger runs executed.
        users_processed_total: Users whose refresh completed.
        users_preserved_total: Users whose valid cache was kept.
        users_regenerated_total: Users given a new generation.
        users_restored_total: Users whose backup was restored.
        users_cleared_total: Users left with an empty cache.
        users_skipped_total: Users skipped with their cache untouched.
        users_failed_total: Users whose refresh failed.
        cache_entries_written_total: Rows written by new generations.
        refresh_durations_ms: Most recent per-user refresh durations.
            Bounded by MAX_DURATION_SAMPLES.
    """

    runs_total: int = 0
    users_processed_total: int = 0
    users_preserved_total: int = 0
    users_regenerated_total: int = 0
    users_restored_total: int = 0
    users_cleared_total: int = 0
    users_skipped_total: int = 0
    users_failed_total: int = 0
    cache_entries_written_total: int = 0
    refresh_durations_ms: deque[float] = field(
        default_factory=lambda: deque(maxlen=MAX_DURATION_SAMPLES)
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["EngineMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "EngineMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_run(self) -> None:
        """Record one trigger run."""
        with self._lock:
            self.runs_total += 1

    def record_refresh(self, result: UserRefreshResult) -> None:
        """Record the outcome of one user refresh.

        Args:
            result: The refresh result.
        """
        with self._lock:
            self.refresh_durations_ms.append(result.duration_ms)
            self.cache_entries_written_total += result.entries_written

            if result.outcome == RefreshOutcome.SKIPPED:
                self.users_skipped_total += 1
                return
            if result.outcome == RefreshOutcome.FAILED:
                self.users_failed_total += 1
                return

            self.users_processed_total += 1
            if result.outcome == RefreshOutcome.PRESERVED:
                self.users_preserved_total += 1
            elif result.outcome == RefreshOutcome.REGENERATED:
                self.users_regenerated_total += 1
            elif result.outcome == RefreshOutcome.RESTORED:
                self.users_restored_total += 1
            elif result.outcome == RefreshOutcome.CLEARED:
                self.users_cleared_total += 1

    def get_duration_percentiles(self) -> dict[str, float]:
        """Calculate refresh duration percentiles (p50/p90/p99).

        Returns:
            Dictionary with p50, p90, p99 values.
        """
        with self._lock:
            sorted_durations = sorted(self.refresh_durations_ms)

        if not sorted_durations:
            return {"p50": 0.0, "p90": 0.0, "p99": 0.0}

        n = len(sorted_durations)

        def percentile(p: float) -> float:
            idx = int(p * n / 100)
            return sorted_durations[min(idx, n - 1)]

        return {
            "p50": percentile(50),
            "p90": percentile(90),
            "p99": percentile(99),
        }

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        percentiles = self.get_duration_percentiles()
        with self._lock:
            return {
                "runs_total": self.runs_total,
                "users_processed_total": self.users_processed_total,
                "users_preserved_total": self.users_preserved_total,
                "users_regenerated_total": self.users_regenerated_total,
                "users_restored_total": self.users_restored_total,
                "users_cleared_total": self.users_cleared_total,
                "users_skipped_total": self.users_skipped_total,
                "users_failed_total": self.users_failed_total,
                "cache_entries_written_total": self.cache_entries_written_total,
                "refresh_duration_percentiles": percentiles,
            }
