"""Metrics collection for the feed store."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class StoreMetrics:
    """Metrics for feed store operations.

    Attributes:
        cache_rows_written_total: Cache rows inserted by replace operations.
        cache_rows_restored_total: Cache rows re-inserted from a backup.
        cache_rows_pruned_total: Expired cache rows deleted by maintenance.
        cache_write_failures_total: Replace operations that rolled back.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of transactions.
    """

    cache_rows_written_total: int = 0
    cache_rows_restored_total: int = 0
    cache_rows_pruned_total: int = 0
    cache_write_failures_total: int = 0
    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_rows_written(self, count: int) -> None:
        """Record cache rows written by a replace."""
        with self._lock:
            self.cache_rows_written_total += count

    def record_rows_restored(self, count: int) -> None:
        """Record cache rows restored from a backup."""
        with self._lock:
            self.cache_rows_restored_total += count

    def record_rows_pruned(self, count: int) -> None:
        """Record expired cache rows pruned.

        Args:
            count: Number of rows pruned.
        """
        with self._lock:
            self.cache_rows_pruned_total += count

    def record_write_failure(self) -> None:
        """Record a failed cache replace."""
        with self._lock:
            self.cache_write_failures_total += 1

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        with self._lock:
            self.db_tx_duration_ms += duration_ms
            self.db_tx_count += 1

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "cache_rows_written_total": self.cache_rows_written_total,
            "cache_rows_restored_total": self.cache_rows_restored_total,
            "cache_rows_pruned_total": self.cache_rows_pruned_total,
            "cache_write_failures_total": self.cache_write_failures_total,
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
        }

    @property
    def avg_tx_duration_ms(self) -> float:
        """Calculate average transaction duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
