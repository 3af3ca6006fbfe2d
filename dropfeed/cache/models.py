"""Result models for cache refreshes."""

from dataclasses import dataclass
from enum import Enum

from dropfeed.cache.state_machine import CacheState


class RefreshOutcome(str, Enum):
    """What a refresh did to one user's cache.

    PRESERVED: cache left as is (still valid, or superseded by a newer generation)
    REGENERATED: a new generation was written
    RESTORED: the previous generation was rewritten with a new expiry
    CLEARED: nothing to rank and nothing to keep; rows cleared
    SKIPPED: inputs unavailable; cache untouched
    FAILED: unexpected error or unrecoverable write failure
    """

    PRESERVED = "preserved"
    REGENERATED = "regenerated"
    RESTORED = "restored"
    CLEARED = "cleared"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class UserRefreshResult:
    """Result of refreshing one user's cache.

    Attributes:
        user_id: The user.
        outcome: What happened to the cache.
        prior_state: Cache state observed under the user's lock.
        entries_written: Rows written by a new generation.
        entries_restored: Rows rewritten from the backup.
        error: Error message for skipped or failed refreshes.
        duration_ms: Wall time of the refresh.
    """

    user_id: str
    outcome: RefreshOutcome
    prior_state: CacheState | None = None
    entries_written: int = 0
    entries_restored: int = 0
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        """Check if the refresh left a servable or intentionally empty cache."""
        return self.outcome not in (RefreshOutcome.SKIPPED, RefreshOutcome.FAILED)
