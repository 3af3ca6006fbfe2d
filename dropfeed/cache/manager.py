"""Backup, regenerate and restore protocol for per-user feed caches."""

import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog

from dropfeed.cache.locks import UserLockRegistry
from dropfeed.cache.models import RefreshOutcome, UserRefreshResult
from dropfeed.cache.state_machine import (
    CacheState,
    RegenerationState,
    RegenerationStateMachine,
    evaluate_cache_state,
)
from dropfeed.config.constants import COMPONENT_CACHE
from dropfeed.config.schemas import CacheConfig
from dropfeed.ranker.errors import CandidateFetchError
from dropfeed.ranker.models import RankedEntry
from dropfeed.ranker.ranker import RankingOutcome
from dropfeed.store.errors import CacheSupersededError, CacheWriteError, StoreReadError
from dropfeed.store.models import CacheEntry


logger = structlog.get_logger()


class CacheStore(Protocol):
    """Cache table operations used by the manager."""

    def get_cache_entries(
        self, user_id: str, now: datetime, limit: int | None = None
    ) -> list[CacheEntry]:
        """Get a user's unexpired rows ordered by position."""
        ...

    def replace_cache(self, user_id: str, entries: Sequence[CacheEntry]) -> int:
        """Atomically replace a user's rows."""
        ...

    def restore_cache(
        self, user_id: str, entries: Sequence[CacheEntry], expires_at: datetime
    ) -> int:
        """Rewrite backed-up rows unless a newer generation is stored."""
        ...

    def delete_cache(self, user_id: str) -> int:
        """Delete a user's rows."""
        ...


class UserRanker(Protocol):
    """Produces one user's ranked list."""

    def rank_user(self, user_id: str, now: datetime) -> RankingOutcome:
        """Rank one user; raises CandidateFetchError if inputs are missing."""
        ...


def build_cache_entries(
    user_id: str,
    ranked: Sequence[RankedEntry],
    now: datetime,
    ttl: timedelta,
) -> list[CacheEntry]:
    """Convert ranked entries into one cache generation.

    Args:
        user_id: The user owning the generation.
        ranked: Selector output in position order.
        now: Creation time for every row.
        ttl: Lifetime of every row.

    Returns:
        Cache rows sharing created_at and expires_at.
    """
    expires_at = now + ttl
    return [
        CacheEntry(
            user_id=user_id,
            item_id=entry.item_id,
            final_score=entry.final_score,
            reason=entry.reason,
            position=entry.position,
            created_at=now,
            expires_at=expires_at,
        )
        for entry in ranked
    ]


class CacheManager:
    """Keeps each user's ranked feed cache fresh without ever losing it.

    For one user, under that user's lock:
        1. Read the unexpired rows and classify them.
        2. VALID (and not forced): keep them.
        3. Otherwise keep them as a backup and rank while they still exist.
        4. Replace atomically with the new generation.
        5. On write failure, or an empty ranking with a backup, rewrite
           the backup with a fresh expiry.
        6. Empty ranking and no backup: clear the user's rows.
    A candidate fetch failure leaves the cache untouched.
    """

    def __init__(
        self,
        run_id: str,
        store: CacheStore,
        ranker: UserRanker,
        config: CacheConfig | None = None,
        locks: UserLockRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the cache manager.

        Args:
            run_id: Run identifier for logging.
            store: Cache table operations.
            ranker: Per-user ranking pipeline.
            config: Validity and expiry settings.
            locks: Per-user lock registry; share one per process.
            clock: Source of the current time.
        """
        self._run_id = run_id
        self._store = store
        self._ranker = ranker
        self._config = config or CacheConfig()
        self._locks = locks or UserLockRegistry()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._ttl = timedelta(hours=self._config.ttl_hours)
        self._log = logger.bind(component=COMPONENT_CACHE, run_id=run_id)

    def evaluate(self, user_id: str, now: datetime | None = None) -> CacheState:
        """Classify a user's current cache.

        Raises:
            StoreReadError: If the cache cannot be read.
        """
        now = now or self._clock()
        entries = self._store.get_cache_entries(user_id, now)
        return evaluate_cache_state(entries, now, self._config)

    def refresh_user(self, user_id: str, force: bool = False) -> UserRefreshResult:
        """Bring one user's cache up to date.

        Concurrent calls for the same user are serialized and the validity
        check is repeated once the lock is held, so a second caller finds
        the first caller's fresh generation and preserves it.

        Args:
            user_id: The user to refresh.
            force: Regenerate even when the cache is valid.

        Returns:
            What happened to the user's cache.
        """
        log = self._log.bind(user_id=user_id)
        start = time.perf_counter()

        with self._locks.hold(user_id):
            result = self._refresh_locked(user_id, force, log)

        duration_ms = (time.perf_counter() - start) * 1000
        return UserRefreshResult(
            user_id=result.user_id,
            outcome=result.outcome,
            prior_state=result.prior_state,
            entries_written=result.entries_written,
            entries_restored=result.entries_restored,
            error=result.error,
            duration_ms=duration_ms,
        )

    def _refresh_locked(
        self,
        user_id: str,
        force: bool,
        log: structlog.stdlib.BoundLogger,
    ) -> UserRefreshResult:
        now = self._clock()

        try:
            backup = self._store.get_cache_entries(user_id, now)
        except StoreReadError as e:
            log.warning("cache_read_failed", error=str(e))
            return UserRefreshResult(
                user_id=user_id, outcome=RefreshOutcome.SKIPPED, error=str(e)
            )

        state = evaluate_cache_state(backup, now, self._config)
        if state == CacheState.VALID and not force:
            log.info("cache_preserved", entries=len(backup))
            return UserRefreshResult(
                user_id=user_id, outcome=RefreshOutcome.PRESERVED, prior_state=state
            )

        log.info(
            "cache_regeneration_started",
            prior_state=state.name,
            backup_entries=len(backup),
            forced=force,
        )
        machine = RegenerationStateMachine(self._run_id, user_id)

        try:
            ranking = self._ranker.rank_user(user_id, now)
        except CandidateFetchError as e:
            machine.transition(RegenerationState.ABORTED)
            log.warning("user_skipped", reason="candidate_fetch_failed", error=str(e))
            return UserRefreshResult(
                user_id=user_id,
                outcome=RefreshOutcome.SKIPPED,
                prior_state=state,
                error=str(e),
            )

        machine.transition(RegenerationState.RANKED)

        if ranking.is_empty:
            if backup:
                log.info("ranking_empty_keeping_backup", backup_entries=len(backup))
                return self._restore(user_id, backup, now, state, machine, log)
            return self._clear(user_id, state, machine, log)

        generation = build_cache_entries(user_id, ranking.entries, now, self._ttl)
        try:
            written = self._store.replace_cache(user_id, generation)
        except CacheWriteError as e:
            log.warning("cache_write_failed", error=str(e), backup_entries=len(backup))
            if backup:
                return self._restore(user_id, backup, now, state, machine, log)
            machine.transition(RegenerationState.ABORTED)
            return UserRefreshResult(
                user_id=user_id,
                outcome=RefreshOutcome.FAILED,
                prior_state=state,
                error=str(e),
            )

        machine.transition(RegenerationState.COMMITTED)
        log.info("cache_regenerated", entries_written=written)
        return UserRefreshResult(
            user_id=user_id,
            outcome=RefreshOutcome.REGENERATED,
            prior_state=state,
            entries_written=written,
        )

    def _restore(
        self,
        user_id: str,
        backup: Sequence[CacheEntry],
        now: datetime,
        state: CacheState,
        machine: RegenerationStateMachine,
        log: structlog.stdlib.BoundLogger,
    ) -> UserRefreshResult:
        try:
            restored = self._store.restore_cache(user_id, backup, now + self._ttl)
        except CacheSupersededError as e:
            machine.transition(RegenerationState.ABORTED)
            log.info("cache_superseded", newer_entries=e.newer_entries)
            return UserRefreshResult(
                user_id=user_id, outcome=RefreshOutcome.PRESERVED, prior_state=state
            )
        except CacheWriteError as e:
            machine.transition(RegenerationState.ABORTED)
            log.error("cache_restore_failed", error=str(e))
            return UserRefreshResult(
                user_id=user_id,
                outcome=RefreshOutcome.FAILED,
                prior_state=state,
                error=str(e),
            )

        machine.transition(RegenerationState.RESTORED)
        log.info("cache_restored", entries_restored=restored)
        return UserRefreshResult(
            user_id=user_id,
            outcome=RefreshOutcome.RESTORED,
            prior_state=state,
            entries_restored=restored,
        )

    def _clear(
        self,
        user_id: str,
        state: CacheState,
        machine: RegenerationStateMachine,
        log: structlog.stdlib.BoundLogger,
    ) -> UserRefreshResult:
        try:
            self._store.delete_cache(user_id)
        except CacheWriteError as e:
            machine.transition(RegenerationState.ABORTED)
            log.error("cache_clear_failed", error=str(e))
            return UserRefreshResult(
                user_id=user_id,
                outcome=RefreshOutcome.FAILED,
                prior_state=state,
                error=str(e),
            )

        machine.transition(RegenerationState.CLEARED)
        log.info("cache_cleared_empty_ranking")
        return UserRefreshResult(
            user_id=user_id, outcome=RefreshOutcome.CLEARED, prior_state=state
        )
