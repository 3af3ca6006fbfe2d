"""Batch ranking runner with parallel execution and failure isolation."""

import contextvars
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from dropfeed.cache.locks import UserLockRegistry
from dropfeed.cache.manager import CacheManager
from dropfeed.cache.models import RefreshOutcome, UserRefreshResult
from dropfeed.config.constants import COMPONENT_RUNNER
from dropfeed.config.schemas import RankingConfig
from dropfeed.engine.metrics import EngineMetrics
from dropfeed.engine.models import TriggerRequest, TriggerResponse, TriggerType
from dropfeed.observability.logging import (
    bind_run_context,
    bind_user_context,
    clear_run_context,
)
from dropfeed.ranker.feedback import EngagementFeedbackProvider, FeedbackScoreProvider
from dropfeed.ranker.ranker import FeedRanker
from dropfeed.store.errors import StoreError
from dropfeed.store.store import FeedStore


logger = structlog.get_logger()

TIME_BUDGET_EXHAUSTED = "time budget exhausted before user started"


class UserResolutionError(Exception):
    """Raised when the users covered by a trigger cannot be determined."""


@dataclass
class RunnerResult:
    """Result of a complete runner execution."""

    run_id: str
    trigger: TriggerType
    started_at: datetime
    finished_at: datetime
    user_results: dict[str, UserRefreshResult] = field(default_factory=dict)

    def count(self, outcome: RefreshOutcome) -> int:
        """Count users with the given outcome."""
        return sum(1 for r in self.user_results.values() if r.outcome == outcome)

    @property
    def duration_ms(self) -> float:
        """Get total duration in milliseconds."""
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_response(self) -> TriggerResponse:
        """Summarize as a trigger response."""
        results = self.user_results.values()
        return TriggerResponse(
            success=True,
            trigger=self.trigger,
            run_id=self.run_id,
            processed_users=sum(1 for r in results if r.success),
            cache_entries_written=sum(r.entries_written for r in results),
            cache_preserved=self.count(RefreshOutcome.PRESERVED),
            cache_regenerated=self.count(RefreshOutcome.REGENERATED),
            cache_restored=self.count(RefreshOutcome.RESTORED),
            users_skipped=self.count(RefreshOutcome.SKIPPED),
            users_failed=self.count(RefreshOutcome.FAILED),
        )


class FeedRankingRunner:
    """Refreshes feed caches for the users a trigger covers.

    Provides:
    - User resolution per trigger type
    - Parallel per-user refreshes on a bounded worker pool
    - Failure isolation (one user failing doesn't stop others)
    - An optional wall-clock budget; users not started in time are skipped
    - Structured logging and metrics
    """

    def __init__(  # noqa: PLR0913
        self,
        store: FeedStore,
        config: RankingConfig | None = None,
        run_id: str | None = None,
        max_workers: int | None = None,
        feedback_provider: FeedbackScoreProvider | None = None,
        locks: UserLockRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the runner.

        Args:
            store: Feed store.
            config: Ranking configuration.
            run_id: Unique run identifier (generated if not provided).
            max_workers: Concurrent users; overrides the configured value.
            feedback_provider: Affinity source; engagement history by default.
            locks: Per-user lock registry shared with other runners.
            clock: Source of the current time.
            timer: Monotonic time source for the time budget.
        """
        self._store = store
        self._timer = timer
        self._config = config or RankingConfig()
        self._run_id = run_id or str(uuid.uuid4())
        self._max_workers = max_workers or self._config.runner.max_workers
        self._metrics = EngineMetrics.get_instance()
        self._log = logger.bind(component=COMPONENT_RUNNER, run_id=self._run_id)

        ranker = FeedRanker(
            self._run_id,
            store,
            feedback_provider or EngagementFeedbackProvider(store),
            self._config,
        )
        self._manager = CacheManager(
            self._run_id,
            store,
            ranker,
            self._config.cache,
            locks=locks,
            clock=clock,
        )

    @property
    def run_id(self) -> str:
        """Get the run ID."""
        return self._run_id

    @property
    def max_workers(self) -> int:
        """Get the number of users ranked concurrently."""
        return self._max_workers

    def run(self, request: TriggerRequest) -> TriggerResponse:
        """Execute a trigger.

        Args:
            request: What to refresh.

        Returns:
            Aggregate counts; success is False only when users could not
            be resolved.
        """
        bind_run_context(self._run_id, request.trigger.value)
        self._metrics.record_run()

        try:
            try:
                user_ids = self.resolve_users(request)
            except (UserResolutionError, StoreError) as e:
                self._log.error(
                    "user_resolution_failed",
                    trigger=request.trigger.value,
                    error=str(e),
                )
                return TriggerResponse(
                    success=False,
                    trigger=request.trigger,
                    run_id=self._run_id,
                    error=str(e),
                )

            result = self.refresh_users(
                user_ids, request.trigger, force=request.force_regeneration
            )
            return result.to_response()
        finally:
            clear_run_context()

    def resolve_users(self, request: TriggerRequest) -> list[str]:
        """Determine the users a trigger covers.

        Explicit user ids win. Onboarding triggers require them. Preload
        picks users with the oldest cache first; other triggers cover
        every user with a topic selection.

        Raises:
            UserResolutionError: If the request names no users where it must.
            StoreError: If the store cannot be read.
        """
        if request.user_ids:
            return list(dict.fromkeys(request.user_ids))

        if request.trigger == TriggerType.ONBOARDING_COMPLETED:
            msg = "onboarding_completed trigger requires user_ids"
            raise UserResolutionError(msg)

        if request.trigger == TriggerType.PRELOAD:
            return self._store.list_users_by_oldest_cache(request.users_limit)

        return self._store.list_users_with_preferences(request.users_limit)

    def refresh_users(
        self,
        user_ids: list[str],
        trigger: TriggerType = TriggerType.MANUAL,
        force: bool = False,
    ) -> RunnerResult:
        """Refresh the given users' caches.

        Args:
            user_ids: Users to refresh.
            trigger: What started the run.
            force: Regenerate even valid caches.

        Returns:
            RunnerResult with per-user results.
        """
        started_at = datetime.now(UTC)
        budget = self._config.runner.time_budget_seconds
        deadline = self._timer() + budget if budget is not None else None

        self._log.info(
            "ranking_started",
            trigger=trigger.value,
            user_count=len(user_ids),
            max_workers=self._max_workers,
            forced=force,
            time_budget_seconds=budget,
        )

        user_results: dict[str, UserRefreshResult] = {}

        if self._max_workers <= 1:
            # Sequential execution
            for user_id in user_ids:
                user_results[user_id] = contextvars.copy_context().run(
                    self._refresh_one, user_id, force, deadline
                )
        else:
            # Parallel execution; each task gets its own copy of the log context
            with ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="ranking"
            ) as executor:
                future_to_user = {
                    executor.submit(
                        contextvars.copy_context().run,
                        self._refresh_one,
                        user_id,
                        force,
                        deadline,
                    ): user_id
                    for user_id in user_ids
                }

                for future in as_completed(future_to_user):
                    user_id = future_to_user[future]
                    try:
                        user_results[user_id] = future.result()
                    except Exception as e:  # noqa: BLE001
                        self._log.error(
                            "user_execution_error", user_id=user_id, error=str(e)
                        )
                        user_results[user_id] = UserRefreshResult(
                            user_id=user_id,
                            outcome=RefreshOutcome.FAILED,
                            error=f"Execution error: {e}",
                        )

        finished_at = datetime.now(UTC)
        result = RunnerResult(
            run_id=self._run_id,
            trigger=trigger,
            started_at=started_at,
            finished_at=finished_at,
            user_results=user_results,
        )

        self._log.info(
            "ranking_complete",
            duration_ms=round(result.duration_ms, 2),
            users_preserved=result.count(RefreshOutcome.PRESERVED),
            users_regenerated=result.count(RefreshOutcome.REGENERATED),
            users_restored=result.count(RefreshOutcome.RESTORED),
            users_cleared=result.count(RefreshOutcome.CLEARED),
            users_skipped=result.count(RefreshOutcome.SKIPPED),
            users_failed=result.count(RefreshOutcome.FAILED),
        )

        return result

    def _refresh_one(
        self,
        user_id: str,
        force: bool,
        deadline: float | None,
    ) -> UserRefreshResult:
        """Refresh a single user, isolating any failure.

        Args:
            user_id: The user to refresh.
            force: Regenerate even a valid cache.
            deadline: Monotonic time after which users are no longer started.

        Returns:
            The user's refresh result.
        """
        bind_user_context(user_id)

        if deadline is not None and self._timer() >= deadline:
            self._log.warning("user_skipped", user_id=user_id, reason="time_budget")
            result = UserRefreshResult(
                user_id=user_id,
                outcome=RefreshOutcome.SKIPPED,
                error=TIME_BUDGET_EXHAUSTED,
            )
            self._metrics.record_refresh(result)
            return result

        try:
            result = self._manager.refresh_user(user_id, force=force)
        except Exception as e:  # noqa: BLE001
            self._log.error("user_refresh_failed", user_id=user_id, error=str(e))
            result = UserRefreshResult(
                user_id=user_id, outcome=RefreshOutcome.FAILED, error=str(e)
            )

        self._metrics.record_refresh(result)
        return result


def run_trigger_pure(
    store: FeedStore,
    request: TriggerRequest,
    config: RankingConfig | None = None,
    max_workers: int | None = None,
) -> TriggerResponse:
    """Pure function API for running a trigger.

    Args:
        store: Connected feed store.
        request: What to refresh.
        config: Ranking configuration.
        max_workers: Concurrent users.

    Returns:
        The trigger response.
    """
    runner = FeedRankingRunner(store, config=config, max_workers=max_workers)
    return runner.run(request)
