"""Per-(user, item) feedback affinity with batched, time-bounded lookups."""

import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Protocol

import structlog

from dropfeed.config.constants import COMPONENT_RANKER
from dropfeed.ranker.constants import (
    ENGAGEMENT_ACTION_WEIGHTS,
    FEEDBACK_SAME_SOURCE_WEIGHT,
    FEEDBACK_SATURATION,
    FEEDBACK_SHARED_TAG_WEIGHT,
    NEGATIVE_ACTIONS,
)
from dropfeed.store.models import CandidateItem, EngagementSignal


logger = structlog.get_logger()


class FeedbackScoreProvider(Protocol):
    """Source of engagement affinity between a user and an item."""

    def fetch_feedback_affinity(
        self,
        user_id: str,
        item_id: int,
        source_id: int | None,
        tags: Sequence[str],
    ) -> float:
        """Return the user's affinity for the item in [0, 1]."""
        ...


class EngagementSource(Protocol):
    """Read access to engagement history."""

    def fetch_engagement_signals(self, user_id: str) -> list[EngagementSignal]:
        """Fetch a user's engagement events joined with their drops."""
        ...


def compute_affinity(
    signals: Sequence[EngagementSignal],
    item_id: int,
    source_id: int | None,
    tags: Sequence[str],
) -> float:
    """Derive affinity for one item from a user's engagement history.

    Each event contributes its action weight scaled by how the engaged
    drop relates to the candidate: same source and any shared tag add
    up. The sum saturates at FEEDBACK_SATURATION. An item the user
    dismissed or hid scores 0.

    Args:
        signals: The user's engagement events.
        item_id: Candidate drop id.
        source_id: Candidate source id.
        tags: Candidate tags.

    Returns:
        Affinity in [0, 1].
    """
    candidate_tags = {t.lower() for t in tags}
    total = 0.0

    for signal in signals:
        action = signal.action.lower()
        if signal.drop_id == item_id and action in NEGATIVE_ACTIONS:
            return 0.0

        weight = ENGAGEMENT_ACTION_WEIGHTS.get(action, 0.0)
        if weight == 0.0:
            continue

        relation = 0.0
        if source_id is not None and signal.source_id == source_id:
            relation += FEEDBACK_SAME_SOURCE_WEIGHT
        if candidate_tags and candidate_tags.intersection(t.lower() for t in signal.tags):
            relation += FEEDBACK_SHARED_TAG_WEIGHT
        total += weight * relation

    return max(0.0, min(1.0, total / FEEDBACK_SATURATION))


class EngagementFeedbackProvider:
    """Feedback provider backed by the engagement_events table.

    Loads each user's history once and answers per-item lookups from it.
    Safe to share between worker threads.
    """

    def __init__(self, source: EngagementSource) -> None:
        """Initialize the provider.

        Args:
            source: Engagement history reader.
        """
        self._source = source
        self._history: dict[str, list[EngagementSignal]] = {}
        self._lock = threading.Lock()

    def _signals_for(self, user_id: str) -> list[EngagementSignal]:
        with self._lock:
            if user_id not in self._history:
                self._history[user_id] = self._source.fetch_engagement_signals(user_id)
            return self._history[user_id]

    def fetch_feedback_affinity(
        self,
        user_id: str,
        item_id: int,
        source_id: int | None,
        tags: Sequence[str],
    ) -> float:
        """Return the user's affinity for the item in [0, 1].

        Raises:
            StoreReadError: If the engagement history cannot be loaded.
        """
        return compute_affinity(self._signals_for(user_id), item_id, source_id, tags)


class FeedbackBatcher:
    """Queries a feedback provider in chunks with a per-chunk timeout.

    Lookups that raise or do not finish in time count as 0, so a slow
    or failing provider degrades personalization instead of blocking
    the ranking run.
    """

    def __init__(
        self,
        provider: FeedbackScoreProvider,
        run_id: str,
        batch_size: int = 50,
        timeout_seconds: float = 5.0,
        max_workers: int = 8,
    ) -> None:
        """Initialize the batcher.

        Args:
            provider: Feedback source.
            run_id: Run identifier for logging.
            batch_size: Lookups per chunk.
            timeout_seconds: Wait budget per chunk.
            max_workers: Concurrent lookups within a chunk.
        """
        self._provider = provider
        self._batch_size = batch_size
        self._timeout_seconds = timeout_seconds
        self._max_workers = max_workers
        self._log = logger.bind(
            component=COMPONENT_RANKER,
            subcomponent="feedback",
            run_id=run_id,
        )

    def fetch_scores(
        self, user_id: str, candidates: Sequence[CandidateItem]
    ) -> dict[int, float]:
        """Look up feedback affinity for every candidate.

        Args:
            user_id: The user being ranked.
            candidates: Items to look up.

        Returns:
            Mapping of item id to affinity; every candidate is present.
        """
        scores: dict[int, float] = {c.id: 0.0 for c in candidates}
        if not candidates:
            return scores

        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, self._batch_size),
            thread_name_prefix="feedback",
        )
        try:
            for start in range(0, len(candidates), self._batch_size):
                chunk = candidates[start : start + self._batch_size]
                scores.update(self._fetch_chunk(executor, user_id, chunk))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return scores

    def _fetch_chunk(
        self,
        executor: ThreadPoolExecutor,
        user_id: str,
        chunk: Sequence[CandidateItem],
    ) -> dict[int, float]:
        futures: dict[Future[float], int] = {
            executor.submit(
                self._provider.fetch_feedback_affinity,
                user_id,
                item.id,
                item.source_id,
                item.tags,
            ): item.id
            for item in chunk
        }

        done, not_done = wait(futures, timeout=self._timeout_seconds)

        results: dict[int, float] = {}
        failed = 0
        last_error: str | None = None
        for future in done:
            item_id = futures[future]
            try:
                results[item_id] = max(0.0, min(1.0, float(future.result())))
            except Exception as e:  # noqa: BLE001
                failed += 1
                last_error = str(e)
                results[item_id] = 0.0

        for future in not_done:
            future.cancel()
            results[futures[future]] = 0.0

        if failed or not_done:
            self._log.warning(
                "feedback_lookup_failed",
                user_id=user_id,
                chunk_size=len(chunk),
                failed_count=failed,
                timed_out_count=len(not_done),
                error=last_error,
            )

        return results
