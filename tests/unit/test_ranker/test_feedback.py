"""Unit tests for feedback affinity and batched lookups."""

import threading
from collections.abc import Sequence

import pytest

from dropfeed.ranker.feedback import (
    EngagementFeedbackProvider,
    FeedbackBatcher,
    compute_affinity,
)
from dropfeed.store.models import CandidateItem, EngagementSignal
from tests.helpers.time import FIXED_NOW


def _signal(
    drop_id: int, action: str, source_id: int | None = 1, tags: tuple[str, ...] = ()
) -> EngagementSignal:
    return EngagementSignal(drop_id=drop_id, action=action, source_id=source_id, tags=tags)


def _candidates(count: int) -> list[CandidateItem]:
    return [
        CandidateItem(id=i, source_id=1, created_at=FIXED_NOW)
        for i in range(1, count + 1)
    ]


class _StaticProvider:
    """Returns a fixed affinity per item id, failing for chosen ids."""

    def __init__(
        self, scores: dict[int, float], failing: frozenset[int] = frozenset()
    ) -> None:
        self._scores = scores
        self._failing = failing
        self.calls = 0
        self._lock = threading.Lock()

    def fetch_feedback_affinity(
        self,
        user_id: str,
        item_id: int,
        source_id: int | None,
        tags: Sequence[str],
    ) -> float:
        with self._lock:
            self.calls += 1
        if item_id in self._failing:
            raise RuntimeError("feedback backend unavailable")
        return self._scores.get(item_id, 0.0)


class _BlockingProvider:
    """Blocks every lookup until released."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def fetch_feedback_affinity(
        self,
        user_id: str,
        item_id: int,
        source_id: int | None,
        tags: Sequence[str],
    ) -> float:
        self.release.wait(timeout=5)
        return 1.0


class _CountingEngagementSource:
    def __init__(self, signals: list[EngagementSignal]) -> None:
        self._signals = signals
        self.calls = 0

    def fetch_engagement_signals(self, user_id: str) -> list[EngagementSignal]:
        self.calls += 1
        return self._signals


class TestComputeAffinity:
    """Tests for deriving affinity from engagement history."""

    def test_no_history(self) -> None:
        """No engagement means no affinity."""
        assert compute_affinity([], 1, 1, ("rust",)) == 0.0

    def test_same_source_like(self) -> None:
        """A like on the same source contributes the source weight."""
        affinity = compute_affinity([_signal(9, "like")], 1, 1, ())
        assert affinity == pytest.approx(0.6 / 5.0)

    def test_shared_tag_and_source(self) -> None:
        """Source and tag relations add up."""
        affinity = compute_affinity(
            [_signal(9, "save", tags=("Rust",))], 1, 1, ("rust",)
        )
        assert affinity == pytest.approx(1.0 / 5.0)

    def test_unrelated_engagement_ignored(self) -> None:
        """Engagement with unrelated drops adds nothing."""
        affinity = compute_affinity(
            [_signal(9, "like", source_id=2, tags=("go",))], 1, 1, ("rust",)
        )
        assert affinity == 0.0

    def test_saturates_at_one(self) -> None:
        """Heavy engagement caps at full affinity."""
        signals = [_signal(i, "like", tags=("rust",)) for i in range(100, 120)]
        assert compute_affinity(signals, 1, 1, ("rust",)) == 1.0

    def test_negative_actions_pull_down(self) -> None:
        """Dismissing related drops offsets likes and never goes below 0."""
        signals = [_signal(9, "like"), _signal(10, "dismiss"), _signal(11, "hide")]
        assert compute_affinity(signals, 1, 1, ()) == 0.0

    def test_dismissed_item_scores_zero(self) -> None:
        """An item the user dismissed gets no affinity at all."""
        signals = [_signal(1, "dismiss")] + [_signal(i, "like") for i in range(2, 10)]
        assert compute_affinity(signals, 1, 1, ()) == 0.0

    def test_unknown_action_ignored(self) -> None:
        """Unknown actions carry no weight."""
        assert compute_affinity([_signal(9, "bookmark_v2")], 1, 1, ()) == 0.0


class TestEngagementFeedbackProvider:
    """Tests for the engagement-backed provider."""

    def test_history_loaded_once_per_user(self) -> None:
        """Lookups for one user share one history read."""
        source = _CountingEngagementSource([_signal(9, "like")])
        provider = EngagementFeedbackProvider(source)

        for item_id in range(1, 6):
            provider.fetch_feedback_affinity("user-1", item_id, 1, ())

        assert source.calls == 1

    def test_history_loaded_per_user(self) -> None:
        """Each user gets their own history read."""
        source = _CountingEngagementSource([])
        provider = EngagementFeedbackProvider(source)
        provider.fetch_feedback_affinity("user-1", 1, 1, ())
        provider.fetch_feedback_affinity("user-2", 1, 1, ())
        provider.fetch_feedback_affinity("user-1", 2, 1, ())
        assert source.calls == 2


class TestFeedbackBatcher:
    """Tests for batched, time-bounded feedback lookups."""

    def test_every_candidate_scored(self) -> None:
        """Every candidate id is present in the result."""
        provider = _StaticProvider({2: 0.5})
        batcher = FeedbackBatcher(provider, "test", batch_size=2)

        scores = batcher.fetch_scores("user-1", _candidates(5))

        assert scores == {1: 0.0, 2: 0.5, 3: 0.0, 4: 0.0, 5: 0.0}
        assert provider.calls == 5

    def test_failures_score_zero(self) -> None:
        """A failing lookup scores 0 without affecting its batch."""
        provider = _StaticProvider({1: 0.9, 2: 0.8}, failing=frozenset({2}))
        batcher = FeedbackBatcher(provider, "test", batch_size=50)

        scores = batcher.fetch_scores("user-1", _candidates(3))

        assert scores == {1: 0.9, 2: 0.0, 3: 0.0}

    def test_values_clamped(self) -> None:
        """Provider values outside [0, 1] are clamped."""
        provider = _StaticProvider({1: 4.0, 2: -1.0})
        scores = FeedbackBatcher(provider, "test").fetch_scores("u", _candidates(2))
        assert scores == {1: 1.0, 2: 0.0}

    def test_timeout_scores_zero(self) -> None:
        """Lookups that miss the batch deadline score 0."""
        provider = _BlockingProvider()
        batcher = FeedbackBatcher(provider, "test", timeout_seconds=0.05)
        try:
            scores = batcher.fetch_scores("user-1", _candidates(3))
        finally:
            provider.release.set()

        assert scores == {1: 0.0, 2: 0.0, 3: 0.0}

    def test_no_candidates(self) -> None:
        """Nothing to look up gives an empty mapping."""
        provider = _StaticProvider({})
        assert FeedbackBatcher(provider, "test").fetch_scores("u", []) == {}
        assert provider.calls == 0
