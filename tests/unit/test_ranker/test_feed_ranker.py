"""Unit tests for candidate fetching and the per-user ranking pipeline."""

from collections.abc import Sequence
from datetime import datetime, timedelta

import pytest

from dropfeed.config.schemas import FetchConfig, RankingConfig, SelectionConfig
from dropfeed.ranker.errors import CandidateFetchError
from dropfeed.ranker.fetcher import CandidateFetcher
from dropfeed.ranker.ranker import FeedRanker
from dropfeed.ranker.topic_hierarchy import TopicHierarchyResolver
from dropfeed.store.errors import StoreReadError
from dropfeed.store.models import (
    CandidateItem,
    DropKind,
    Topic,
    TopicLevel,
    UserPreferenceProfile,
)
from tests.helpers.time import FIXED_NOW


class _FakeSource:
    """In-memory stand-in for the store reads used by the ranker."""

    def __init__(
        self,
        candidates: list[CandidateItem] | None = None,
        profile: UserPreferenceProfile | None = None,
        topics: list[Topic] | None = None,
        fail_on: str | None = None,
    ) -> None:
        self.candidates = candidates or []
        self.profile = profile
        self.topics = topics or []
        self.fail_on = fail_on
        self.since: datetime | None = None
        self.limit: int | None = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise StoreReadError(operation, "database is locked")

    def fetch_tagged_candidates(self, since: datetime, limit: int) -> list[CandidateItem]:
        self._maybe_fail("fetch_tagged_candidates")
        self.since = since
        self.limit = limit
        return [c for c in self.candidates if c.created_at >= since][:limit]

    def fetch_user_preferences(self, user_id: str) -> UserPreferenceProfile:
        self._maybe_fail("fetch_user_preferences")
        return self.profile or UserPreferenceProfile(user_id=user_id)

    def fetch_topics(self, topic_ids: Sequence[int]) -> list[Topic]:
        self._maybe_fail("fetch_topics")
        return [t for t in self.topics if t.id in topic_ids]


class _NoFeedback:
    def fetch_feedback_affinity(
        self,
        user_id: str,
        item_id: int,
        source_id: int | None,
        tags: Sequence[str],
    ) -> float:
        return 0.0


def _candidate(
    item_id: int,
    source_id: int,
    hours_old: float = 1.0,
    macro_topic_id: int | None = None,
    kind: DropKind = DropKind.ARTICLE,
) -> CandidateItem:
    return CandidateItem(
        id=item_id,
        kind=kind,
        source_id=source_id,
        created_at=FIXED_NOW - timedelta(hours=hours_old),
        macro_topic_id=macro_topic_id,
    )


def _fetcher(source: _FakeSource, config: FetchConfig | None = None) -> CandidateFetcher:
    return CandidateFetcher(
        source,
        TopicHierarchyResolver(source, "test"),
        config or FetchConfig(),
        "test",
    )


class TestCandidateFetcher:
    """Tests for CandidateFetcher."""

    def test_lookback_and_limit_applied(self) -> None:
        """The window starts lookback_days before now and the limit is passed on."""
        source = _FakeSource(
            candidates=[_candidate(1, 1, hours_old=24), _candidate(2, 1, hours_old=24 * 40)]
        )
        inputs = _fetcher(source, FetchConfig(lookback_days=30, candidate_limit=7)).fetch(
            "user-1", FIXED_NOW
        )

        assert source.since == FIXED_NOW - timedelta(days=30)
        assert source.limit == 7
        assert [c.id for c in inputs.candidates] == [1]

    def test_hierarchy_resolved(self) -> None:
        """The user's selected topics are expanded."""
        source = _FakeSource(
            profile=UserPreferenceProfile(user_id="user-1", selected_topic_ids=(5,)),
            topics=[Topic(id=5, slug="ai", level=TopicLevel.MACRO)],
        )
        inputs = _fetcher(source).fetch("user-1", FIXED_NOW)
        assert inputs.hierarchy.macro == frozenset({5})

    @pytest.mark.parametrize(
        "operation",
        ["fetch_user_preferences", "fetch_topics", "fetch_tagged_candidates"],
    )
    def test_store_errors_become_fetch_errors(self, operation: str) -> None:
        """Any store read failure aborts the user's fetch."""
        source = _FakeSource(
            profile=UserPreferenceProfile(user_id="user-1", selected_topic_ids=(5,)),
            fail_on=operation,
        )
        with pytest.raises(CandidateFetchError) as exc_info:
            _fetcher(source).fetch("user-1", FIXED_NOW)
        assert exc_info.value.user_id == "user-1"


class TestFeedRanker:
    """Tests for the fetch, score, select pipeline."""

    def test_rank_user(self) -> None:
        """Matching, fresh drops rank first and positions are dense."""
        source = _FakeSource(
            candidates=[
                _candidate(1, 1, hours_old=2),
                _candidate(2, 2, hours_old=1, macro_topic_id=5),
                _candidate(3, 3, hours_old=3),
            ],
            profile=UserPreferenceProfile(user_id="user-1", selected_topic_ids=(5,)),
            topics=[Topic(id=5, slug="ai", level=TopicLevel.MACRO)],
        )
        ranker = FeedRanker("test", source, _NoFeedback())

        outcome = ranker.rank_user("user-1", FIXED_NOW)

        assert outcome.candidates_in == 3
        assert outcome.candidates_scored == 3
        assert outcome.entries[0].item_id == 2
        assert [e.position for e in outcome.entries] == [1, 2, 3]
        assert all(0.0 <= e.final_score <= 1.0 for e in outcome.entries)

    def test_no_candidates(self) -> None:
        """An empty pool yields an empty outcome."""
        outcome = FeedRanker("test", _FakeSource(), _NoFeedback()).rank_user(
            "user-1", FIXED_NOW
        )
        assert outcome.is_empty
        assert outcome.candidates_in == 0

    def test_selection_config_applied(self) -> None:
        """The selector honors the configured limits."""
        source = _FakeSource(candidates=[_candidate(i, i) for i in range(1, 11)])
        config = RankingConfig(selection=SelectionConfig(max_items=4))
        outcome = FeedRanker("test", source, _NoFeedback(), config).rank_user(
            "user-1", FIXED_NOW
        )
        assert len(outcome.entries) == 4

    def test_fetch_error_propagates(self) -> None:
        """Fetch failures surface to the cache manager."""
        source = _FakeSource(fail_on="fetch_tagged_candidates")
        with pytest.raises(CandidateFetchError):
            FeedRanker("test", source, _NoFeedback()).rank_user("user-1", FIXED_NOW)
