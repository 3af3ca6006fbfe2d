"""Integration tests for cache regeneration against a real store."""

import tempfile
from collections.abc import Generator, Sequence
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from dropfeed.cache.manager import CacheManager
from dropfeed.cache.models import RefreshOutcome
from dropfeed.config.schemas import RankingConfig
from dropfeed.ranker.feedback import EngagementFeedbackProvider
from dropfeed.ranker.ranker import FeedRanker
from dropfeed.store.errors import CacheWriteError, StoreReadError
from dropfeed.store.metrics import StoreMetrics
from dropfeed.store.models import CacheEntry, CandidateItem
from dropfeed.store.store import FeedStore
from tests.helpers.seed import (
    make_cache_entries,
    seed_drops,
    seed_sources,
    seed_taxonomy,
    seed_user,
)
from tests.helpers.time import FIXED_NOW


class _FailingReplaceStore(FeedStore):
    """Feed store whose cache replace always fails."""

    def replace_cache(self, user_id: str, entries: Sequence[CacheEntry]) -> int:
        raise CacheWriteError(user_id, "disk full")


class _ConcurrentWriterStore(FeedStore):
    """Feed store where another writer commits just before our replace fails."""

    newer: Sequence[CacheEntry] = ()

    def replace_cache(self, user_id: str, entries: Sequence[CacheEntry]) -> int:
        super().replace_cache(user_id, self.newer)
        raise CacheWriteError(user_id, "database is locked")


class _FailingCandidatesStore(FeedStore):
    """Feed store whose candidate query always fails."""

    def fetch_tagged_candidates(self, since: datetime, limit: int) -> list[CandidateItem]:
        raise StoreReadError("fetch_tagged_candidates", "database is locked")


@pytest.fixture
def temp_db_path() -> Generator[Path]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_feed.sqlite"


def _seed(store: FeedStore, drops: int = 40) -> None:
    seed_taxonomy(store)
    seed_sources(store, 20)
    seed_drops(store, drops, sources=20)
    seed_user(store, "user-1")


def _manager(store: FeedStore, config: RankingConfig | None = None) -> CacheManager:
    config = config or RankingConfig()
    ranker = FeedRanker("test", store, EngagementFeedbackProvider(store), config)
    return CacheManager("test", store, ranker, config.cache, clock=lambda: FIXED_NOW)


class TestRegeneration:
    """Tests for regenerating caches from stored drops."""

    def test_regenerates_absent_cache(self, temp_db_path: Path) -> None:
        """A user with preferences gets a ranked, source-diverse cache."""
        StoreMetrics.reset()
        with FeedStore(temp_db_path) as store:
            _seed(store)

            result = _manager(store).refresh_user("user-1")

            cached = store.get_cache_entries("user-1", FIXED_NOW)
            assert result.outcome == RefreshOutcome.REGENERATED
            assert result.entries_written == len(cached) == 40
            assert [e.position for e in cached] == list(range(1, 41))
            assert len({e.item_id for e in cached}) == 40
            scores = [e.final_score for e in cached]
            assert scores == sorted(scores, reverse=True)
            assert all(e.expires_at == FIXED_NOW + timedelta(hours=6) for e in cached)

    def test_second_run_is_idempotent(self, temp_db_path: Path) -> None:
        """Running twice writes the cache once."""
        StoreMetrics.reset()
        with FeedStore(temp_db_path) as store:
            _seed(store)
            manager = _manager(store)

            first = manager.refresh_user("user-1")
            before = store.get_cache_entries("user-1", FIXED_NOW)
            second = manager.refresh_user("user-1")

            assert first.outcome == RefreshOutcome.REGENERATED
            assert second.outcome == RefreshOutcome.PRESERVED
            assert second.entries_written == 0
            assert store.get_cache_entries("user-1", FIXED_NOW) == before
            assert StoreMetrics.get_instance().cache_rows_written_total == 40

    def test_write_failure_restores_prior_rows(self, temp_db_path: Path) -> None:
        """A failed write leaves exactly the previous generation in place."""
        with _FailingReplaceStore(temp_db_path) as store:
            _seed(store)
            prior = make_cache_entries(
                "user-1", 7, FIXED_NOW - timedelta(hours=2), start_item_id=1
            )
            store.restore_cache("user-1", prior, FIXED_NOW + timedelta(hours=1))

            result = _manager(store).refresh_user("user-1")

            cached = store.get_cache_entries("user-1", FIXED_NOW)
            assert result.outcome == RefreshOutcome.RESTORED
            assert result.entries_restored == 7
            assert [e.item_id for e in cached] == [e.item_id for e in prior]
            assert all(e.expires_at == FIXED_NOW + timedelta(hours=6) for e in cached)

    def test_write_failure_keeps_newer_generation(self, temp_db_path: Path) -> None:
        """A restore never overwrites a generation another writer committed."""
        with _ConcurrentWriterStore(temp_db_path) as store:
            _seed(store)
            prior = make_cache_entries(
                "user-1", 7, FIXED_NOW - timedelta(hours=2), start_item_id=1
            )
            store.restore_cache("user-1", prior, FIXED_NOW + timedelta(hours=1))
            store.newer = make_cache_entries(
                "user-1", 12, FIXED_NOW - timedelta(minutes=1), start_item_id=20
            )

            result = _manager(store).refresh_user("user-1")

            cached = store.get_cache_entries("user-1", FIXED_NOW)
            assert result.outcome == RefreshOutcome.PRESERVED
            assert result.entries_restored == 0
            assert [e.item_id for e in cached] == [e.item_id for e in store.newer]

    def test_empty_pool_clears_cache(self, temp_db_path: Path) -> None:
        """No candidates and no backup completes with zero rows."""
        with FeedStore(temp_db_path) as store:
            seed_user(store, "user-1")

            result = _manager(store).refresh_user("user-1")

            assert result.outcome == RefreshOutcome.CLEARED
            assert store.get_cache_entries("user-1", FIXED_NOW) == []

    def test_fetch_error_keeps_cache(self, temp_db_path: Path) -> None:
        """A candidate query failure leaves the cache as it was."""
        with _FailingCandidatesStore(temp_db_path) as store:
            seed_user(store, "user-1")
            prior = make_cache_entries("user-1", 3, FIXED_NOW - timedelta(hours=1))
            store.replace_cache("user-1", prior)

            result = _manager(store).refresh_user("user-1")

            assert result.outcome == RefreshOutcome.SKIPPED
            assert store.get_cache_entries("user-1", FIXED_NOW) == prior

    def test_personalization_shapes_order(self, temp_db_path: Path) -> None:
        """Drops in the user's topics outrank unrelated drops."""
        with FeedStore(temp_db_path) as store:
            seed_taxonomy(store)
            seed_sources(store, 20)
            seed_drops(store, 10, sources=20, macro_topic_id=None)
            seed_drops(store, 3, start_id=100, sources=20)
            seed_user(store, "user-1")

            _manager(store).refresh_user("user-1")

            cached = store.get_cache_entries("user-1", FIXED_NOW)
            assert {e.item_id for e in cached[:3]} == {100, 101, 102}
            assert cached[0].reason.endswith("Matches interests: main topic")
