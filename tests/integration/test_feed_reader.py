"""Integration tests for cache-first feed reads."""

import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from dropfeed.config.constants import ALGORITHM_SOURCE_CACHE, ALGORITHM_SOURCE_DIRECT
from dropfeed.consumers.feed import FeedReader
from dropfeed.store.models import CandidateItem
from dropfeed.store.store import FeedStore
from tests.helpers.seed import (
    MICRO_RUST,
    make_cache_entries,
    seed_drops,
    seed_sources,
    seed_taxonomy,
    seed_user,
)
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def store() -> Generator[FeedStore]:
    """Create a store with ten drops from four sources."""
    with tempfile.TemporaryDirectory() as tmpdir:
        with FeedStore(Path(tmpdir) / "test_feed.sqlite") as feed_store:
            seed_taxonomy(feed_store)
            seed_sources(feed_store, 4)
            seed_drops(feed_store, 10, sources=4)
            yield feed_store


def _reader(store: FeedStore) -> FeedReader:
    return FeedReader(store, clock=lambda: FIXED_NOW)


class TestCachedFeed:
    """Tests for serving the precomputed ranking."""

    def test_served_from_cache(self, store: FeedStore) -> None:
        """A live cache is served in position order with display fields."""
        store.replace_cache(
            "u", make_cache_entries("u", 3, FIXED_NOW, start_item_id=4)
        )

        feed = _reader(store).get_feed("u")

        assert feed.algorithm_source == ALGORITHM_SOURCE_CACHE
        assert [i.item_id for i in feed.items] == [5, 6, 7]
        assert feed.items[0].title == "Drop 5"
        assert feed.items[0].reason == "Relevant content"
        assert feed.items[0].final_score is not None

    def test_limit_applied(self, store: FeedStore) -> None:
        """Only the top entries are returned."""
        store.replace_cache("u", make_cache_entries("u", 5, FIXED_NOW, start_item_id=0))
        feed = _reader(store).get_feed("u", limit=2)
        assert [i.position for i in feed.items] == [1, 2]

    def test_deleted_drops_skipped(self, store: FeedStore) -> None:
        """Cached ids without a drop are left out and positions stay dense."""
        store.replace_cache("u", make_cache_entries("u", 3, FIXED_NOW, start_item_id=9))

        feed = _reader(store).get_feed("u")

        assert [i.item_id for i in feed.items] == [10]
        assert [i.position for i in feed.items] == [1]

    def test_cached_feed_raw(self, store: FeedStore) -> None:
        """get_cached_feed returns the raw rows without fallback."""
        reader = _reader(store)
        assert reader.get_cached_feed("u") == []
        store.replace_cache("u", make_cache_entries("u", 2, FIXED_NOW))
        assert [e.position for e in reader.get_cached_feed("u")] == [1, 2]


class TestDirectQueryFallback:
    """Tests for the fallback when no cache exists."""

    def test_no_cache_falls_back(self, store: FeedStore) -> None:
        """Without a cache, recent drops are served newest first."""
        feed = _reader(store).get_feed("u", limit=3)

        assert feed.algorithm_source == ALGORITHM_SOURCE_DIRECT
        assert [i.item_id for i in feed.items] == [1, 2, 3]
        assert all(i.final_score is None for i in feed.items)

    def test_expired_cache_falls_back(self, store: FeedStore) -> None:
        """An expired cache is treated as no cache."""
        store.replace_cache(
            "u", make_cache_entries("u", 3, FIXED_NOW - timedelta(hours=7), start_item_id=0)
        )
        feed = _reader(store).get_feed("u")
        assert feed.algorithm_source == ALGORITHM_SOURCE_DIRECT

    def test_fallback_prefers_user_topics(self, store: FeedStore) -> None:
        """Drops tagged with a selected slug come first, newest first."""
        seed_user(store, "u", topic_ids=(MICRO_RUST.id,))

        feed = _reader(store).get_feed("u", limit=4)

        # Even drop ids carry the "rust" tag
        assert [i.item_id for i in feed.items] == [2, 4, 6, 8]

    def test_untagged_drops_excluded(self, store: FeedStore) -> None:
        """Drops the tagging pipeline has not finished are not served."""
        store.insert_drop(
            CandidateItem(id=500, source_id=1, created_at=FIXED_NOW), tagged=False
        )
        feed = _reader(store).get_feed("u", limit=1)
        assert feed.items[0].item_id == 1

    def test_empty_store(self) -> None:
        """No drops at all yields an empty feed, not an error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with FeedStore(Path(tmpdir) / "empty.sqlite") as empty_store:
                feed = _reader(empty_store).get_feed("u")
        assert feed.items == []
        assert feed.algorithm_source == ALGORITHM_SOURCE_DIRECT
