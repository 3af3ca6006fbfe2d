"""Integration tests for the SQLite feed store."""

import sqlite3
import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from dropfeed.store.errors import (
    CacheSupersededError,
    CacheWriteError,
    ConnectionError,
    StoreReadError,
)
from dropfeed.store.metrics import StoreMetrics
from dropfeed.store.migrations import CURRENT_VERSION, MigrationManager
from dropfeed.store.models import CandidateItem, DropKind, UserPreferenceProfile
from dropfeed.store.store import FeedStore
from tests.helpers.seed import (
    make_cache_entries,
    seed_drops,
    seed_sources,
    seed_taxonomy,
    seed_user,
)
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def temp_db_path() -> Generator[Path]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_feed.sqlite"


@pytest.fixture
def store(temp_db_path: Path) -> Generator[FeedStore]:
    """Create a connected feed store."""
    StoreMetrics.reset()
    store = FeedStore(temp_db_path, run_id="test-run-001")
    store.connect()
    yield store
    store.close()


class TestFeedStoreConnection:
    """Tests for store connection and setup."""

    def test_connect_creates_parent_dirs(self, temp_db_path: Path) -> None:
        """Connecting creates missing parent directories."""
        nested = temp_db_path.parent / "nested" / "feed.sqlite"
        with FeedStore(nested) as store:
            assert store.is_connected
        assert nested.exists()

    def test_context_manager(self, temp_db_path: Path) -> None:
        """The store works as a context manager."""
        with FeedStore(temp_db_path) as store:
            assert store.get_schema_version() == CURRENT_VERSION
        assert not store.is_connected

    def test_wal_mode_enabled(self, store: FeedStore) -> None:
        """WAL mode is enabled."""
        mode = store._ensure_connected().execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_not_connected(self, temp_db_path: Path) -> None:
        """Using a closed store raises a connection error."""
        store = FeedStore(temp_db_path)
        with pytest.raises(ConnectionError):
            store.get_stats()

    def test_reconnect_keeps_schema(self, temp_db_path: Path) -> None:
        """Migrations are not re-applied on an up-to-date database."""
        with FeedStore(temp_db_path) as store:
            seed_sources(store, 1)
        with FeedStore(temp_db_path) as store:
            assert store.get_stats()["sources"] == 1

    def test_rollback_drops_cache_table(self, store: FeedStore) -> None:
        """Rolling back to version 1 removes the cache table."""
        manager = MigrationManager(store._ensure_connected())
        assert manager.rollback_to(1) == [2]
        assert manager.get_current_version() == 1
        with pytest.raises(StoreReadError):
            store.get_cache_entries("u", FIXED_NOW)


class TestCandidateReads:
    """Tests for candidate and preference reads."""

    def test_fetch_tagged_candidates(self, store: FeedStore) -> None:
        """Only tagged drops inside the window are returned, newest first."""
        seed_sources(store, 3)
        seed_drops(store, 5, sources=3)
        store.insert_drop(
            CandidateItem(id=99, source_id=1, created_at=FIXED_NOW), tagged=False
        )

        candidates = store.fetch_tagged_candidates(
            FIXED_NOW - timedelta(hours=3, minutes=30), limit=10
        )

        assert [c.id for c in candidates] == [1, 2, 3]
        assert candidates[0].source_name == "Source 2"
        assert candidates[0].tags == ("python",)
        assert candidates[0].authority_score == 0.8

    def test_candidate_limit(self, store: FeedStore) -> None:
        """The limit caps the pool."""
        seed_sources(store, 3)
        seed_drops(store, 10, sources=3)
        assert len(store.fetch_tagged_candidates(FIXED_NOW - timedelta(days=1), 4)) == 4

    def test_embedding_round_trip(self, store: FeedStore) -> None:
        """Embeddings and video kind survive storage."""
        store.insert_drop(
            CandidateItem(
                id=1,
                kind=DropKind.VIDEO,
                created_at=FIXED_NOW,
                embedding=(0.1, 0.2),
            )
        )
        (candidate,) = store.fetch_tagged_candidates(FIXED_NOW - timedelta(hours=1), 5)
        assert candidate.embedding == (0.1, 0.2)
        assert candidate.is_video
        assert candidate.source_name == "Unknown Source"

    def test_invalid_rows_skipped(self, store: FeedStore) -> None:
        """Rows the tagging pipeline left malformed are skipped."""
        seed_sources(store, 1)
        seed_drops(store, 2, sources=1)
        store._ensure_connected().execute(
            "UPDATE drops SET tags = 'not json' WHERE id = 1"
        )

        candidates = store.fetch_tagged_candidates(FIXED_NOW - timedelta(days=1), 10)

        assert [c.id for c in candidates] == [2]

    def test_user_preferences(self, store: FeedStore) -> None:
        """Preferences round-trip; unknown users get an empty profile."""
        store.set_user_preferences(
            UserPreferenceProfile(
                user_id="u1", selected_topic_ids=(1, 3), preference_embedding=(0.5,)
            )
        )
        profile = store.fetch_user_preferences("u1")
        assert profile.selected_topic_ids == (1, 3)
        assert profile.preference_embedding == (0.5,)
        assert not store.fetch_user_preferences("nobody").has_preferences

    def test_fetch_topics(self, store: FeedStore) -> None:
        """Topics are fetched by id."""
        seed_taxonomy(store)
        assert {t.slug for t in store.fetch_topics([1, 3, 42])} == {"ai", "rust"}
        assert store.fetch_topics([]) == []

    def test_engagement_signals(self, store: FeedStore) -> None:
        """Engagement events are joined with their drops."""
        seed_sources(store, 2)
        seed_drops(store, 2, sources=2)
        store.record_engagement("u1", 2, "like", at=FIXED_NOW)

        (signal,) = store.fetch_engagement_signals("u1")

        assert signal.drop_id == 2
        assert signal.action == "like"
        assert signal.source_id == 1
        assert signal.tags == ("rust",)

    def test_items_by_ids(self, store: FeedStore) -> None:
        """Display fields are fetched by id; unknown ids are omitted."""
        seed_sources(store, 2)
        seed_drops(store, 3, sources=2)
        items = store.fetch_items_by_ids([1, 3, 77])
        assert set(items) == {1, 3}
        assert items[1].title == "Drop 1"


class TestUserListings:
    """Tests for resolving users to refresh."""

    def test_users_with_preferences(self, store: FeedStore) -> None:
        """Users without a topic selection are excluded."""
        seed_user(store, "b")
        seed_user(store, "a")
        seed_user(store, "empty", topic_ids=())

        assert store.list_users_with_preferences() == ["a", "b"]
        assert store.list_users_with_preferences(limit=1) == ["a"]

    def test_users_by_oldest_cache(self, store: FeedStore) -> None:
        """Uncached users come first, then the oldest caches."""
        for user_id in ("fresh", "old", "never"):
            seed_user(store, user_id)
        store.replace_cache(
            "fresh", make_cache_entries("fresh", 2, FIXED_NOW - timedelta(hours=1))
        )
        store.replace_cache(
            "old", make_cache_entries("old", 2, FIXED_NOW - timedelta(hours=5))
        )

        assert store.list_users_by_oldest_cache() == ["never", "old", "fresh"]

    def test_users_needing_refresh(self, store: FeedStore) -> None:
        """Users below the live-row threshold are listed."""
        for user_id in ("healthy", "thin", "expired", "none"):
            seed_user(store, user_id)
        store.replace_cache(
            "healthy", make_cache_entries("healthy", 10, FIXED_NOW - timedelta(hours=1))
        )
        store.replace_cache(
            "thin", make_cache_entries("thin", 3, FIXED_NOW - timedelta(hours=1))
        )
        store.replace_cache(
            "expired", make_cache_entries("expired", 10, FIXED_NOW - timedelta(hours=9))
        )

        users = store.list_users_needing_refresh(10, FIXED_NOW)

        assert users == ["expired", "none", "thin"]


class TestFeedCache:
    """Tests for cache reads and atomic writes."""

    def test_replace_and_read(self, store: FeedStore) -> None:
        """A generation is read back in position order."""
        entries = make_cache_entries("u", 5, FIXED_NOW)
        assert store.replace_cache("u", list(reversed(entries))) == 5

        cached = store.get_cache_entries("u", FIXED_NOW)

        assert [e.position for e in cached] == [1, 2, 3, 4, 5]
        assert cached[0].created_at == FIXED_NOW
        assert StoreMetrics.get_instance().cache_rows_written_total == 5

    def test_replace_removes_previous_generation(self, store: FeedStore) -> None:
        """Old rows never mix with the new generation."""
        store.replace_cache("u", make_cache_entries("u", 8, FIXED_NOW))
        store.replace_cache(
            "u", make_cache_entries("u", 3, FIXED_NOW, start_item_id=5000)
        )
        cached = store.get_cache_entries("u", FIXED_NOW)
        assert [e.item_id for e in cached] == [5001, 5002, 5003]

    def test_replace_is_per_user(self, store: FeedStore) -> None:
        """Replacing one user's cache leaves other users alone."""
        store.replace_cache("a", make_cache_entries("a", 2, FIXED_NOW))
        store.replace_cache("b", make_cache_entries("b", 3, FIXED_NOW))
        store.replace_cache("a", [])
        assert len(store.get_cache_entries("b", FIXED_NOW)) == 3

    def test_expired_rows_not_served(self, store: FeedStore) -> None:
        """Rows at or past expiry are never returned."""
        store.replace_cache("u", make_cache_entries("u", 2, FIXED_NOW))
        assert store.get_cache_entries("u", FIXED_NOW + timedelta(hours=6)) == []

    def test_failed_replace_keeps_previous_rows(self, store: FeedStore) -> None:
        """A constraint violation rolls back the whole generation."""
        previous = make_cache_entries("u", 4, FIXED_NOW)
        store.replace_cache("u", previous)
        duplicate_positions = make_cache_entries("u", 2, FIXED_NOW, start_item_id=7000)
        duplicate_positions[1] = duplicate_positions[1].model_copy(
            update={"position": 1}
        )

        with pytest.raises(CacheWriteError):
            store.replace_cache("u", duplicate_positions)

        cached = store.get_cache_entries("u", FIXED_NOW)
        assert [e.item_id for e in cached] == [e.item_id for e in previous]
        assert StoreMetrics.get_instance().cache_write_failures_total == 1

    def test_entries_for_other_user_rejected(self, store: FeedStore) -> None:
        """A generation must belong to the user being written."""
        with pytest.raises(ValueError):
            store.replace_cache("a", make_cache_entries("b", 1, FIXED_NOW))

    def test_restore_extends_expiry_keeps_created_at(self, store: FeedStore) -> None:
        """Restored rows keep their creation time."""
        created = FIXED_NOW - timedelta(hours=5)
        backup = make_cache_entries("u", 3, created)
        new_expiry = FIXED_NOW + timedelta(hours=6)

        assert store.restore_cache("u", backup, new_expiry) == 3

        cached = store.get_cache_entries("u", FIXED_NOW + timedelta(hours=2))
        assert {e.created_at for e in cached} == {created}
        assert {e.expires_at for e in cached} == {new_expiry}
        assert StoreMetrics.get_instance().cache_rows_restored_total == 3

    def test_restore_over_own_backup(self, store: FeedStore) -> None:
        """The backup's own rows still in the table do not block a restore."""
        backup = make_cache_entries("u", 3, FIXED_NOW - timedelta(hours=5))
        store.replace_cache("u", backup)

        assert store.restore_cache("u", backup, FIXED_NOW + timedelta(hours=6)) == 3

    def test_restore_refused_when_newer_generation_stored(
        self, store: FeedStore
    ) -> None:
        """A generation committed after the backup is never overwritten."""
        backup = make_cache_entries("u", 3, FIXED_NOW - timedelta(hours=5))
        newer = make_cache_entries("u", 4, FIXED_NOW, start_item_id=8000)
        store.replace_cache("u", newer)

        with pytest.raises(CacheSupersededError) as exc_info:
            store.restore_cache("u", backup, FIXED_NOW + timedelta(hours=6))

        assert exc_info.value.newer_entries == 4
        cached = store.get_cache_entries("u", FIXED_NOW)
        assert [e.item_id for e in cached] == [e.item_id for e in newer]
        assert StoreMetrics.get_instance().cache_rows_restored_total == 0

    def test_delete_cache(self, store: FeedStore) -> None:
        """Deleting returns the removed row count."""
        store.replace_cache("u", make_cache_entries("u", 3, FIXED_NOW))
        assert store.delete_cache("u") == 3
        assert store.get_cache_entries("u", FIXED_NOW) == []

    def test_prune_expired(self, store: FeedStore) -> None:
        """Only expired rows are pruned."""
        store.replace_cache("old", make_cache_entries("old", 2, FIXED_NOW - timedelta(hours=10)))
        store.replace_cache("new", make_cache_entries("new", 3, FIXED_NOW))

        assert store.prune_expired_cache(FIXED_NOW) == 2
        assert store.get_stats()["user_feed_cache"] == 3
        assert StoreMetrics.get_instance().cache_rows_pruned_total == 2

    def test_cache_read_error(self, store: FeedStore) -> None:
        """SQLite errors during reads become StoreReadError."""
        store._ensure_connected().execute("DROP TABLE user_feed_cache")
        with pytest.raises(StoreReadError) as exc_info:
            store.get_cache_entries("u", FIXED_NOW)
        assert exc_info.value.operation == "get_cache_entries"
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)


class TestStats:
    """Tests for maintenance helpers."""

    def test_get_stats(self, store: FeedStore) -> None:
        """Row counts cover every table."""
        seed_sources(store, 2)
        seed_drops(store, 3, sources=2)
        stats = store.get_stats()
        assert stats["sources"] == 2
        assert stats["drops"] == 3
        assert stats["user_feed_cache"] == 0
        assert set(stats) == {
            "sources",
            "topics",
            "drops",
            "user_preferences",
            "engagement_events",
            "user_feed_cache",
        }
