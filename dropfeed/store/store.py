"""SQLite feed store implementation."""

import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from dropfeed.config.constants import COMPONENT_STORE, UNKNOWN_SOURCE_NAME
from dropfeed.store.errors import (
    CacheSupersededError,
    CacheWriteError,
    ConnectionError as StoreConnectionError,
    StoreReadError,
)
from dropfeed.store.metrics import StoreMetrics, TransactionContext
from dropfeed.store.migrations import CURRENT_VERSION, MigrationManager
from dropfeed.store.models import (
    CacheEntry,
    CandidateItem,
    EngagementSignal,
    RecentItem,
    Topic,
    UserPreferenceProfile,
)


logger = structlog.get_logger()

_TABLES = (
    "sources",
    "topics",
    "drops",
    "user_preferences",
    "engagement_events",
    "user_feed_cache",
)

_RECENT_ITEM_SELECT = """
SELECT d.id, d.title, d.url, d.type, d.published_at, d.created_at,
       d.tags, s.name AS source_name
FROM drops d
LEFT JOIN sources s ON s.id = d.source_id
"""


def to_db_time(value: datetime) -> str:
    """Serialize a timestamp so that text comparison matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _from_db_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


class FeedStore:
    """SQLite store for drops, user preferences and the per-user feed cache.

    One connection is shared by all worker threads and guarded by a
    re-entrant lock. Every cache write runs in a single transaction, so a
    user's rows are either fully replaced or left as they were.
    """

    def __init__(
        self,
        db_path: Path | str,
        timeout_seconds: float = 10.0,
        run_id: str | None = None,
    ) -> None:
        """Initialize the feed store.

        Args:
            db_path: Path to SQLite database file.
            timeout_seconds: Busy timeout for locked database files.
            run_id: Optional run ID for logging context.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._timeout_seconds = timeout_seconds
        self._run_id = run_id or str(uuid.uuid4())
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(
            component=COMPONENT_STORE,
            run_id=self._run_id,
            db_path=str(self._db_path),
        )

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def timeout_seconds(self) -> float:
        """Get the busy timeout."""
        return self._timeout_seconds

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.
        Enables WAL mode for reliability.
        """
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.info("connecting_to_database")

        self._conn = sqlite3.connect(
            str(self._db_path),
            timeout=self._timeout_seconds,
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "FeedStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[TransactionContext]:
        """Context manager for transactions with timing and logging.

        Holds the connection lock for the whole transaction.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )

            self._log.debug("transaction_started", tx_id=tx_id, op=operation)

            try:
                yield ctx
                conn.commit()
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
                self._metrics.record_tx_duration(duration_ms)

                self._log.info(
                    "transaction_complete",
                    tx_id=tx_id,
                    op=operation,
                    affected_rows=ctx.affected_rows,
                    duration_ms=round(duration_ms, 2),
                )

            except Exception:
                conn.rollback()
                duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000

                self._log.error(
                    "transaction_failed",
                    tx_id=tx_id,
                    op=operation,
                    duration_ms=round(duration_ms, 2),
                )
                raise

    def _query(
        self, operation: str, sql: str, params: Sequence[Any] = ()
    ) -> list[sqlite3.Row]:
        """Run a read query under the connection lock.

        Raises:
            StoreReadError: If SQLite rejects the query.
        """
        with self._lock:
            conn = self._ensure_connected()
            try:
                return conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                self._log.warning("store_read_failed", op=operation, error=str(e))
                raise StoreReadError(operation, str(e)) from e

    # ===== Candidate Reads =====

    def fetch_tagged_candidates(
        self, since: datetime, limit: int
    ) -> list[CandidateItem]:
        """Fetch recent tagged drops with their source names resolved.

        Rows that fail validation are logged and skipped.

        Args:
            since: Oldest ingestion time to include.
            limit: Maximum number of candidates.

        Returns:
            Candidates ordered by created_at descending.

        Raises:
            StoreReadError: If the query fails.
        """
        rows = self._query(
            "fetch_tagged_candidates",
            """
            SELECT d.*, s.name AS source_name
            FROM drops d
            LEFT JOIN sources s ON s.id = d.source_id
            WHERE d.tag_done = 1 AND d.created_at >= ?
            ORDER BY d.created_at DESC, d.id DESC
            LIMIT ?
            """,
            (to_db_time(since), limit),
        )

        candidates: list[CandidateItem] = []
        for row in rows:
            try:
                candidates.append(
                    CandidateItem(
                        id=row["id"],
                        kind=row["type"],
                        title=row["title"],
                        url=row["url"],
                        source_id=row["source_id"],
                        source_name=row["source_name"] or UNKNOWN_SOURCE_NAME,
                        published_at=_from_db_time(row["published_at"]),
                        created_at=_from_db_time(row["created_at"]),
                        authority_score=row["authority_score"],
                        quality_score=row["quality_score"],
                        popularity_score=row["popularity_score"],
                        macro_topic_id=row["l1_topic_id"],
                        sub_topic_id=row["l2_topic_id"],
                        tags=row["tags"],
                        embedding=row["embedding"],
                    )
                )
            except (ValidationError, ValueError) as e:
                self._log.warning(
                    "candidate_row_invalid", drop_id=row["id"], error=str(e)
                )
        return candidates

    def fetch_user_preferences(self, user_id: str) -> UserPreferenceProfile:
        """Load a user's topic selection and preference embedding.

        Args:
            user_id: The user to look up.

        Returns:
            The profile; an empty profile when the user has no row.

        Raises:
            StoreReadError: If the query fails.
        """
        rows = self._query(
            "fetch_user_preferences",
            """
            SELECT selected_topic_ids, preference_embedding
            FROM user_preferences WHERE user_id = ?
            """,
            (user_id,),
        )
        if not rows:
            return UserPreferenceProfile(user_id=user_id)

        row = rows[0]
        return UserPreferenceProfile(
            user_id=user_id,
            selected_topic_ids=row["selected_topic_ids"],
            preference_embedding=row["preference_embedding"],
        )

    def fetch_topics(self, topic_ids: Sequence[int]) -> list[Topic]:
        """Fetch topics by id; unknown ids are ignored."""
        if not topic_ids:
            return []
        placeholders = ",".join("?" for _ in topic_ids)
        rows = self._query(
            "fetch_topics",
            f"SELECT id, slug, level, parent_id, label FROM topics WHERE id IN ({placeholders})",  # noqa: S608
            list(topic_ids),
        )
        return [
            Topic(
                id=row["id"],
                slug=row["slug"],
                level=row["level"],
                parent_id=row["parent_id"],
                label=row["label"],
            )
            for row in rows
        ]

    def fetch_engagement_signals(self, user_id: str) -> list[EngagementSignal]:
        """Fetch a user's engagement events joined with the targeted drops.

        Args:
            user_id: The user whose history is loaded.

        Returns:
            One signal per event, newest first.

        Raises:
            StoreReadError: If the query fails.
        """
        rows = self._query(
            "fetch_engagement_signals",
            """
            SELECT e.drop_id, e.action, d.source_id, d.tags
            FROM engagement_events e
            JOIN drops d ON d.id = e.drop_id
            WHERE e.user_id = ?
            ORDER BY e.created_at DESC, e.id DESC
            """,
            (user_id,),
        )
        return [
            EngagementSignal(
                drop_id=row["drop_id"],
                action=row["action"],
                source_id=row["source_id"],
                tags=row["tags"],
            )
            for row in rows
        ]

    def fetch_recent_items(self, since: datetime, limit: int) -> list[RecentItem]:
        """Fetch recent tagged drops for the non-personalized fallback feed.

        Args:
            since: Oldest ingestion time to include.
            limit: Maximum number of items.

        Returns:
            Items ordered by created_at descending.

        Raises:
            StoreReadError: If the query fails.
        """
        rows = self._query(
            "fetch_recent_items",
            f"""
            {_RECENT_ITEM_SELECT}
            WHERE d.tag_done = 1 AND d.created_at >= ?
            ORDER BY d.created_at DESC, d.id DESC
            LIMIT ?
            """,  # noqa: S608
            (to_db_time(since), limit),
        )
        return self._to_recent_items(rows)

    def fetch_items_by_ids(self, item_ids: Sequence[int]) -> dict[int, RecentItem]:
        """Fetch display fields of drops by id; unknown ids are omitted.

        Raises:
            StoreReadError: If the query fails.
        """
        if not item_ids:
            return {}
        placeholders = ",".join("?" for _ in item_ids)
        rows = self._query(
            "fetch_items_by_ids",
            f"{_RECENT_ITEM_SELECT} WHERE d.id IN ({placeholders})",  # noqa: S608
            list(item_ids),
        )
        return {item.id: item for item in self._to_recent_items(rows)}

    def _to_recent_items(self, rows: list[sqlite3.Row]) -> list[RecentItem]:
        items: list[RecentItem] = []
        for row in rows:
            try:
                items.append(
                    RecentItem(
                        id=row["id"],
                        title=row["title"],
                        url=row["url"],
                        kind=row["type"],
                        source_name=row["source_name"] or UNKNOWN_SOURCE_NAME,
                        published_at=_from_db_time(row["published_at"]),
                        created_at=_from_db_time(row["created_at"]),
                        tags=row["tags"],
                    )
                )
            except (ValidationError, ValueError) as e:
                self._log.warning("recent_row_invalid", drop_id=row["id"], error=str(e))
        return items

    # ===== User Listings =====

    def list_users_with_preferences(self, limit: int | None = None) -> list[str]:
        """List users who selected at least one topic.

        Args:
            limit: Optional maximum number of users.

        Returns:
            User ids in ascending order.
        """
        rows = self._query(
            "list_users_with_preferences",
            """
            SELECT user_id FROM user_preferences
            WHERE json_array_length(selected_topic_ids) > 0
            ORDER BY user_id
            LIMIT ?
            """,
            (-1 if limit is None else limit,),
        )
        return [row["user_id"] for row in rows]

    def list_users_by_oldest_cache(self, limit: int | None = None) -> list[str]:
        """List users with preferences, those with the oldest cache first.

        Users without any cache rows come before everyone else.

        Args:
            limit: Optional maximum number of users.

        Returns:
            User ids ordered by the creation time of their newest cache row.
        """
        rows = self._query(
            "list_users_by_oldest_cache",
            """
            SELECT p.user_id, MAX(c.created_at) AS last_cached_at
            FROM user_preferences p
            LEFT JOIN user_feed_cache c ON c.user_id = p.user_id
            WHERE json_array_length(p.selected_topic_ids) > 0
            GROUP BY p.user_id
            ORDER BY last_cached_at IS NOT NULL, last_cached_at, p.user_id
            LIMIT ?
            """,
            (-1 if limit is None else limit,),
        )
        return [row["user_id"] for row in rows]

    def list_users_needing_refresh(
        self,
        min_entries: int,
        now: datetime,
        limit: int | None = None,
    ) -> list[str]:
        """List users with preferences but fewer than min_entries live cache rows.

        Args:
            min_entries: Minimum number of unexpired rows a healthy cache holds.
            now: Reference time for expiry.
            limit: Optional maximum number of users.

        Returns:
            User ids in ascending order.
        """
        rows = self._query(
            "list_users_needing_refresh",
            """
            SELECT p.user_id, COUNT(c.drop_id) AS live_entries
            FROM user_preferences p
            LEFT JOIN user_feed_cache c
                ON c.user_id = p.user_id AND c.expires_at > ?
            WHERE json_array_length(p.selected_topic_ids) > 0
            GROUP BY p.user_id
            HAVING COUNT(c.drop_id) < ?
            ORDER BY p.user_id
            LIMIT ?
            """,
            (to_db_time(now), min_entries, -1 if limit is None else limit),
        )
        return [row["user_id"] for row in rows]

    # ===== Feed Cache =====

    def get_cache_entries(
        self,
        user_id: str,
        now: datetime,
        limit: int | None = None,
    ) -> list[CacheEntry]:
        """Get a user's unexpired cache rows.

        Args:
            user_id: The user whose cache is read.
            now: Reference time; rows expiring at or before it are excluded.
            limit: Optional maximum number of rows.

        Returns:
            Entries ordered by position.

        Raises:
            StoreReadError: If the query fails.
        """
        rows = self._query(
            "get_cache_entries",
            """
            SELECT user_id, drop_id, final_score, reason, position,
                   created_at, expires_at
            FROM user_feed_cache
            WHERE user_id = ? AND expires_at > ?
            ORDER BY position
            LIMIT ?
            """,
            (user_id, to_db_time(now), -1 if limit is None else limit),
        )
        return [
            CacheEntry(
                user_id=row["user_id"],
                item_id=row["drop_id"],
                final_score=row["final_score"],
                reason=row["reason"],
                position=row["position"],
                created_at=_from_db_time(row["created_at"]),
                expires_at=_from_db_time(row["expires_at"]),
            )
            for row in rows
        ]

    def replace_cache(self, user_id: str, entries: Sequence[CacheEntry]) -> int:
        """Atomically replace all cache rows of a user.

        Deletes every existing row of the user and inserts the new
        generation in one transaction.

        Args:
            user_id: The user whose cache is replaced.
            entries: The new generation.

        Returns:
            Number of rows written.

        Raises:
            CacheWriteError: If the transaction fails; the previous rows
                are still in place.
        """
        written = self._write_entries(user_id, entries, "replace_cache")
        self._metrics.record_rows_written(written)
        return written

    def restore_cache(
        self,
        user_id: str,
        entries: Sequence[CacheEntry],
        expires_at: datetime,
    ) -> int:
        """Atomically rewrite backed-up rows with a new expiry.

        Creation times are kept, so the restored generation is still
        recognized as stale on the next run. The rewrite only happens while
        no row newer than the backup exists; a generation committed by
        another process in the meantime is left in place.

        Args:
            user_id: The user whose cache is restored.
            entries: The backed-up generation.
            expires_at: New expiry for every restored row.

        Returns:
            Number of rows restored.

        Raises:
            CacheSupersededError: If a newer generation is already stored.
            CacheWriteError: If the transaction fails.
        """
        extended = [e.model_copy(update={"expires_at": expires_at}) for e in entries]
        backup_created_at = max((e.created_at for e in entries), default=None)
        restored = self._write_entries(
            user_id, extended, "restore_cache", superseded_after=backup_created_at
        )
        self._metrics.record_rows_restored(restored)
        return restored

    def delete_cache(self, user_id: str) -> int:
        """Delete every cache row of a user.

        Returns:
            Number of rows deleted.

        Raises:
            CacheWriteError: If the delete fails.
        """
        try:
            with self._transaction("delete_cache") as ctx:
                conn = self._ensure_connected()
                cursor = conn.execute(
                    "DELETE FROM user_feed_cache WHERE user_id = ?", (user_id,)
                )
                ctx.add_affected_rows(cursor.rowcount)
        except sqlite3.Error as e:
            self._metrics.record_write_failure()
            raise CacheWriteError(user_id, str(e)) from e
        return ctx.affected_rows

    def _write_entries(
        self,
        user_id: str,
        entries: Sequence[CacheEntry],
        operation: str,
        superseded_after: datetime | None = None,
    ) -> int:
        for entry in entries:
            if entry.user_id != user_id:
                msg = f"Cache entry for {entry.user_id} passed for user {user_id}"
                raise ValueError(msg)

        try:
            with self._transaction(operation) as ctx:
                conn = self._ensure_connected()
                if superseded_after is not None:
                    self._check_not_superseded(conn, user_id, superseded_after)
                conn.execute("DELETE FROM user_feed_cache WHERE user_id = ?", (user_id,))
                conn.executemany(
                    """
                    INSERT INTO user_feed_cache (
                        user_id, drop_id, final_score, reason, position,
                        created_at, expires_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            e.user_id,
                            e.item_id,
                            e.final_score,
                            e.reason,
                            e.position,
                            to_db_time(e.created_at),
                            to_db_time(e.expires_at),
                        )
                        for e in entries
                    ],
                )
                ctx.add_affected_rows(len(entries))
        except sqlite3.Error as e:
            self._metrics.record_write_failure()
            self._log.warning(
                "cache_write_rolled_back", op=operation, user_id=user_id, error=str(e)
            )
            raise CacheWriteError(user_id, str(e)) from e

        return len(entries)

    def _check_not_superseded(
        self, conn: sqlite3.Connection, user_id: str, created_at: datetime
    ) -> None:
        cutoff = to_db_time(created_at)
        # The delete takes the write lock before newer rows are counted
        conn.execute(
            "DELETE FROM user_feed_cache WHERE user_id = ? AND created_at <= ?",
            (user_id, cutoff),
        )
        newer = conn.execute(
            "SELECT COUNT(*) FROM user_feed_cache WHERE user_id = ? AND created_at > ?",
            (user_id, cutoff),
        ).fetchone()[0]
        if newer:
            self._log.info(
                "cache_restore_superseded", user_id=user_id, newer_entries=newer
            )
            raise CacheSupersededError(user_id, newer)

    def prune_expired_cache(self, now: datetime) -> int:
        """Delete cache rows that expired at or before now.

        Args:
            now: Reference time.

        Returns:
            Number of rows deleted.
        """
        with self._transaction("prune_expired_cache") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute(
                "DELETE FROM user_feed_cache WHERE expires_at <= ?",
                (to_db_time(now),),
            )
            ctx.add_affected_rows(cursor.rowcount)

        self._metrics.record_rows_pruned(ctx.affected_rows)
        self._log.info("expired_cache_pruned", rows_deleted=ctx.affected_rows)
        return ctx.affected_rows

    # ===== Content Writes =====
    # Drops, sources, topics and preferences are owned by the ingestion,
    # tagging and onboarding flows; these writers serve seeding and tests.

    def upsert_source(self, source_id: int, name: str, source_type: str = "rss") -> None:
        """Insert or update a source row."""
        with self._transaction("upsert_source") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO sources (id, name, type) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name, type = excluded.type
                """,
                (source_id, name, source_type),
            )
            ctx.add_affected_rows(1)

    def upsert_topic(self, topic: Topic) -> None:
        """Insert or update a taxonomy node."""
        with self._transaction("upsert_topic") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO topics (id, slug, level, parent_id, label)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    slug = excluded.slug, level = excluded.level,
                    parent_id = excluded.parent_id, label = excluded.label
                """,
                (topic.id, topic.slug, int(topic.level), topic.parent_id, topic.label),
            )
            ctx.add_affected_rows(1)

    def insert_drop(self, item: CandidateItem, tagged: bool = True) -> None:
        """Insert or replace a drop row.

        Args:
            item: The drop to store.
            tagged: Whether the tagging pipeline has finished with it.
        """
        with self._transaction("insert_drop") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT OR REPLACE INTO drops (
                    id, title, url, type, source_id, published_at, created_at,
                    authority_score, quality_score, popularity_score,
                    l1_topic_id, l2_topic_id, tags, embedding, tag_done
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    item.title,
                    item.url,
                    item.kind.value,
                    item.source_id,
                    to_db_time(item.published_at) if item.published_at else None,
                    to_db_time(item.created_at),
                    item.authority_score,
                    item.quality_score,
                    item.popularity_score,
                    item.macro_topic_id,
                    item.sub_topic_id,
                    json.dumps(list(item.tags)),
                    json.dumps(list(item.embedding)) if item.embedding else None,
                    1 if tagged else 0,
                ),
            )
            ctx.add_affected_rows(1)

    def set_user_preferences(
        self, profile: UserPreferenceProfile, now: datetime | None = None
    ) -> None:
        """Insert or replace a user's preference row."""
        updated_at = now or datetime.now(UTC)
        with self._transaction("set_user_preferences") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO user_preferences (
                    user_id, selected_topic_ids, preference_embedding, updated_at
                ) VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    selected_topic_ids = excluded.selected_topic_ids,
                    preference_embedding = excluded.preference_embedding,
                    updated_at = excluded.updated_at
                """,
                (
                    profile.user_id,
                    json.dumps(list(profile.selected_topic_ids)),
                    (
                        json.dumps(list(profile.preference_embedding))
                        if profile.preference_embedding
                        else None
                    ),
                    to_db_time(updated_at),
                ),
            )
            ctx.add_affected_rows(1)

    def record_engagement(
        self,
        user_id: str,
        drop_id: int,
        action: str,
        at: datetime | None = None,
    ) -> None:
        """Append one engagement event."""
        created_at = at or datetime.now(UTC)
        with self._transaction("record_engagement") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO engagement_events (user_id, drop_id, action, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, drop_id, action, to_db_time(created_at)),
            )
            ctx.add_affected_rows(1)

    # ===== Maintenance =====

    def get_stats(self) -> dict[str, int]:
        """Get row counts for all tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        stats: dict[str, int] = {}

        for table in _TABLES:
            rows = self._query("get_stats", f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            stats[table] = rows[0][0]

        return stats

    def get_schema_version(self) -> int:
        """Get current schema version.

        Returns:
            Current schema version number.
        """
        with self._lock:
            conn = self._ensure_connected()
            return MigrationManager(conn).get_current_version()
