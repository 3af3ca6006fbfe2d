"""Cache-first feed reader with a direct-query fallback."""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog

from dropfeed.config.constants import (
    ALGORITHM_SOURCE_CACHE,
    ALGORITHM_SOURCE_DIRECT,
    COMPONENT_FEED,
)
from dropfeed.config.schemas import FetchConfig
from dropfeed.consumers.models import CachedFeedEntry, FeedItem, FeedResponse
from dropfeed.store.errors import StoreReadError
from dropfeed.store.models import (
    CacheEntry,
    RecentItem,
    Topic,
    UserPreferenceProfile,
)


logger = structlog.get_logger()

# Recent items considered by the fallback per requested item
FALLBACK_POOL_FACTOR = 4


class FeedSource(Protocol):
    """Store reads used by feed consumers."""

    def get_cache_entries(
        self, user_id: str, now: datetime, limit: int | None = None
    ) -> list[CacheEntry]:
        """Get a user's unexpired rows ordered by position."""
        ...

    def fetch_items_by_ids(self, item_ids: Sequence[int]) -> dict[int, RecentItem]:
        """Fetch display fields of drops by id."""
        ...

    def fetch_recent_items(self, since: datetime, limit: int) -> list[RecentItem]:
        """Fetch recent tagged drops, newest first."""
        ...

    def fetch_user_preferences(self, user_id: str) -> UserPreferenceProfile:
        """Load a user's preference profile."""
        ...

    def fetch_topics(self, topic_ids: Sequence[int]) -> list[Topic]:
        """Fetch topics by id."""
        ...


class FeedReader:
    """Serves ranked feeds to the feed UI and the digest builder.

    Reads the precomputed cache and never ranks. When a user has no live
    cache, falls back to recent tagged drops, preferring those tagged
    with the user's topic slugs.
    """

    def __init__(
        self,
        store: FeedSource,
        fetch_config: FetchConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the reader.

        Args:
            store: Store reader.
            fetch_config: Lookback for the fallback query.
            clock: Source of the current time.
        """
        self._store = store
        self._fetch_config = fetch_config or FetchConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger.bind(component=COMPONENT_FEED)

    def get_cached_feed(
        self, user_id: str, limit: int | None = None
    ) -> list[CachedFeedEntry]:
        """Read a user's unexpired cached ranking.

        Args:
            user_id: The user.
            limit: Optional maximum number of entries.

        Returns:
            Entries ordered by position; empty when nothing is cached.

        Raises:
            StoreReadError: If the cache cannot be read.
        """
        entries = self._store.get_cache_entries(user_id, self._clock(), limit)
        return [
            CachedFeedEntry(
                item_id=e.item_id,
                final_score=e.final_score,
                reason=e.reason,
                position=e.position,
            )
            for e in entries
        ]

    def get_feed(self, user_id: str, limit: int = 20) -> FeedResponse:
        """Get a user's feed, cache first.

        Args:
            user_id: The user.
            limit: Maximum number of items.

        Returns:
            The feed and the algorithm source that produced it.

        Raises:
            StoreReadError: If the fallback query fails too.
        """
        log = self._log.bind(user_id=user_id)

        try:
            cached = self.get_cached_feed(user_id, limit)
        except StoreReadError as e:
            log.warning("cached_feed_read_failed", error=str(e))
            cached = []

        if cached:
            items = self._hydrate(cached)
            if items:
                log.info(
                    "feed_served",
                    algorithm_source=ALGORITHM_SOURCE_CACHE,
                    items=len(items),
                )
                return FeedResponse(
                    user_id=user_id,
                    algorithm_source=ALGORITHM_SOURCE_CACHE,
                    items=items,
                )

        items = self._direct_query(user_id, limit)
        log.info(
            "feed_served", algorithm_source=ALGORITHM_SOURCE_DIRECT, items=len(items)
        )
        return FeedResponse(
            user_id=user_id, algorithm_source=ALGORITHM_SOURCE_DIRECT, items=items
        )

    def _hydrate(self, cached: list[CachedFeedEntry]) -> list[FeedItem]:
        """Attach display fields; drops deleted since ranking are left out."""
        details = self._store.fetch_items_by_ids([e.item_id for e in cached])
        items: list[FeedItem] = []
        for entry in cached:
            detail = details.get(entry.item_id)
            if detail is None:
                continue
            items.append(
                FeedItem(
                    item_id=entry.item_id,
                    position=len(items) + 1,
                    title=detail.title,
                    url=detail.url,
                    kind=detail.kind,
                    source_name=detail.source_name,
                    published_at=detail.published_at,
                    final_score=entry.final_score,
                    reason=entry.reason,
                )
            )
        return items

    def _direct_query(self, user_id: str, limit: int) -> list[FeedItem]:
        now = self._clock()
        since = now - timedelta(days=self._fetch_config.lookback_days)
        recent = self._store.fetch_recent_items(since, limit * FALLBACK_POOL_FACTOR)

        slugs = self._topic_slugs(user_id)
        if slugs:
            # Stable sort keeps recency order within each group
            recent = sorted(
                recent,
                key=lambda item: not any(t.lower() in slugs for t in item.tags),
            )

        return [
            FeedItem(
                item_id=item.id,
                position=position,
                title=item.title,
                url=item.url,
                kind=item.kind,
                source_name=item.source_name,
                published_at=item.published_at,
            )
            for position, item in enumerate(recent[:limit], start=1)
        ]

    def _topic_slugs(self, user_id: str) -> frozenset[str]:
        try:
            profile = self._store.fetch_user_preferences(user_id)
            topics = self._store.fetch_topics(profile.selected_topic_ids)
        except StoreReadError as e:
            self._log.warning("topic_slugs_unavailable", user_id=user_id, error=str(e))
            return frozenset()
        return frozenset(t.slug.lower() for t in topics)
