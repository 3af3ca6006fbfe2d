"""SQLite store for drops, user preferences and the per-user feed cache."""

from dropfeed.store.errors import (
    CacheSupersededError,
    CacheWriteError,
    MigrationError,
    StoreError,
    StoreReadError,
)
from dropfeed.store.metrics import StoreMetrics
from dropfeed.store.models import (
    CacheEntry,
    CandidateItem,
    DropKind,
    EngagementSignal,
    RecentItem,
    Topic,
    TopicLevel,
    UserPreferenceProfile,
)
from dropfeed.store.store import FeedStore


__all__ = [
    "CacheEntry",
    "CacheSupersededError",
    "CacheWriteError",
    "CandidateItem",
    "DropKind",
    "EngagementSignal",
    "FeedStore",
    "MigrationError",
    "RecentItem",
    "StoreError",
    "StoreMetrics",
    "StoreReadError",
    "Topic",
    "TopicLevel",
    "UserPreferenceProfile",
]
