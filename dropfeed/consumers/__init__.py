"""Readers for precomputed feeds."""

from dropfeed.consumers.feed import FeedReader
from dropfeed.consumers.models import CachedFeedEntry, FeedItem, FeedResponse


__all__ = ["CachedFeedEntry", "FeedItem", "FeedReader", "FeedResponse"]
