"""Feed models served to consumers."""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from dropfeed.store.models import DropKind


class CachedFeedEntry(BaseModel):
    """One row of a user's cached ranking."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: int
    final_score: Annotated[float, Field(ge=0.0, le=1.0)]
    reason: str
    position: Annotated[int, Field(ge=1)]


class FeedItem(BaseModel):
    """A drop as shown in a feed or digest.

    Score and reason are only present for cached, personalized feeds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: int
    position: Annotated[int, Field(ge=1)]
    title: str
    url: str
    kind: DropKind
    source_name: str
    published_at: datetime | None = None
    final_score: float | None = None
    reason: str | None = None


class FeedResponse(BaseModel):
    """A user's feed and where it came from."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: str
    algorithm_source: Literal["user_feed_cache", "direct_query"]
    items: list[FeedItem] = Field(default_factory=list)
