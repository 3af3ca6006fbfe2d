"""Data models for the feed store."""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dropfeed.config.constants import UNKNOWN_SOURCE_NAME


class DropKind(str, Enum):
    """Content kind of a drop."""

    ARTICLE = "article"
    VIDEO = "video"


class TopicLevel(int, Enum):
    """Taxonomy level of a topic.

    MACRO: broad area (level 1)
    SUB: sub-area within a macro topic (level 2)
    MICRO: fine-grained tag (level 3)
    """

    MACRO = 1
    SUB = 2
    MICRO = 3


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _decode_json_list(value: Any) -> Any:
    # SQLite stores list columns as JSON text
    if isinstance(value, str):
        return json.loads(value) if value else []
    return value


class CandidateItem(BaseModel):
    """A tagged drop eligible for ranking.

    Created by the external tagging pipeline; read-only to the engine.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[int, Field(description="Drop identifier")]
    kind: DropKind = DropKind.ARTICLE
    title: str = ""
    url: str = ""
    source_id: int | None = None
    source_name: str = UNKNOWN_SOURCE_NAME
    published_at: datetime | None = None
    created_at: datetime
    authority_score: Annotated[float, Field(ge=0.0)] | None = None
    quality_score: Annotated[float, Field(ge=0.0)] | None = None
    popularity_score: Annotated[float, Field(ge=0.0)] | None = None
    macro_topic_id: int | None = None
    sub_topic_id: int | None = None
    tags: tuple[str, ...] = ()
    embedding: tuple[float, ...] | None = None

    @field_validator("published_at", "created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Ensure datetime fields carry a timezone."""
        if v is None:
            return None
        return _ensure_utc(v)

    @field_validator("tags", mode="before")
    @classmethod
    def decode_tags(cls, v: Any) -> Any:
        """Accept JSON-encoded tag lists from the store."""
        return _decode_json_list(v) or ()

    @field_validator("embedding", mode="before")
    @classmethod
    def decode_embedding(cls, v: Any) -> Any:
        """Accept JSON-encoded vectors; an empty vector means no embedding."""
        decoded = _decode_json_list(v)
        if decoded is None or len(decoded) == 0:
            return None
        return decoded

    @property
    def reference_time(self) -> datetime:
        """Publish time, falling back to ingestion time."""
        return self.published_at or self.created_at

    @property
    def source_key(self) -> str:
        """Identity used for per-source diversity limits."""
        if self.source_id is not None:
            return f"source:{self.source_id}"
        return f"name:{self.source_name}"

    @property
    def is_video(self) -> bool:
        """Check if this drop is a video."""
        return self.kind == DropKind.VIDEO


class Topic(BaseModel):
    """A node of the macro/sub/micro topic taxonomy."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int
    slug: Annotated[str, Field(min_length=1)]
    level: TopicLevel
    parent_id: int | None = None
    label: str = ""


class UserPreferenceProfile(BaseModel):
    """Topic selection and preference embedding for one user.

    Mutated by onboarding and settings flows; read-only here.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: Annotated[str, Field(min_length=1)]
    selected_topic_ids: tuple[int, ...] = ()
    preference_embedding: tuple[float, ...] | None = None

    @field_validator("selected_topic_ids", mode="before")
    @classmethod
    def decode_topic_ids(cls, v: Any) -> Any:
        """Accept JSON-encoded id lists from the store."""
        return _decode_json_list(v) or ()

    @field_validator("preference_embedding", mode="before")
    @classmethod
    def decode_embedding(cls, v: Any) -> Any:
        """Accept JSON-encoded vectors; an empty vector means no embedding."""
        decoded = _decode_json_list(v)
        if decoded is None or len(decoded) == 0:
            return None
        return decoded

    @property
    def has_preferences(self) -> bool:
        """Check if the user selected any topic."""
        return len(self.selected_topic_ids) > 0


class EngagementSignal(BaseModel):
    """One engagement event joined with the drop it targeted."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    drop_id: int
    action: str
    source_id: int | None = None
    tags: tuple[str, ...] = ()

    @field_validator("tags", mode="before")
    @classmethod
    def decode_tags(cls, v: Any) -> Any:
        """Accept JSON-encoded tag lists from the store."""
        return _decode_json_list(v) or ()


class CacheEntry(BaseModel):
    """One persisted (user, drop) ranking result.

    Positions are a dense 1..N sequence per user generation and entries
    must not be served past expires_at.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: Annotated[str, Field(min_length=1)]
    item_id: int
    final_score: Annotated[float, Field(ge=0.0, le=1.0)]
    reason: str
    position: Annotated[int, Field(ge=1)]
    created_at: datetime
    expires_at: datetime

    @field_validator("created_at", "expires_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Ensure datetime fields carry a timezone."""
        return _ensure_utc(v)

    def is_expired(self, now: datetime) -> bool:
        """Check if the entry may no longer be served."""
        return self.expires_at <= now


class RecentItem(BaseModel):
    """A recency-ordered drop returned by the direct fallback query."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int
    title: str
    url: str
    kind: DropKind
    source_name: str = UNKNOWN_SOURCE_NAME
    published_at: datetime | None = None
    created_at: datetime
    tags: tuple[str, ...] = ()

    @field_validator("tags", mode="before")
    @classmethod
    def decode_tags(cls, v: Any) -> Any:
        """Accept JSON-encoded tag lists from the store."""
        return _decode_json_list(v) or ()

    @field_validator("published_at", "created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Ensure datetime fields carry a timezone."""
        if v is None:
            return None
        return _ensure_utc(v)
