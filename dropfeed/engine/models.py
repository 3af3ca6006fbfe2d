"""Trigger request and response models."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class TriggerType(str, Enum):
    """What started a ranking run.

    MANUAL: operator request
    ONBOARDING_COMPLETED: a user finished onboarding; user ids required
    SCHEDULED: periodic refresh of every user with preferences
    PRELOAD: warm the caches that were refreshed longest ago
    """

    MANUAL = "manual"
    ONBOARDING_COMPLETED = "onboarding_completed"
    SCHEDULED = "scheduled"
    PRELOAD = "preload"


class TriggerRequest(BaseModel):
    """A request to refresh feed caches.

    Attributes:
        trigger: What started the run.
        user_ids: Explicit users; when given, no other users are resolved.
        users_limit: Cap on resolved users.
        force_regeneration: Regenerate even valid caches.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    trigger: TriggerType = TriggerType.MANUAL
    user_ids: list[Annotated[str, Field(min_length=1)]] | None = None
    users_limit: Annotated[int, Field(ge=1)] | None = None
    force_regeneration: bool = False


class TriggerResponse(BaseModel):
    """Aggregate result of a ranking run.

    Attributes:
        success: Whether the batch ran; per-user failures are counted separately.
        trigger: What started the run.
        run_id: Run identifier.
        processed_users: Users whose refresh completed.
        cache_entries_written: Rows written by new generations.
        cache_preserved: Users whose valid cache was kept.
        cache_regenerated: Users given a new generation.
        cache_restored: Users whose previous generation was restored.
        users_skipped: Users left untouched (inputs unavailable or time budget spent).
        users_failed: Users whose refresh failed.
        error: Batch-level error, if the run could not start.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    trigger: TriggerType
    run_id: str
    processed_users: Annotated[int, Field(ge=0)] = 0
    cache_entries_written: Annotated[int, Field(ge=0)] = 0
    cache_preserved: Annotated[int, Field(ge=0)] = 0
    cache_regenerated: Annotated[int, Field(ge=0)] = 0
    cache_restored: Annotated[int, Field(ge=0)] = 0
    users_skipped: Annotated[int, Field(ge=0)] = 0
    users_failed: Annotated[int, Field(ge=0)] = 0
    error: str | None = None
