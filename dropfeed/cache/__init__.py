"""Per-user ranked feed cache: validity, serialization and recovery."""

from dropfeed.cache.locks import UserLockRegistry
from dropfeed.cache.manager import CacheManager, build_cache_entries
from dropfeed.cache.models import RefreshOutcome, UserRefreshResult
from dropfeed.cache.state_machine import (
    CacheState,
    RegenerationState,
    RegenerationStateError,
    RegenerationStateMachine,
    evaluate_cache_state,
)


__all__ = [
    "CacheManager",
    "CacheState",
    "RefreshOutcome",
    "RegenerationState",
    "RegenerationStateError",
    "RegenerationStateMachine",
    "UserLockRegistry",
    "UserRefreshResult",
    "build_cache_entries",
    "evaluate_cache_state",
]
