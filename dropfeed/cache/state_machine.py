"""Cache validity and regeneration state machines."""

from collections.abc import Sequence
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import ClassVar

import structlog

from dropfeed.config.constants import COMPONENT_CACHE
from dropfeed.config.schemas import CacheConfig
from dropfeed.store.models import CacheEntry


logger = structlog.get_logger()


class CacheState(Enum):
    """Validity of a user's cached feed.

    VALID: enough fresh rows, skip regeneration
    STALE: some rows, but too few or too old; back up then regenerate
    ABSENT: no unexpired rows; regenerate
    """

    VALID = auto()
    STALE = auto()
    ABSENT = auto()


def evaluate_cache_state(
    entries: Sequence[CacheEntry],
    now: datetime,
    config: CacheConfig,
) -> CacheState:
    """Classify a user's cache.

    Expired rows are ignored. The cache is stale when fewer than
    min_valid_entries rows remain or any remaining row is older than
    max_age_hours.

    Args:
        entries: The user's cache rows.
        now: Reference time.
        config: Validity thresholds.

    Returns:
        The cache state.
    """
    live = [e for e in entries if not e.is_expired(now)]
    if not live:
        return CacheState.ABSENT

    if len(live) < config.min_valid_entries:
        return CacheState.STALE

    max_age = timedelta(hours=config.max_age_hours)
    if any(now - e.created_at > max_age for e in live):
        return CacheState.STALE

    return CacheState.VALID


class RegenerationState(Enum):
    """Lifecycle of one cache regeneration.

    State transitions:
        PENDING -> RANKED: Ranking produced a (possibly empty) list
        RANKED -> COMMITTED: New generation written
        RANKED -> RESTORED: Write failed or list empty; backup rewritten
        RANKED -> CLEARED: List empty and no backup; rows cleared
        PENDING/RANKED -> ABORTED: Inputs unavailable or recovery failed
    """

    PENDING = auto()
    RANKED = auto()
    COMMITTED = auto()
    RESTORED = auto()
    CLEARED = auto()
    ABORTED = auto()


class RegenerationStateError(Exception):
    """Raised when an invalid regeneration transition is attempted."""

    def __init__(self, from_state: RegenerationState, to_state: RegenerationState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid regeneration transition: {from_state.name} -> {to_state.name}"
        )


_TERMINAL_STATES = frozenset(
    {
        RegenerationState.COMMITTED,
        RegenerationState.RESTORED,
        RegenerationState.CLEARED,
        RegenerationState.ABORTED,
    }
)


class RegenerationStateMachine:
    """State machine for one user's cache regeneration.

    Enforces valid transitions and logs invariant violations.
    """

    VALID_TRANSITIONS: ClassVar[dict[RegenerationState, set[RegenerationState]]] = {
        RegenerationState.PENDING: {
            RegenerationState.RANKED,
            RegenerationState.ABORTED,
        },
        RegenerationState.RANKED: {
            RegenerationState.COMMITTED,
            RegenerationState.RESTORED,
            RegenerationState.CLEARED,
            RegenerationState.ABORTED,
        },
        RegenerationState.COMMITTED: set(),  # Terminal state
        RegenerationState.RESTORED: set(),  # Terminal state
        RegenerationState.CLEARED: set(),  # Terminal state
        RegenerationState.ABORTED: set(),  # Terminal state
    }

    def __init__(self, run_id: str, user_id: str) -> None:
        """Initialize the state machine in PENDING state.

        Args:
            run_id: Run identifier for logging.
            user_id: User being regenerated.
        """
        self._state = RegenerationState.PENDING
        self._log = logger.bind(
            component=COMPONENT_CACHE,
            run_id=run_id,
            user_id=user_id,
        )

    @property
    def state(self) -> RegenerationState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: RegenerationState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: RegenerationState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            RegenerationStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise RegenerationStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "regeneration_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if no more transitions are allowed."""
        return self._state in _TERMINAL_STATES
