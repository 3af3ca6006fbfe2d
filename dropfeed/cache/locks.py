"""Per-user locks serializing cache regeneration."""

import threading
from collections.abc import Generator
from contextlib import contextmanager


class UserLockRegistry:
    """Hands out one lock per user id.

    A user's lock exists while someone holds or waits for it and is
    dropped when the last of them leaves, so the registry only tracks
    users with a refresh in flight.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._locks: dict[str, threading.Lock] = {}
        self._holders: dict[str, int] = {}
        self._guard = threading.Lock()

    def _enter(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            self._holders[user_id] = self._holders.get(user_id, 0) + 1
            return lock

    def _leave(self, user_id: str) -> None:
        with self._guard:
            remaining = self._holders[user_id] - 1
            if remaining:
                self._holders[user_id] = remaining
            else:
                del self._holders[user_id]
                del self._locks[user_id]

    @contextmanager
    def hold(self, user_id: str) -> Generator[None]:
        """Hold a user's lock for the duration of the block."""
        lock = self._enter(user_id)
        try:
            with lock:
                yield
        finally:
            self._leave(user_id)

    def __len__(self) -> int:
        """Number of users with a holder or waiter."""
        with self._guard:
            return len(self._locks)
