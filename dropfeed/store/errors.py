"""Domain exceptions for the feed store.

Infrastructure errors (database issues) are separated from domain errors
(write failures the cache manager must recover from).
"""


class StoreError(Exception):
    """Base exception for all feed store errors."""


class ConnectionError(StoreError):
    """Raised when the database connection is not established or unusable."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class StoreReadError(StoreError):
    """Raised when a read query against the store fails.

    Wraps the underlying sqlite3 error with the operation name so callers
    can isolate the failure to one user.
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize the read error.

        Args:
            operation: Store operation that failed.
            message: Underlying error message.
        """
        self.operation = operation
        super().__init__(f"Store read '{operation}' failed: {message}")


class CacheWriteError(StoreError):
    """Raised when replacing a user's cache rows fails.

    The replace runs in a single transaction, so the previous rows are
    still present when this is raised.
    """

    def __init__(self, user_id: str, message: str) -> None:
        """Initialize the write error.

        Args:
            user_id: User whose cache could not be written.
            message: Underlying error message.
        """
        self.user_id = user_id
        super().__init__(f"Cache write for user {user_id} failed: {message}")


class MigrationError(StoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")


class CacheSupersededError(StoreError):
    """Raised when a restore finds a newer generation already in place.

    Another writer committed rows created after the backup, so rewriting
    the backup would replace fresher content. Nothing is written.
    """

    def __init__(self, user_id: str, newer_entries: int) -> None:
        """Initialize the superseded error.

        Args:
            user_id: User whose restore was refused.
            newer_entries: Rows newer than the backup found in the store.
        """
        self.user_id = user_id
        self.newer_entries = newer_entries
        super().__init__(
            f"Cache restore for user {user_id} superseded by {newer_entries} newer rows"
        )
