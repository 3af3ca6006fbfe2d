"""Domain exceptions for the ranking engine."""


class RankingError(Exception):
    """Base exception for ranking failures."""


class CandidateFetchError(RankingError):
    """Raised when candidates or preferences cannot be loaded for a user.

    Fatal for that user's run only; the existing cache is left untouched.
    """

    def __init__(self, user_id: str, message: str) -> None:
        """Initialize the fetch error.

        Args:
            user_id: User whose inputs could not be loaded.
            message: Underlying error message.
        """
        self.user_id = user_id
        super().__init__(f"Candidate fetch for user {user_id} failed: {message}")
