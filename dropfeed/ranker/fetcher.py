"""Candidate and preference retrieval for one user's ranking run."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import structlog

from dropfeed.config.constants import COMPONENT_RANKER
from dropfeed.config.schemas import FetchConfig
from dropfeed.ranker.errors import CandidateFetchError
from dropfeed.ranker.models import TopicHierarchy
from dropfeed.ranker.topic_hierarchy import TopicHierarchyResolver
from dropfeed.store.errors import StoreError
from dropfeed.store.models import CandidateItem, UserPreferenceProfile


logger = structlog.get_logger()


class CandidateSource(Protocol):
    """Read access to tagged drops and user preferences."""

    def fetch_tagged_candidates(
        self, since: datetime, limit: int
    ) -> list[CandidateItem]:
        """Fetch recent tagged drops, newest first."""
        ...

    def fetch_user_preferences(self, user_id: str) -> UserPreferenceProfile:
        """Load a user's preference profile."""
        ...


@dataclass(frozen=True)
class FetchedInputs:
    """Everything the scorer needs for one user.

    Attributes:
        profile: The user's preferences.
        hierarchy: The user's selected topics by level.
        candidates: Recent tagged drops, newest first.
    """

    profile: UserPreferenceProfile
    hierarchy: TopicHierarchy
    candidates: list[CandidateItem]


class CandidateFetcher:
    """Loads a user's preferences, topic hierarchy and the candidate pool."""

    def __init__(
        self,
        source: CandidateSource,
        resolver: TopicHierarchyResolver,
        config: FetchConfig,
        run_id: str,
    ) -> None:
        """Initialize the fetcher.

        Args:
            source: Store reader.
            resolver: Topic taxonomy resolver.
            config: Lookback and limit settings.
            run_id: Run identifier for logging.
        """
        self._source = source
        self._resolver = resolver
        self._config = config
        self._log = logger.bind(
            component=COMPONENT_RANKER,
            subcomponent="fetcher",
            run_id=run_id,
        )

    def fetch(self, user_id: str, now: datetime) -> FetchedInputs:
        """Fetch inputs for ranking one user.

        Args:
            user_id: The user being ranked.
            now: Reference time for the lookback window.

        Returns:
            The user's profile, hierarchy and candidates.

        Raises:
            CandidateFetchError: If the store cannot be read.
        """
        since = now - timedelta(days=self._config.lookback_days)

        try:
            profile = self._source.fetch_user_preferences(user_id)
            hierarchy = self._resolver.resolve(profile.selected_topic_ids)
            candidates = self._source.fetch_tagged_candidates(
                since, self._config.candidate_limit
            )
        except StoreError as e:
            self._log.warning("candidate_fetch_failed", user_id=user_id, error=str(e))
            raise CandidateFetchError(user_id, str(e)) from e

        self._log.debug(
            "candidates_fetched",
            user_id=user_id,
            candidate_count=len(candidates),
            selected_topics=len(profile.selected_topic_ids),
            has_embedding=profile.preference_embedding is not None,
        )
        return FetchedInputs(profile=profile, hierarchy=hierarchy, candidates=candidates)
