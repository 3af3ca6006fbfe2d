"""Per-user ranking pipeline: fetch, score, select."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import structlog

from dropfeed.config.constants import COMPONENT_RANKER
from dropfeed.config.schemas import RankingConfig
from dropfeed.ranker.feedback import FeedbackBatcher, FeedbackScoreProvider
from dropfeed.ranker.fetcher import CandidateFetcher, CandidateSource
from dropfeed.ranker.models import RankedEntry
from dropfeed.ranker.scorer import CandidateScorer, ScorerConfig
from dropfeed.ranker.selector import DiversitySelector
from dropfeed.ranker.topic_hierarchy import TopicHierarchyResolver, TopicSource


logger = structlog.get_logger()


class RankingSource(CandidateSource, TopicSource, Protocol):
    """Store reads needed to rank one user."""


@dataclass(frozen=True)
class RankingOutcome:
    """Result of ranking one user.

    Attributes:
        user_id: The ranked user.
        entries: Admitted entries in position order.
        candidates_in: Candidates fetched.
        candidates_scored: Candidates that scored without error.
        duration_ms: Wall time of the pipeline.
    """

    user_id: str
    entries: list[RankedEntry] = field(default_factory=list)
    candidates_in: int = 0
    candidates_scored: int = 0
    duration_ms: float = 0.0

    @property
    def is_empty(self) -> bool:
        """Check if nothing was admitted."""
        return not self.entries


class FeedRanker:
    """Ranks a single user's candidates into a diverse list.

    Stateless between users; one instance can serve concurrent workers.
    """

    def __init__(
        self,
        run_id: str,
        source: RankingSource,
        feedback_provider: FeedbackScoreProvider,
        config: RankingConfig | None = None,
    ) -> None:
        """Initialize the ranker.

        Args:
            run_id: Run identifier for logging.
            source: Store reader for candidates, preferences and topics.
            feedback_provider: Engagement affinity source.
            config: Ranking configuration.
        """
        self._run_id = run_id
        self._config = config or RankingConfig()
        self._fetcher = CandidateFetcher(
            source,
            TopicHierarchyResolver(source, run_id),
            self._config.fetch,
            run_id,
        )
        self._feedback = FeedbackBatcher(
            feedback_provider,
            run_id,
            batch_size=self._config.fetch.feedback_batch_size,
            timeout_seconds=self._config.fetch.feedback_timeout_seconds,
        )
        self._selector = DiversitySelector(run_id, self._config.selection)
        self._log = logger.bind(component=COMPONENT_RANKER, run_id=run_id)

    def rank_user(self, user_id: str, now: datetime) -> RankingOutcome:
        """Produce the ranked list for one user.

        Args:
            user_id: The user to rank.
            now: Reference time for recency and lookback.

        Returns:
            The ranking outcome; entries may be empty.

        Raises:
            CandidateFetchError: If inputs cannot be loaded.
        """
        start = time.perf_counter()
        inputs = self._fetcher.fetch(user_id, now)

        if not inputs.candidates:
            self._log.info("no_candidates", user_id=user_id)
            return RankingOutcome(user_id=user_id)

        feedback_scores = self._feedback.fetch_scores(user_id, inputs.candidates)

        scorer = CandidateScorer(
            self._run_id,
            ScorerConfig(
                scoring_config=self._config.scoring,
                hierarchy=inputs.hierarchy,
                preference_embedding=inputs.profile.preference_embedding,
                feedback_scores=feedback_scores,
                now=now,
            ),
        )
        scored = scorer.score_candidates(inputs.candidates)
        entries = self._selector.select(scored)

        duration_ms = (time.perf_counter() - start) * 1000
        self._log.info(
            "user_ranked",
            user_id=user_id,
            candidates_in=len(inputs.candidates),
            candidates_scored=len(scored),
            entries_out=len(entries),
            duration_ms=round(duration_ms, 2),
        )

        return RankingOutcome(
            user_id=user_id,
            entries=entries,
            candidates_in=len(inputs.candidates),
            candidates_scored=len(scored),
            duration_ms=duration_ms,
        )
