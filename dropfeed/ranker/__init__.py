"""Personalized ranker for drops.

Scores recent tagged candidates against a user's topics, preference
embedding and engagement history, then applies diversity constraints.
"""

from dropfeed.ranker.errors import CandidateFetchError, RankingError
from dropfeed.ranker.feedback import (
    EngagementFeedbackProvider,
    FeedbackBatcher,
    FeedbackScoreProvider,
)
from dropfeed.ranker.fetcher import CandidateFetcher, FetchedInputs
from dropfeed.ranker.models import (
    RankedEntry,
    ScoreBreakdown,
    ScoredCandidate,
    TopicHierarchy,
    TopicMatchTier,
)
from dropfeed.ranker.ranker import FeedRanker, RankingOutcome
from dropfeed.ranker.scorer import CandidateScorer, ScorerConfig, score_candidates_pure
from dropfeed.ranker.selector import DiversitySelector, select_diverse_pure
from dropfeed.ranker.similarity import cosine_similarity
from dropfeed.ranker.topic_hierarchy import TopicHierarchyResolver, build_topic_hierarchy


__all__ = [
    "CandidateFetchError",
    "CandidateFetcher",
    "CandidateScorer",
    "DiversitySelector",
    "EngagementFeedbackProvider",
    "FeedRanker",
    "FeedbackBatcher",
    "FeedbackScoreProvider",
    "FetchedInputs",
    "RankedEntry",
    "RankingError",
    "RankingOutcome",
    "ScoreBreakdown",
    "ScoredCandidate",
    "ScorerConfig",
    "TopicHierarchy",
    "TopicHierarchyResolver",
    "TopicMatchTier",
    "build_topic_hierarchy",
    "cosine_similarity",
    "score_candidates_pure",
    "select_diverse_pure",
]
