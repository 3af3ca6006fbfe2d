"""Data models for the personalized ranker."""

from dataclasses import dataclass
from enum import Enum

from dropfeed.store.models import CandidateItem, DropKind


class TopicMatchTier(str, Enum):
    """Best taxonomy level at which a candidate matched the user's topics."""

    MACRO = "macro"
    SUB = "sub"
    MICRO = "micro"
    NONE = "none"


@dataclass(frozen=True)
class TopicHierarchy:
    """A user's selected topics bucketed by taxonomy level.

    Attributes:
        macro: Selected level-1 topic ids.
        sub: Selected level-2 topic ids.
        micro: Lower-cased slugs of every selected topic, matched against tags.
    """

    macro: frozenset[int] = frozenset()
    sub: frozenset[int] = frozenset()
    micro: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        """Check if no topic is selected at any level."""
        return not (self.macro or self.sub or self.micro)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Breakdown of a candidate's score into components.

    Attributes:
        hours_old: Age used for recency, in hours.
        recency: Exponential recency decay (0-1).
        trust: Mean of authority and quality (0-1).
        popularity: Log-normalized popularity (0-1).
        base: Weighted non-personal score.
        topic_tier: Level at which the topics matched.
        topic_match: Score of the topic tier.
        matched_tags: Candidate tags that hit the micro tier.
        embedding_similarity: Cosine similarity or its proxy (0-1).
        embedding_is_proxy: Whether similarity is a fallback value.
        feedback: Engagement affinity (0-1).
        diversity_bonus: Bonus for early distinct sources.
        personal: Weighted personal score.
        final: Blended score in [0, 1].
    """

    hours_old: float
    recency: float
    trust: float
    popularity: float
    base: float
    topic_tier: TopicMatchTier
    topic_match: float
    embedding_similarity: float
    embedding_is_proxy: bool
    feedback: float
    diversity_bonus: float
    personal: float
    final: float
    matched_tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with its computed score and reason.

    Attributes:
        item: The candidate being scored.
        breakdown: Score breakdown by component.
        reason: Human-readable explanation.
    """

    item: CandidateItem
    breakdown: ScoreBreakdown
    reason: str

    @property
    def final_score(self) -> float:
        """Final blended score."""
        return self.breakdown.final


@dataclass(frozen=True)
class RankedEntry:
    """One admitted entry of a user's ranked list.

    Attributes:
        item_id: Drop identifier.
        final_score: Final blended score.
        reason: Human-readable explanation.
        source_name: Display name of the source.
        kind: Article or video.
        position: 1-based rank.
    """

    item_id: int
    final_score: float
    reason: str
    source_name: str
    kind: DropKind
    position: int
