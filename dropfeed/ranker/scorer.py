"""Scoring engine for personalized drop ranking."""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from dropfeed.config.constants import COMPONENT_RANKER
from dropfeed.config.schemas import ScoringConfig
from dropfeed.ranker.constants import (
    MAX_REASON_TAGS,
    REASON_DEFAULT,
    REASON_EMBEDDING,
    REASON_FEEDBACK,
    REASON_FRESH,
    REASON_HIGH_TRUST,
    REASON_MACRO_MATCH,
    REASON_SEPARATOR,
    REASON_SUB_MATCH,
    REASON_TAG_MATCH_PREFIX,
)
from dropfeed.ranker.models import (
    ScoreBreakdown,
    ScoredCandidate,
    TopicHierarchy,
    TopicMatchTier,
)
from dropfeed.ranker.similarity import cosine_similarity
from dropfeed.store.models import CandidateItem


logger = structlog.get_logger()


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass
class ScorerConfig:
    """Configuration bundle for CandidateScorer.

    Attributes:
        scoring_config: Scoring weights configuration.
        hierarchy: The user's topic hierarchy.
        preference_embedding: The user's preference vector, if any.
        feedback_scores: Feedback affinity by item id; missing ids count 0.
        now: Current time for recency calculation.
    """

    scoring_config: ScoringConfig
    hierarchy: TopicHierarchy = field(default_factory=TopicHierarchy)
    preference_embedding: Sequence[float] | None = None
    feedback_scores: Mapping[int, float] = field(default_factory=dict)
    now: datetime | None = None


class CandidateScorer:
    """Computes a normalized final score and a reason for each candidate.

    Scoring formula:
        base = w_r * recency + w_t * trust + w_p * popularity
        personal = w_topic * topic + w_emb * embedding
                 + w_fb * feedback + w_div * diversity
        final = base_share * base + personal_share * personal

    Where:
        - recency: Exponential decay with a configurable half-life
        - trust: Mean of authority and quality (missing -> default)
        - popularity: log(1 + popularity) / log(normalizer)
        - topic: Macro, sub or micro tier score, first match wins
        - embedding: Cosine similarity, or a proxy when vectors are absent
        - feedback: Engagement affinity supplied by the caller
        - diversity: Bonus while few distinct sources have been scanned
    """

    def __init__(self, run_id: str, config: ScorerConfig) -> None:
        """Initialize the scorer.

        Args:
            run_id: Run identifier for logging.
            config: Scorer configuration bundle.
        """
        self._run_id = run_id
        self._scoring = config.scoring_config
        self._hierarchy = config.hierarchy
        self._preference_embedding = config.preference_embedding
        self._feedback_scores = config.feedback_scores
        self._now = config.now or datetime.now(UTC)
        self._log = logger.bind(
            component=COMPONENT_RANKER,
            subcomponent="scorer",
            run_id=run_id,
        )

    def score_candidate(
        self, item: CandidateItem, diversity_bonus: float
    ) -> ScoredCandidate:
        """Compute score and reason for a single candidate.

        Args:
            item: Candidate to score.
            diversity_bonus: Bonus assigned by the scan.

        Returns:
            ScoredCandidate with computed components.
        """
        cfg = self._scoring

        hours_old = max(0.0, (self._now - item.reference_time).total_seconds() / 3600)
        recency = self._compute_recency(hours_old)
        trust = self._compute_trust(item)
        popularity = self._compute_popularity(item)
        base = (
            cfg.recency_weight * recency
            + cfg.trust_weight * trust
            + cfg.popularity_weight * popularity
        )

        tier, topic_match, matched_tags = self._compute_topic_match(item)
        embedding, is_proxy = self._compute_embedding_similarity(item, topic_match)
        feedback = _clamp(self._feedback_scores.get(item.id, 0.0))

        personal = (
            cfg.topic_weight * topic_match
            + cfg.embedding_weight * embedding
            + cfg.feedback_weight * feedback
            + cfg.diversity_weight * diversity_bonus
        )
        final = _clamp(cfg.base_share * base + cfg.personal_share * personal)

        breakdown = ScoreBreakdown(
            hours_old=hours_old,
            recency=recency,
            trust=trust,
            popularity=popularity,
            base=base,
            topic_tier=tier,
            topic_match=topic_match,
            matched_tags=matched_tags,
            embedding_similarity=embedding,
            embedding_is_proxy=is_proxy,
            feedback=feedback,
            diversity_bonus=diversity_bonus,
            personal=personal,
            final=final,
        )
        return ScoredCandidate(
            item=item, breakdown=breakdown, reason=self._build_reason(breakdown)
        )

    def score_candidates(self, candidates: Sequence[CandidateItem]) -> list[ScoredCandidate]:
        """Score candidates in the given order.

        The diversity bonus depends on scan order: it is full until
        diversity_source_threshold distinct sources have been seen.
        A candidate that fails to score is logged and dropped.

        Args:
            candidates: Candidates to score.

        Returns:
            Scored candidates, in input order.
        """
        scored: list[ScoredCandidate] = []
        seen_sources: set[str] = set()
        failed = 0

        for item in candidates:
            bonus = (
                1.0
                if len(seen_sources) < self._scoring.diversity_source_threshold
                else 0.5
            )
            try:
                result = self.score_candidate(item, bonus)
            except Exception as e:  # noqa: BLE001
                failed += 1
                self._log.warning(
                    "candidate_scoring_failed", item_id=item.id, error=str(e)
                )
                continue
            seen_sources.add(item.source_key)
            scored.append(result)

        self._log.info(
            "scoring_complete",
            candidates_scored=len(scored),
            candidates_failed=failed,
            min_score=min((s.final_score for s in scored), default=0.0),
            max_score=max((s.final_score for s in scored), default=0.0),
        )

        return scored

    def _compute_recency(self, hours_old: float) -> float:
        """Compute recency decay score.

        Uses exponential decay: e^(-hours_old * ln 2 / half_life)

        Args:
            hours_old: Age of the candidate in hours.

        Returns:
            Recency score (0.0 to 1.0).
        """
        decay = math.log(2) / self._scoring.recency_half_life_hours
        return _clamp(math.exp(-hours_old * decay))

    def _compute_trust(self, item: CandidateItem) -> float:
        default = self._scoring.default_trust_component
        authority = item.authority_score if item.authority_score is not None else default
        quality = item.quality_score if item.quality_score is not None else default
        return _clamp((authority + quality) / 2)

    def _compute_popularity(self, item: CandidateItem) -> float:
        """Compute popularity score.

        Uses log normalization: log(1 + popularity) / log(normalizer)
        so a handful of viral drops do not dominate.

        Args:
            item: Candidate to score.

        Returns:
            Popularity score (0.0 to 1.0); 0 when unknown.
        """
        if item.popularity_score is None or item.popularity_score <= 0:
            return 0.0
        normalized = math.log1p(item.popularity_score) / math.log(
            self._scoring.popularity_normalizer
        )
        return _clamp(normalized)

    def _compute_topic_match(
        self, item: CandidateItem
    ) -> tuple[TopicMatchTier, float, tuple[str, ...]]:
        """Match the candidate against the user's hierarchy.

        Args:
            item: Candidate to match.

        Returns:
            Tuple of (tier, tier score, matched micro tags).
        """
        hierarchy = self._hierarchy
        cfg = self._scoring

        if item.macro_topic_id is not None and item.macro_topic_id in hierarchy.macro:
            return TopicMatchTier.MACRO, cfg.macro_match_score, ()
        if item.sub_topic_id is not None and item.sub_topic_id in hierarchy.sub:
            return TopicMatchTier.SUB, cfg.sub_match_score, ()

        matched = tuple(t for t in item.tags if t.lower() in hierarchy.micro)
        if matched:
            return TopicMatchTier.MICRO, cfg.micro_match_score, matched

        return TopicMatchTier.NONE, 0.0, ()

    def _compute_embedding_similarity(
        self, item: CandidateItem, topic_match: float
    ) -> tuple[float, bool]:
        """Compute embedding similarity or its proxy.

        Args:
            item: Candidate to score.
            topic_match: The candidate's topic tier score.

        Returns:
            Tuple of (similarity, whether it is a proxy value).
        """
        cfg = self._scoring
        if item.embedding is None or self._preference_embedding is None:
            if topic_match > 0:
                return cfg.embedding_fallback_matched, True
            return cfg.embedding_fallback_unmatched, True

        try:
            similarity = cosine_similarity(item.embedding, self._preference_embedding)
        except ValueError as e:
            self._log.debug("similarity_failed", item_id=item.id, error=str(e))
            return cfg.embedding_fallback_unmatched, True

        return _clamp(similarity), False

    def _build_reason(self, breakdown: ScoreBreakdown) -> str:
        cfg = self._scoring
        factors: list[str] = []

        if breakdown.hours_old < cfg.fresh_hours:
            factors.append(REASON_FRESH)

        if breakdown.topic_tier == TopicMatchTier.MACRO:
            factors.append(REASON_MACRO_MATCH)
        elif breakdown.topic_tier == TopicMatchTier.SUB:
            factors.append(REASON_SUB_MATCH)
        elif breakdown.topic_tier == TopicMatchTier.MICRO:
            tags = ", ".join(breakdown.matched_tags[:MAX_REASON_TAGS])
            factors.append(f"{REASON_TAG_MATCH_PREFIX}{tags}")

        if breakdown.trust > cfg.high_trust_threshold:
            factors.append(REASON_HIGH_TRUST)
        if breakdown.embedding_similarity > cfg.embedding_reason_threshold:
            factors.append(REASON_EMBEDDING)
        if breakdown.feedback > cfg.feedback_reason_threshold:
            factors.append(REASON_FEEDBACK)

        if not factors:
            return REASON_DEFAULT
        return REASON_SEPARATOR.join(factors[: cfg.max_reasons])


def score_candidates_pure(
    candidates: Sequence[CandidateItem],
    config: ScorerConfig,
    run_id: str = "pure",
) -> list[ScoredCandidate]:
    """Pure function API for scoring candidates.

    Args:
        candidates: Candidates to score.
        config: Scorer configuration bundle.
        run_id: Run identifier.

    Returns:
        List of ScoredCandidate objects.
    """
    scorer = CandidateScorer(run_id=run_id, config=config)
    return scorer.score_candidates(candidates)
