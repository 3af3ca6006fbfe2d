"""Ranking configuration schema."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScoringConfig(BaseModel):
    """Scoring weights and thresholds.

    Attributes:
        recency_half_life_hours: Hours after which recency halves.
        recency_weight: Base-score weight for recency.
        trust_weight: Base-score weight for trust (authority + quality).
        popularity_weight: Base-score weight for popularity.
        popularity_normalizer: Popularity value that maps to 1.0 (log scale).
        default_trust_component: Substitute for a missing authority/quality score.
        topic_weight: Personal-score weight for the topic match tier.
        embedding_weight: Personal-score weight for embedding similarity.
        feedback_weight: Personal-score weight for feedback affinity.
        diversity_weight: Personal-score weight for the diversity bonus.
        base_share: Share of the base score in the final score.
        personal_share: Share of the personal score in the final score.
        macro_match_score: Topic score when the macro topic matches.
        sub_match_score: Topic score when the sub topic matches.
        micro_match_score: Topic score when a micro tag matches.
        embedding_fallback_matched: Proxy similarity when vectors are absent and a topic matched.
        embedding_fallback_unmatched: Proxy similarity when vectors are absent otherwise.
        diversity_source_threshold: Distinct sources seen before the bonus drops.
        fresh_hours: Content younger than this is tagged "Fresh content".
        high_trust_threshold: Trust above this is tagged "High quality source".
        embedding_reason_threshold: Similarity above this earns a reason.
        feedback_reason_threshold: Feedback above this earns a reason.
        max_reasons: Maximum reason factors kept.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    recency_half_life_hours: Annotated[float, Field(gt=0.0)] = 48.0
    recency_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.30
    trust_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.25
    popularity_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.15
    popularity_normalizer: Annotated[float, Field(gt=1.0)] = 1000.0
    default_trust_component: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5

    topic_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.30
    embedding_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.35
    feedback_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.25
    diversity_weight: Annotated[float, Field(ge=0.0, le=1.0)] = 0.10

    base_share: Annotated[float, Field(ge=0.0, le=1.0)] = 0.35
    personal_share: Annotated[float, Field(ge=0.0, le=1.0)] = 0.65

    macro_match_score: Annotated[float, Field(ge=0.0, le=1.0)] = 1.0
    sub_match_score: Annotated[float, Field(ge=0.0, le=1.0)] = 0.8
    micro_match_score: Annotated[float, Field(ge=0.0, le=1.0)] = 0.6

    embedding_fallback_matched: Annotated[float, Field(ge=0.0, le=1.0)] = 0.6
    embedding_fallback_unmatched: Annotated[float, Field(ge=0.0, le=1.0)] = 0.3

    diversity_source_threshold: Annotated[int, Field(ge=0)] = 3

    fresh_hours: Annotated[float, Field(ge=0.0)] = 24.0
    high_trust_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = 0.7
    embedding_reason_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = 0.7
    feedback_reason_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1
    max_reasons: Annotated[int, Field(ge=1, le=5)] = 2

    @model_validator(mode="after")
    def validate_weight_sums(self) -> "ScoringConfig":
        """Keep every blended score inside [0, 1]."""
        base_total = self.recency_weight + self.trust_weight + self.popularity_weight
        personal_total = (
            self.topic_weight
            + self.embedding_weight
            + self.feedback_weight
            + self.diversity_weight
        )
        if base_total > 1.0 + 1e-9:
            msg = f"Base weights sum to {base_total:.3f}, must be <= 1.0"
            raise ValueError(msg)
        if personal_total > 1.0 + 1e-9:
            msg = f"Personal weights sum to {personal_total:.3f}, must be <= 1.0"
            raise ValueError(msg)
        if self.base_share + self.personal_share > 1.0 + 1e-9:
            msg = "base_share + personal_share must be <= 1.0"
            raise ValueError(msg)
        return self


class SelectionConfig(BaseModel):
    """Diversity constraints applied after scoring.

    Attributes:
        max_items: Hard cap on the ranked list length.
        max_per_source: Maximum admitted items per source.
        force_top_video: Whether the best video is forced into position 1.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_items: Annotated[int, Field(ge=1, le=500)] = 50
    max_per_source: Annotated[int, Field(ge=1)] = 2
    force_top_video: bool = True


class CacheConfig(BaseModel):
    """Cache validity and expiry.

    Attributes:
        ttl_hours: Lifetime of freshly written (or restored) rows.
        max_age_hours: Rows created longer ago than this make the cache stale.
        min_valid_entries: Fewer unexpired rows than this make the cache stale.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    ttl_hours: Annotated[float, Field(gt=0.0)] = 6.0
    max_age_hours: Annotated[float, Field(gt=0.0)] = 6.0
    min_valid_entries: Annotated[int, Field(ge=0)] = 10


class FetchConfig(BaseModel):
    """Candidate retrieval and external-call limits.

    Attributes:
        lookback_days: How far back candidates are considered.
        candidate_limit: Maximum candidates fetched per user run.
        feedback_batch_size: Feedback lookups issued per batch.
        feedback_timeout_seconds: Wait budget for one feedback batch.
        store_timeout_seconds: SQLite busy timeout.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    lookback_days: Annotated[int, Field(ge=1, le=365)] = 30
    candidate_limit: Annotated[int, Field(ge=1, le=5000)] = 500
    feedback_batch_size: Annotated[int, Field(ge=1, le=500)] = 50
    feedback_timeout_seconds: Annotated[float, Field(gt=0.0)] = 5.0
    store_timeout_seconds: Annotated[float, Field(gt=0.0)] = 10.0


class RunnerConfig(BaseModel):
    """Batch execution settings.

    Attributes:
        max_workers: Users ranked concurrently.
        time_budget_seconds: Optional wall-clock budget for one batch.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_workers: Annotated[int, Field(ge=1, le=32)] = 5
    time_budget_seconds: float | None = Field(default=None, gt=0.0)


class RankingConfig(BaseModel):
    """Root configuration for ranking.yaml.

    Attributes:
        version: Schema version.
        scoring: Scoring weights.
        selection: Diversity constraints.
        cache: Cache validity settings.
        fetch: Candidate retrieval settings.
        runner: Batch execution settings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: Annotated[str, Field(pattern=r"^\d+\.\d+$")] = "1.0"
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
