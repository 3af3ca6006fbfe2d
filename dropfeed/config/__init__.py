"""Ranking configuration schemas and loading."""

from dropfeed.config.loader import ConfigValidationError, load_ranking_config
from dropfeed.config.schemas import (
    CacheConfig,
    FetchConfig,
    RankingConfig,
    RunnerConfig,
    ScoringConfig,
    SelectionConfig,
)


__all__ = [
    "CacheConfig",
    "ConfigValidationError",
    "FetchConfig",
    "RankingConfig",
    "RunnerConfig",
    "ScoringConfig",
    "SelectionConfig",
    "load_ranking_config",
]
