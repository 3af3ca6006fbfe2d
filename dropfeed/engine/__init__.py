"""Batch ranking engine: trigger handling over a bounded worker pool."""

from dropfeed.engine.metrics import EngineMetrics
from dropfeed.engine.models import TriggerRequest, TriggerResponse, TriggerType
from dropfeed.engine.runner import (
    FeedRankingRunner,
    RunnerResult,
    UserResolutionError,
    run_trigger_pure,
)


__all__ = [
    "EngineMetrics",
    "FeedRankingRunner",
    "RunnerResult",
    "TriggerRequest",
    "TriggerResponse",
    "TriggerType",
    "UserResolutionError",
    "run_trigger_pure",
]
