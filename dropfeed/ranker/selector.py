"""Diversity constraints applied to scored candidates."""

from collections import defaultdict
from collections.abc import Sequence

import structlog

from dropfeed.config.constants import COMPONENT_RANKER
from dropfeed.config.schemas import SelectionConfig
from dropfeed.ranker.models import RankedEntry, ScoredCandidate


logger = structlog.get_logger()


class DiversitySelector:
    """Turns scored candidates into a bounded, source-diverse ranked list.

    Enforces:
    - force_top_video: the best video, if any, takes position 1
    - max_per_source: no source contributes more than this many entries
    - max_items: hard cap on the list length

    Per-source counts live in local state of a single select() call.
    """

    def __init__(self, run_id: str, config: SelectionConfig) -> None:
        """Initialize the selector.

        Args:
            run_id: Run identifier for logging.
            config: Selection constraints.
        """
        self._config = config
        self._log = logger.bind(
            component=COMPONENT_RANKER,
            subcomponent="selector",
            run_id=run_id,
        )

    def select(self, scored: Sequence[ScoredCandidate]) -> list[RankedEntry]:
        """Select and order the final entries.

        Args:
            scored: Scored candidates in any order.

        Returns:
            Ranked entries with dense 1-based positions.
        """
        if not scored:
            return []

        # Stable: equal scores keep the fetch order
        ordered = sorted(scored, key=lambda s: -s.final_score)

        admitted: list[ScoredCandidate] = []
        admitted_ids: set[int] = set()
        per_source: dict[str, int] = defaultdict(int)
        dropped_by_reason: dict[str, int] = defaultdict(int)

        top_video: ScoredCandidate | None = None
        if self._config.force_top_video:
            top_video = next((s for s in ordered if s.item.is_video), None)
            if top_video is not None:
                admitted.append(top_video)
                admitted_ids.add(top_video.item.id)
                per_source[top_video.item.source_key] += 1

        for candidate in ordered:
            if len(admitted) >= self._config.max_items:
                break
            if candidate is top_video:
                continue
            item = candidate.item
            if item.id in admitted_ids:
                dropped_by_reason["duplicate"] += 1
                continue
            if per_source[item.source_key] >= self._config.max_per_source:
                dropped_by_reason["source_cap"] += 1
                continue

            admitted.append(candidate)
            admitted_ids.add(item.id)
            per_source[item.source_key] += 1

        entries = [
            RankedEntry(
                item_id=c.item.id,
                final_score=c.final_score,
                reason=c.reason,
                source_name=c.item.source_name,
                kind=c.item.kind,
                position=position,
            )
            for position, c in enumerate(admitted, start=1)
        ]

        self._log.info(
            "selection_complete",
            input_count=len(scored),
            selected_count=len(entries),
            distinct_sources=len(per_source),
            dropped_by_reason=dict(dropped_by_reason),
        )

        return entries


def select_diverse_pure(
    scored: Sequence[ScoredCandidate],
    config: SelectionConfig,
    run_id: str = "pure",
) -> list[RankedEntry]:
    """Pure function API for diversity selection.

    Args:
        scored: Scored candidates.
        config: Selection constraints.
        run_id: Run identifier.

    Returns:
        Ranked entries.
    """
    return DiversitySelector(run_id=run_id, config=config).select(scored)
