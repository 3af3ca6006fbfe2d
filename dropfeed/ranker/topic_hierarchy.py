"""Expansion of selected topic ids into a macro/sub/micro hierarchy."""

from collections.abc import Iterable, Sequence
from typing import Protocol

import structlog

from dropfeed.config.constants import COMPONENT_RANKER
from dropfeed.ranker.models import TopicHierarchy
from dropfeed.store.models import Topic, TopicLevel


logger = structlog.get_logger()


class TopicSource(Protocol):
    """Read access to the topic taxonomy."""

    def fetch_topics(self, topic_ids: Sequence[int]) -> list[Topic]:
        """Fetch topics by id; unknown ids are omitted."""
        ...


def build_topic_hierarchy(topics: Iterable[Topic]) -> TopicHierarchy:
    """Bucket selected topics by level.

    Level-1 ids form the macro tier and level-2 ids the sub tier. The
    micro tier holds the lower-cased slug of every selected topic, so a
    drop tag equal to any selected slug matches at the micro level.

    Args:
        topics: The user's selected topics.

    Returns:
        The hierarchy; empty when no topic is given.
    """
    macro: set[int] = set()
    sub: set[int] = set()
    micro: set[str] = set()

    for topic in topics:
        if topic.level == TopicLevel.MACRO:
            macro.add(topic.id)
        elif topic.level == TopicLevel.SUB:
            sub.add(topic.id)
        micro.add(topic.slug.lower())

    return TopicHierarchy(
        macro=frozenset(macro),
        sub=frozenset(sub),
        micro=frozenset(micro),
    )


class TopicHierarchyResolver:
    """Resolves a user's selected topic ids against the taxonomy."""

    def __init__(self, source: TopicSource, run_id: str) -> None:
        """Initialize the resolver.

        Args:
            source: Taxonomy reader.
            run_id: Run identifier for logging.
        """
        self._source = source
        self._log = logger.bind(
            component=COMPONENT_RANKER,
            subcomponent="topic_hierarchy",
            run_id=run_id,
        )

    def resolve(self, selected_topic_ids: Sequence[int]) -> TopicHierarchy:
        """Build the hierarchy for the given selection.

        Ids missing from the taxonomy are ignored.

        Args:
            selected_topic_ids: Topic ids chosen by the user.

        Returns:
            The user's topic hierarchy.
        """
        if not selected_topic_ids:
            return TopicHierarchy()

        unique_ids = sorted(set(selected_topic_ids))
        topics = self._source.fetch_topics(unique_ids)
        hierarchy = build_topic_hierarchy(topics)

        unknown = len(unique_ids) - len(topics)
        if unknown > 0:
            self._log.debug("unknown_topic_ids_ignored", unknown_count=unknown)

        self._log.debug(
            "topic_hierarchy_resolved",
            macro_count=len(hierarchy.macro),
            sub_count=len(hierarchy.sub),
            micro_count=len(hierarchy.micro),
        )
        return hierarchy
