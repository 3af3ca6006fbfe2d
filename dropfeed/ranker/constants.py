"""Constants for the ranker module."""

# Separator between reason factors shown to the user
REASON_SEPARATOR: str = " • "

# Reason factors in priority order
REASON_FRESH: str = "Fresh content"
REASON_MACRO_MATCH: str = "Matches interests: main topic"
REASON_SUB_MATCH: str = "Matches interests: subtopic"
REASON_TAG_MATCH_PREFIX: str = "Matches interests: tags: "
REASON_HIGH_TRUST: str = "High quality source"
REASON_EMBEDDING: str = "Content matches your reading patterns"
REASON_FEEDBACK: str = "Similar content liked before"
REASON_DEFAULT: str = "Relevant content"

# Tags listed in a tag-match reason
MAX_REASON_TAGS: int = 2

# Engagement action weights for feedback affinity.
# Negative actions pull affinity down for related sources and tags.
ENGAGEMENT_ACTION_WEIGHTS: dict[str, float] = {
    "like": 1.0,
    "save": 1.0,
    "share": 1.0,
    "click": 0.3,
    "view": 0.1,
    "dismiss": -1.0,
    "hide": -1.0,
}

# Actions that exclude the exact drop from positive affinity
NEGATIVE_ACTIONS: frozenset[str] = frozenset({"dismiss", "hide"})

# Contribution of one engagement event by relation to the candidate
FEEDBACK_SAME_SOURCE_WEIGHT: float = 0.6
FEEDBACK_SHARED_TAG_WEIGHT: float = 0.4

# Summed signal that maps to full affinity
FEEDBACK_SATURATION: float = 5.0
