"""Constants shared across the engine."""

# Log component names
COMPONENT_CONFIG = "config"
COMPONENT_CLI = "cli"
COMPONENT_API = "api"
COMPONENT_STORE = "store"
COMPONENT_RANKER = "ranker"
COMPONENT_CACHE = "cache"
COMPONENT_RUNNER = "runner"
COMPONENT_FEED = "feed"

# Algorithm source labels reported to feed consumers
ALGORITHM_SOURCE_CACHE = "user_feed_cache"
ALGORITHM_SOURCE_DIRECT = "direct_query"

UNKNOWN_SOURCE_NAME = "Unknown Source"
