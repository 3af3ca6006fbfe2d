"""SQLite schema migrations for the feed store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from dropfeed.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 2


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
        down_sql: SQL to rollback the migration.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Content schema: sources, topics, drops, preferences, engagement",
        up_sql="""
CREATE TABLE IF NOT EXISTS sources (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'rss'
);

-- Three-level taxonomy: 1 = macro, 2 = sub, 3 = micro
CREATE TABLE IF NOT EXISTS topics (
    id INTEGER PRIMARY KEY,
    slug TEXT NOT NULL UNIQUE,
    level INTEGER NOT NULL CHECK (level IN (1, 2, 3)),
    parent_id INTEGER REFERENCES topics(id),
    label TEXT NOT NULL DEFAULT ''
);

-- Drops are written by the tagging pipeline; tags and embedding are JSON arrays
CREATE TABLE IF NOT EXISTS drops (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT 'article',
    source_id INTEGER REFERENCES sources(id),
    published_at TEXT,
    created_at TEXT NOT NULL,
    authority_score REAL,
    quality_score REAL,
    popularity_score REAL,
    l1_topic_id INTEGER,
    l2_topic_id INTEGER,
    tags TEXT NOT NULL DEFAULT '[]',
    embedding TEXT,
    tag_done INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_drops_created_at ON drops(created_at);
CREATE INDEX IF NOT EXISTS idx_drops_tag_done ON drops(tag_done);

CREATE TABLE IF NOT EXISTS user_preferences (
    user_id TEXT PRIMARY KEY,
    selected_topic_ids TEXT NOT NULL DEFAULT '[]',
    preference_embedding TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS engagement_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    drop_id INTEGER NOT NULL REFERENCES drops(id) ON DELETE CASCADE,
    action TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_engagement_user ON engagement_events(user_id);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_engagement_user;
DROP TABLE IF EXISTS engagement_events;
DROP TABLE IF EXISTS user_preferences;
DROP INDEX IF EXISTS idx_drops_tag_done;
DROP INDEX IF EXISTS idx_drops_created_at;
DROP TABLE IF EXISTS drops;
DROP TABLE IF EXISTS topics;
DROP TABLE IF EXISTS sources;
""",
    ),
    Migration(
        version=2,
        description="Per-user ranked feed cache",
        up_sql="""
CREATE TABLE IF NOT EXISTS user_feed_cache (
    user_id TEXT NOT NULL,
    drop_id INTEGER NOT NULL,
    final_score REAL NOT NULL,
    reason TEXT NOT NULL,
    position INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    PRIMARY KEY (user_id, drop_id),
    UNIQUE (user_id, position)
);
CREATE INDEX IF NOT EXISTS idx_feed_cache_expires_at ON user_feed_cache(expires_at);
""",
        down_sql="""
DROP INDEX IF EXISTS idx_feed_cache_expires_at;
DROP TABLE IF EXISTS user_feed_cache;
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Manages SQLite schema migrations."""

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)
        self._conn.commit()

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration script fails.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.info("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
                self._conn.commit()
                applied.append(migration.version)
                self._log.info("migration_applied", version=migration.version)

            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

        return applied

    def rollback_to(self, target_version: int) -> list[int]:
        """Rollback to a specific version.

        Args:
            target_version: The version to rollback to.

        Returns:
            List of version numbers that were rolled back.

        Raises:
            ValueError: If target version is invalid.
            MigrationError: If a rollback script fails.
        """
        if target_version < 0:
            msg = f"Invalid target version: {target_version}"
            raise ValueError(msg)

        rolled_back: list[int] = []
        for migration in reversed(MIGRATIONS):
            if migration.version <= target_version:
                break
            if migration.version > self.get_current_version():
                continue

            self._log.info(
                "rolling_back_migration",
                version=migration.version,
                description=migration.description,
            )
            try:
                self._conn.executescript(migration.down_sql)
                self._conn.execute(
                    "DELETE FROM schema_version WHERE version = ?",
                    (migration.version,),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._log.error(
                    "rollback_failed",
                    version=migration.version,
                    error=str(e),
                )
                self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e
            rolled_back.append(migration.version)

        return rolled_back
