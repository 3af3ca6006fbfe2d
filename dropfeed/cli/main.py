"""CLI commands for the feed ranking engine."""

import json
import logging
import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path

import click
import structlog

from dropfeed import __version__
from dropfeed.config.constants import COMPONENT_CLI
from dropfeed.config.loader import ConfigValidationError, load_ranking_config
from dropfeed.config.schemas import RankingConfig
from dropfeed.consumers.feed import FeedReader
from dropfeed.engine.models import TriggerRequest, TriggerResponse, TriggerType
from dropfeed.engine.runner import FeedRankingRunner
from dropfeed.observability.logging import bind_run_context, configure_logging
from dropfeed.settings.app import get_settings
from dropfeed.store.store import FeedStore


logger = structlog.get_logger()


def _setup_logging(json_logs: bool, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    configure_logging(level=log_level, json_format=json_logs)


def _resolve_db_path(db_path: Path | None) -> Path:
    return db_path or get_settings().db_path


def _load_config(config_path: Path | None) -> RankingConfig:
    """Load ranking configuration, exit on failure.

    Args:
        config_path: Path to ranking.yaml, or None to use the environment.

    Returns:
        Validated ranking configuration.
    """
    path = config_path or get_settings().config_path
    try:
        return load_ranking_config(path)
    except ConfigValidationError as e:
        click.echo(f"Configuration validation failed: {e.file_path}", err=True)
        for error in e.errors:
            click.echo(f"  - {error['loc']}: {error['msg']}", err=True)
        sys.exit(1)


db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to SQLite database (default: $DROPFEED_DB_PATH).",
)
config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to ranking.yaml (default: $DROPFEED_CONFIG_PATH or built-in).",
)
json_logs_option = click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON format for logs (default: true).",
)
verbose_option = click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Personalized feed ranking and cache engine CLI."""


@cli.command()
@db_option
@config_option
@click.option(
    "--trigger",
    type=click.Choice([t.value for t in TriggerType]),
    default=TriggerType.MANUAL.value,
    show_default=True,
    help="What started this run.",
)
@click.option(
    "--user",
    "user_ids",
    multiple=True,
    help="Rank only this user (repeatable).",
)
@click.option(
    "--limit",
    "users_limit",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of users to resolve.",
)
@click.option(
    "--force",
    is_flag=True,
    help="Regenerate caches even when they are still valid.",
)
@click.option(
    "--workers",
    "max_workers",
    type=click.IntRange(min=1, max=32),
    default=None,
    help="Users ranked concurrently (default: from config).",
)
@json_logs_option
@verbose_option
def rank(  # noqa: PLR0913
    db_path: Path | None,
    config_path: Path | None,
    trigger: str,
    user_ids: tuple[str, ...],
    users_limit: int | None,
    force: bool,
    max_workers: int | None,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Refresh per-user feed caches.

    Prints the trigger response as JSON and exits non-zero when the run
    could not start.
    """
    _setup_logging(json_logs, verbose)
    run_id = str(uuid.uuid4())
    bind_run_context(run_id, trigger)
    log = logger.bind(component=COMPONENT_CLI, command="rank", run_id=run_id)

    config = _load_config(config_path)
    request = TriggerRequest(
        trigger=TriggerType(trigger),
        user_ids=list(user_ids) or None,
        users_limit=users_limit,
        force_regeneration=force,
    )

    with FeedStore(_resolve_db_path(db_path), config.fetch.store_timeout_seconds) as store:
        runner = FeedRankingRunner(
            store, config=config, run_id=run_id, max_workers=max_workers
        )
        response = runner.run(request)

    log.info("rank_command_complete", success=response.success)
    click.echo(response.model_dump_json(indent=2))
    if not response.success:
        sys.exit(1)


@cli.command()
@click.argument("user_id")
@db_option
@config_option
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=100),
    default=20,
    show_default=True,
    help="Maximum number of items.",
)
@click.option(
    "--cached-only",
    is_flag=True,
    help="Show only the cached ranking, without fallback.",
)
@json_logs_option
def feed(
    user_id: str,
    db_path: Path | None,
    config_path: Path | None,
    limit: int,
    cached_only: bool,
    json_logs: bool,
) -> None:
    """Show a user's feed as JSON."""
    _setup_logging(json_logs, verbose=False)
    config = _load_config(config_path)

    with FeedStore(_resolve_db_path(db_path), config.fetch.store_timeout_seconds) as store:
        reader = FeedReader(store, config.fetch)
        if cached_only:
            entries = reader.get_cached_feed(user_id, limit)
            click.echo(json.dumps([e.model_dump() for e in entries], indent=2))
        else:
            click.echo(reader.get_feed(user_id, limit).model_dump_json(indent=2))


@cli.command("stale-users")
@db_option
@config_option
@click.option(
    "--min-entries",
    type=click.IntRange(min=1),
    default=None,
    help="Healthy caches hold at least this many live rows (default: from config).",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of users to list.",
)
@click.option(
    "--regenerate",
    is_flag=True,
    help="Force-regenerate the listed users.",
)
@json_logs_option
def stale_users(
    db_path: Path | None,
    config_path: Path | None,
    min_entries: int | None,
    limit: int | None,
    regenerate: bool,
    json_logs: bool,
) -> None:
    """List users whose cache is empty or too small, optionally repairing it."""
    _setup_logging(json_logs, verbose=False)
    config = _load_config(config_path)
    threshold = min_entries or config.cache.min_valid_entries

    with FeedStore(_resolve_db_path(db_path), config.fetch.store_timeout_seconds) as store:
        users = store.list_users_needing_refresh(threshold, datetime.now(UTC), limit)

        if not regenerate:
            click.echo(json.dumps({"min_entries": threshold, "users": users}, indent=2))
            return

        runner = FeedRankingRunner(store, config=config)
        if not users:
            # An empty id list would resolve to every user with preferences
            response = TriggerResponse(
                success=True, trigger=TriggerType.MANUAL, run_id=runner.run_id
            )
        else:
            response = runner.run(
                TriggerRequest(user_ids=users, force_regeneration=True)
            )
        click.echo(response.model_dump_json(indent=2))


@cli.command("prune-cache")
@db_option
@json_logs_option
def prune_cache(db_path: Path | None, json_logs: bool) -> None:
    """Delete expired cache rows."""
    _setup_logging(json_logs, verbose=False)

    with FeedStore(_resolve_db_path(db_path)) as store:
        deleted = store.prune_expired_cache(datetime.now(UTC))

    click.echo(f"Pruned {deleted} expired cache rows.")


@cli.command("db-stats")
@db_option
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output as JSON.",
)
def db_stats(db_path: Path | None, json_output: bool) -> None:
    """Display feed database statistics.

    Shows row counts for all tables and the schema version.
    """
    configure_logging(json_format=False)

    with FeedStore(_resolve_db_path(db_path)) as store:
        stats = store.get_stats()
        schema_version = store.get_schema_version()

    if json_output:
        output = {"schema_version": schema_version, "tables": stats}
        click.echo(json.dumps(output, indent=2))
    else:
        click.echo("Feed Database Statistics")
        click.echo("=" * 40)
        click.echo(f"  Schema Version: {schema_version}")
        click.echo("")
        click.echo("Table Row Counts:")
        for table, count in sorted(stats.items()):
            click.echo(f"  {table}: {count}")


@cli.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to ranking.yaml.",
)
def validate(config_path: Path) -> None:
    """Validate a ranking configuration file."""
    configure_logging(json_format=False)
    config = _load_config(config_path)

    click.echo("Configuration is valid!")
    click.echo(f"  Version: {config.version}")
    click.echo(f"  Max items: {config.selection.max_items}")
    click.echo(f"  Max per source: {config.selection.max_per_source}")
    click.echo(f"  Cache TTL hours: {config.cache.ttl_hours}")


if __name__ == "__main__":
    cli()
