"""HTTP surface: ranking triggers and feed reads."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Query, Request, Response, status

from dropfeed import __version__
from dropfeed.cache.locks import UserLockRegistry
from dropfeed.config.constants import COMPONENT_API
from dropfeed.config.loader import load_ranking_config
from dropfeed.config.schemas import RankingConfig
from dropfeed.consumers.feed import FeedReader
from dropfeed.consumers.models import CachedFeedEntry, FeedResponse
from dropfeed.engine.metrics import EngineMetrics
from dropfeed.engine.models import TriggerRequest, TriggerResponse
from dropfeed.engine.runner import FeedRankingRunner
from dropfeed.settings.app import AppSettings, get_settings
from dropfeed.store.errors import StoreError
from dropfeed.store.metrics import StoreMetrics
from dropfeed.store.store import FeedStore


logger = structlog.get_logger()


def create_app(
    store: FeedStore | None = None,
    config: RankingConfig | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    """Build the API application.

    Args:
        store: Feed store; opened from settings when omitted.
        config: Ranking configuration; loaded from settings when omitted.
        settings: Environment settings.

    Returns:
        The FastAPI application.
    """
    settings = settings or get_settings()
    owns_store = store is None
    ranking_config = config or load_ranking_config(settings.config_path)
    feed_store = store or FeedStore(
        settings.db_path, ranking_config.fetch.store_timeout_seconds
    )
    log = logger.bind(component=COMPONENT_API)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        feed_store.connect()
        log.info("api_started", db_path=str(feed_store.db_path))
        try:
            yield
        finally:
            if owns_store:
                feed_store.close()

    app = FastAPI(title="dropfeed", version=__version__, lifespan=lifespan)
    app.state.store = feed_store
    app.state.config = ranking_config
    app.state.settings = settings
    # Shared by every run triggered through this app
    app.state.locks = UserLockRegistry()

    @app.get("/health")
    def health(request: Request) -> dict[str, object]:
        return {
            "status": "ok",
            "service": "dropfeed",
            "version": __version__,
            "schema_version": request.app.state.store.get_schema_version(),
        }

    @app.get("/metrics")
    def metrics() -> dict[str, object]:
        return {
            "engine": EngineMetrics.get_instance().to_dict(),
            "store": StoreMetrics.get_instance().to_dict(),
        }

    @app.post("/rankings/trigger", response_model=TriggerResponse)
    def trigger_ranking(
        body: TriggerRequest, request: Request, response: Response
    ) -> TriggerResponse:
        state = request.app.state
        runner = FeedRankingRunner(
            state.store,
            config=state.config,
            max_workers=state.settings.max_workers,
            locks=state.locks,
        )
        result = runner.run(body)
        if not result.success:
            response.status_code = status.HTTP_400_BAD_REQUEST
        return result

    @app.get("/feed/{user_id}", response_model=FeedResponse)
    def get_feed(
        user_id: str,
        request: Request,
        limit: int = Query(default=20, ge=1, le=100),
    ) -> FeedResponse:
        reader = FeedReader(request.app.state.store, request.app.state.config.fetch)
        try:
            return reader.get_feed(user_id, limit)
        except StoreError as e:
            log.error("feed_read_failed", user_id=user_id, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Feed temporarily unavailable",
            ) from e

    @app.get("/feed/{user_id}/cached", response_model=list[CachedFeedEntry])
    def get_cached_feed(
        user_id: str,
        request: Request,
        limit: int | None = Query(default=None, ge=1),
    ) -> list[CachedFeedEntry]:
        reader = FeedReader(request.app.state.store, request.app.state.config.fetch)
        try:
            return reader.get_cached_feed(user_id, limit)
        except StoreError as e:
            log.error("cached_feed_read_failed", user_id=user_id, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Feed temporarily unavailable",
            ) from e

    return app
