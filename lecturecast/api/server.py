"""
FastAPI application factory.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from lecturecast import config
from lecturecast.agents.generation.orchestration import LectureOrchestrator
from lecturecast.agents.persistence.cache import CacheStore, open_cache
from lecturecast.agents.persistence.session_store import SessionStore
from lecturecast.api.requests.api_monitoring import router as monitoring_router
from lecturecast.api.requests.api_query import router as query_router
from lecturecast.api.requests.api_stream import router as stream_router
from lecturecast.config import Settings, get_settings
from lecturecast.logging_config import get_logger, setup_logging
from lecturecast.services.delivery_channel import DeliveryChannel

logger = get_logger(__name__)


def init_sentry() -> None:
    if not config.SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        integrations=[
            FastApiIntegration(transaction_style='endpoint'),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        environment=config.ENV,
        send_default_pii=False,
    )
    logger.info("Sentry initialized")


def build_orchestrator(settings: Settings, thread_pool: Optional[ThreadPoolExecutor] = None) -> LectureOrchestrator:
    """Wire the default stack: disk cache, session store, channel and OpenAI collaborators."""
    from lecturecast.agents.ai.lecture_agents import build_default_collaborators

    disk = open_cache(settings.cache)
    return LectureOrchestrator(
        cache=CacheStore(disk, expire=settings.cache.expire, thread_pool=thread_pool),
        sessions=SessionStore(disk, expire=settings.cache.expire, thread_pool=thread_pool),
        channel=DeliveryChannel(settings.playback.subscriber_queue_size),
        collaborators=build_default_collaborators(settings.generation),
        settings=settings,
    )


def create_app(orchestrator: Optional[LectureOrchestrator] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.logging.level, settings.logging.format)
    init_sentry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cache_pool = None
        if app.state.orchestrator is None:
            cache_pool = ThreadPoolExecutor(max_workers=settings.cache.io_workers, thread_name_prefix="cache-io")
            app.state.orchestrator = build_orchestrator(settings, cache_pool)
        app.state.orchestrator.start()
        try:
            yield
        finally:
            await app.state.orchestrator.close()
            if cache_pool is not None:
                cache_pool.shutdown(wait=True)

    app = FastAPI(title="lecturecast", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(query_router)
    app.include_router(monitoring_router)
    app.include_router(stream_router)
    return app


def main() -> None:
    uvicorn.run(create_app(), host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
