"""FastAPI app entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from pagecapture.api.routes import router
from pagecapture.batch.orchestrator import BatchOrchestrator
from pagecapture.batch.store import BatchStatusStore
from pagecapture.cache.redis import RedisStatusMirror, create_redis_client
from pagecapture.capture import build_capture_client, resolve_options
from pagecapture.capture.retry import RetryConfig
from pagecapture.config import get_settings
from pagecapture.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # Initialize logging FIRST so all subsequent operations produce JSON logs
    setup_logging(settings.log_level)
    logger.info("starting capture service")

    redis_client = None
    mirror = None
    if settings.redis_url:
        redis_client = await create_redis_client(settings.redis_url)
        mirror = RedisStatusMirror(redis_client, default_ttl=settings.status_ttl_seconds)

    store = BatchStatusStore(ttl_seconds=settings.status_ttl_seconds, mirror=mirror)
    orchestrator = BatchOrchestrator(
        store=store,
        client=build_capture_client(settings),
        output_dir=settings.output_dir,
        default_options=resolve_options(settings.capture_profile),
        retry_config=RetryConfig(
            max_attempts=settings.default_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        ),
    )

    # Attach to app state for dependency injection
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    logger.info(
        "capture service ready",
        extra={
            "output_dir": settings.output_dir,
            "capture_profile": settings.capture_profile,
            "redis_mirror": mirror is not None,
            "status_ttl_seconds": settings.status_ttl_seconds,
        },
    )

    yield

    logger.info("shutting down capture service")
    await orchestrator.aclose()
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(title="Page Capture Service", lifespan=lifespan)
app.include_router(router)
app.mount(
    "/screenshots",
    StaticFiles(directory=get_settings().output_dir, check_dir=False),
    name="screenshots",
)


@app.get("/")
async def root():
    return {"status": "ok", "message": "Page Capture Service"}


@app.get("/health")
async def health():
    return {"status": "ok"}
