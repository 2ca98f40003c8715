"""FastAPI application factory: entry point for the track pool service."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes.jobs import router as jobs_router
from app.api.routes.tracks import router as tracks_router
from app.config import settings
from app.services.rate_limiter import TokenBucketRateLimiter

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown events."""
    logger.info("Track pool service starting up...")
    logger.info("Source provider: %s", settings.source_provider.value)
    logger.info("Pool max size: %d", settings.pool_max_size)
    logger.info(
        "Exclusion windows: likes %dd, dislikes %dd (cap %d)",
        settings.like_exclusion_days,
        settings.dislike_exclusion_days,
        settings.exclusion_cap,
    )
    if not settings.cron_auth_key:
        logger.warning("CRON_AUTH_KEY is not set; job endpoints will reject every request")
    app.state.rate_limiter.start()
    yield
    await app.state.rate_limiter.stop()
    logger.info("Track pool service shutting down...")


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="otodoki track pool",
        description="Track pool replenishment and exclusion-aware sampling",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Process-local; see TokenBucketRateLimiter for the single-instance caveat
    application.state.rate_limiter = TokenBucketRateLimiter(
        idle_ttl_ms=settings.rate_limit_idle_ttl_ms,
        sweep_interval_s=settings.rate_limit_sweep_interval_s,
    )

    # ── Middleware ──────────────────────────────────
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ─────────────────────────────────────
    application.include_router(tracks_router)
    application.include_router(jobs_router)

    # ── Health Check ───────────────────────────────
    @application.get("/health", tags=["System"])
    async def health() -> dict[str, str]:
        return {"status": "healthy", "service": "otodoki-pool"}

    return application


app = create_app()
