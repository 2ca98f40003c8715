"""Scheduler-only pool maintenance routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import SourceFactory, get_retry_policy, get_source_factory
from app.api.middleware.auth import require_cron_auth
from app.api.schemas import CleanupJobResponse, RefillJobResponse
from app.config import settings
from app.database import get_session
from app.domain.errors import PoolStoreError, RetryExhaustedError
from app.ports.source import SourcePort
from app.services.pool import PoolStore
from app.services.replenish import ReplenishmentService
from app.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"], dependencies=[Depends(require_cron_auth)])


async def _run_refill(
    source: SourcePort, session: AsyncSession, retry_policy: RetryPolicy
) -> RefillJobResponse:
    service = ReplenishmentService(session, retry_policy, max_size=settings.pool_max_size)
    try:
        return await service.refill(source)
    except RetryExhaustedError as exc:
        logger.error("Refill from %s gave up: %s", source.name, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except PoolStoreError as exc:
        logger.error("Refill from %s could not store tracks: %s", source.name, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc


@router.post("/refill-pool", response_model=RefillJobResponse)
async def refill_pool(
    session: AsyncSession = Depends(get_session),
    factory: SourceFactory = Depends(get_source_factory),
    retry_policy: RetryPolicy = Depends(get_retry_policy),
) -> RefillJobResponse:
    """Refill the pool from the chart feed."""
    return await _run_refill(factory.chart(), session, retry_policy)


@router.post("/refill-pool-artist", response_model=RefillJobResponse)
async def refill_pool_artist(
    session: AsyncSession = Depends(get_session),
    factory: SourceFactory = Depends(get_source_factory),
    retry_policy: RetryPolicy = Depends(get_retry_policy),
) -> RefillJobResponse:
    """Refill the pool with songs by artists picked at random from it."""
    try:
        artists = await PoolStore(session).random_artists(settings.artist_pick_count)
    except PoolStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc

    if not artists:
        logger.info("Pool has no artists yet, nothing to search")
        return RefillJobResponse(
            source="artist", scanned=0, added=0, skipped_no_preview=0,
            failures=0, evicted=0, pool_size=0, duration_ms=0,
        )
    return await _run_refill(factory.artist(artists), session, retry_policy)


@router.post("/cleanup-pool", response_model=CleanupJobResponse)
async def cleanup_pool(
    session: AsyncSession = Depends(get_session),
    factory: SourceFactory = Depends(get_source_factory),
    retry_policy: RetryPolicy = Depends(get_retry_policy),
) -> CleanupJobResponse:
    """Remove scanned tracks by artists below the Last.fm listener threshold."""
    service = ReplenishmentService(session, retry_policy, max_size=settings.pool_max_size)
    try:
        return await service.cleanup(
            factory.lastfm(),
            scan_count=settings.cleanup_scan_count,
            listeners_threshold=settings.cleanup_listeners_threshold,
            request_delay=settings.cleanup_request_delay_s,
        )
    except PoolStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc
