"""Track sampling and like/dislike routes."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_exclusion_policy, get_rate_limiter
from app.api.middleware.auth import get_current_actor, get_optional_actor
from app.api.schemas import JudgmentResponse, TracksResponse
from app.config import settings
from app.database import get_session
from app.domain.errors import PoolStoreError
from app.domain.models import JudgmentKind
from app.services.judgment import JudgmentService
from app.services.rate_limiter import TokenBucketRateLimiter
from app.services.sampler import ExclusionPolicy, Sampler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tracks", tags=["Tracks"])

NO_STORE = {"Cache-Control": "no-store"}
MAX_SAFE_INTEGER = 2**53 - 1


def normalize_track_id(body: Any) -> str:
    """Validate the judgment body's `track_id` and return it as a decimal string.

    Accepts a positive integer or a string of ASCII digits; anything else is a 400.
    """
    if not isinstance(body, dict) or body.get("track_id") is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="track_id is required")

    raw = body["track_id"]
    if isinstance(raw, bool):
        value = None
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, float) and raw.is_integer():
        value = int(raw)
    elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        value = None

    if value is None or value <= 0 or value > MAX_SAFE_INTEGER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="track_id must be a valid positive integer",
        )
    return str(value)


@router.get("/random", response_model=TracksResponse)
async def random_tracks(
    response: Response,
    count: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    actor_id: str | None = Depends(get_optional_actor),
    policy: ExclusionPolicy = Depends(get_exclusion_policy),
) -> TracksResponse:
    """Random tracks from the pool, minus the caller's recent likes/dislikes."""
    response.headers.update(NO_STORE)
    sampler = Sampler(
        session,
        policy,
        max_count=settings.sample_max_count,
        default_count=settings.sample_default_count,
    )
    try:
        tracks = await sampler.sample(count, actor_id)
    except PoolStoreError as exc:
        logger.error("Sampling failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch tracks",
            headers=NO_STORE,
        ) from exc

    if not tracks:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No tracks available",
            headers=NO_STORE,
        )
    return TracksResponse(tracks=tracks)


async def _judge(
    kind: JudgmentKind,
    capacity: int,
    body: Any,
    actor_id: str,
    session: AsyncSession,
    limiter: TokenBucketRateLimiter,
) -> JudgmentResponse:
    track_id = normalize_track_id(body)

    decision = limiter.consume(f"{kind.value}s:{actor_id}", capacity, settings.rate_limit_window_ms)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"X-RateLimit-Remaining": "0"},
        )

    try:
        await JudgmentService(session).record(actor_id, track_id, kind)
    except PoolStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc

    return JudgmentResponse(track_id=track_id, kind=kind.value, remaining=decision.remaining)


@router.post("/like", response_model=JudgmentResponse)
async def like_track(
    body: Any = Body(default=None),
    actor_id: str = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
    limiter: TokenBucketRateLimiter = Depends(get_rate_limiter),
) -> JudgmentResponse:
    """Like a track; removes an existing dislike first."""
    return await _judge(JudgmentKind.LIKE, settings.like_rate_limit, body, actor_id, session, limiter)


@router.post("/dislike", response_model=JudgmentResponse)
async def dislike_track(
    body: Any = Body(default=None),
    actor_id: str = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session),
    limiter: TokenBucketRateLimiter = Depends(get_rate_limiter),
) -> JudgmentResponse:
    """Dislike a track; removes an existing like first."""
    return await _judge(
        JudgmentKind.DISLIKE, settings.dislike_rate_limit, body, actor_id, session, limiter
    )
