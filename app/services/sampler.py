"""Exclusion-aware random sampling over the track pool."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import TrackItem
from app.domain.errors import PoolStoreError
from app.domain.models import Interaction, JudgmentKind, PoolTrack, utcnow

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 10
MAX_COUNT = 100


@dataclass(frozen=True)
class ExclusionPolicy:
    """How long judgments hide a track, and how many ids we exclude at most.

    Dislikes are suppressed longer than likes on purpose: a liked track may
    legitimately resurface sooner.
    """

    like_window: timedelta = timedelta(days=7)
    dislike_window: timedelta = timedelta(days=30)
    cap: int = 1000


def clamp_count(raw: Any, default: int = DEFAULT_COUNT, maximum: int = MAX_COUNT) -> int:
    """Coerce a requested count into 1..maximum, falling back to `default`.

    Malformed values (missing, non-numeric, non-positive) never raise.
    """
    if raw is None or isinstance(raw, bool):
        return default
    try:
        count = int(str(raw).strip())
    except ValueError:
        return default
    if count <= 0:
        return default
    return min(count, maximum)


class Sampler:
    def __init__(
        self,
        session: AsyncSession,
        policy: ExclusionPolicy | None = None,
        max_count: int = MAX_COUNT,
        default_count: int = DEFAULT_COUNT,
    ) -> None:
        self._session = session
        self._policy = policy or ExclusionPolicy()
        self._max_count = max_count
        self._default_count = default_count

    async def sample(
        self, count: Any = None, actor_id: str | None = None
    ) -> list[TrackItem]:
        """Return up to `count` random pool tracks, skipping the actor's recent judgments.

        An empty list means the pool (minus exclusions) is exhausted; it is not
        an error. Store failures surface as PoolStoreError.
        """
        limit = clamp_count(count, self._default_count, self._max_count)
        excluded = await self.exclusion_set(actor_id) if actor_id else []

        stmt = select(PoolTrack)
        if excluded:
            stmt = stmt.where(PoolTrack.track_id.not_in(excluded))
        stmt = stmt.order_by(func.random()).limit(limit)

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Failed to fetch tracks from pool: %s", exc)
            raise PoolStoreError(f"Failed to fetch tracks from pool: {exc}") from exc

        tracks = [TrackItem.model_validate(row) for row in result.scalars().all()]
        logger.debug(
            "Sampled %d/%d tracks (actor=%s, excluded=%d)",
            len(tracks), limit, actor_id or "-", len(excluded),
        )
        return tracks

    async def exclusion_set(self, actor_id: str, now: datetime | None = None) -> list[str]:
        """Track ids hidden from `actor_id`, newest judgment first, capped."""
        now = now or utcnow()
        cap = self._policy.cap
        recent: list[tuple[datetime, str]] = []
        for kind, window in (
            (JudgmentKind.DISLIKE, self._policy.dislike_window),
            (JudgmentKind.LIKE, self._policy.like_window),
        ):
            stmt = (
                select(Interaction.created_at, Interaction.track_id)
                .where(
                    Interaction.actor_id == actor_id,
                    Interaction.kind == kind,
                    Interaction.created_at >= now - window,
                )
                .order_by(Interaction.created_at.desc())
                .limit(cap)
            )
            try:
                result = await self._session.execute(stmt)
            except SQLAlchemyError as exc:
                raise PoolStoreError(f"Failed to load {kind.value}s for exclusion: {exc}") from exc
            recent.extend((created_at, track_id) for created_at, track_id in result.all())

        recent.sort(key=lambda pair: pair[0], reverse=True)
        excluded: dict[str, None] = {}
        for _, track_id in recent:
            excluded.setdefault(track_id, None)
        if len(excluded) > cap:
            logger.warning(
                "Exclusion set for %s has %d ids, keeping the %d most recent",
                actor_id, len(excluded), cap,
            )
        return list(excluded)[:cap]
