"""Track pool store: deduplicated upsert, bounded eviction and random reads."""

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import TrackItem
from app.domain.errors import PoolStoreError
from app.domain.models import PoolTrack, utcnow

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = (
    "track_name",
    "artist_name",
    "collection_name",
    "preview_url",
    "artwork_url",
    "track_view_url",
    "genre",
    "release_date",
    "metadata",
    "fetched_at",
)


def dialect_insert(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise PoolStoreError(f"Unsupported database dialect for upsert: {dialect}")


def _to_row(item: TrackItem, fetched_at: datetime) -> dict:
    return {
        "track_id": item.track_id,
        "track_name": item.track_name,
        "artist_name": item.artist_name,
        "collection_name": item.collection_name,
        "preview_url": item.preview_url,
        "artwork_url": item.artwork_url,
        "track_view_url": item.track_view_url,
        "genre": item.genre,
        "release_date": item.release_date,
        "metadata": item.metadata,
        "fetched_at": fetched_at,
    }


class PoolStore:
    """Operations on the `track_pool` table.

    Every statement is a single server-side operation, so concurrent upserts,
    evictions and samples are serialized by the database rather than by
    application locks. Failures are wrapped in PoolStoreError and never
    retried here; the caller owns the retry decision.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_many(
        self, items: Sequence[TrackItem], fetched_at: datetime | None = None
    ) -> int:
        """Insert unseen tracks and overwrite existing ones in place.

        The whole batch goes out as one INSERT ... ON CONFLICT DO UPDATE, so it
        either applies completely or fails with a single PoolStoreError.
        Returns the number of rows written; an empty batch is a no-op.
        """
        if not items:
            logger.info("No tracks to add to pool")
            return 0

        stamp = fetched_at or utcnow()
        # last occurrence wins when a batch repeats an id
        rows = list({item.track_id: _to_row(item, stamp) for item in items}.values())

        insert = dialect_insert(self._session)
        stmt = insert(PoolTrack.__table__).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PoolTrack.__table__.c.track_id],
            set_={name: stmt.excluded[name] for name in _UPDATABLE_COLUMNS},
        )
        try:
            await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Failed to upsert %d tracks: %s", len(rows), exc)
            raise PoolStoreError(f"Failed to add tracks to pool: {exc}") from exc

        logger.info("Upserted %d tracks into pool", len(rows))
        return len(rows)

    async def evict_to_max(self, max_size: int) -> int:
        """Delete the oldest tracks (by fetched_at) beyond `max_size`.

        Ranking and deletion happen in one DELETE statement, which keeps the
        operation atomic with respect to concurrent upserts.
        """
        if max_size < 0:
            raise ValueError("max_size must be non-negative")

        ranked = select(
            PoolTrack.track_id,
            func.row_number()
            .over(order_by=(PoolTrack.fetched_at.desc(), PoolTrack.track_id.desc()))
            .label("position"),
        ).subquery()
        overflow = select(ranked.c.track_id).where(ranked.c.position > max_size)
        stmt = delete(PoolTrack).where(PoolTrack.track_id.in_(overflow))

        try:
            result = await self._session.execute(stmt, execution_options={"synchronize_session": False})
        except SQLAlchemyError as exc:
            logger.error("Failed to trim pool to %d: %s", max_size, exc)
            raise PoolStoreError(f"Failed to evict old tracks: {exc}") from exc

        removed = result.rowcount or 0
        if removed:
            logger.info("Evicted %d old tracks (max size %d)", removed, max_size)
        else:
            logger.debug("Pool within limit (%d), nothing evicted", max_size)
        return removed

    async def size(self) -> int:
        try:
            result = await self._session.execute(select(func.count()).select_from(PoolTrack))
        except SQLAlchemyError as exc:
            raise PoolStoreError(f"Failed to get pool size: {exc}") from exc
        return result.scalar_one()

    async def random_artists(self, limit: int) -> list[str]:
        """Distinct, non-blank artist names drawn at random from the pool."""
        names = (
            select(PoolTrack.artist_name)
            .where(func.trim(PoolTrack.artist_name) != "")
            .distinct()
            .subquery()
        )
        stmt = select(names.c.artist_name).order_by(func.random()).limit(limit)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PoolStoreError(f"Failed to pick random artists: {exc}") from exc
        return [name.strip() for name in result.scalars().all()]

    async def random_rows(self, limit: int) -> list[PoolTrack]:
        try:
            result = await self._session.execute(
                select(PoolTrack).order_by(func.random()).limit(limit)
            )
        except SQLAlchemyError as exc:
            raise PoolStoreError(f"Failed to scan pool: {exc}") from exc
        return list(result.scalars().all())

    async def delete_many(self, track_ids: Sequence[str]) -> int:
        if not track_ids:
            return 0
        try:
            result = await self._session.execute(
                delete(PoolTrack).where(PoolTrack.track_id.in_(list(track_ids))),
                execution_options={"synchronize_session": False},
            )
        except SQLAlchemyError as exc:
            raise PoolStoreError(f"Failed to delete tracks: {exc}") from exc
        return result.rowcount or 0
