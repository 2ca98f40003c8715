"""Pool replenishment and cleanup jobs invoked by the external scheduler."""

import asyncio
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.sources.lastfm import LastFmClient
from app.api.schemas import CleanupJobResponse, DeletedTrack, RefillJobResponse
from app.domain.errors import PoolStoreError
from app.ports.source import SourcePort
from app.services.pool import PoolStore
from app.services.retry import RetryPolicy

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ReplenishmentService:
    """fetch (with retries) → upsert → evict, committing the upsert first.

    Eviction runs in its own transaction and is best-effort: a failure is
    logged and reported in the result without undoing the upsert.
    """

    def __init__(
        self,
        session: AsyncSession,
        retry_policy: RetryPolicy,
        max_size: int,
    ) -> None:
        self._session = session
        self._pool = PoolStore(session)
        self._retry = retry_policy
        self._max_size = max_size

    async def refill(self, source: SourcePort) -> RefillJobResponse:
        """Run one source and store its tracks.

        Raises:
            RetryExhaustedError: the source failed on every attempt.
            PoolStoreError: the upsert failed.
        """
        started = time.perf_counter()
        batch = await self._retry.run(source.fetch_tracks, label=f"source[{source.name}]")

        added = await self._pool.upsert_many(batch.tracks)
        await self._session.commit()

        evicted = 0
        eviction_error = None
        if added:
            try:
                evicted = await self._pool.evict_to_max(self._max_size)
                await self._session.commit()
            except PoolStoreError as exc:
                await self._session.rollback()
                eviction_error = str(exc)
                logger.error("Eviction after %s refill failed: %s", source.name, exc)

        pool_size = None
        try:
            pool_size = await self._pool.size()
        except PoolStoreError as exc:
            logger.warning("Could not read pool size after refill: %s", exc)

        result = RefillJobResponse(
            source=source.name,
            scanned=batch.scanned,
            added=added,
            skipped_no_preview=batch.skipped_no_preview,
            failures=batch.failures,
            evicted=evicted,
            eviction_error=eviction_error,
            pool_size=pool_size,
            duration_ms=_elapsed_ms(started),
        )
        logger.info(
            "Refill[%s]: scanned=%d added=%d evicted=%d in %dms",
            source.name, result.scanned, result.added, result.evicted, result.duration_ms,
        )
        return result

    async def cleanup(
        self,
        lastfm: LastFmClient,
        scan_count: int,
        listeners_threshold: int,
        request_delay: float = 0.2,
    ) -> CleanupJobResponse:
        """Drop scanned tracks whose artist has fewer Last.fm listeners than the threshold.

        Unknown listener counts keep the track.
        """
        started = time.perf_counter()
        rows = await self._pool.random_rows(scan_count)
        logger.info("[Cleanup] Scanned: %d tracks", len(rows))

        listeners_by_artist: dict[str, int | None] = {}
        doomed: list[DeletedTrack] = []
        for row in rows:
            artist = row.artist_name
            if artist not in listeners_by_artist:
                listeners_by_artist[artist] = await lastfm.get_listeners(artist)
                if request_delay:
                    await asyncio.sleep(request_delay)
            listeners = listeners_by_artist[artist]
            if listeners is None or listeners >= listeners_threshold:
                continue
            doomed.append(
                DeletedTrack(track_id=row.track_id, artist_name=artist, listeners=listeners)
            )
            logger.info("[Cleanup] Deleting %s by %s (listeners: %d)", row.track_id, artist, listeners)

        deleted = await self._pool.delete_many([t.track_id for t in doomed])
        logger.info("[Cleanup] Deleted: %d tracks (listeners < %d)", deleted, listeners_threshold)
        return CleanupJobResponse(
            scanned=len(rows),
            deleted=deleted,
            deleted_tracks=doomed,
            duration_ms=_elapsed_ms(started),
        )
