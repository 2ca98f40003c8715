import asyncio
import logging
from collections.abc import Sequence

import httpx

from app.adapters.sources.itunes import ITUNES_BASE_URL, get_json, track_from_search_result
from app.domain.errors import SourceError
from app.domain.models import utcnow
from app.ports.source import SourceBatch, SourcePort

logger = logging.getLogger(__name__)


class ArtistSearchSourceAdapter(SourcePort):
    """Songs by artists already in the pool, via the iTunes Search API.

    Artists are searched concurrently. One artist failing is counted and
    skipped; the fetch only fails when every search failed.
    """

    name = "artist"

    def __init__(
        self,
        artist_names: Sequence[str],
        country: str = "JP",
        limit: int = 20,
        timeout: float = 10.0,
        user_agent: str = "otodoki/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._artists = list(dict.fromkeys(n.strip() for n in artist_names if n and n.strip()))
        self._country = country.upper()
        self._limit = limit
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent}
        self._transport = transport

    @property
    def artists(self) -> list[str]:
        return list(self._artists)

    async def _search(self, client: httpx.AsyncClient, artist: str) -> list[dict]:
        data = await get_json(
            client,
            "itunes_search",
            f"{ITUNES_BASE_URL}/search",
            params={
                "term": artist,
                "media": "music",
                "entity": "song",
                "country": self._country,
                "limit": self._limit,
            },
        )
        results = (data or {}).get("results")
        return results if isinstance(results, list) else []

    async def fetch_tracks(self) -> SourceBatch:
        if not self._artists:
            return SourceBatch()

        async with httpx.AsyncClient(
            timeout=self._timeout, headers=self._headers, transport=self._transport
        ) as client:
            settled = await asyncio.gather(
                *(self._search(client, artist) for artist in self._artists),
                return_exceptions=True,
            )

        refilled_at = utcnow().isoformat()
        batch = SourceBatch()
        last_error: BaseException | None = None
        for artist, outcome in zip(self._artists, settled):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                batch.failures += 1
                last_error = outcome
                logger.warning("Artist search failed for %r: %s", artist, outcome)
                continue
            batch.scanned += len(outcome)
            for result in outcome:
                track = track_from_search_result(result, "artist", refilled_at)
                if track is None:
                    batch.skipped_no_preview += 1
                    continue
                batch.tracks.append(track)

        if batch.failures == len(self._artists):
            raise SourceError(
                "itunes_search", f"all {batch.failures} artist searches failed: {last_error}"
            ) from last_error

        logger.info(
            "Artist fetch: %d artists (%d failed), %d scanned, %d usable",
            len(self._artists), batch.failures, batch.scanned, len(batch.tracks),
        )
        return batch
