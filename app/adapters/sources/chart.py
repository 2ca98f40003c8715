import logging
from typing import Any

import httpx

from app.adapters.sources.itunes import APPLE_RSS_BASE_URL, ITUNES_BASE_URL, get_json
from app.api.schemas import TrackItem
from app.domain.errors import SourceError
from app.domain.models import utcnow
from app.ports.source import SourceBatch, SourcePort

logger = logging.getLogger(__name__)

LOOKUP_BATCH_SIZE = 50


class AppleChartSourceAdapter(SourcePort):
    """Top tracks from the Apple Music "most played" RSS chart.

    The RSS feed carries no preview URLs, so they are resolved through the
    iTunes Lookup API in batches. Lookup failures are fail-open: the affected
    tracks are skipped rather than failing the whole fetch.
    """

    name = "chart"

    def __init__(
        self,
        country: str = "jp",
        limit: int = 100,
        timeout: float = 10.0,
        user_agent: str = "otodoki/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._country = country
        self._limit = limit
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent}
        self._transport = transport

    @property
    def feed_url(self) -> str:
        return f"{APPLE_RSS_BASE_URL}/{self._country}/music/most-played/{self._limit}/songs.json"

    async def fetch_tracks(self) -> SourceBatch:
        async with httpx.AsyncClient(
            timeout=self._timeout, headers=self._headers, transport=self._transport
        ) as client:
            logger.info("Fetching chart: %s", self.feed_url)
            data = await get_json(client, "apple_rss", self.feed_url)
            results = (data or {}).get("feed", {}).get("results") or []
            if not results:
                logger.warning("No tracks found in RSS feed")
                return SourceBatch()

            previews = await self._lookup_previews(client, [str(r.get("id")) for r in results])

        refilled_at = utcnow().isoformat()
        batch = SourceBatch(scanned=len(results))
        for item in results:
            track_id = str(item.get("id") or "")
            if not track_id.isdigit():
                logger.warning("Skipping chart entry with invalid id: %r", item.get("id"))
                batch.failures += 1
                continue
            preview_url = previews.get(track_id)
            if not preview_url:
                logger.debug("Skipping %s (%s): no preview", track_id, item.get("name"))
                batch.skipped_no_preview += 1
                continue
            genres = item.get("genres") or []
            batch.tracks.append(
                TrackItem(
                    track_id=track_id,
                    track_name=item.get("name") or "",
                    artist_name=item.get("artistName") or "",
                    collection_name=item.get("collectionName"),
                    preview_url=preview_url,
                    artwork_url=item.get("artworkUrl100"),
                    track_view_url=item.get("url"),
                    genre=genres[0].get("name") if genres else None,
                    release_date=item.get("releaseDate"),
                    metadata={
                        "source": "apple_rss",
                        "fetched_from": "chart",
                        "refilled_at": refilled_at,
                    },
                )
            )

        logger.info(
            "Chart fetch: %d scanned, %d usable, %d without preview",
            batch.scanned, len(batch.tracks), batch.skipped_no_preview,
        )
        return batch

    async def _lookup_previews(self, client: httpx.AsyncClient, ids: list[str]) -> dict[str, str]:
        previews: dict[str, str] = {}
        ids = [i for i in ids if i.isdigit()]
        for start in range(0, len(ids), LOOKUP_BATCH_SIZE):
            chunk = ids[start:start + LOOKUP_BATCH_SIZE]
            try:
                data: Any = await get_json(
                    client,
                    "itunes_lookup",
                    f"{ITUNES_BASE_URL}/lookup",
                    params={"id": ",".join(chunk), "country": self._country},
                )
            except SourceError as exc:
                logger.warning("iTunes lookup failed for %d tracks: %s", len(chunk), exc)
                continue
            for result in (data or {}).get("results") or []:
                if result.get("previewUrl") and result.get("trackId") is not None:
                    previews[str(result["trackId"])] = result["previewUrl"]
        return previews
