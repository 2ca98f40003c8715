"""Shared HTTP plumbing for the Apple / iTunes catalogue adapters."""

import logging
from typing import Any

import httpx

from app.api.schemas import TrackItem
from app.domain.errors import SourceError, SourceThrottledError, SourceTimeoutError

logger = logging.getLogger(__name__)

ITUNES_BASE_URL = "https://itunes.apple.com"
APPLE_RSS_BASE_URL = "https://rss.applemarketingtools.com/api/v2"


async def get_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    params: dict[str, Any] | None = None,
) -> Any:
    """GET `url` and decode JSON, translating failures into SourceError types."""
    try:
        resp = await client.get(url, params=params)
    except httpx.TimeoutException as exc:
        raise SourceTimeoutError(provider, f"request to {url} timed out") from exc
    except httpx.HTTPError as exc:
        raise SourceError(provider, f"request to {url} failed: {exc}") from exc

    if resp.status_code == 429:
        raise SourceThrottledError(provider, "rate limit exceeded (HTTP 429)")
    if resp.is_error:
        raise SourceError(
            provider, f"request failed with status {resp.status_code}: {resp.reason_phrase}"
        )
    try:
        return resp.json()
    except ValueError as exc:
        raise SourceError(provider, "response was not valid JSON") from exc


def high_quality_artwork(url: str | None) -> str | None:
    """Swap the 100x100 artwork rendition for the 1000x1000 one."""
    if not url:
        return None
    return url.replace("100x100bb", "1000x1000bb")


def track_from_search_result(result: dict[str, Any], fetched_from: str, refilled_at: str) -> TrackItem | None:
    """Normalize an iTunes Search/Lookup song result; None when it has no preview."""
    preview_url = result.get("previewUrl")
    track_id = result.get("trackId")
    if not preview_url or track_id is None:
        return None
    return TrackItem(
        track_id=str(track_id),
        track_name=result.get("trackName") or "",
        artist_name=result.get("artistName") or "",
        collection_name=result.get("collectionName"),
        preview_url=preview_url,
        artwork_url=high_quality_artwork(result.get("artworkUrl100")),
        track_view_url=result.get("trackViewUrl"),
        genre=result.get("primaryGenreName"),
        release_date=result.get("releaseDate"),
        metadata={
            "source": "itunes_search",
            "fetched_from": fetched_from,
            "refilled_at": refilled_at,
        },
    )
