"""HTTP client for the sample endpoint, as used by the refill controller."""

import logging

import httpx

from app.api.schemas import TrackItem
from app.domain.errors import PoolExhaustedError

logger = logging.getLogger(__name__)


class TrackApiClient:
    """Fetches random tracks from `GET /tracks/random`."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport
        )

    async def fetch_random(self, count: int | None = None) -> list[TrackItem]:
        """Random tracks for the current actor; the server default applies without `count`."""
        params = {"count": count} if count is not None else None
        resp = await self._client.get("/tracks/random", params=params)

        content_type = resp.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.error("Expected JSON but received: %s", resp.text[:100])
            raise ValueError("Unexpected non-JSON response from track API; check the session")

        if resp.status_code == 404:
            raise PoolExhaustedError(resp.json().get("detail", "No tracks available"))
        resp.raise_for_status()
        return [TrackItem.model_validate(t) for t in resp.json().get("tracks", [])]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TrackApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
