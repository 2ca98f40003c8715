import logging

import httpx

logger = logging.getLogger(__name__)

LASTFM_BASE_URL = "https://ws.audioscrobbler.com/2.0/"


class LastFmClient:
    """Artist popularity lookups used by the pool cleanup job.

    Lookups are fail-open: any error, a missing API key or an unparseable
    answer yields None, and the caller keeps the track.
    """

    def __init__(
        self,
        api_key: str | None,
        timeout: float = 5.0,
        user_agent: str = "otodoki/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent}
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def get_listeners(self, artist: str) -> int | None:
        if not self._api_key:
            logger.warning("LASTFM_API_KEY is not set, skipping Last.fm lookup")
            return None

        params = {
            "method": "artist.getinfo",
            "artist": artist,
            "api_key": self._api_key,
            "format": "json",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, headers=self._headers, transport=self._transport
            ) as client:
                resp = await client.get(LASTFM_BASE_URL, params=params)
                if resp.is_error:
                    logger.warning("Last.fm returned %d for artist %r", resp.status_code, artist)
                    return None
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Last.fm lookup failed for %r: %s", artist, exc)
            return None

        if data.get("error"):
            logger.warning("Last.fm error for %r: %s", artist, data.get("message"))
            return None
        raw = (data.get("artist") or {}).get("stats", {}).get("listeners")
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None
