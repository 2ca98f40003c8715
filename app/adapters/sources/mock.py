import asyncio
import logging
from collections.abc import Sequence

from app.api.schemas import TrackItem
from app.domain.models import utcnow
from app.ports.source import SourceBatch, SourcePort

logger = logging.getLogger(__name__)

_MOCK_ARTISTS = ("Aimer", "YOASOBI", "King Gnu", "Official HIGE DANdism", "Vaundy")


class MockSourceAdapter(SourcePort):
    """
    Offline source for development and tests.

    Returns a deterministic catalogue without touching the network. Every
    `preview_every`-th generated entry has no preview and is dropped, so the
    skip accounting is exercised just like with the real providers.
    """

    def __init__(
        self,
        name: str = "mock",
        count: int = 20,
        artist_names: Sequence[str] | None = None,
        id_offset: int = 1_000_000,
        preview_every: int = 10,
    ) -> None:
        self.name = name
        self._count = count
        self._artists = list(artist_names or _MOCK_ARTISTS)
        self._id_offset = id_offset
        self._preview_every = preview_every

    async def fetch_tracks(self) -> SourceBatch:
        await asyncio.sleep(0)
        refilled_at = utcnow().isoformat()
        batch = SourceBatch(scanned=self._count)
        for n in range(1, self._count + 1):
            if self._preview_every and n % self._preview_every == 0:
                batch.skipped_no_preview += 1
                continue
            track_id = self._id_offset + n
            artist = self._artists[n % len(self._artists)] if self._artists else "Unknown"
            batch.tracks.append(
                TrackItem(
                    track_id=str(track_id),
                    track_name=f"Mock Track {n}",
                    artist_name=artist,
                    collection_name=f"Mock Album {n // 5 + 1}",
                    preview_url=f"https://example.invalid/previews/{track_id}.m4a",
                    artwork_url=f"https://example.invalid/artwork/{track_id}/1000x1000bb.jpg",
                    genre="J-Pop",
                    metadata={"source": "mock", "fetched_from": self.name, "refilled_at": refilled_at},
                )
            )
        logger.info("MockSource(%s): %d tracks generated", self.name, len(batch.tracks))
        return batch
