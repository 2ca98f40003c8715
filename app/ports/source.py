"""Source port: abstract interface for external track catalogues."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from app.api.schemas import TrackItem


@dataclass
class SourceBatch:
    """Normalized tracks from one fetch, plus what was dropped on the way."""

    tracks: list[TrackItem] = field(default_factory=list)
    scanned: int = 0
    skipped_no_preview: int = 0
    failures: int = 0


class SourcePort(ABC):
    """A provider of candidate tracks for the pool.

    Implementations only fetch and normalize; writing to the pool is the
    caller's job, which keeps retries scoped to the network calls.
    """

    name: str = "source"

    @abstractmethod
    async def fetch_tracks(self) -> SourceBatch:
        """Fetch and normalize one batch. Raises SourceError on transient failure."""
        ...
