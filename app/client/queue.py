"""The swipe queue the refill controller keeps supplied."""

from collections import deque
from collections.abc import Callable, Iterable

from app.api.schemas import TrackItem


class SwipeQueue:
    """FIFO of cards waiting to be judged.

    Appends skip tracks already queued, and every depth change is reported to
    the subscribed listeners (typically `RefillController.observe`).
    """

    def __init__(self, tracks: Iterable[TrackItem] = ()) -> None:
        self._items: deque[TrackItem] = deque()
        self._listeners: list[Callable[[int], None]] = []
        self._append(tracks)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def subscribe(self, listener: Callable[[int], None]) -> None:
        self._listeners.append(listener)

    def _append(self, tracks: Iterable[TrackItem]) -> int:
        queued = {t.track_id for t in self._items}
        added = 0
        for track in tracks:
            if track.track_id in queued:
                continue
            queued.add(track.track_id)
            self._items.append(track)
            added += 1
        return added

    def _notify(self) -> None:
        depth = len(self._items)
        for listener in self._listeners:
            listener(depth)

    def extend(self, tracks: Iterable[TrackItem]) -> int:
        added = self._append(tracks)
        self._notify()
        return added

    def pop(self) -> TrackItem:
        """Remove the top card (after a swipe)."""
        track = self._items.popleft()
        self._notify()
        return track

    def peek(self) -> TrackItem | None:
        return self._items[0] if self._items else None
