"""Sync endpoint logic — "what is on air right now", advancing the pointer on read."""
import logging
import time
from typing import Callable, Optional

from .models import SyncResponse
from .playlist import Playlist
from .scheduler import resolve
from .store import ScheduleStore

logger = logging.getLogger(__name__)


class Station:
    def __init__(
        self,
        playlist: Playlist,
        store: ScheduleStore,
        clock: Callable[[], float] = time.time,
    ):
        self.playlist = playlist
        self.store = store
        self.clock = clock

    def sync(self, now: Optional[float] = None) -> SyncResponse:
        """Resolve the schedule at `now` (server clock if omitted).

        The clock and the playlist are both read inside the store lock, so
        a request that waited on the lock decides against the tracks and the
        time as they are once it holds it.
        """
        outcome: dict = {}

        def _decide(reference):
            at = now if now is not None else self.clock()
            tracks = self.playlist.schedulable()
            outcome["now"] = at
            outcome["result"] = resolve(tracks, reference, at) if tracks else None
            result = outcome["result"]
            return result.reference if result and result.changed else None

        self.store.update(_decide)
        result = outcome["result"]
        if result is None:
            return SyncResponse(track=None, position=0.0, timestamp=outcome["now"])

        if result.repaired:
            logger.info("Schedule reference repaired — on air: %s", result.track.id)
        if result.advanced:
            logger.info("Advanced to %s (%s)", result.track.id, result.track.title)

        return SyncResponse(
            track=result.track,
            position=result.position,
            timestamp=outcome["now"],
            started_at=result.reference.started_at,
            next_track=result.next_track,
        )
