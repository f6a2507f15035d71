"""Schedule function — stateful pointer with lazy advance.

The station never "plays" anything. A reference (track id, started_at) says
which track went on air and when; every read works out how far into that
track we are and, if it has run out, moves the pointer to the next track
with started_at = now. Missed airtime during an outage is not caught up.

Pure: callers own the clock and persistence.
"""
from dataclasses import dataclass
from typing import Optional

from .models import Track, ScheduleReference


@dataclass
class ScheduleResult:
    track: Optional[Track]
    position: float
    reference: ScheduleReference
    next_track: Optional[Track] = None
    advanced: bool = False
    repaired: bool = False

    @property
    def changed(self) -> bool:
        return self.advanced or self.repaired


def _index_of(tracks: list[Track], track_id: str) -> int:
    for i, track in enumerate(tracks):
        if track.id == track_id:
            return i
    return -1


def resolve(tracks: list[Track], reference: ScheduleReference, now: float) -> ScheduleResult:
    """Work out what is on air at `now`.

    `tracks` must already be filtered to schedulable (positive duration)
    tracks in loop order. Returns the track, the offset into it (always in
    [0, duration)), and the reference to persist if `changed` is set.
    """
    if not tracks:
        return ScheduleResult(track=None, position=0.0, reference=reference)

    repaired = False
    idx = _index_of(tracks, reference.track_id)
    if idx == -1:
        # Empty store or the track was deleted: restart from the top
        idx = 0
        reference = ScheduleReference(tracks[0].id, now)
        repaired = True
    elif reference.started_at > now:
        reference = ScheduleReference(reference.track_id, now)
        repaired = True

    track = tracks[idx]
    elapsed = now - reference.started_at
    advanced = False

    if elapsed >= track.duration:
        idx = (idx + 1) % len(tracks)
        track = tracks[idx]
        reference = ScheduleReference(track.id, now)
        elapsed = 0.0
        advanced = True

    position = min(max(0.0, elapsed), track.duration)
    if position >= track.duration:
        position = 0.0

    return ScheduleResult(
        track=track,
        position=position,
        reference=reference,
        next_track=tracks[(idx + 1) % len(tracks)],
        advanced=advanced,
        repaired=repaired,
    )
