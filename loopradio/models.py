"""Track, schedule reference and sync response records."""
import math
from dataclasses import dataclass, asdict, field
from typing import Optional

from .config import DEFAULT_COVER_URL, DEFAULT_GENRE


@dataclass
class Track:
    id: str
    title: str
    duration: float                      # seconds, declared until corrected by playback
    audio_url: str
    cover_url: str = DEFAULT_COVER_URL
    genre: str = DEFAULT_GENRE
    created_at: Optional[float] = None

    @property
    def schedulable(self) -> bool:
        return math.isfinite(self.duration) and self.duration > 0

    @classmethod
    def from_dict(cls, data: dict) -> "Track":
        duration = float(data.get("duration") or 0)
        if not math.isfinite(duration):
            # A hand-edited Infinity/NaN would never finish and can't go back out as JSON
            duration = 0.0
        # Older playlists were written with camelCase keys
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            duration=duration,
            audio_url=data.get("audio_url") or data.get("audioUrl", ""),
            cover_url=data.get("cover_url") or data.get("coverUrl") or DEFAULT_COVER_URL,
            genre=data.get("genre") or DEFAULT_GENRE,
            created_at=data.get("created_at", data.get("createdAt")),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ScheduleReference:
    """Which track is on air and the wall-clock second it went on air."""
    track_id: str = ""
    started_at: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.track_id

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleReference":
        return cls(
            track_id=str(data.get("current_song_id") or ""),
            started_at=float(data.get("started_at") or 0.0),
        )

    def to_dict(self) -> dict:
        return {"current_song_id": self.track_id, "started_at": self.started_at}


EMPTY_REFERENCE = ScheduleReference()


@dataclass
class SyncResponse:
    track: Optional[Track]
    position: float
    timestamp: float
    started_at: float = 0.0
    next_track: Optional[Track] = field(default=None)

    @classmethod
    def from_dict(cls, data: dict) -> "SyncResponse":
        current = data.get("current_song")
        upcoming = data.get("next_song")
        return cls(
            track=Track.from_dict(current) if current else None,
            position=max(0.0, float(data.get("position") or 0.0)),
            timestamp=float(data.get("timestamp") or 0.0),
            started_at=float(data.get("started_at") or 0.0),
            next_track=Track.from_dict(upcoming) if upcoming else None,
        )

    def to_dict(self) -> dict:
        return {
            "current_song": self.track.to_dict() if self.track else None,
            "next_song": self.next_track.to_dict() if self.next_track else None,
            # Truncate, never round up: 179.9996 into a 180s track must not read as 180.0
            "position": math.floor(self.position * 1000) / 1000,
            "started_at": self.started_at,
            "timestamp": self.timestamp,
        }
