"""Playlist source — ordered track list persisted as JSON."""
import json
import logging
import threading
import time
from pathlib import Path
from typing import Iterable, Optional

from .config import PLAYLIST_FILE, DEFAULT_DURATION, DEFAULT_GENRE, DEFAULT_COVER_URL
from .errors import TrackNotFound, format_error
from .models import Track

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("title", "duration", "audio_url", "cover_url", "genre")

SEED_TRACKS = [
    {
        "id": "1",
        "title": "Orizont Neon",
        "duration": 180,
        "cover_url": "https://images.unsplash.com/photo-1614613535308-eb5fbd3d2c17?w=500&auto=format&fit=crop&q=60",
        "audio_url": "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-1.mp3",
        "genre": "Synthwave",
    },
    {
        "id": "2",
        "title": "Vise Cibernetice",
        "duration": 215,
        "cover_url": "https://images.unsplash.com/photo-1550745165-9bc0b252726f?w=500&auto=format&fit=crop&q=60",
        "audio_url": "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-2.mp3",
        "genre": "Cyberpunk",
    },
    {
        "id": "3",
        "title": "Ploaie Digitală",
        "duration": 195,
        "cover_url": "https://images.unsplash.com/photo-1515630278258-407f66498911?w=500&auto=format&fit=crop&q=60",
        "audio_url": "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-3.mp3",
        "genre": "Ambient",
    },
    {
        "id": "4",
        "title": "Viitorul Moldovei",
        "duration": 240,
        "cover_url": "https://images.unsplash.com/photo-1470225620780-dba8ba36b745?w=500&auto=format&fit=crop&q=60",
        "audio_url": "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-4.mp3",
        "genre": "Pop",
    },
    {
        "id": "5",
        "title": "Bas Neural",
        "duration": 170,
        "cover_url": "https://images.unsplash.com/photo-1493225255756-d9584f8606e9?w=500&auto=format&fit=crop&q=60",
        "audio_url": "https://www.soundhelix.com/examples/mp3/SoundHelix-Song-8.mp3",
        "genre": "Drum & Bass",
    },
]


class Playlist:
    """File-backed playlist. Order in the file is the loop order."""

    def __init__(self, path: Optional[Path] = None, seed: bool = True):
        self.path = Path(path) if path else PLAYLIST_FILE
        self._lock = threading.Lock()
        if seed and not self.path.exists():
            self._save([Track.from_dict(t) for t in SEED_TRACKS])

    # ── Reads ──────────────────────────────────────────────────────────────────

    def all(self) -> list[Track]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Error reading playlist %s: %s", self.path, e)
            return []
        tracks = []
        for item in raw:
            try:
                tracks.append(Track.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed playlist entry: %r", item)
        return tracks

    def schedulable(self) -> list[Track]:
        """Tracks the scheduler may put on air (positive duration)."""
        return [t for t in self.all() if t.schedulable]

    def get(self, track_id: str) -> Track:
        for track in self.all():
            if track.id == track_id:
                return track
        raise TrackNotFound(track_id)

    # ── Mutations ──────────────────────────────────────────────────────────────

    def add(
        self,
        title: str,
        audio_url: str,
        duration: Optional[float] = None,
        genre: str = "",
        cover_url: str = "",
    ) -> Track:
        now = time.time()
        track = Track(
            id=str(int(now * 1000)),
            title=title,
            duration=float(duration) if duration else float(DEFAULT_DURATION),
            audio_url=audio_url,
            cover_url=cover_url or DEFAULT_COVER_URL,
            genre=genre or DEFAULT_GENRE,
            created_at=now,
        )
        with self._lock:
            tracks = self.all()
            while any(t.id == track.id for t in tracks):
                track.id = str(int(track.id) + 1)
            tracks.append(track)
            self._save(tracks)
        logger.info("Added track %s (%s)", track.id, track.title)
        return track

    def update(self, track_id: str, fields: dict) -> Track:
        """Change only the given fields; everything else is left as it was."""
        with self._lock:
            tracks = self.all()
            for i, track in enumerate(tracks):
                if track.id != track_id:
                    continue
                data = track.to_dict()
                for key in _EDITABLE_FIELDS:
                    if key in fields and fields[key] not in (None, ""):
                        data[key] = fields[key]
                data["duration"] = float(data["duration"])
                tracks[i] = Track.from_dict(data)
                self._save(tracks)
                return tracks[i]
        raise TrackNotFound(track_id)

    def delete(self, track_id: str) -> Track:
        with self._lock:
            tracks = self.all()
            remaining = [t for t in tracks if t.id != track_id]
            if len(remaining) == len(tracks):
                raise TrackNotFound(track_id)
            self._save(remaining)
        logger.info("Deleted track %s", track_id)
        return next(t for t in tracks if t.id == track_id)

    def reorder(self, track_ids: Iterable[str]) -> list[Track]:
        """Apply a new loop order. The ids must be exactly the current set."""
        order = [str(i) for i in track_ids]
        with self._lock:
            by_id = {t.id: t for t in self.all()}
            if sorted(order) != sorted(by_id):
                raise ValueError("Reorder must list every track id exactly once")
            tracks = [by_id[i] for i in order]
            self._save(tracks)
        return tracks

    def _save(self, tracks: list[Track]):
        """Atomic write — write to tmp then replace."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps([t.to_dict() for t in tracks], indent=2, ensure_ascii=False))
            tmp.replace(self.path)
        except OSError as e:
            format_error("playlist_write", str(self.path), raw=str(e))
            raise
