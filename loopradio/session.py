"""Listener session — keeps a local engine in step with the station.

The station is authoritative for what is on air and when it changes. The
session polls it on a fixed cadence and reconciles:

  - different track on air  → load it at the reported offset (forced transition)
  - same track, drifted     → seek, no reload
  - should be playing, silent and not loading → kick the engine (watchdog)

Preview mode plays a hand-picked track and ignores the station entirely.

Every engine load gets a generation number. Callbacks and in-flight polls
compare against it and bail if a newer load or mode switch happened since.
"""
import asyncio
import dataclasses
import logging
import time
from enum import Enum
from typing import Callable, Optional

from .api import StationClient
from .config import POLL_INTERVAL, DRIFT_TOLERANCE, DURATION_TOLERANCE
from .errors import format_error
from .models import SyncResponse, Track
from .player import PlaybackEngine

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    LIVE_PLAYING = "live_playing"
    LIVE_PAUSED = "live_paused"
    PREVIEW_PLAYING = "preview_playing"
    PREVIEW_PAUSED = "preview_paused"

    @property
    def is_live(self) -> bool:
        return self in (SessionState.LIVE_PLAYING, SessionState.LIVE_PAUSED)

    @property
    def is_preview(self) -> bool:
        return self in (SessionState.PREVIEW_PLAYING, SessionState.PREVIEW_PAUSED)

    @property
    def is_playing(self) -> bool:
        return self in (SessionState.LIVE_PLAYING, SessionState.PREVIEW_PLAYING)


class ListenerSession:
    def __init__(
        self,
        api: StationClient,
        engine: PlaybackEngine,
        poll_interval: float = POLL_INTERVAL,
        drift_tolerance: float = DRIFT_TOLERANCE,
        duration_tolerance: float = DURATION_TOLERANCE,
        autoplay: bool = True,
        clock: Callable[[], float] = time.monotonic,
        on_event: Optional[Callable[[str, dict], None]] = None,
    ):
        self.api = api
        self.engine = engine
        self.poll_interval = poll_interval
        self.drift_tolerance = drift_tolerance
        self.duration_tolerance = duration_tolerance
        self.autoplay = autoplay
        self.clock = clock
        self.on_event = on_event

        self.state = SessionState.IDLE
        self.track: Optional[Track] = None
        self.playlist: list[Track] = []

        # Interpolation basis for current_time(): last known offset + when we saw it
        self.position: float = 0.0
        self.observed_at: float = 0.0

        self._generation = 0
        self._ended = False
        self._running = False
        self._poll_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self):
        """Fetch the playlist and what's on air; tune in if autoplay is on."""
        playlist, sync = await asyncio.gather(self.api.fetch_playlist(), self.api.fetch_sync())
        if playlist is not None:
            self.playlist = playlist

        if self.autoplay:
            # Live even without an answer yet: the next good tick tunes in
            self._set_state(SessionState.LIVE_PLAYING)

        if not sync or not sync.track:
            logger.info("Nothing on air yet")
            return

        if self.autoplay:
            self._load(sync.track, sync.position, play=True)
        else:
            # Remember what's on air so the UI can show it; no audio until asked
            self.track = sync.track
            self._observe(sync.position)

    async def run(self):
        """Start, then poll forever. Never stops unless stop() is called."""
        self._running = True
        await self.start()
        while self._running:
            await asyncio.sleep(self.poll_interval)
            if not self._running:
                break
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Sync tick error")

    def spawn(self) -> asyncio.Task:
        self._poll_task = asyncio.create_task(self.run())
        return self._poll_task

    async def stop(self):
        """Tear down: stale callbacks are invalidated before the engine is released."""
        self._running = False
        self._generation += 1
        self.engine.unload()
        tasks = list(self._background)
        if self._poll_task and not self._poll_task.done() and self._poll_task is not asyncio.current_task():
            tasks.append(self._poll_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        self._background.clear()
        self._set_state(SessionState.IDLE)

    # ── Polling ──────────────────────────────────────────────────────────────

    async def tick(self):
        """One poll. Only live sessions care; a failed fetch changes nothing."""
        if not self.state.is_live:
            return
        generation = self._generation
        sync = await self.api.fetch_sync()
        if sync is None:
            self._emit("sync_failed", {})
            return
        if generation != self._generation or not self.state.is_live:
            logger.debug("Dropping stale sync result")
            return
        self._reconcile(sync)

    def _reconcile(self, sync: SyncResponse):
        if sync.track is None:
            if self.track is not None:
                logger.info("Station went quiet — playlist is empty")
                self._generation += 1
                self.engine.unload()
                self.track = None
                self._emit("now_playing", {"track": None})
            self._observe(0.0)
            return

        if self.track is None or sync.track.id != self.track.id:
            logger.info("TRANSITION: %s -> %s",
                        self.track.title if self.track else "None", sync.track.title)
            self._load(sync.track, sync.position, play=self.state is SessionState.LIVE_PLAYING)
            return

        if self.state is not SessionState.LIVE_PLAYING:
            return

        self._observe(sync.position)

        if self.engine.is_loading():
            return

        if self._ended:
            # Local copy finished first. Wait for the station unless it
            # says there's real airtime left, in which case our copy cut out early.
            if sync.position < self.track.duration - self.drift_tolerance:
                logger.info("Track ended early locally — rejoining at %.1fs", sync.position)
                self._ended = False
                self.engine.seek(sync.position)
                self.engine.play()
            return

        local = self.engine.position
        drift = abs(local - sync.position)
        if drift > self.drift_tolerance:
            logger.info("DRIFT FIX: local=%.1fs station=%.1fs — seeking", local, sync.position)
            self.engine.seek(sync.position)
            self._emit("drift", {"local": local, "station": sync.position})

        if not self.engine.is_playing():
            logger.warning("Engine stalled on %s — forcing resume", self.track.id)
            self.engine.play()

    # ── User actions ─────────────────────────────────────────────────────────

    async def toggle_play(self) -> bool:
        """Pause locally, or resume. Resuming live re-syncs first — the
        station kept going while we were paused. Returns True if playing after."""
        if self.state.is_playing:
            self._freeze()
            self.engine.pause()
            paused = SessionState.LIVE_PAUSED if self.state.is_live else SessionState.PREVIEW_PAUSED
            self._set_state(paused)
            return False

        if self.state is SessionState.PREVIEW_PAUSED:
            self._set_state(SessionState.PREVIEW_PLAYING)
            if self.engine.track is not None and self.track is not None and self.engine.track.id == self.track.id:
                self._observe(self.position)
                self.engine.play()
            elif self.track is not None:
                self._load(self.track, 0.0, play=True)
            return True

        return await self._join_live()

    def play_track(self, track: Track):
        """Preview a track from the start, detached from the station."""
        logger.info("PREVIEW: %s", track.title)
        self._set_state(SessionState.PREVIEW_PLAYING)
        self._load(track, 0.0, play=True)

    async def go_live(self) -> bool:
        """Leave preview mode and jump to whatever the station is airing."""
        if self.state.is_preview:
            self._generation += 1
            self.engine.unload()
            self.track = None
        return await self._join_live()

    async def refresh_playlist(self) -> list[Track]:
        playlist = await self.api.fetch_playlist()
        if playlist is not None:
            self.playlist = playlist
        return self.playlist

    async def _join_live(self) -> bool:
        generation = self._generation
        sync = await self.api.fetch_sync()
        if generation != self._generation:
            return False

        self._set_state(SessionState.LIVE_PLAYING)
        if sync is None:
            # Stay live with nothing loaded; the next good tick loads the track
            logger.warning("Couldn't reach the station — will retry on the next sync")
            self._generation += 1
            self.engine.unload()
            self.track = None
            self._emit("sync_failed", {})
            return False
        if sync.track is None:
            self._reconcile(sync)
            return False

        if self.track is not None and self.engine.track is not None \
                and sync.track.id == self.track.id == self.engine.track.id and not self.engine.is_loading():
            self._ended = False
            self._observe(sync.position)
            self.engine.seek(sync.position)
            self.engine.play()
        else:
            self._load(sync.track, sync.position, play=True)
        return True

    # ── Engine plumbing ──────────────────────────────────────────────────────

    def _load(self, track: Track, offset: float, play: bool):
        self._generation += 1
        generation = self._generation
        self.track = track
        self._ended = False
        self._observe(offset)
        self._emit("now_playing", {"track": track, "position": offset, "live": self.state.is_live})
        try:
            self.engine.load(
                track,
                offset,
                autoplay=play,
                on_load=lambda duration: self._on_load(generation, duration),
                on_end=lambda: self._on_end(generation),
                on_error=lambda message: self._on_error(generation, message),
            )
        except Exception as e:
            self._on_error(generation, str(e))

    def _on_load(self, generation: int, observed: Optional[float]):
        if generation != self._generation or self.track is None:
            return
        if observed is None or observed <= 0:
            return
        declared = self.track.duration
        if abs(observed - declared) <= self.duration_tolerance:
            return

        logger.info("Duration mismatch for %s: declared %.1fs, actual %.1fs",
                    self.track.id, declared, observed)
        self.track = dataclasses.replace(self.track, duration=observed)
        self.playlist = [self.track if t.id == self.track.id else t for t in self.playlist]
        self._emit("duration_fixed", {"track": self.track, "declared": declared})
        self._background_task(self.api.update_duration(self.track.id, observed))

    def _on_end(self, generation: int):
        if generation != self._generation:
            return

        if self.state.is_live:
            # Never advance locally, the station decides when the next track starts
            logger.info("Live track ended locally. Waiting for the station...")
            self._ended = True
            self._background_task(self.tick())
            return

        if not self.playlist:
            self._freeze()
            self._set_state(SessionState.PREVIEW_PAUSED)
            return
        ids = [t.id for t in self.playlist]
        idx = ids.index(self.track.id) if self.track and self.track.id in ids else -1
        upcoming = self.playlist[(idx + 1) % len(self.playlist)]
        logger.info("Preview ended — next up: %s", upcoming.title)
        self._load(upcoming, 0.0, play=self.state is SessionState.PREVIEW_PLAYING)

    def _on_error(self, generation: int, message: str):
        if generation != self._generation:
            return
        title = self.track.title if self.track else ""
        format_error("playback", title, {"track_id": self.track.id if self.track else None}, message)
        self._emit("error", {"message": message})
        if self.state.is_live:
            # Forget the track so the next tick reloads it as a forced transition
            self._generation += 1
            self.track = None
        elif self.state is SessionState.PREVIEW_PLAYING:
            self._freeze()
            self._set_state(SessionState.PREVIEW_PAUSED)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def current_time(self) -> float:
        """Interpolated offset into the current track, without asking the engine."""
        if self.track is None or self.state is SessionState.IDLE:
            return 0.0
        if not self.state.is_playing:
            return self.position
        t = self.position + (self.clock() - self.observed_at)
        return min(t, self.track.duration)

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "live": self.state.is_live,
            "playing": self.state.is_playing,
            "audible": self.engine.is_playing(),
            "loading": self.engine.is_loading(),
            "track": self.track.to_dict() if self.track else None,
            "position": round(self.current_time(), 1),
            "volume": self.engine.volume,
        }

    def _observe(self, position: float):
        self.position = position
        self.observed_at = self.clock()

    def _freeze(self):
        self.position = self.current_time()
        self.observed_at = self.clock()

    def _set_state(self, state: SessionState):
        if state is self.state:
            return
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self._emit("state", {"state": state.value})

    def _emit(self, event: str, data: dict):
        if self.on_event:
            try:
                self.on_event(event, data)
            except Exception:
                logger.exception("Event handler failed for %s", event)

    def _background_task(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
