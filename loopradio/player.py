"""Audio playback via ffplay.

The session only talks to `PlaybackEngine`. `Player` is the real engine:
one ffplay process per load/seek, paused in place with SIGSTOP, position
tracked on the monotonic clock. Completion callbacks always run on the event
loop.
"""
import asyncio
import logging
import os
import signal
import subprocess
import time
from typing import Callable, Optional

from .models import Track

logger = logging.getLogger(__name__)

LoadCallback = Callable[[Optional[float]], None]
EndCallback = Callable[[], None]
ErrorCallback = Callable[[str], None]


def get_audio_duration(locator: str) -> float | None:
    """Get audio duration in seconds using ffprobe. Returns None on failure."""
    try:
        result = subprocess.run(
            ["ffprobe", "-v", "error", "-show_entries", "format=duration",
             "-of", "default=noprint_wrappers=1:nokey=1", locator],
            capture_output=True, text=True, timeout=15,
        )
        return float(result.stdout.strip())
    except (OSError, subprocess.SubprocessError, ValueError):
        return None


def _reap(proc: subprocess.Popen, timeout: float = 2.0):
    """Wait for a terminated ffplay to exit, killing it if it hangs."""
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


class PlaybackEngine:
    """What the listener session needs from an audio engine.

    `load()` returns immediately; `on_load(duration)` fires once the engine
    knows the real duration (None if it can't tell), `on_end()` when the
    track plays out, `on_error(message)` if it can't be played.
    """

    track: Optional[Track] = None
    volume: int = 80

    def load(
        self,
        track: Track,
        offset: float = 0.0,
        autoplay: bool = True,
        on_load: Optional[LoadCallback] = None,
        on_end: Optional[EndCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        raise NotImplementedError

    def play(self):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def seek(self, position: float):
        raise NotImplementedError

    def unload(self):
        raise NotImplementedError

    def is_playing(self) -> bool:
        """True only while audio is actually coming out."""
        raise NotImplementedError

    def is_loading(self) -> bool:
        raise NotImplementedError

    @property
    def position(self) -> float:
        raise NotImplementedError


class Player(PlaybackEngine):
    def __init__(self, volume: int = 80):
        self.track: Optional[Track] = None
        self.volume = volume
        self._proc: Optional[subprocess.Popen] = None
        self._paused: bool = False
        self._play_start: float = 0.0
        self._paused_at: float = 0.0
        self._total_paused: float = 0.0
        self._seek_offset: float = 0.0
        self._duration: Optional[float] = None
        self._load_task: Optional[asyncio.Task] = None
        self._watcher_task: Optional[asyncio.Task] = None
        self._on_end: Optional[EndCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    # ── Loading ────────────────────────────────────────────────────────────────

    def load(self, track, offset=0.0, autoplay=True, on_load=None, on_end=None, on_error=None):
        """Stop whatever is loaded, probe the new track, then start it at `offset`."""
        self.unload()
        self.track = track
        self._seek_offset = max(0.0, offset)
        self._paused = not autoplay
        self._on_end = on_end
        self._on_error = on_error
        self._load_task = asyncio.create_task(self._load(track, on_load))

    async def _load(self, track: Track, on_load: Optional[LoadCallback]):
        loop = asyncio.get_running_loop()
        duration = await loop.run_in_executor(None, get_audio_duration, track.audio_url)
        if self.track is not track:
            return
        self._duration = duration
        if not self._paused:
            try:
                self._spawn(self._seek_offset)
            except OSError as e:
                self._fail(f"ffplay failed to start: {e}")
                return
        if on_load:
            on_load(duration)

    def _spawn(self, offset: float):
        """Start ffplay at `offset` and watch it for exit."""
        self._kill()
        self._proc = subprocess.Popen(
            ["ffplay", "-nodisp", "-autoexit", "-loglevel", "error",
             "-volume", str(self.volume), "-ss", f"{offset:.2f}", self.track.audio_url],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        self._paused = False
        self._play_start = time.monotonic()
        self._paused_at = 0.0
        self._total_paused = 0.0
        self._seek_offset = offset

        proc = self._proc

        async def _watch():
            loop = asyncio.get_running_loop()
            code = await loop.run_in_executor(None, proc.wait)
            if proc is not self._proc:
                return
            self._proc = None
            if code == 0:
                self._seek_offset = self.position
                self._play_start = 0.0
                if self._on_end:
                    self._on_end()
            else:
                self._fail(f"ffplay exited with {code}")

        self._watcher_task = asyncio.create_task(_watch())

    def _fail(self, message: str):
        logger.error("Playback error for %s: %s", self.track.id if self.track else "?", message)
        if self._on_error:
            self._on_error(message)

    # ── Transport ──────────────────────────────────────────────────────────────

    def play(self):
        """Resume in place, or restart ffplay at the last known position."""
        if self.track is None:
            return
        if self.is_loading():
            self._paused = False
            return
        if self._proc and self._proc.poll() is None:
            if self._paused:
                try:
                    os.kill(self._proc.pid, signal.SIGCONT)
                    if self._paused_at > 0:
                        self._total_paused += time.monotonic() - self._paused_at
                        self._paused_at = 0.0
                except ProcessLookupError:
                    pass
                self._paused = False
            return
        try:
            self._spawn(self.position)
        except OSError as e:
            self._fail(f"ffplay failed to start: {e}")

    def pause(self):
        """Suspend ffplay in place (SIGSTOP). Position is preserved."""
        if self._proc and self._proc.poll() is None and not self._paused:
            try:
                os.kill(self._proc.pid, signal.SIGSTOP)
                self._paused = True
                self._paused_at = time.monotonic()
            except ProcessLookupError:
                pass
        elif self._proc is None:
            self._paused = True

    def seek(self, position: float):
        """ffplay can't seek a running process — restart it at the new position."""
        if self.track is None:
            return
        position = max(0.0, position)
        if self._duration:
            position = min(position, max(0.0, self._duration - 0.5))
        if self.is_loading() or (self._proc is None and self._paused):
            self._seek_offset = position
            self._play_start = 0.0
            return
        was_paused = self._paused
        try:
            self._spawn(position)
        except OSError as e:
            self._fail(f"ffplay failed to start: {e}")
            return
        if was_paused:
            self.pause()

    def unload(self):
        self._kill()
        if self._load_task and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None
        self.track = None
        self._on_end = None
        self._on_error = None
        self._duration = None
        self._paused = False
        self._play_start = 0.0
        self._paused_at = 0.0
        self._total_paused = 0.0
        self._seek_offset = 0.0

    def _kill(self):
        """Terminate ffplay without firing end/error callbacks."""
        if self._watcher_task and not self._watcher_task.done():
            self._watcher_task.cancel()
        self._watcher_task = None
        proc, self._proc = self._proc, None
        if proc and proc.poll() is None:
            if self._paused:
                # Must resume before terminate, SIGSTOP blocks SIGTERM
                try:
                    os.kill(proc.pid, signal.SIGCONT)
                except ProcessLookupError:
                    pass
            proc.terminate()
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                _reap(proc)
            else:
                # Reap off the loop: a drift seek must not stall polling
                loop.run_in_executor(None, _reap, proc)

    # ── State ──────────────────────────────────────────────────────────────────

    def is_playing(self) -> bool:
        return self._proc is not None and self._proc.poll() is None and not self._paused

    def is_loading(self) -> bool:
        return self._load_task is not None and not self._load_task.done()

    @property
    def position(self) -> float:
        """Seconds into the track, accounting for pauses and seeks."""
        if self._play_start == 0:
            return self._seek_offset
        if self._paused and self._paused_at > 0:
            raw = self._paused_at - self._play_start - self._total_paused
        else:
            raw = time.monotonic() - self._play_start - self._total_paused
        return self._seek_offset + raw

    @property
    def duration(self) -> Optional[float]:
        return self._duration
