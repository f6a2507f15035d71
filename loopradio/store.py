"""Schedule state store — the station clock that outlives a request."""
import json
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .config import STATE_FILE
from .errors import format_error
from .models import ScheduleReference, EMPTY_REFERENCE

logger = logging.getLogger(__name__)


class ScheduleStore:
    """JSON-file store for the schedule reference with a process-local cache.

    The file is the source of truth at startup; after that reads are served
    from the cache, which every write refreshes. `update()` holds the lock
    across read, decide and write so concurrent syncs that all see a track
    finish advance the pointer once. One store instance per process — run the
    server with a single worker.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else STATE_FILE
        self._lock = threading.RLock()
        self._cache: Optional[ScheduleReference] = None

    def read(self) -> ScheduleReference:
        with self._lock:
            if self._cache is None:
                self._cache = self._load()
            return self._cache

    def write(self, reference: ScheduleReference):
        """Last write wins. The cache is updated even when the disk write fails."""
        with self._lock:
            self._cache = reference
            self._persist(reference)

    def update(self, fn: Callable[[ScheduleReference], Optional[ScheduleReference]]) -> ScheduleReference:
        """Atomic read-modify-write.

        `fn` receives the current reference and returns the replacement, or
        None to leave it untouched. Returns the reference in force afterwards.
        """
        with self._lock:
            current = self.read()
            new = fn(current)
            if new is not None and new != current:
                self.write(new)
                return new
            return current

    def reset(self):
        with self._lock:
            self._cache = EMPTY_REFERENCE
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                format_error("state_write", str(self.path), raw=str(e))
        logger.info("Schedule reference reset")

    def _load(self) -> ScheduleReference:
        if not self.path.exists():
            return EMPTY_REFERENCE
        try:
            return ScheduleReference.from_dict(json.loads(self.path.read_text()))
        except (json.JSONDecodeError, OSError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Schedule state at %s unreadable (%s) — starting over", self.path, e)
            return EMPTY_REFERENCE

    def _persist(self, reference: ScheduleReference):
        """Atomic write — write to tmp then replace."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(reference.to_dict(), indent=2))
            tmp.replace(self.path)
        except OSError as e:
            format_error("state_write", str(self.path), reference.to_dict(), str(e))
