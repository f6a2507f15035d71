"""Structured error logging — JSON to errors.log, no terminal formatting."""
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import ERRORS_LOG, DEV_MODE

logger = logging.getLogger(__name__)

_FRIENDLY_MESSAGES = {
    "state_write": "Couldn't save the station clock — it will restart from the top if the server does.",
    "playlist_write": "Couldn't save the playlist.",
    "playback": "Playback failed — retrying on the next sync...",
}


class TrackNotFound(KeyError):
    """Raised when a playlist lookup misses."""

    def __init__(self, track_id: str):
        super().__init__(track_id)
        self.track_id = track_id

    def __str__(self) -> str:
        return f"Track not found: {self.track_id}"


def format_error(
    stage: str,
    context: str = "",
    params: Optional[dict] = None,
    raw: str = "",
    log_path: Optional[Path] = None,
) -> str:
    entry = {
        "timestamp": datetime.now().isoformat(),
        "stage": stage,
        "context": context,
        "params": params,
        "error": raw,
        "python": sys.version.split()[0],
    }

    _append_to_log(entry, log_path or ERRORS_LOG)
    logger.error("Error at %s: %s", stage, raw)

    if DEV_MODE:
        return json.dumps(entry, indent=2)
    return _FRIENDLY_MESSAGES.get(stage, f"Something went wrong ({stage}).")


def _append_to_log(entry: dict, log_path: Path):
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError:
        pass
