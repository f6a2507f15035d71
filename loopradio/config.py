"""Config & Constants"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (one level up from loopradio/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

# ─── Paths ────────────────────────────────────────────────────────────────────
ROOT_DIR = _ROOT
DATA_DIR = ROOT_DIR / os.getenv("DATA_DIR", "data")
PLAYLIST_FILE = DATA_DIR / os.getenv("PLAYLIST_FILE", "songs.json")
STATE_FILE = DATA_DIR / os.getenv("STATE_FILE", "radio_state.json")
ERRORS_LOG = DATA_DIR / "errors.log"

# ─── Server ───────────────────────────────────────────────────────────────────
WEB_HOST = os.getenv("WEB_HOST", "127.0.0.1")
WEB_PORT = int(os.getenv("WEB_PORT", "8888"))

# Where listeners find the station
SERVER_URL = os.getenv("SERVER_URL", f"http://localhost:{WEB_PORT}").rstrip("/")
SYNC_TIMEOUT = float(os.getenv("SYNC_TIMEOUT", "5"))

# ─── Reconciliation ───────────────────────────────────────────────────────────
# Poll cadence bounds how far a listener can lag behind the schedule.
POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "3.0"))
# Must stay above typical poll + network jitter or listeners seek constantly.
DRIFT_TOLERANCE = float(os.getenv("DRIFT_TOLERANCE", "3.5"))
DURATION_TOLERANCE = float(os.getenv("DURATION_TOLERANCE", "2.0"))

# ─── Playlist defaults ────────────────────────────────────────────────────────
DEFAULT_DURATION = int(os.getenv("DEFAULT_DURATION", "180"))
DEFAULT_GENRE = "Unknown"
DEFAULT_COVER_URL = "https://images.unsplash.com/photo-1614613535308-eb5fbd3d2c17?w=500&q=60"

APP_VERSION = "0.3.0"

# ─── Dev mode ─────────────────────────────────────────────────────────────────
DEV_MODE = os.getenv("DEV_MODE", "1").strip() in ("1", "true", "yes")
