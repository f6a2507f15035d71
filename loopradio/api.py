"""Station HTTP client — sync polls, playlist reads, duration corrections.

Every call swallows transport and decoding failures and returns None/False:
a failed poll is a no-op for the listener, never an exception.
"""
import logging
from typing import Optional

import httpx

from .config import SERVER_URL, SYNC_TIMEOUT
from .models import SyncResponse, Track

logger = logging.getLogger(__name__)


class StationClient:
    def __init__(
        self,
        base_url: str = SERVER_URL,
        timeout: float = SYNC_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def fetch_sync(self) -> Optional[SyncResponse]:
        try:
            r = await self._client.get("/api/radio/sync")
            r.raise_for_status()
            return SyncResponse.from_dict(r.json())
        except httpx.HTTPError as e:
            logger.warning("Sync failed: %s", e)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Sync returned an unexpected payload: %s", e)
        return None

    async def fetch_playlist(self) -> Optional[list[Track]]:
        try:
            r = await self._client.get("/api/songs")
            r.raise_for_status()
            return [Track.from_dict(item) for item in r.json()]
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch playlist: %s", e)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Playlist returned an unexpected payload: %s", e)
        return None

    async def update_duration(self, track_id: str, duration: float) -> bool:
        """Send only the corrected duration; the server leaves other fields alone."""
        try:
            r = await self._client.put(f"/api/songs/{track_id}", json={"duration": round(duration, 2)})
            r.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("Duration update for %s failed: %s", track_id, e)
            return False

    async def aclose(self):
        await self._client.aclose()
