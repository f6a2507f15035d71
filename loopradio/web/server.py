"""Starlette app — sync + playlist HTTP routes and audio file serving."""
import json
import logging
import math
import time
from pathlib import Path
from typing import Callable, Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, FileResponse, Response
from starlette.routing import Route

from ..config import APP_VERSION, DATA_DIR
from ..errors import TrackNotFound
from ..playlist import Playlist
from ..store import ScheduleStore
from ..sync import Station

logger = logging.getLogger(__name__)


def _station(request: Request) -> Station:
    return request.app.state.station


async def _json_body(request: Request) -> dict:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValueError("Body must be JSON")
    if not isinstance(data, dict):
        raise ValueError("Body must be a JSON object")
    return data


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _parse_duration(value) -> float:
    """Seconds as a positive, finite float. Raises ValueError otherwise."""
    if isinstance(value, bool):
        raise ValueError("duration must be a number")
    try:
        duration = float(value)
    except (TypeError, ValueError):
        raise ValueError("duration must be a number")
    # 1e999 in a JSON body parses to inf, "NaN" to nan
    if not math.isfinite(duration) or duration <= 0:
        raise ValueError("duration must be a positive number of seconds")
    return duration


# ── Health ───────────────────────────────────────────────────────────────────

async def health(request):
    station = _station(request)
    tracks = station.playlist.all()
    reference = station.store.read()
    return JSONResponse({
        "status": "ok" if tracks else "empty",
        "version": APP_VERSION,
        "track_count": len(tracks),
        "schedulable_count": sum(1 for t in tracks if t.schedulable),
        "on_air": reference.track_id or None,
        "state_file": str(station.store.path),
    })


# ── Radio ────────────────────────────────────────────────────────────────────

async def radio_sync(request):
    """Authoritative now-playing answer. Advances the schedule as a side effect."""
    response = _station(request).sync()
    return JSONResponse(response.to_dict(), headers={"Cache-Control": "no-store"})


async def radio_reset(request):
    _station(request).store.reset()
    return JSONResponse({"success": True})


# ── Songs ────────────────────────────────────────────────────────────────────

async def list_songs(request):
    tracks = _station(request).playlist.all()
    return JSONResponse([t.to_dict() for t in tracks])


async def create_song(request):
    try:
        data = await _json_body(request)
    except ValueError as e:
        return _error(str(e), 400)

    title = str(data.get("title") or "").strip()
    audio_url = str(data.get("audio_url") or "").strip()
    if not title or not audio_url:
        return _error("Missing required fields", 400)

    # Missing or zero falls back to the default length
    duration = None
    if data.get("duration") not in (None, "", 0):
        try:
            duration = _parse_duration(data["duration"])
        except ValueError as e:
            return _error(str(e), 400)

    track = _station(request).playlist.add(
        title=title,
        audio_url=audio_url,
        duration=duration,
        genre=str(data.get("genre") or ""),
        cover_url=str(data.get("cover_url") or ""),
    )
    return JSONResponse(track.to_dict(), status_code=201)


async def song_detail(request):
    playlist = _station(request).playlist
    track_id = request.path_params["id"]

    try:
        if request.method == "GET":
            return JSONResponse(playlist.get(track_id).to_dict())

        if request.method == "DELETE":
            playlist.delete(track_id)
            return JSONResponse({"success": True})

        # PUT: partial update, duration corrections send only {"duration": ...}
        try:
            data = await _json_body(request)
        except ValueError as e:
            return _error(str(e), 400)
        if "duration" in data:
            try:
                data["duration"] = _parse_duration(data["duration"])
            except ValueError as e:
                return _error(str(e), 400)
        track = playlist.update(track_id, data)
        logger.info("Updated track %s: %s", track_id, sorted(data))
        return JSONResponse(track.to_dict())
    except TrackNotFound as e:
        return _error(str(e), 404)


async def reorder_songs(request):
    try:
        data = await _json_body(request)
    except ValueError as e:
        return _error(str(e), 400)

    if isinstance(data.get("ids"), list):
        ids = [str(i) for i in data["ids"]]
    elif isinstance(data.get("songs"), list):
        try:
            ids = [str(s["id"]) for s in data["songs"]]
        except (KeyError, TypeError):
            return _error("Invalid data", 400)
    else:
        return _error("Invalid data", 400)

    try:
        tracks = _station(request).playlist.reorder(ids)
    except ValueError as e:
        return _error(str(e), 400)
    return JSONResponse({"success": True, "order": [t.id for t in tracks]})


# ── Audio serving ────────────────────────────────────────────────────────────

async def serve_audio(request):
    """Serve uploaded audio/cover files (FileResponse handles Range requests)."""
    filename = request.path_params["filename"]

    # Security: prevent path traversal
    if ".." in filename or "/" in filename:
        return Response("Forbidden", status_code=403)

    file_path = request.app.state.uploads_dir / filename
    if not file_path.is_file():
        return Response("Not found", status_code=404)
    return FileResponse(file_path)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(
    playlist: Optional[Playlist] = None,
    store: Optional[ScheduleStore] = None,
    clock: Callable[[], float] = time.time,
    uploads_dir: Optional[Path] = None,
) -> Starlette:
    routes = [
        Route("/api/health", health),
        Route("/api/radio/sync", radio_sync),
        Route("/api/radio/reset", radio_reset, methods=["POST"]),
        Route("/api/songs", list_songs, methods=["GET"]),
        Route("/api/songs", create_song, methods=["POST"]),
        # Must precede /api/songs/{id}
        Route("/api/songs/reorder", reorder_songs, methods=["PUT"]),
        Route("/api/songs/{id}", song_detail, methods=["GET", "PUT", "DELETE"]),
        Route("/uploads/{filename}", serve_audio),
    ]

    app = Starlette(routes=routes)
    app.state.station = Station(playlist or Playlist(), store or ScheduleStore(), clock=clock)
    app.state.uploads_dir = uploads_dir or DATA_DIR / "uploads"
    logger.info("Station ready — playlist %s, state %s",
                app.state.station.playlist.path, app.state.station.store.path)
    return app
