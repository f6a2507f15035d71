"""Loop Radio — entry point.

  python radio.py serve     run the station (sync + playlist API)
  python radio.py listen    tune in from this terminal
"""
import argparse
import asyncio
import logging
import sys
from typing import Sequence

from rich import print as rprint

from loopradio.api import StationClient
from loopradio.config import SERVER_URL, WEB_HOST, WEB_PORT, POLL_INTERVAL, DEV_MODE
from loopradio.input import parse_key, read_key
from loopradio.player import Player
from loopradio.preflight import run_preflight
from loopradio.session import ListenerSession
from loopradio.ui import (
    console,
    print_header,
    print_help,
    print_now_playing,
    print_playlist,
    print_status_line,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="A radio station that only exists as a schedule")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the station server")
    serve.add_argument("--host", default=WEB_HOST, help="Bind address (default: %(default)s)")
    serve.add_argument("--port", type=int, default=WEB_PORT, help="TCP port (default: %(default)s)")
    serve.add_argument("--log-level", default="info",
                       choices=["critical", "error", "warning", "info", "debug"])

    listen = sub.add_parser("listen", help="Tune in from this terminal")
    listen.add_argument("--server", default=SERVER_URL, help="Station URL (default: %(default)s)")
    listen.add_argument("--poll", type=float, default=POLL_INTERVAL,
                        help="Seconds between sync polls (default: %(default)s)")
    listen.add_argument("--no-autoplay", action="store_true", help="Wait for Space before playing")
    listen.add_argument("--skip-preflight", action="store_true")
    return parser


def serve(args):
    import uvicorn
    from loopradio.web.server import create_app

    # Single worker: the schedule store's lock is process-local
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level, workers=1)


def _on_event(event: str, data: dict):
    if event == "now_playing":
        print_now_playing(data.get("track"), data.get("position", 0.0), data.get("live", True))
    elif event == "duration_fixed":
        track = data["track"]
        console.print(f"  [dim]↻ {track.title}: length corrected to {track.duration:.0f}s[/dim]")
    elif event == "error":
        console.print(f"  [red]Playback failed: {data.get('message', '')}[/red]")


async def listen(args) -> int:
    print_header(args.server)

    if not args.skip_preflight and not await run_preflight(args.server):
        return 1

    api = StationClient(args.server)
    session = ListenerSession(
        api,
        Player(),
        poll_interval=args.poll,
        autoplay=not args.no_autoplay,
        on_event=_on_event,
    )
    print_help()
    poll_task = session.spawn()

    try:
        while not poll_task.done():
            ch = await read_key()
            if ch is None:
                continue
            action, arg = parse_key(ch)

            if action == "quit":
                break
            elif action == "toggle":
                playing = await session.toggle_play()
                console.print("  ▶ resumed" if playing else "  ⏸ paused — Space to resume")
            elif action == "live":
                await session.go_live()
            elif action == "preview":
                tracks = session.playlist or await session.refresh_playlist()
                if arg < len(tracks):
                    session.play_track(tracks[arg])
            elif action == "next":
                tracks = session.playlist or await session.refresh_playlist()
                if tracks:
                    ids = [t.id for t in tracks]
                    idx = ids.index(session.track.id) if session.track and session.track.id in ids else -1
                    session.play_track(tracks[(idx + 1) % len(tracks)])
            elif action == "playlist":
                tracks = await session.refresh_playlist()
                on_air = session.track.id if session.track and session.state.is_live else None
                print_playlist(tracks, on_air)
            elif action == "status":
                print_status_line(session.snapshot())
    finally:
        await session.stop()
        await api.aclose()

    console.print("\n  [bold cyan]♪[/bold cyan]  See you next time.\n")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if DEV_MODE and args.command == "serve" else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        serve(args)
        return 0

    # Keep the listener's terminal clean; logs only for problems
    logging.getLogger().setLevel(logging.WARNING)
    return asyncio.run(listen(args))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        rprint("\n\n  [bold]Signed off.[/bold] Goodbye.\n")
        sys.exit(0)
