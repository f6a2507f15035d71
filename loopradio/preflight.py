"""Startup Preflight Check — run before the listener tunes in."""
import shutil

import httpx
from rich.console import Console

from .config import SERVER_URL, APP_VERSION

console = Console()


async def run_preflight(server_url: str = SERVER_URL) -> bool:
    """
    Run all startup checks. Print results. Return True only if ALL pass.
    """
    console.print(f"\n  [bold]♪  Loop Radio v{APP_VERSION}[/bold] — preflight check\n")

    checks = [
        ("Python deps", _check_python_deps),
        ("ffplay / ffprobe", _check_ffmpeg),
        ("Station server", lambda: _check_station(server_url)),
    ]

    results = []
    for i, (label, fn) in enumerate(checks, 1):
        ok, msg, fix = await fn()
        results.append((ok, label, msg, fix))
        icon = "[green]✓[/green]" if ok else "[red]✗[/red]"
        dot_count = 30 - len(label)
        dots = "." * max(dot_count, 3)
        status = f"[green]{msg}[/green]" if ok else f"[red]{msg}[/red]"
        console.print(f"  [{i}/{len(checks)}] {label} {dots} {icon} {status}")

    # Print fix instructions for any failures
    failures = [(label, fix) for ok, label, _, fix in results if not ok and fix]
    if failures:
        console.print("")
        for label, fix in failures:
            console.print(f"  [yellow]Fix for {label}:[/yellow]")
            for line in fix.strip().splitlines():
                console.print(f"    {line}")
            console.print("")
        console.print("  Then re-run: [bold]python radio.py listen[/bold]\n")
        return False

    console.print("")
    return True


async def _check_python_deps() -> tuple[bool, str, str]:
    missing = []
    versions = []
    try:
        import httpx as hx
        versions.append(f"httpx {hx.__version__}")
    except ImportError:
        missing.append("httpx")

    try:
        import rich
        v = getattr(rich, "__version__", "ok")
        versions.append(f"rich {v}")
    except ImportError:
        missing.append("rich")

    try:
        import dotenv
        versions.append("python-dotenv")
    except ImportError:
        missing.append("python-dotenv")

    if missing:
        return False, f"missing: {', '.join(missing)}", "Run: pip install -e ."
    return True, ", ".join(versions), ""


async def _check_ffmpeg() -> tuple[bool, str, str]:
    missing = [tool for tool in ("ffplay", "ffprobe") if shutil.which(tool) is None]
    if not missing:
        return True, "found", ""
    fix = (
        "Playback needs FFmpeg's ffplay and ffprobe on PATH:\n"
        "  macOS:  brew install ffmpeg\n"
        "  Debian: sudo apt install ffmpeg"
    )
    return False, f"missing: {', '.join(missing)}", fix


async def _check_station(server_url: str) -> tuple[bool, str, str]:
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            r = await client.get(f"{server_url}/api/health")
            if r.status_code == 200:
                data = r.json()
                count = data.get("track_count", 0)
                return True, f"{server_url.replace('http://', '')} · {count} tracks", ""
            return False, f"HTTP {r.status_code}", ""
    except (httpx.HTTPError, ValueError):
        pass
    fix = (
        "The station is not running. Start it with:\n"
        "  python radio.py serve\n"
        "Or point SERVER_URL in .env at a running station."
    )
    return False, "not responding", fix
