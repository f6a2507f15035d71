"""UI display helpers — now-playing panel, status line, playlist table."""
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import APP_VERSION
from .models import Track

console = Console()


def fmt_time(seconds: float) -> str:
    m, s = divmod(int(seconds), 60)
    return f"{m}:{s:02d}"


def print_header(server_url: str = ""):
    console.print(
        f"\n  [bold cyan]♪  Loop Radio[/bold cyan]"
        f"  [dim]v{APP_VERSION}[/dim]"
        + (f"  [dim]· {server_url}[/dim]" if server_url else "")
    )


def print_now_playing(track: Optional[Track], position: float = 0.0, live: bool = True):
    """Panel shown whenever the loaded track changes."""
    if track is None:
        console.print("  [dim]Nothing on air — the playlist is empty.[/dim]")
        return

    lines = [f"  [bold]{track.title}[/bold]"]
    lines.append(f"  {track.genre} · {fmt_time(track.duration)}")
    if position > 1:
        lines.append(f"  [dim]joined at {fmt_time(position)}[/dim]")

    if live:
        title = "[bold red]●[/bold red] On air"
        border = "red"
    else:
        title = "[bold yellow]▶[/bold yellow] Preview"
        border = "yellow"

    console.print(Panel(
        "\n".join(lines),
        title=title,
        border_style=border,
        expand=False,
        padding=(0, 1),
    ))


def print_status_line(snapshot: dict):
    """Persistent one-liner: mode, progress bar, title."""
    track = snapshot.get("track")
    if not track:
        return
    elapsed = snapshot.get("position", 0.0)
    dur = track.get("duration") or 0
    if dur > 0:
        bar_len = 20
        filled = min(bar_len, int(elapsed / dur * bar_len))
        bar_filled = "[green]" + "━" * filled + "[/green]"
        bar_empty = "[dim]" + "·" * (bar_len - filled) + "[/dim]"
        progress = f"  {fmt_time(elapsed)}/{fmt_time(dur)} {bar_filled}{bar_empty}"
    else:
        progress = ""

    if not snapshot.get("playing"):
        icon = "[yellow]⏸[/yellow]"
    elif snapshot.get("live"):
        icon = "[red]●[/red]"
    else:
        icon = "[yellow]▶[/yellow]"
    mode = "LIVE" if snapshot.get("live") else "PREVIEW"
    console.print(f"  {icon}{progress}  [dim]{track.get('title', '?')}  ·  {mode}[/dim]")


def print_playlist(tracks: list[Track], current_id: Optional[str] = None):
    if not tracks:
        console.print("  [dim]Playlist is empty.[/dim]")
        return
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("#", style="dim", width=3)
    table.add_column("Title", style="white")
    table.add_column("Genre", width=14)
    table.add_column("Length", width=7)
    table.add_column("", width=10)
    for i, t in enumerate(tracks, 1):
        status = "[bold red]● on air[/bold red]" if t.id == current_id else ""
        table.add_row(str(i), t.title[:45], t.genre, fmt_time(t.duration), status)
    console.print(table)


def print_help():
    console.print(
        "  [dim]Space pause/resume · l go live · 1-9 preview track · "
        "n next · p playlist · s status · q quit[/dim]"
    )
