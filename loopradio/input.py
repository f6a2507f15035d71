"""Terminal input — raw single-key reading for listener controls."""
import asyncio
import select as _sel
import sys
import termios
import tty

KEY_ACTIONS = {
    " ": "toggle",
    "\x10": "toggle",   # Ctrl+P
    "l": "live",
    "n": "next",
    "p": "playlist",
    "s": "status",
    "q": "quit",
    "\x03": "quit",     # Ctrl+C in raw mode
}


def _read_one_char_timeout(timeout: float = 0.3) -> str | None:
    """Read one char if available within timeout, else return None."""
    fd = sys.stdin.fileno()
    old = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        readable, _, _ = _sel.select([sys.stdin], [], [], timeout)
        if readable:
            return sys.stdin.read(1)
        return None
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


def parse_key(ch: str) -> tuple[str, int | None]:
    """Map a keypress to (action, argument). Digits preview that playlist slot."""
    if ch.isdigit() and ch != "0":
        return "preview", int(ch) - 1
    return KEY_ACTIONS.get(ch.lower(), "ignore"), None


async def read_key(timeout: float = 0.3) -> str | None:
    """Non-blocking for the event loop: the raw read runs in the executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _read_one_char_timeout, timeout)
