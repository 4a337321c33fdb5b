"""
Environment variable pager.

Shows the .env file of each selected process in a scrollable overlay.
Keys: up/down (or k/j) scroll a line, PageUp/PageDown scroll a page,
q or Esc quits.
"""

import logging
import os
import select
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from dotenv import dotenv_values
from rich.console import Console
from rich.live import Live

from .config import config
from .models import ProcessSnapshot
from .render import render_env_page

try:
    import termios
    import tty
except ImportError:  # Windows: the pager prints one page and returns
    termios = None
    tty = None

logger = logging.getLogger(__name__)

KEY_SEQUENCES = {
    b"[A": "up",
    b"[B": "down",
    b"[5~": "pgup",
    b"[6~": "pgdn",
}
KEY_CHARS = {
    b"k": "up",
    b"j": "down",
    b"q": "quit",
    b"Q": "quit",
    b"\x03": "quit",
}


def read_env_file(path: str | Path) -> list[tuple[str, str]]:
    """KEY, VALUE pairs of a .env file, in file order. Missing file gives []."""
    path = Path(path)
    if not path.is_file():
        return []
    try:
        values = dotenv_values(path, interpolate=False, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Error reading env file {path}: {e}")
        return []
    return [(key, value if value is not None else "") for key, value in values.items()]


def env_lines(snapshots: Iterable[ProcessSnapshot], file_name: str = None) -> list[str]:
    """Pager lines: a header per process followed by its KEY=VALUE lines."""
    file_name = file_name or config.env_file_name
    lines = []
    for p in snapshots:
        if not p.cwd:
            lines.append(f"== {p.name} (#{p.pm_id}): no working directory")
            continue

        path = Path(p.cwd) / file_name
        lines.append(f"== {p.name} (#{p.pm_id}) {path}")
        pairs = read_env_file(path)
        if not pairs:
            lines.append(f"   (no {file_name} file)")
        lines.extend(f"{key}={value}" for key, value in pairs)
    return lines


@dataclass
class PagerState:
    """Scroll position over a fixed list of lines."""

    total: int
    height: int
    offset: int = 0

    @property
    def max_offset(self) -> int:
        return max(self.total - self.height, 0)

    def scroll(self, delta: int):
        self.offset = min(max(self.offset + delta, 0), self.max_offset)

    def handle(self, key: str) -> bool:
        """Apply a key; returns False when the pager should close."""
        if key == "quit":
            return False
        if key == "up":
            self.scroll(-1)
        elif key == "down":
            self.scroll(1)
        elif key == "pgup":
            self.scroll(-self.height)
        elif key == "pgdn":
            self.scroll(self.height)
        return True

    def visible(self, lines: list[str]) -> list[str]:
        return lines[self.offset:self.offset + self.height]

    def position(self) -> str:
        if not self.total:
            return "0 / 0"
        end = min(self.offset + self.height, self.total)
        return f"{self.offset + 1}-{end} / {self.total}"


class KeyPoller:
    """Non-blocking single key reader for a cbreak-mode terminal."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self.enabled = termios is not None and self.stream.isatty()
        self.fd: int | None = None
        self._old = None

    def __enter__(self):
        if self.enabled:
            self.fd = self.stream.fileno()
            self._old = termios.tcgetattr(self.fd)
            tty.setcbreak(self.fd)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.enabled and self.fd is not None and self._old is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._old)

    def poll(self, timeout: float = 0.05) -> str:
        """Next key name, or "" when nothing was pressed."""
        if not self.enabled or self.fd is None:
            return ""
        ready, _, _ = select.select([self.fd], [], [], timeout)
        if not ready:
            return ""
        raw = os.read(self.fd, 1)
        if raw != b"\x1b":
            return KEY_CHARS.get(raw, "")

        seq = b""
        deadline = time.time() + 0.05
        while time.time() < deadline:
            rdy, _, _ = select.select([self.fd], [], [], 0.005)
            if not rdy:
                break
            seq += os.read(self.fd, 1)
            if seq in KEY_SEQUENCES:
                break
        # A lone Esc closes the pager
        return KEY_SEQUENCES.get(seq, "quit" if not seq else "")


def run_pager(lines: list[str], title: str, console: Console = None, height: int = None, poller: KeyPoller = None):
    """Show lines in a scrollable overlay until the user quits."""
    console = console or Console()
    state = PagerState(total=len(lines), height=height or config.pager_lines)
    poller = poller or KeyPoller()

    if not poller.enabled:
        console.print(render_env_page(title, state.visible(lines), state.position()))
        return

    with poller, Live(console=console, auto_refresh=False, transient=True) as live:
        live.update(render_env_page(title, state.visible(lines), state.position()), refresh=True)
        while True:
            key = poller.poll()
            if not key:
                continue
            if not state.handle(key):
                break
            live.update(render_env_page(title, state.visible(lines), state.position()), refresh=True)
