"""Terminal progress bar pinned to the bottom line via ANSI scroll regions.

Event-log lines scroll in the region above the bar, so the bar is never
cleared and redrawn between log lines. Fed by the engine's progress
callback::

    with PinnedProgress(total=len(markets), desc="momentum") as bar:
        Engine(config, markets, snaps, on_progress=bar.update, logger=BacktestLogger(True, bar.write)).run()
"""

from __future__ import annotations

import os
import re
import sys
import time

from src.rule_backtest.models import ProgressEvent

_ESC = "\033["
_CYAN = f"{_ESC}36m"
_RESET = f"{_ESC}0m"
_ANSI = re.compile(r"\033\[[0-9;]*m")


def _term_size() -> os.terminal_size:
    try:
        return os.get_terminal_size()
    except OSError:
        return os.terminal_size((80, 24))


def _fmt_time(seconds: float) -> str:
    m, s = divmod(int(seconds), 60)
    h, m = divmod(m, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"


class PinnedProgress:
    """Market-count progress bar reserved on the last terminal row."""

    def __init__(self, total: int, desc: str = "", unit: str = " markets", enabled: bool = True):
        self.total = total
        self.desc = desc
        self.unit = unit
        self.enabled = enabled and sys.stdout.isatty()
        self.n = 0
        self._start = time.monotonic()
        self._active = False

    def __enter__(self) -> PinnedProgress:
        if self.enabled:
            rows = _term_size().lines
            sys.stdout.write(f"{_ESC}{rows};1H{_ESC}2K")  # clear last row
            sys.stdout.write(f"{_ESC}1;{rows - 1}r")  # scroll region above it
            sys.stdout.write(f"{_ESC}1;1H")
            sys.stdout.flush()
            self._active = True
            self._draw()
        return self

    def __exit__(self, *exc: object) -> None:
        if not self._active:
            return
        self._draw()
        rows = _term_size().lines
        sys.stdout.write(f"{_ESC}1;{rows}r{_ESC}{rows};1H\n")
        sys.stdout.flush()
        self._active = False

    def update(self, event: ProgressEvent) -> None:
        """Jump to the engine-reported position and redraw."""
        self.total = event.total
        self.n = event.processed
        self._draw()

    def write(self, msg: str) -> None:
        """Print a line in the scroll region above the bar."""
        sys.stdout.write(f"{msg}\n")
        sys.stdout.flush()

    def render(self, width: int) -> str:
        """Format the bar for a terminal ``width`` columns wide."""
        elapsed = time.monotonic() - self._start
        pct = self.n / self.total if self.total else 0.0
        rate = self.n / elapsed if elapsed > 0 else 0.0
        remaining = (self.total - self.n) / rate if rate > 0 and self.n < self.total else 0.0

        left = f"{self.desc}: {pct:>4.0%}|"
        right = f"| {self.n:,}/{self.total:,}{self.unit} [{_fmt_time(elapsed)}<{_fmt_time(remaining)}]"
        bar_width = width - len(_ANSI.sub("", left)) - len(right)
        if bar_width <= 2:
            return f"{left}{right}"
        filled = int(bar_width * pct)
        return f"{left}{_CYAN}{'█' * filled}{'░' * (bar_width - filled)}{_RESET}{right}"

    def _draw(self) -> None:
        if not self._active:
            return
        size = _term_size()
        # save cursor, draw on the last row, restore cursor
        sys.stdout.write(f"{_ESC}s{_ESC}{size.lines};1H{_ESC}2K{self.render(size.columns)}{_ESC}u")
        sys.stdout.flush()
