"""
Terminal rendering for MIMIQ connections (uv-style, clean look).

- Rich for styling; status and progress go to stderr so stdout stays clean.
- Ephemeral spinner while waiting for the browser login.
- Download progress bars, indeterminate when the size is unknown.
"""

from __future__ import annotations

import itertools
import os
import sys
import threading
from typing import Any, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TransferSpeedColumn,
)

_SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
_CLEAR_EOL = "\x1b[K"


def _isatty(stream) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def color_enabled() -> bool:
    return _isatty(sys.stderr) and os.getenv("NO_COLOR") is None


def _ansi(code: str, text: str, enable: bool) -> str:
    return f"\x1b[{code}m{text}\x1b[0m" if enable else text


class _Spinner:
    """Redraw `label` behind a rotating frame on stderr until stopped."""

    def __init__(self, label: str, colorize: bool = True, interval: float = 0.08):
        self.label = label
        self.colorize = colorize
        self.interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        for frame in itertools.cycle(_SPINNER_FRAMES):
            if self._stop.is_set():
                break
            mark = _ansi("36", frame, self.colorize)
            sys.stderr.write(f"\r{mark} {self.label}{_CLEAR_EOL}")
            sys.stderr.flush()
            self._stop.wait(self.interval)

    def stop(self, final_line: str) -> None:
        self._stop.set()
        self._thread.join(timeout=0.25)
        sys.stderr.write(f"\r{final_line}{_CLEAR_EOL}\n")
        sys.stderr.flush()


class TerminalPrinter:
    """Pretty printer for connection state, login waits and downloads."""

    _DIV_CHAR = "─"
    _DIV_WIDTH = 28

    def __init__(self, enable_color: Optional[bool] = None, console: Optional[Console] = None):
        self.console = console or Console(stderr=True, soft_wrap=False, highlight=False)

        self.enable_color = color_enabled() if enable_color is None else enable_color

        # Spinner only in real TTY and not in CI
        self._ephemeral_ok = self.console.is_terminal and os.getenv("CI") is None
        self._spinner: Optional[_Spinner] = None
        self._wait_label: Optional[str] = None

    # ---------- helpers ----------

    def _mark_ansi(self, kind: str) -> str:
        if kind == "success":
            return _ansi("32", "✓", self.enable_color)
        if kind == "error":
            return _ansi("31", "✗", self.enable_color)
        return _ansi("36", "•", self.enable_color)

    def _divider(self) -> str:
        return f"[bright_black]{self._DIV_CHAR * self._DIV_WIDTH}[/bright_black]"

    # ---- waiting (login) ----

    def start_wait(self, label: str) -> None:
        if self._spinner:
            self._spinner.stop("")
            self._spinner = None
        self._wait_label = label
        if self._ephemeral_ok:
            self._spinner = _Spinner(label, colorize=self.enable_color)
            self._spinner.start()
        else:
            self.console.print(f"[cyan]{label}[/]")

    def finish_wait(self, success: bool = True) -> None:
        if self._wait_label is None:
            return
        symbol = self._mark_ansi("success" if success else "error")
        note = "done" if success else "aborted"
        line = f"{symbol} {self._wait_label}: {note}"
        if self._spinner:
            self._spinner.stop(line)
            self._spinner = None
        else:
            self.console.print(line)
        self._wait_label = None

    # ---- connection summary ----

    def connection_lines(self, conn: Any) -> list[str]:
        """Return the summary lines for a connection (without markup)."""
        lines = [f"url: {conn.uri}"]
        limits_fn = getattr(conn, "user_limits", None)
        limits = None
        if callable(limits_fn) and conn.is_open():
            limits = limits_fn()
        if limits is not None:
            if limits.enabled_max_executions:
                lines.append(f"executions: {limits.used_executions}/{limits.max_executions}")
            if limits.enabled_execution_time:
                used = round(limits.used_execution_time / 60)
                maximum = round(limits.max_execution_time / 60)
                lines.append(f"computing time: {used}/{maximum} minutes")
            if limits.enabled_max_timeout:
                maxtimeout = round(limits.max_timeout)
                lines.append(f"max time limit: {maxtimeout} minutes")
                lines.append(f"Default time limit is equal to max time limit: {maxtimeout} minutes")
            else:
                lines.append("Max time limit is: Infinite")
                lines.append("Default time limit is: 30 minutes")
        lines.append(f"status: {'open' if conn.is_open() else 'closed'}")
        return lines

    def print_connection(self, conn: Any) -> None:
        self.console.print(f"[bold]{type(conn).__name__}[/]")
        self.console.print(self._divider())
        lines = self.connection_lines(conn)
        for i, line in enumerate(lines):
            branch = "└──" if i == len(lines) - 1 else "├──"
            self.console.print(f"[bright_black]{branch}[/] {line}")

    # ---- downloads ----

    def download_progress(self) -> Progress:
        """Progress display for file downloads (use as a context manager)."""
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=self.console,
            disable=not self._ephemeral_ok,
        )
