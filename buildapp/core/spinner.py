"""Spinner utilities for buildapp CLI."""

from __future__ import annotations

import sys
import threading
import time
from types import TracebackType
from typing import Optional


def clear_status() -> None:
    """Erase the current inline status line (spinner output)."""
    if sys.stdout.isatty():
        print("\r\033[K", end="", flush=True)


class Spinner:
    """Simple text-based spinner for CLI operations.

    Only animates when stdout is a terminal; otherwise start/stop are no-ops
    apart from state tracking, so captured output stays clean.
    """

    def __init__(self, message: str = "Working...", interactive: Optional[bool] = None) -> None:
        self.message = message
        self._interactive = sys.stdout.isatty() if interactive is None else interactive
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._chars = "|/-\\"
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the spinner."""
        with self._lock:
            if self._running:
                return
            self._running = True
            if not self._interactive:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._spin, daemon=True)
            self._thread.start()

    def stop(self) -> None:
        """Stop the spinner."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            thread, self._thread = self._thread, None
            self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join()
            clear_status()

    def _spin(self) -> None:
        """Internal method to animate the spinner."""
        i = 0
        while not self._stop_event.is_set():
            char = self._chars[i % len(self._chars)]
            print(f"\r{char} {self.message}", end="", flush=True)
            time.sleep(0.1)
            i += 1

    def __enter__(self) -> "Spinner":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None) -> None:
        """Context manager exit."""
        self.stop()
