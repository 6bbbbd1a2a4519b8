"""
Shared utilities for the buildapp CLI.
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

DEFAULT_PORT = 9999

# Project file names, checked in order
PROJECT_FILES = ("buildapp.yml", "buildapp.yaml")

# TLS material, relative to the project directory
CERT_DIR = Path(".cert")
CERT_KEY_FILE = "server.key"
CERT_CRT_FILE = "server.crt"

# Hot reload client timeout (seconds); the server heartbeat runs at half of it
HOT_CLIENT_TIMEOUT = 20.0
HOT_PATH = "/__hot_reload"

# Entry module identifiers resolved by the bundler from buildapp.client
HOT_CLIENT_MODULE = "buildapp/hot-client"
EVENTSOURCE_POLYFILL_MODULE = "eventsource-polyfill"


# =============================================================================
# Logging
# =============================================================================


class Logger:
    """Console output for buildapp.

    Build reports, watch status and server notices all go through the
    module-level ``log``. Lines arrive from the CLI thread, the watch worker
    and request threads, so each line is written whole under a lock and
    flushed at once; color is on for terminals unless ``--no-color``.
    """

    COLORS = {
        "reset": "\033[0m",
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
        "cyan": "\033[96m",
        "bold": "\033[1m",
        "dim": "\033[2m",
    }

    def __init__(self, use_color: Optional[bool] = None):
        self._use_color = sys.stdout.isatty() if use_color is None else use_color
        self._lock = threading.Lock()

    def set_color(self, use_color: bool) -> None:
        self._use_color = use_color

    def _color(self, text: str, color: str) -> str:
        if not self._use_color:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    def _write(self, line: str) -> None:
        with self._lock:
            sys.stdout.write(line + "\n")
            sys.stdout.flush()

    def header(self, message: str) -> None:
        """Section header, e.g. ``=== Build (dev) ===``."""
        self._write(f"\n{self._color('===', 'cyan')} {self._color(message, 'bold')} {self._color('===', 'cyan')}")

    def info(self, message: str) -> None:
        self._write(f"  {message}")

    def success(self, message: str) -> None:
        self._write(f"  {self._color('[OK]', 'green')} {message}")

    def warning(self, message: str) -> None:
        self._write(f"  {self._color('[WARN]', 'yellow')} {message}")

    def error(self, message: str) -> None:
        self._write(f"  {self._color('[ERROR]', 'red')} {message}")

    def dim(self, message: str) -> None:
        """Secondary detail such as the plugin list or elapsed time."""
        self._write(f"  {self._color(message, 'dim')}")

    def table_row(self, col1: str, col2: str, col1_width: int = 30) -> None:
        """Two-column row, used for the asset table."""
        self._write(f"  {col1:<{col1_width}} {col2}")


# Shared console logger
log = Logger()


def configure_logging(verbose: bool = False) -> None:
    """Configure stdlib logging used for internal diagnostics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# =============================================================================
# Path Utilities
# =============================================================================


def find_project_file(project_dir: Path) -> Optional[Path]:
    """Return the first existing project file in project_dir, if any."""
    for name in PROJECT_FILES:
        candidate = project_dir / name
        if candidate.is_file():
            return candidate
    return None


def format_size(size: int) -> str:
    """Human readable byte count."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KiB"
    return f"{size / (1024 * 1024):.2f} MiB"
