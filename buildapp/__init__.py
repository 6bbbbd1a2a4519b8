"""
buildapp - build orchestrator and development server.

Runs the compilation pipeline once, continuously from the filesystem, or
in memory with hot reload, and optionally serves the output over HTTP(S)
with SPA history fallback and reverse proxying.

Usage:
    python -m buildapp [options]

Examples:
    buildapp                         # one-shot dist build
    buildapp --mode dev --watch      # rebuild on file changes
    buildapp -m dev -w memory -s     # in-memory watch + hot reload server
"""

from .cli import __version__, main

__all__ = ["__version__", "main"]
