"""
Basic dev server middleware: SPA history fallback and static files.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from buildapp.server.app import DevRequestHandler, Next

DEFAULT_INDEX = "/index.html"
HTML_ACCEPT_HEADERS = ("text/html", "*/*")


def init_mime_types() -> None:
    """Make sure common web types map correctly on every platform."""
    mimetypes.init()
    mimetypes.add_type("application/javascript", ".js")
    mimetypes.add_type("application/javascript", ".mjs")
    mimetypes.add_type("text/css", ".css")
    mimetypes.add_type("image/svg+xml", ".svg")
    mimetypes.add_type("application/json", ".json")
    mimetypes.add_type("application/wasm", ".wasm")


init_mime_types()


def guess_type(name: str) -> str:
    content_type, _ = mimetypes.guess_type(name)
    if content_type is None:
        return "application/octet-stream"
    if content_type.startswith("text/") or content_type == "application/javascript":
        return f"{content_type}; charset=utf-8"
    return content_type


# =============================================================================
# History API Fallback
# =============================================================================


class HistoryApiFallback:
    """Rewrite navigational requests to the root document.

    A request is rewritten when it is a GET or HEAD, its Accept header asks
    for HTML (and does not start with application/json), and the last path
    segment has no dot in it.
    """

    def __init__(self, index: str = DEFAULT_INDEX, html_accepts: tuple[str, ...] = HTML_ACCEPT_HEADERS):
        self.index = index
        self.html_accepts = html_accepts

    def should_rewrite(self, method: str, path: str, accept: Optional[str]) -> bool:
        if method not in ("GET", "HEAD"):
            return False
        if not accept:
            return False
        if accept.startswith("application/json"):
            return False
        if not any(kind in accept for kind in self.html_accepts):
            return False
        pathname = urlsplit(path).path
        if pathname.rfind(".") > pathname.rfind("/"):
            return False
        return True

    def __call__(self, request: "DevRequestHandler", next: "Next") -> None:
        if self.should_rewrite(request.command, request.path, request.headers.get("Accept")):
            request.path = self.index
        next()


def history_api_fallback(index: str = DEFAULT_INDEX) -> HistoryApiFallback:
    return HistoryApiFallback(index=index)


# =============================================================================
# Static Files
# =============================================================================


class StaticMiddleware:
    """Serve files from a directory; unknown paths fall through."""

    def __init__(self, directory: Path, index: str = "index.html"):
        self.directory = Path(directory)
        self.index = index

    def resolve(self, url_path: str) -> Optional[Path]:
        """Map a URL path to a file inside the directory, or None."""
        root = self.directory.resolve()
        candidate = (root / url_path.lstrip("/")).resolve()
        if candidate != root and root not in candidate.parents:
            return None
        if candidate.is_dir():
            candidate = candidate / self.index
        if not candidate.is_file():
            return None
        return candidate

    def __call__(self, request: "DevRequestHandler", next: "Next") -> None:
        if request.command not in ("GET", "HEAD"):
            next()
            return

        path = self.resolve(request.url_path)
        if path is None:
            next()
            return

        request.send_bytes(
            path.read_bytes(),
            guess_type(path.name),
            headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
        )
