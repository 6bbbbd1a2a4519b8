"""
Hot reload notification channel.

Browsers running the hot client open an EventSource on HOT_PATH. The
middleware keeps the connection open and pushes compiler events to it:

- ``{"action": "sync", ...}`` on connect, with the latest build
- ``{"action": "building"}`` when a change invalidates the build
- ``{"action": "built", "hash", "time", "errors", "warnings"}`` after each pass

A heartbeat frame goes out whenever nothing else was sent for `heartbeat`
seconds, so the client can detect a dead server.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Optional

from buildapp.core.utils import HOT_CLIENT_TIMEOUT, HOT_PATH

if TYPE_CHECKING:
    from buildapp.build.compiler import Compiler, Stats
    from buildapp.server.app import DevRequestHandler, Next

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = "data: \U0001F493\n\n"


def _payload(action: str, stats: "Stats") -> dict[str, Any]:
    return {
        "action": action,
        "hash": stats.hash,
        "time": stats.duration_ms,
        "errors": list(stats.errors),
        "warnings": list(stats.warnings),
    }


class HotMiddleware:
    """Server-sent events endpoint fed by compiler hooks."""

    def __init__(
        self,
        compiler: "Compiler",
        path: str = HOT_PATH,
        heartbeat: float = HOT_CLIENT_TIMEOUT / 2,
    ):
        self.path = path
        self.heartbeat = heartbeat
        self._clients: set[queue.Queue] = set()
        self._lock = threading.Lock()
        self._latest: Optional["Stats"] = None
        self._closed = False

        compiler.on("invalid", self._on_invalid)
        compiler.on("done", self._on_done)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def _on_invalid(self, changed: Any = None) -> None:
        self.publish({"action": "building"})

    def _on_done(self, stats: "Stats") -> None:
        with self._lock:
            self._latest = stats
        self.publish(_payload("built", stats))

    def publish(self, message: Optional[dict[str, Any]]) -> None:
        """Queue message for every connected client. None ends the streams."""
        with self._lock:
            clients = set(self._clients)
        for client in clients:
            client.put(message)

    def __call__(self, request: "DevRequestHandler", next: "Next") -> None:
        if request.url_path != self.path:
            next()
            return

        request.send_response(HTTPStatus.OK)
        request.send_header("Content-Type", "text/event-stream;charset=utf-8")
        request.send_header("Cache-Control", "no-cache, no-transform")
        request.send_header("Access-Control-Allow-Origin", "*")
        request.end_headers()
        request.wfile.write(b"\n")
        request.wfile.flush()

        client: queue.Queue = queue.Queue()
        with self._lock:
            if self._closed:
                return
            self._clients.add(client)
            latest = self._latest
            count = len(self._clients)
        if latest is not None:
            client.put(_payload("sync", latest))
        logger.debug("Hot client connected (%d client%s)", count, "s" if count != 1 else "")

        try:
            while True:
                try:
                    message = client.get(timeout=self.heartbeat)
                except queue.Empty:
                    frame = HEARTBEAT_FRAME
                else:
                    if message is None:
                        break
                    frame = f"data: {json.dumps(message)}\n\n"
                request.wfile.write(frame.encode("utf-8"))
                request.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            pass  # Client went away
        finally:
            with self._lock:
                self._clients.discard(client)
            logger.debug("Hot client disconnected")

    def close(self) -> None:
        """End every open stream."""
        with self._lock:
            self._closed = True
        self.publish(None)
