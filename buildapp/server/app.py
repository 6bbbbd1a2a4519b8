"""
HTTP application and listener for the dev server.

DevApplication holds an ordered list of middleware. Each middleware is a
callable ``middleware(request, next)`` that either answers the request or
calls ``next()`` to hand it to the following one; when the chain runs out
the request gets a 404. The application is served by a ThreadingHTTPServer
wrapped in DevServer, optionally over TLS.
"""

from __future__ import annotations

import logging
import socket
import ssl
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Callable, Optional
from urllib.parse import unquote, urlsplit

from buildapp.core.lifecycle import SERVER_TRANSITIONS, Lifecycle, State
from buildapp.core.utils import log

if TYPE_CHECKING:
    from buildapp.server.tls import TLSMaterial

logger = logging.getLogger(__name__)

Next = Callable[[], None]
Middleware = Callable[["DevRequestHandler", Next], None]

# Seconds a client gets to finish the TLS handshake
HANDSHAKE_TIMEOUT = 10.0


# =============================================================================
# Application
# =============================================================================


class DevApplication:
    """Ordered middleware chain."""

    def __init__(self):
        self.layers: list[Middleware] = []

    def use(self, *middlewares: Middleware) -> "DevApplication":
        """Append middlewares; they run in the order they were added."""
        self.layers.extend(middlewares)
        return self

    def handle(self, request: "DevRequestHandler") -> None:
        index = 0

        def next_layer() -> None:
            nonlocal index
            if index >= len(self.layers):
                request.send_error(HTTPStatus.NOT_FOUND)
                return
            layer = self.layers[index]
            index += 1
            layer(request, next_layer)

        try:
            next_layer()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Client went away during %s %s", request.command, request.path)
        except Exception as e:
            logger.exception("Unhandled error for %s %s", request.command, request.path)
            log.error(f"{request.command} {request.path} failed: {e}")
            if not request.response_started:
                request.send_error(HTTPStatus.INTERNAL_SERVER_ERROR)

    def close(self) -> None:
        """Close every middleware that holds resources."""
        for layer in reversed(self.layers):
            close = getattr(layer, "close", None)
            if callable(close):
                close()


# =============================================================================
# Request Handler
# =============================================================================


class DevRequestHandler(BaseHTTPRequestHandler):
    """Hands every request to the server's DevApplication."""

    server_version = "buildapp"

    def setup(self) -> None:
        super().setup()
        self.response_started = False
        self._body: Optional[bytes] = None

    def log_message(self, format, *args):
        """Route access logs to the debug logger."""
        logger.debug("%s - %s", self.address_string(), format % args)

    def send_response(self, code, message=None):
        self.response_started = True
        super().send_response(code, message)

    @property
    def url_path(self) -> str:
        """Decoded request path without the query string."""
        return unquote(urlsplit(self.path).path)

    @property
    def query(self) -> str:
        return urlsplit(self.path).query

    def read_body(self) -> bytes:
        """Read (once) and return the request body."""
        if self._body is None:
            length = int(self.headers.get("Content-Length") or 0)
            self._body = self.rfile.read(length) if length > 0 else b""
        return self._body

    def send_bytes(
        self,
        body: bytes,
        content_type: str,
        status: int = HTTPStatus.OK,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Send a complete response. HEAD requests get headers only."""
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _dispatch(self) -> None:
        self.server.app.handle(self)

    do_GET = _dispatch
    do_HEAD = _dispatch
    do_POST = _dispatch
    do_PUT = _dispatch
    do_PATCH = _dispatch
    do_DELETE = _dispatch
    do_OPTIONS = _dispatch


class _DevHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], app: DevApplication):
        self.app = app
        super().__init__(address, DevRequestHandler)

    def finish_request(self, request: socket.socket, client_address) -> None:
        # Runs on the connection thread, so a stalled handshake blocks only its client
        if isinstance(request, ssl.SSLSocket):
            request.settimeout(HANDSHAKE_TIMEOUT)
            try:
                request.do_handshake()
            except OSError as e:
                logger.debug("TLS handshake with %s failed: %s", client_address[0], e)
                return
            request.settimeout(None)
        super().finish_request(request, client_address)


# =============================================================================
# Listener
# =============================================================================


class DevServer:
    """HTTP or HTTPS listener for a DevApplication."""

    def __init__(
        self,
        app: DevApplication,
        port: int,
        host: str = "",
        tls: Optional["TLSMaterial"] = None,
    ):
        self.app = app
        self.port = port
        self.host = host
        self.tls = tls
        self.lifecycle = Lifecycle(SERVER_TRANSITIONS)
        self._httpd: Optional[_DevHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def scheme(self) -> str:
        return "https" if self.tls is not None else "http"

    @property
    def bound_port(self) -> int:
        """Actual port (useful when started with port 0)."""
        if self._httpd is not None:
            return self._httpd.server_address[1]
        return self.port

    @property
    def url(self) -> str:
        return f"{self.scheme}://localhost:{self.bound_port}"

    def start(self) -> "DevServer":
        """Bind and start serving on a background thread."""
        try:
            httpd = _DevHTTPServer((self.host, self.port), self.app)
        except OSError:
            self.lifecycle.transition(State.ERROR)
            raise

        if self.tls is not None:
            try:
                context = self.tls.ssl_context()
                httpd.socket = context.wrap_socket(
                    httpd.socket, server_side=True, do_handshake_on_connect=False
                )
            except OSError:
                httpd.server_close()
                self.lifecycle.transition(State.ERROR)
                raise

        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True, name="buildapp-http")
        self._thread.start()
        self.lifecycle.transition(State.LISTENING)
        log.success(f"{'HTTPS' if self.tls else 'HTTP'} server: {self.url}")
        return self

    def close(self) -> None:
        """Stop accepting connections and release the socket."""
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            if self._thread is not None:
                self._thread.join(timeout=5)
            self._httpd = None
        if self.lifecycle.can_transition(State.CLOSED):
            self.lifecycle.transition(State.CLOSED)
