"""
In-memory output serving.

DevMiddleware points a compiler at a MemoryFileSystem, starts watching, and
answers requests from whatever the latest pass produced. Requests that
arrive while a pass is running wait for it to settle, except those for
passthrough paths (the hot channel by default), which go straight on.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from buildapp.build.compiler import MemoryFileSystem
from buildapp.core.lifecycle import State
from buildapp.core.utils import HOT_PATH, log
from buildapp.server.middleware import guess_type

if TYPE_CHECKING:
    from buildapp.build.compiler import Compiler
    from buildapp.build.config import WatchOptions
    from buildapp.server.app import DevRequestHandler, Next

logger = logging.getLogger(__name__)

# Upper bound on how long a request waits for a running pass
DEFAULT_WAIT_TIMEOUT = 60.0


class DevMiddleware:
    """Serve compiler output from memory under public_path."""

    def __init__(
        self,
        compiler: "Compiler",
        watch_options: "WatchOptions",
        public_path: str = "/",
        quiet: bool = True,
        index: str = "index.html",
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        passthrough: tuple[str, ...] = (HOT_PATH,),
    ):
        self.compiler = compiler
        self.public_path = public_path if public_path.endswith("/") else public_path + "/"
        self.quiet = quiet
        self.index = index
        self.wait_timeout = wait_timeout
        self.passthrough = passthrough
        self.fs = MemoryFileSystem()
        compiler.output_fs = self.fs
        self.watching = compiler.watch(watch_options, self._on_pass)

    def _on_pass(self, error: Optional[BaseException], stats: Any) -> None:
        if error is not None:
            log.error(f"Compilation failed: {error}")
        elif not self.quiet and stats is not None:
            log.info(f"Compiled {stats.hash} in {stats.duration_ms}ms")

    def _wait_until_valid(self) -> bool:
        return self.compiler.lifecycle.wait_for(
            State.READY, State.ERROR, State.CLOSED, timeout=self.wait_timeout
        )

    def file_for(self, url_path: str) -> Optional[Path]:
        """Output path for a URL path, or None if outside public_path."""
        if not (url_path + "/").startswith(self.public_path):
            return None
        relative = url_path[len(self.public_path):] if len(url_path) >= len(self.public_path) else ""
        if relative == "" or relative.endswith("/"):
            relative += self.index
        return Path(self.compiler.config.output_path) / relative

    def __call__(self, request: "DevRequestHandler", next: "Next") -> None:
        if request.command not in ("GET", "HEAD") or request.url_path in self.passthrough:
            next()
            return

        path = self.file_for(request.url_path)
        if path is None:
            next()
            return

        if not self._wait_until_valid():
            logger.debug("Timed out waiting for compilation, serving last output")

        try:
            data = self.fs.read(path)
        except FileNotFoundError:
            next()
            return

        request.send_bytes(data, guess_type(path.name), headers={"Cache-Control": "no-cache"})

    def close(self) -> None:
        self.watching.close()
