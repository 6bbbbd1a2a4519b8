"""
Dev server for buildapp.

Assembles the middleware chain (history fallback, static files, proxies),
produces the application with the requested run mode and only then starts
the HTTP or HTTPS listener. With memory watch in dev mode, output is
served from memory and pushed to browsers through the hot reload channel.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Optional, Union

from buildapp.build.modes import build, file_watch, memory_watch
from buildapp.core.utils import log
from buildapp.server.app import DevApplication, DevServer
from buildapp.server.middleware import StaticMiddleware, history_api_fallback
from buildapp.server.proxy import proxy_middlewares
from buildapp.server.tls import find_tls_material

if TYPE_CHECKING:
    from buildapp.build.config import BuildConfig, RunArguments
    from buildapp.commands.watch import Watching
    from buildapp.server.memory import DevMiddleware

MEMORY_WATCH_DOWNGRADE = "Memory watch requires `--mode=dev`. Using file watch instead..."


def uses_memory_watch(args: "RunArguments") -> bool:
    """Memory watch only applies to dev mode builds."""
    return args.watch == "memory" and args.mode == "dev"


# =============================================================================
# Dev Session
# =============================================================================


class DevSession:
    """A running dev server and whatever keeps its output fresh."""

    def __init__(
        self,
        app: DevApplication,
        server: DevServer,
        watching: Union["Watching", "DevMiddleware", None] = None,
    ):
        self.app = app
        self.server = server
        self.watching = watching

    @property
    def url(self) -> str:
        return self.server.url

    @property
    def port(self) -> int:
        return self.server.bound_port

    def close(self) -> None:
        """Stop the listener, then the middleware and watcher behind it."""
        self.server.close()
        self.app.close()
        if self.watching is not None:
            self.watching.close()


# =============================================================================
# Serve
# =============================================================================


def serve(config: "BuildConfig", args: "RunArguments") -> DevSession:
    """Produce the application and start listening on args.port.

    Raises whatever the build, the first watch pass or the bind raised,
    after closing everything that was already started.
    """
    app = DevApplication()
    app.use(history_api_fallback())

    memory = uses_memory_watch(args)
    if not memory:
        app.use(StaticMiddleware(config.output_path))

    watching: Union["Watching", "DevMiddleware", None] = None
    server: Optional[DevServer] = None

    try:
        app.use(*proxy_middlewares(args.proxy))
        tls = find_tls_material(args.project_dir)

        if memory:
            watching = memory_watch(config, args, app)
        elif args.watch:
            if args.watch == "memory":
                log.warning(MEMORY_WATCH_DOWNGRADE)
            watching = file_watch(config, args)
        else:
            build(config, replace(args, serve=True))

        server = DevServer(app, args.port, tls=tls).start()
    except BaseException:
        app.close()
        if watching is not None:
            watching.close()
        raise

    return DevSession(app, server, watching)
