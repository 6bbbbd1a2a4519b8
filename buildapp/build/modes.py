"""
Run modes for buildapp: one-shot build, file watch and memory watch.

Each mode takes a finished BuildConfig plus the RunArguments it was derived
from. build() returns once the pass is reported; the watch modes return as
soon as the first pass has been produced and keep compiling in the
background until closed.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Optional

from buildapp.build.compiler import Compiler, Stats, coalesce_watch_triggers
from buildapp.build.config import with_hot_reload
from buildapp.build.reporter import report
from buildapp.core.errors import CompilationFailed, PipelineError
from buildapp.core.spinner import Spinner, clear_status
from buildapp.core.utils import HOT_CLIENT_TIMEOUT, log
from buildapp.server.hot import HotMiddleware
from buildapp.server.memory import DevMiddleware

if TYPE_CHECKING:
    from buildapp.build.config import BuildConfig, RunArguments
    from buildapp.commands.watch import Watching
    from buildapp.server.app import DevApplication

logger = logging.getLogger(__name__)


# =============================================================================
# Compiler Factories
# =============================================================================


def create_compiler(config: "BuildConfig") -> Compiler:
    """Compiler for config with plugins applied and watch triggers coalesced."""
    return coalesce_watch_triggers(Compiler(config))


def create_watch_compiler(config: "BuildConfig", spinner: Optional[Spinner] = None) -> Compiler:
    """Compiler whose passes drive a "building" spinner.

    The spinner starts right away for the first pass, restarts whenever a
    change invalidates the build and stops when a pass ends.
    """
    compiler = create_compiler(config)
    spinner = spinner or Spinner("building")
    spinner.start()

    def on_invalid(changed: Any = None) -> None:
        clear_status()
        spinner.start()

    def on_finished(*_: Any) -> None:
        spinner.stop()

    compiler.on("invalid", on_invalid)
    compiler.on("done", on_finished)
    compiler.on("failed", on_finished)
    compiler.on("close", on_finished)
    return compiler


def _listening(args: "RunArguments") -> str:
    return f"Listening on port {args.port}..."


# =============================================================================
# One-shot Build
# =============================================================================


def build(config: "BuildConfig", args: "RunArguments") -> Stats:
    """Compile once and report.

    Raises PipelineError if the compiler could not run and CompilationFailed
    if the pass produced errors.
    """
    compiler = create_compiler(config)
    spinner = Spinner("building")
    spinner.start()
    try:
        stats = compiler.run()
    finally:
        spinner.stop()
        compiler.close()

    if report(stats, config, _listening(args) if args.serve else ""):
        raise CompilationFailed(list(stats.errors))
    return stats


# =============================================================================
# File Watch
# =============================================================================


def file_watch(config: "BuildConfig", args: "RunArguments") -> "Watching":
    """Watch the project and write every pass to disk.

    Returns once the first pass is done. A fatal error on that pass closes
    the watcher and is raised; later ones are only logged.
    """
    compiler = create_watch_compiler(config)
    message = f"Listening on port {args.port}" if args.serve else "watching..."

    first_pass = threading.Event()
    first_error: list[BaseException] = []

    def on_pass(error: Optional[BaseException], stats: Optional[Stats]) -> None:
        try:
            if error is not None:
                if not first_pass.is_set():
                    first_error.append(error)
                else:
                    log.error(f"Compilation failed: {error}")
            elif stats is not None:
                report(stats, config, message)
        except Exception as e:
            log.error(f"Could not report build: {e}")
        finally:
            first_pass.set()

    watching = compiler.watch(config.watch_options, on_pass)

    while not first_pass.wait(timeout=0.1):
        if watching.closed:
            raise PipelineError("Watcher closed before the first build finished")

    if first_error:
        watching.close()
        error = first_error[0]
        if isinstance(error, PipelineError):
            raise error
        raise PipelineError(str(error)) from error
    return watching


# =============================================================================
# Memory Watch
# =============================================================================


def memory_watch(config: "BuildConfig", args: "RunArguments", app: "DevApplication") -> DevMiddleware:
    """Compile into memory and serve the output with hot reload from app.

    Mounts the in-memory output middleware followed by the hot reload
    channel. Returns immediately; requests wait for the pass in progress.
    """
    hot_config = with_hot_reload(config, HOT_CLIENT_TIMEOUT)
    compiler = create_watch_compiler(hot_config)

    def on_done(stats: Stats) -> None:
        try:
            report(stats, hot_config, _listening(args))
        except Exception as e:
            log.error(f"Could not report build: {e}")

    compiler.on("done", on_done)
    hot_middleware = HotMiddleware(compiler, heartbeat=HOT_CLIENT_TIMEOUT / 2)

    dev_middleware = DevMiddleware(
        compiler,
        hot_config.watch_options,
        public_path="/",
        quiet=True,
    )
    app.use(dev_middleware, hot_middleware)
    logger.debug("Memory watch mounted for %s", ", ".join(hot_config.entry))
    return dev_middleware
