"""
Watch machinery for buildapp.

Monitors the project directory and triggers recompilation. Change events
are batched by a Debouncer and fed to a Watching worker that runs compile
passes one at a time.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from buildapp.core.utils import log

if TYPE_CHECKING:
    from buildapp.build.config import WatchOptions

logger = logging.getLogger(__name__)


# =============================================================================
# Debouncer
# =============================================================================


class Debouncer:
    """Batches rapid file change events into a single callback.

    Collects events for `delay` seconds after the last event,
    then fires the callback with every path seen in the batch.
    """

    def __init__(self, delay: float, callback: Callable[[list[Path]], None]):
        self.delay = delay
        self.callback = callback
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._pending_paths: list[Path] = []

    def trigger(self, path: Path) -> None:
        """Register a change event. Resets the debounce timer."""
        with self._lock:
            if path not in self._pending_paths:
                self._pending_paths.append(path)

            if self._timer is not None:
                self._timer.cancel()

            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        """Called after debounce period."""
        with self._lock:
            if not self._pending_paths:
                return
            paths = list(self._pending_paths)
            self._pending_paths.clear()
            self._timer = None

        self.callback(paths)

    def cancel(self) -> None:
        """Cancel any pending debounce timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending_paths.clear()


# =============================================================================
# File System Event Handler
# =============================================================================


class WatchEventHandler(FileSystemEventHandler):
    """Filters file system events and forwards relevant paths to a Debouncer."""

    def __init__(
        self,
        root: Path,
        debouncer: Debouncer,
        ignored: Optional[list[str]] = None,
        exclude_dirs: Optional[list[Path]] = None,
    ):
        super().__init__()
        self.root = root
        self.debouncer = debouncer
        self.ignored = list(ignored or [])
        self.exclude_dirs = [p.resolve() for p in exclude_dirs or []]

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        # Atomic saves rename an ignored temp file over a watched one
        dest_path = Path(str(event.dest_path)) if event.dest_path else None
        if dest_path is not None and not self.is_ignored(dest_path):
            self._trigger(dest_path)
            return
        self._handle(event)

    def is_ignored(self, path: Path) -> bool:
        """True if a change to path must not trigger a rebuild."""
        resolved = path.resolve()
        for excluded in self.exclude_dirs:
            if resolved == excluded or excluded in resolved.parents:
                return True

        try:
            relative = resolved.relative_to(self.root.resolve()).as_posix()
        except ValueError:
            relative = resolved.as_posix()

        for pattern in self.ignored:
            if fnmatch.fnmatch(relative, pattern) or fnmatch.fnmatch(f"/{relative}", pattern):
                return True
            # "**/x/**" should also match paths directly under the root
            if pattern.startswith("**/") and fnmatch.fnmatch(relative, pattern[3:]):
                return True
        return False

    def _handle(self, event: FileSystemEvent) -> None:
        path = Path(str(event.src_path))
        if self.is_ignored(path):
            return
        self._trigger(path)

    def _trigger(self, path: Path) -> None:
        logger.debug("Change detected: %s", path)
        self.debouncer.trigger(path)


# =============================================================================
# Watching
# =============================================================================


class Watching:
    """A running watch: observer, debouncer and a compile worker thread.

    The first pass runs as soon as the watch starts. Later passes are queued
    by invalidate(); when the compiler coalesces triggers, every
    notification that arrives while a pass is queued or running folds into a
    single follow-up pass.
    """

    def __init__(
        self,
        compiler: Any,
        watch_options: "WatchOptions",
        handler: Callable[[Optional[BaseException], Any], None],
    ):
        self.compiler = compiler
        self.options = watch_options
        self.handler = handler

        self._debouncer = Debouncer(watch_options.aggregate_timeout, self.invalidate)
        if watch_options.poll:
            self._observer = PollingObserver(timeout=watch_options.poll)
        else:
            self._observer = Observer()

        self._wake = threading.Condition()
        # Each entry is the list of changed paths for one pending pass; the
        # pass being compiled has already been popped
        self._queue: list[list[Path]] = []
        self._closed = False
        self._pass_count = 0
        self._worker = threading.Thread(target=self._run, daemon=True, name="buildapp-watch")

    @property
    def pass_count(self) -> int:
        """Number of finished compile passes."""
        with self._wake:
            return self._pass_count

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "Watching":
        """Schedule the observer and queue the initial pass."""
        config = self.compiler.config
        root = Path(config.context)
        event_handler = WatchEventHandler(
            root,
            self._debouncer,
            ignored=self.options.ignored,
            exclude_dirs=[Path(config.output_path)],
        )
        self._observer.schedule(event_handler, str(root), recursive=True)
        self._observer.start()

        with self._wake:
            self._queue.append([])
            self._wake.notify()
        self._worker.start()
        return self

    def invalidate(self, paths: Optional[list[Path]] = None) -> None:
        """Request a recompilation for the given changed paths."""
        changed = list(paths or [])
        with self._wake:
            if self._closed:
                return
            if self.compiler.coalesce_triggers and self._queue:
                self._queue[-1].extend(p for p in changed if p not in self._queue[-1])
            else:
                self._queue.append(changed)
            self._wake.notify()

    def _run(self) -> None:
        while True:
            with self._wake:
                self._wake.wait_for(lambda: self._queue or self._closed)
                if self._closed:
                    return
                changed = self._queue.pop(0)

            self._compile_pass(changed)

    def _compile_pass(self, changed: list[Path]) -> None:
        error: Optional[BaseException] = None
        stats = None

        try:
            if self._pass_count > 0:
                self.compiler.call_hook("invalid", changed)
            stats = self.compiler.compile()
        except Exception as e:
            error = e

        with self._wake:
            self._pass_count += 1
            if self._closed:
                return

        try:
            self.handler(error, stats)
        except Exception as e:
            log.error(f"Watch handler failed: {e}")

    def close(self) -> None:
        """Stop watching. Safe to call more than once."""
        with self._wake:
            if self._closed:
                return
            self._closed = True
            self._queue.clear()
            self._wake.notify_all()

        self._debouncer.cancel()
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=5)
        if self._worker.is_alive() and self._worker is not threading.current_thread():
            self._worker.join(timeout=5)
        self.compiler.close()
