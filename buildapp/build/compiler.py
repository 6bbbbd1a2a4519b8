"""
Compiler: one configuration, run once or continuously.

The compiler drives the bundler, lets plugins hook into each pass, writes
assets to its output filesystem and tracks its state with a Lifecycle. It
emits these events to hooks registered with ``on``:

- ``invalid(changed_paths)``: a change was detected, a pass is starting
- ``compilation(compilation)`` / ``should-emit(compilation)`` / ``emit(compilation)``
- ``done(stats)``: a pass finished (with or without error diagnostics)
- ``failed(error)``: the pipeline itself failed
- ``close()``: the compiler will not run again
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from buildapp.build.bundler import Bundler, Compilation
from buildapp.commands.watch import Watching
from buildapp.core.errors import PipelineError
from buildapp.core.lifecycle import COMPILER_TRANSITIONS, Lifecycle, State

if TYPE_CHECKING:
    from buildapp.build.config import BuildConfig, WatchOptions

__all__ = [
    "Compilation",
    "Compiler",
    "DiskFileSystem",
    "MemoryFileSystem",
    "Stats",
    "coalesce_watch_triggers",
]

Hook = Callable[..., Any]
WatchHandler = Callable[[Optional[BaseException], Optional["Stats"]], None]


# =============================================================================
# Output Filesystems
# =============================================================================


class DiskFileSystem:
    """Writes output to disk."""

    def write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def read(self, path: Path) -> bytes:
        return path.read_bytes()

    def exists(self, path: Path) -> bool:
        return path.is_file()


class MemoryFileSystem:
    """Keeps output in a dict keyed by absolute POSIX path."""

    def __init__(self):
        self._files: dict[str, bytes] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: Union[Path, str]) -> str:
        return Path(path).as_posix()

    def write(self, path: Path, data: bytes) -> None:
        with self._lock:
            self._files[self._key(path)] = data

    def read(self, path: Union[Path, str]) -> bytes:
        with self._lock:
            try:
                return self._files[self._key(path)]
            except KeyError:
                raise FileNotFoundError(str(path)) from None

    def exists(self, path: Union[Path, str]) -> bool:
        with self._lock:
            return self._key(path) in self._files

    def files(self) -> list[str]:
        with self._lock:
            return sorted(self._files)

    def clear(self) -> None:
        with self._lock:
            self._files.clear()


# =============================================================================
# Stats
# =============================================================================


@dataclass(frozen=True)
class Stats:
    """Immutable snapshot of one compilation pass."""

    hash: str
    assets: tuple[tuple[str, int], ...]
    errors: tuple[str, ...]
    warnings: tuple[str, ...]
    start_time: float
    end_time: float
    mode: str = "dist"
    output_path: str = ""
    emitted: bool = True

    @classmethod
    def from_compilation(
        cls,
        compilation: Compilation,
        start_time: float,
        end_time: float,
        emitted: bool,
    ) -> "Stats":
        config = compilation.config
        return cls(
            hash=compilation.hash,
            assets=tuple((name, len(data)) for name, data in compilation.assets.items()),
            errors=tuple(compilation.errors),
            warnings=tuple(compilation.warnings),
            start_time=start_time,
            end_time=end_time,
            mode=getattr(config, "mode", "dist"),
            output_path=str(getattr(config, "output_path", "")),
            emitted=emitted,
        )

    @property
    def duration_ms(self) -> int:
        return int(round((self.end_time - self.start_time) * 1000))

    def has_errors(self) -> bool:
        return bool(self.errors)

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "time": self.duration_ms,
            "mode": self.mode,
            "output_path": self.output_path,
            "emitted": self.emitted,
            "assets": [{"name": name, "size": size} for name, size in self.assets],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


# =============================================================================
# Compiler
# =============================================================================


class Compiler:
    """Runs a BuildConfig through the pipeline."""

    def __init__(
        self,
        config: "BuildConfig",
        bundler: Optional[Bundler] = None,
        output_fs: Union[DiskFileSystem, MemoryFileSystem, None] = None,
    ):
        self.config = config
        self.bundler = bundler or Bundler()
        self.output_fs = output_fs or DiskFileSystem()
        self.lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        self.hot = False
        # Set by coalesce_watch_triggers()
        self.coalesce_triggers = False

        self._hooks: dict[str, list[Hook]] = defaultdict(list)
        self._compile_lock = threading.Lock()

        for plugin in config.plugins:
            plugin.apply(self)

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def on(self, event: str, fn: Hook) -> None:
        """Register fn to be called on `event`."""
        self._hooks[event].append(fn)

    def hooks(self, event: str) -> list[Hook]:
        return list(self._hooks.get(event, ()))

    def call_hook(self, event: str, *args: Any) -> None:
        for fn in self.hooks(event):
            fn(*args)

    def _should_emit(self, compilation: Compilation) -> bool:
        return all(fn(compilation) is not False for fn in self.hooks("should-emit"))

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    def compile(self) -> Stats:
        """Run one pass. Raises PipelineError if the pipeline cannot run."""
        with self._compile_lock:
            self.lifecycle.transition(State.COMPILING)
            start = time.time()

            try:
                compilation = self.bundler.bundle(self.config)
                self.call_hook("compilation", compilation)
                compilation.seal()
                emitted = self._should_emit(compilation)
                if emitted:
                    self.call_hook("emit", compilation)
                    self._write_assets(compilation)
            except Exception as e:
                self._settle(State.ERROR)
                error = e if isinstance(e, PipelineError) else PipelineError(str(e) or type(e).__name__)
                self.call_hook("failed", error)
                if error is e:
                    raise
                raise error from e

            stats = Stats.from_compilation(compilation, start, time.time(), emitted)
            self._settle(State.ERROR if stats.has_errors() else State.READY)
            self.call_hook("done", stats)
            return stats

    def run(self) -> Stats:
        """Single run of the pipeline."""
        return self.compile()

    def watch(self, watch_options: "WatchOptions", handler: WatchHandler) -> Watching:
        """Compile now and again on every file change.

        handler(error, stats) is called from the watch worker after each pass.
        """
        watching = Watching(self, watch_options, handler)
        watching.start()
        return watching

    def close(self) -> None:
        """Mark the compiler closed. Idempotent."""
        if self.lifecycle.can_transition(State.CLOSED):
            self.lifecycle.transition(State.CLOSED)
            self.call_hook("close")

    def _settle(self, state: State) -> None:
        # A watcher may have closed the compiler mid-pass
        if self.lifecycle.can_transition(state):
            self.lifecycle.transition(state)

    def _write_assets(self, compilation: Compilation) -> None:
        output_path = Path(self.config.output_path)
        for name, data in compilation.assets.items():
            target = output_path / name
            try:
                self.output_fs.write(target, data)
            except OSError as e:
                raise PipelineError(f"Cannot write {target}: {e}") from e


def coalesce_watch_triggers(compiler: Compiler) -> Compiler:
    """Collapse change notifications that arrive during a pass into one rebuild."""
    compiler.coalesce_triggers = True
    return compiler
