"""
buildapp.build - Configuration, compiler and run modes.

Only the configuration and compiler layers are re-exported here; import
run modes from buildapp.build.modes and the entry point from
buildapp.build.orchestrator.
"""

from buildapp.build.config import (
    MODES,
    WATCH_CHOICES,
    BuildConfig,
    RunArguments,
    WatchOptions,
    create_config,
    load_project_file,
    with_hot_reload,
)
from buildapp.build.compiler import (
    Compiler,
    MemoryFileSystem,
    Stats,
    coalesce_watch_triggers,
)

__all__ = [
    # Constants
    "MODES",
    "WATCH_CHOICES",
    # Data classes
    "BuildConfig",
    "RunArguments",
    "WatchOptions",
    "Stats",
    # Functions
    "create_config",
    "load_project_file",
    "with_hot_reload",
    "coalesce_watch_triggers",
    # Compiler
    "Compiler",
    "MemoryFileSystem",
]
