"""
Build orchestrator for buildapp.

Single entry point that turns RunArguments into one of the run modes:
a one-shot build, a file watch, or a dev server (which itself builds or
watches before listening).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, Union

from buildapp.build.config import BuildConfig, RunArguments, create_config
from buildapp.build.modes import build, file_watch
from buildapp.commands.dev import DevSession, serve
from buildapp.commands.watch import Watching
from buildapp.core.errors import IncompatibleModeError
from buildapp.core.utils import log

MEMORY_WATCH_NEEDS_SERVER = "Memory watch requires the dev server. Using file watch instead..."

RunResult = Union[None, Watching, DevSession]


def run(args: RunArguments, config: Optional[BuildConfig] = None) -> RunResult:
    """Run the build the arguments ask for.

    Returns None for a one-shot build, the Watching for a file watch and the
    DevSession when serving. The caller owns the returned handle and must
    close it.

    Raises:
        IncompatibleModeError: serve was requested in test mode.
        PipelineError: the compiler could not run.
        CompilationFailed: a one-shot build produced errors.
    """
    # Checked before any config or build work
    if args.serve and args.mode == "test":
        raise IncompatibleModeError("Cannot use `--serve` with `--mode=test`")

    if config is None:
        config = create_config(args.mode, args)

    if args.serve:
        return serve(config, args)

    if args.watch:
        if args.watch == "memory":
            log.warning(MEMORY_WATCH_NEEDS_SERVER)
        return file_watch(config, args)

    build(config, replace(args, serve=False))
    return None
