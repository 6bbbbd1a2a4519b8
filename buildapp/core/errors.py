"""
Exception hierarchy for buildapp.

Every error the orchestrator raises on purpose derives from BuildAppError so
the CLI can report it and turn it into an exit code.
"""

from __future__ import annotations

from typing import Iterable


class BuildAppError(Exception):
    """Base exception for buildapp errors."""

    pass


class ConfigError(BuildAppError):
    """Malformed project file, run arguments or proxy options."""

    pass


class PipelineError(BuildAppError):
    """The compiler itself failed to run (as opposed to reporting diagnostics)."""

    pass


class CompilationFailed(BuildAppError):
    """The pipeline ran but produced error diagnostics."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__(f"Compilation failed with {len(self.errors)} error(s)")


class IncompatibleModeError(BuildAppError):
    """Requested run arguments cannot be combined."""

    pass


class InvalidTransition(BuildAppError):
    """A lifecycle state change that the state machine does not allow."""

    pass
