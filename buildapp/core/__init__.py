"""
buildapp.core - Foundation layer for the buildapp CLI.

Exports logging, errors, the lifecycle state machine and the spinner.
"""

# Utils
from buildapp.core.utils import (
    # Logging
    log,
    Logger,
    configure_logging,
    # Constants
    DEFAULT_PORT,
    PROJECT_FILES,
    CERT_DIR,
    HOT_CLIENT_TIMEOUT,
    HOT_PATH,
    HOT_CLIENT_MODULE,
    EVENTSOURCE_POLYFILL_MODULE,
    # Helpers
    find_project_file,
    format_size,
)

# Errors
from buildapp.core.errors import (
    BuildAppError,
    ConfigError,
    PipelineError,
    CompilationFailed,
    IncompatibleModeError,
    InvalidTransition,
)

# Lifecycle
from buildapp.core.lifecycle import (
    State,
    Lifecycle,
    COMPILER_TRANSITIONS,
    SERVER_TRANSITIONS,
)

# Console feedback
from buildapp.core.spinner import Spinner, clear_status

__all__ = [
    # Utils
    "log",
    "Logger",
    "configure_logging",
    "DEFAULT_PORT",
    "PROJECT_FILES",
    "CERT_DIR",
    "HOT_CLIENT_TIMEOUT",
    "HOT_PATH",
    "HOT_CLIENT_MODULE",
    "EVENTSOURCE_POLYFILL_MODULE",
    "find_project_file",
    "format_size",
    # Errors
    "BuildAppError",
    "ConfigError",
    "PipelineError",
    "CompilationFailed",
    "IncompatibleModeError",
    "InvalidTransition",
    # Lifecycle
    "State",
    "Lifecycle",
    "COMPILER_TRANSITIONS",
    "SERVER_TRANSITIONS",
    # Console
    "Spinner",
    "clear_status",
]
