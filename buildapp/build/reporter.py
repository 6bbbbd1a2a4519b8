"""
Result reporter.

Prints the outcome of a compilation pass and tells the caller whether it
contains errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Union

from buildapp.build.plugins import describe
from buildapp.core.utils import format_size, log

if TYPE_CHECKING:
    from buildapp.build.compiler import Stats
    from buildapp.build.config import BuildConfig


def report(stats: Union["Stats", dict[str, Any]], config: "BuildConfig", message: str = "") -> bool:
    """Render stats for a human and return True if errors are present."""
    data = stats if isinstance(stats, dict) else stats.to_dict()
    errors = data.get("errors", [])
    warnings = data.get("warnings", [])

    log.header(f"Build ({data.get('mode', config.mode)})")
    log.table_row("Hash", str(data.get("hash", "")), col1_width=12)
    log.table_row("Time", f"{data.get('time', 0)}ms", col1_width=12)
    log.table_row("Output", str(config.output_path), col1_width=12)
    if config.plugins:
        log.dim(f"Plugins: {', '.join(describe(config.plugins))}")

    if data.get("assets"):
        log.info("")
        for asset in data["assets"]:
            log.table_row(asset["name"], format_size(asset["size"]))
    if not data.get("emitted", True):
        log.warning("Output not emitted")

    if warnings:
        log.info("")
        for warning in warnings:
            log.warning(warning)

    if errors:
        log.info("")
        for error in errors:
            log.error(error)
        log.error(f"Build failed with {len(errors)} error(s)")
    else:
        log.success("Build succeeded")

    if message:
        log.info("")
        log.info(message)

    return bool(errors)
