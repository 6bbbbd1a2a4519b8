"""
Main CLI for buildapp.

Builds a web application once, watches it, or serves it with the dev server.
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Any

from buildapp.build.config import (
    MODES,
    WATCH_CHOICES,
    RunArguments,
    load_project_file,
    parse_features,
    parse_proxy_rules,
)
from buildapp.build.orchestrator import run
from buildapp.core.errors import BuildAppError, ConfigError
from buildapp.core.utils import DEFAULT_PORT, configure_logging, log


# =============================================================================
# Version
# =============================================================================

__version__ = "0.1.0"


# =============================================================================
# Argument Parsing
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="buildapp",
        description="Build, watch and serve a web application",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  buildapp                              # One-shot production build
  buildapp -m dev -w                    # Rebuild to disk on every change
  buildapp -m dev -s -w memory          # Dev server with hot reload
  buildapp -s --proxy /api=http://localhost:3000
  buildapp -m test                      # Build the test bundles
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--mode", "-m",
        choices=MODES,
        default="dist",
        help="Build mode (default: dist)",
    )

    parser.add_argument(
        "--watch", "-w",
        nargs="?",
        const="file",
        choices=WATCH_CHOICES,
        default=None,
        help="Rebuild on change; 'memory' serves output from memory (default: file)",
    )

    parser.add_argument(
        "--serve", "-s",
        action="store_true",
        help="Start the dev server",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=DEFAULT_PORT,
        help=f"Dev server port (default: {DEFAULT_PORT})",
    )

    parser.add_argument(
        "--single-bundle",
        action="store_true",
        help="Merge all entry points into one bundle",
    )

    parser.add_argument(
        "--legacy", "-l",
        action="store_true",
        help="Target legacy browsers",
    )

    parser.add_argument(
        "--feature", "-f",
        action="append",
        default=[],
        metavar="NAME[=VALUE]",
        help="Enable a feature flag (repeatable)",
    )

    parser.add_argument(
        "--proxy",
        action="append",
        default=[],
        metavar="CONTEXT=TARGET",
        help="Proxy requests under CONTEXT to TARGET (repeatable)",
    )

    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Project directory (default: current directory)",
    )

    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose debug output",
    )

    return parser


def _proxy_table(project: dict[str, Any], cli_rules: list[str]) -> dict[str, Any]:
    """Proxy rules from the project file, overridden by --proxy flags."""
    table = project.get("proxy") or {}
    if not isinstance(table, dict):
        raise ConfigError("'proxy' must map contexts to targets or option mappings")
    rules = dict(table)
    rules.update(parse_proxy_rules(cli_rules))
    return rules


def build_run_arguments(args: argparse.Namespace) -> RunArguments:
    """Turn parsed CLI arguments into RunArguments."""
    project_dir = Path(args.project_dir).resolve()
    project = load_project_file(project_dir)
    return RunArguments(
        mode=args.mode,
        watch=args.watch,
        serve=args.serve,
        port=args.port,
        proxy=_proxy_table(project, args.proxy),
        single_bundle=args.single_bundle,
        legacy=args.legacy,
        features=parse_features(args.feature),
        project_dir=project_dir,
    )


# =============================================================================
# Command
# =============================================================================


def cmd_build(args: argparse.Namespace) -> int:
    """Run the requested build and block while a watcher or server runs."""
    try:
        result = run(build_run_arguments(args))
    except KeyboardInterrupt:
        log.warning("Build interrupted")
        return 130
    except BuildAppError as e:
        log.error(str(e))
        return 1
    except OSError as e:
        log.error(f"Could not start: {e}")
        return 1

    if result is None:
        return 0

    log.info("")
    log.info("Press Ctrl+C to stop")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        log.info("")
        log.header("Shutting down")
        result.close()
        log.success("Stopped")

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.no_color:
        log.set_color(False)
    configure_logging(args.verbose)

    return cmd_build(args)


if __name__ == "__main__":
    sys.exit(main())
