"""
Build configuration for buildapp.

Constants, dataclasses, the project file loader and the mode-specific
configuration provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from buildapp.core.errors import ConfigError
from buildapp.core.utils import (
    DEFAULT_PORT,
    EVENTSOURCE_POLYFILL_MODULE,
    HOT_CLIENT_MODULE,
    find_project_file,
)
from buildapp.build.plugins import (
    FeatureFlagsPlugin,
    HotReloadPlugin,
    NoEmitOnErrorsPlugin,
    Plugin,
)

__all__ = [
    "MODES",
    "WATCH_CHOICES",
    "WatchOptions",
    "BuildConfig",
    "RunArguments",
    "parse_features",
    "parse_proxy_rules",
    "load_project_file",
    "create_config",
    "with_hot_reload",
    "hot_client_entry",
]

# =============================================================================
# Constants
# =============================================================================

MODES = ("dist", "dev", "test")
WATCH_CHOICES = ("file", "memory")

DEFAULT_ENTRY = {"main": ["src/main.js"]}
DEFAULT_TEST_ENTRY = {"unit": ["tests/unit/all.js"]}
DEFAULT_HTML = "src/index.html"
DEFAULT_OUTPUT = "output"

FeatureValue = Union[bool, str]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class WatchOptions:
    """Filesystem watch settings."""

    poll: Optional[float] = None  # polling interval in seconds; None = native events
    ignored: list[str] = field(default_factory=lambda: ["**/node_modules/**", "**/.git/**"])
    aggregate_timeout: float = 0.3  # seconds to batch change events


@dataclass
class BuildConfig:
    """Configuration for one compilation."""

    context: Path
    entry: dict[str, list[str]]
    output_path: Path
    mode: str = "dist"
    plugins: list[Plugin] = field(default_factory=list)
    watch_options: WatchOptions = field(default_factory=WatchOptions)
    html: Optional[str] = None  # root document template, relative to context
    features: dict[str, FeatureValue] = field(default_factory=dict)
    legacy: bool = False
    single_bundle: bool = False


@dataclass(frozen=True)
class RunArguments:
    """Parsed arguments for one orchestration run."""

    mode: str = "dist"
    watch: Optional[str] = None  # None, "file" or "memory"
    serve: bool = False
    port: int = DEFAULT_PORT
    proxy: dict[str, Any] = field(default_factory=dict)
    single_bundle: bool = False
    legacy: bool = False
    features: dict[str, FeatureValue] = field(default_factory=dict)
    project_dir: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ConfigError(f"Unknown mode: {self.mode}. Expected one of: {', '.join(MODES)}")
        if self.watch is not None and self.watch not in WATCH_CHOICES:
            raise ConfigError(
                f"Unknown watch mode: {self.watch}. Expected one of: {', '.join(WATCH_CHOICES)}"
            )


# =============================================================================
# Argument Helpers
# =============================================================================


def parse_features(values: Optional[list[str]]) -> dict[str, FeatureValue]:
    """Turn ["a", "b=x"] into {"a": True, "b": "x"}.

    Values containing more than one "=" are ignored.
    """
    features: dict[str, FeatureValue] = {}
    for value in values or []:
        parts = value.split("=")
        if len(parts) == 1:
            features[value] = True
        elif len(parts) == 2:
            features[parts[0]] = parts[1]
    return features


def parse_proxy_rules(values: Optional[list[str]]) -> dict[str, str]:
    """Turn ["/api=http://localhost:3000"] into {"/api": "http://localhost:3000"}."""
    rules: dict[str, str] = {}
    for value in values or []:
        context, sep, target = value.partition("=")
        if not sep or not context or not target:
            raise ConfigError(f"Invalid proxy rule '{value}', expected context=target")
        rules[context] = target
    return rules


# =============================================================================
# Project File
# =============================================================================


def load_project_file(project_dir: Path) -> dict[str, Any]:
    """Load buildapp.yml from project_dir. Missing file means defaults."""
    path = find_project_file(project_dir)
    if path is None:
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path.name} is not valid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the top level")
    return data


def _entry_table(raw: Any, key: str) -> dict[str, list[str]]:
    if not isinstance(raw, dict):
        raise ConfigError(f"'{key}' must map entry names to module lists")
    entries: dict[str, list[str]] = {}
    for name, modules in raw.items():
        if isinstance(modules, str):
            modules = [modules]
        if not isinstance(modules, list) or not all(isinstance(m, str) for m in modules):
            raise ConfigError(f"'{key}.{name}' must be a module path or a list of them")
        entries[str(name)] = list(modules)
    return entries


def _watch_options(raw: Any) -> WatchOptions:
    if raw is None:
        return WatchOptions()
    if not isinstance(raw, dict):
        raise ConfigError("'watch' must be a mapping")
    options = WatchOptions()
    if raw.get("poll") is not None:
        options.poll = float(raw["poll"])
    if "ignored" in raw:
        ignored = raw["ignored"]
        options.ignored = [ignored] if isinstance(ignored, str) else list(ignored)
    if raw.get("aggregate_timeout") is not None:
        options.aggregate_timeout = float(raw["aggregate_timeout"])
    return options


def _single_bundle(entry: dict[str, list[str]]) -> dict[str, list[str]]:
    merged: list[str] = []
    for modules in entry.values():
        for module in modules:
            if module not in merged:
                merged.append(module)
    return {"main": merged}


# =============================================================================
# Configuration Provider
# =============================================================================


def create_config(
    mode: str,
    args: RunArguments,
    project: Optional[dict[str, Any]] = None,
) -> BuildConfig:
    """Build the configuration for `mode` from the project file and args."""
    if mode not in MODES:
        raise ConfigError(f"Unknown mode: {mode}")

    project_dir = Path(args.project_dir).resolve()
    if project is None:
        project = load_project_file(project_dir)

    if mode == "test":
        entry = _entry_table(project.get("tests", DEFAULT_TEST_ENTRY), "tests")
        html = None
    else:
        entry = _entry_table(project.get("entry", DEFAULT_ENTRY), "entry")
        html = project.get("html")
        if html is None and (project_dir / DEFAULT_HTML).is_file():
            html = DEFAULT_HTML

    if args.single_bundle:
        entry = _single_bundle(entry)

    features = dict(project.get("features") or {})
    features.update(args.features)

    plugins: list[Plugin] = []
    if features:
        plugins.append(FeatureFlagsPlugin(features))

    output_root = project_dir / project.get("output", DEFAULT_OUTPUT)

    return BuildConfig(
        context=project_dir,
        entry=entry,
        output_path=output_root / mode,
        mode=mode,
        plugins=plugins,
        watch_options=_watch_options(project.get("watch")),
        html=html,
        features=features,
        legacy=args.legacy,
        single_bundle=args.single_bundle,
    )


def hot_client_entry(timeout: float) -> str:
    """Module identifier of the hot reload client for a timeout in seconds."""
    return f"{HOT_CLIENT_MODULE}?timeout={int(timeout * 1000)}&reload=true"


def with_hot_reload(config: BuildConfig, timeout: float) -> BuildConfig:
    """Return a copy of config wired for hot reload.

    Every entry point starts with the EventSource polyfill followed by the
    hot client; the hot reload and no-emit-on-errors plugins are appended.
    The given config is left untouched.
    """
    client = hot_client_entry(timeout)
    entry = {
        name: [EVENTSOURCE_POLYFILL_MODULE, client, *modules]
        for name, modules in config.entry.items()
    }
    plugins = [*config.plugins, HotReloadPlugin(), NoEmitOnErrorsPlugin()]
    return replace(config, entry=entry, plugins=plugins)
