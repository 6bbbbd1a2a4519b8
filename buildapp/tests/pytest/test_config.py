"""
Tests for build configuration: argument helpers, the project file and the
mode-specific configuration provider.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from buildapp.build.config import (
    DEFAULT_ENTRY,
    BuildConfig,
    RunArguments,
    create_config,
    hot_client_entry,
    load_project_file,
    parse_features,
    parse_proxy_rules,
    with_hot_reload,
)
from buildapp.build.plugins import FeatureFlagsPlugin, HotReloadPlugin, NoEmitOnErrorsPlugin
from buildapp.core.errors import ConfigError


# =============================================================================
# Argument Helpers
# =============================================================================


@pytest.mark.evergreen
class TestParseFeatures:
    """Feature flags from repeated --feature options."""

    def test_bare_name_is_true(self) -> None:
        assert parse_features(["sourcemaps"]) == {"sourcemaps": True}

    def test_name_value(self) -> None:
        assert parse_features(["locale=fr"]) == {"locale": "fr"}

    def test_value_with_extra_equals_is_ignored(self) -> None:
        assert parse_features(["a=b=c", "d"]) == {"d": True}

    def test_none(self) -> None:
        assert parse_features(None) == {}


@pytest.mark.evergreen
class TestParseProxyRules:
    """Proxy rules from repeated --proxy options."""

    def test_context_and_target(self) -> None:
        rules = parse_proxy_rules(["/api=http://localhost:3000", "/auth=http://localhost:4000"])
        assert list(rules) == ["/api", "/auth"]
        assert rules["/api"] == "http://localhost:3000"

    def test_target_may_contain_equals(self) -> None:
        rules = parse_proxy_rules(["/q=http://localhost:3000/?a=b"])
        assert rules == {"/q": "http://localhost:3000/?a=b"}

    @pytest.mark.parametrize("value", ["/api", "=http://x", "/api="])
    def test_malformed_rule(self, value: str) -> None:
        with pytest.raises(ConfigError, match="Invalid proxy rule"):
            parse_proxy_rules([value])


@pytest.mark.evergreen
class TestRunArguments:
    """RunArguments validates its mode and watch values."""

    def test_defaults(self) -> None:
        args = RunArguments()
        assert args.mode == "dist"
        assert args.watch is None
        assert args.serve is False
        assert args.port == 9999

    def test_unknown_mode(self) -> None:
        with pytest.raises(ConfigError, match="Unknown mode"):
            RunArguments(mode="prod")

    def test_unknown_watch(self) -> None:
        with pytest.raises(ConfigError, match="Unknown watch mode"):
            RunArguments(watch="disk")


# =============================================================================
# Project File
# =============================================================================


@pytest.mark.evergreen
class TestLoadProjectFile:
    """buildapp.yml loading."""

    def test_missing_file_means_defaults(self, tmp_path: Path) -> None:
        assert load_project_file(tmp_path) == {}

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / "buildapp.yml").write_text("", encoding="utf-8")
        assert load_project_file(tmp_path) == {}

    def test_yaml_extension_fallback(self, tmp_path: Path) -> None:
        (tmp_path / "buildapp.yaml").write_text("output: build\n", encoding="utf-8")
        assert load_project_file(tmp_path) == {"output": "build"}

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "buildapp.yml").write_text("entry: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid YAML"):
            load_project_file(tmp_path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        (tmp_path / "buildapp.yml").write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_project_file(tmp_path)


# =============================================================================
# Configuration Provider
# =============================================================================


@pytest.mark.evergreen
class TestCreateConfig:
    """create_config derives a BuildConfig per mode."""

    def test_dist_config(self, project_dir: Path, make_config: Callable[..., BuildConfig]) -> None:
        config = make_config("dist")
        assert config.mode == "dist"
        assert config.context == project_dir.resolve()
        assert config.entry == {"main": ["src/util.js", "src/main.js"]}
        assert config.output_path == project_dir.resolve() / "output" / "dist"
        assert config.html == "src/index.html"
        assert config.plugins == []

    def test_watch_options_from_project_file(self, make_config: Callable[..., BuildConfig]) -> None:
        options = make_config("dev").watch_options
        assert options.poll == 0.1
        assert options.aggregate_timeout == 0.05
        assert "**/node_modules/**" in options.ignored

    def test_test_mode_uses_test_entries(self, project_dir: Path, make_config: Callable[..., BuildConfig]) -> None:
        config = make_config("test")
        assert config.entry == {"unit": ["tests/unit/all.js"]}
        assert config.html is None
        assert config.output_path == project_dir.resolve() / "output" / "test"

    def test_defaults_without_project_file(self, tmp_path: Path) -> None:
        config = create_config("dist", RunArguments(project_dir=tmp_path))
        assert config.entry == DEFAULT_ENTRY
        assert config.html is None

    def test_single_bundle_merges_entries(self, tmp_path: Path) -> None:
        project = {"entry": {"a": ["x.js", "y.js"], "b": ["y.js", "z.js"]}}
        config = create_config("dist", RunArguments(project_dir=tmp_path, single_bundle=True), project)
        assert config.entry == {"main": ["x.js", "y.js", "z.js"]}
        assert config.single_bundle is True

    def test_features_merge_and_plugin(self, tmp_path: Path) -> None:
        project = {"features": {"analytics": False, "locale": "en"}}
        args = RunArguments(project_dir=tmp_path, features={"locale": "fr", "beta": True})
        config = create_config("dist", args, project)
        assert config.features == {"analytics": False, "locale": "fr", "beta": True}
        assert [type(p) for p in config.plugins] == [FeatureFlagsPlugin]

    def test_bad_entry_table(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="entry"):
            create_config("dist", RunArguments(project_dir=tmp_path), {"entry": ["a.js"]})

    def test_unknown_mode(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            create_config("staging", RunArguments(project_dir=tmp_path))


@pytest.mark.evergreen
class TestHotReloadConfig:
    """with_hot_reload derives a new config and leaves the input alone."""

    def test_client_entry(self) -> None:
        assert hot_client_entry(20.0) == "buildapp/hot-client?timeout=20000&reload=true"

    def test_entries_start_with_polyfill_then_client(self, make_config: Callable[..., BuildConfig]) -> None:
        config = make_config("dev")
        hot = with_hot_reload(config, 20.0)
        assert hot.entry["main"] == [
            "eventsource-polyfill",
            "buildapp/hot-client?timeout=20000&reload=true",
            "src/util.js",
            "src/main.js",
        ]

    def test_plugins_appended(self, make_config: Callable[..., BuildConfig]) -> None:
        config = make_config("dev", features={"beta": True})
        hot = with_hot_reload(config, 20.0)
        assert [type(p) for p in hot.plugins] == [FeatureFlagsPlugin, HotReloadPlugin, NoEmitOnErrorsPlugin]

    def test_input_untouched(self, make_config: Callable[..., BuildConfig]) -> None:
        config = make_config("dev")
        with_hot_reload(config, 20.0)
        assert config.entry == {"main": ["src/util.js", "src/main.js"]}
        assert config.plugins == []
