"""
Compiler plugins.

A plugin is any object with an ``apply(compiler)`` method; it registers
hooks with ``compiler.on(event, fn)``. Hooks used here:

- ``compilation(compilation)``: assets produced, hash not yet computed
- ``should-emit(compilation)``: return False to skip writing output
- ``emit(compilation)``: about to write output
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from buildapp.build.compiler import Compilation, Compiler


class Plugin:
    """Base class for compiler plugins."""

    def apply(self, compiler: "Compiler") -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class HotReloadPlugin(Plugin):
    """Marks the compiler as hot and emits a hot-manifest.json per pass."""

    MANIFEST = "hot-manifest.json"

    def apply(self, compiler: "Compiler") -> None:
        compiler.hot = True
        compiler.on("emit", self._write_manifest)

    def _write_manifest(self, compilation: "Compilation") -> None:
        manifest = {
            "hash": compilation.hash,
            "assets": sorted(name for name in compilation.assets if name != self.MANIFEST),
        }
        compilation.assets[self.MANIFEST] = json.dumps(manifest, indent=2).encode("utf-8")


class NoEmitOnErrorsPlugin(Plugin):
    """Skips writing output when the compilation has errors."""

    def apply(self, compiler: "Compiler") -> None:
        compiler.on("should-emit", self._should_emit)

    @staticmethod
    def _should_emit(compilation: "Compilation") -> bool:
        return not compilation.errors


class FeatureFlagsPlugin(Plugin):
    """Prepends a ``__features__`` table to every JavaScript bundle."""

    def __init__(self, features: dict[str, Union[bool, str]]):
        self.features = dict(features)

    def apply(self, compiler: "Compiler") -> None:
        compiler.on("compilation", self._inject)

    def _inject(self, compilation: "Compilation") -> None:
        prelude = f"var __features__ = {json.dumps(self.features, sort_keys=True)};\n".encode("utf-8")
        for name, content in list(compilation.assets.items()):
            if name.endswith(".js"):
                compilation.assets[name] = prelude + content

    def __repr__(self) -> str:
        return f"FeatureFlagsPlugin({self.features!r})"


def describe(plugins: list[Any]) -> list[str]:
    """Names of the given plugins, for reporting."""
    return [type(p).__name__ for p in plugins]
