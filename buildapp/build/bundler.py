"""
Default build pipeline.

Resolves entry modules relative to the project directory and concatenates
them into one bundle per entry point. Two module identifiers are built in
(the hot reload client and the EventSource polyfill) and are read from the
buildapp.client package. When a root document template is configured, an
index.html is emitted with a script tag per bundle injected before </body>.

Missing modules and templates are reported as error diagnostics on the
compilation; only conditions that make the run itself impossible raise
PipelineError.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs

from buildapp.core.errors import PipelineError
from buildapp.core.utils import EVENTSOURCE_POLYFILL_MODULE, HOT_CLIENT_MODULE, HOT_PATH

if TYPE_CHECKING:
    from buildapp.build.config import BuildConfig

# Module identifier -> resource file in buildapp.client
BUILTIN_MODULES: dict[str, str] = {
    HOT_CLIENT_MODULE: "hot_client.js",
    EVENTSOURCE_POLYFILL_MODULE: "eventsource_polyfill.js",
}

# Placeholder in the hot client replaced with its JSON options at bundle time
HOT_OPTIONS_PLACEHOLDER = "__HOT_OPTIONS__"

# Placeholder replaced with the compilation hash once the pass is sealed
BUILD_HASH_PLACEHOLDER = "__BUILDAPP_HASH__"


@dataclass
class Compilation:
    """Mutable result of one pipeline pass, before it is frozen into Stats."""

    config: Any
    assets: dict[str, bytes] = field(default_factory=dict)
    modules: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    hash: str = ""

    def seal(self) -> str:
        """Compute the content hash over all assets.

        The hash is then written into every script that carries
        BUILD_HASH_PLACEHOLDER, so a loaded bundle knows which pass built it.
        """
        digest = hashlib.sha1()
        for name in sorted(self.assets):
            digest.update(name.encode("utf-8"))
            digest.update(self.assets[name])
        self.hash = digest.hexdigest()[:20]

        placeholder = BUILD_HASH_PLACEHOLDER.encode("utf-8")
        for name, data in list(self.assets.items()):
            if name.endswith(".js") and placeholder in data:
                self.assets[name] = data.replace(placeholder, self.hash.encode("utf-8"))
        return self.hash


class ModuleNotFound(LookupError):
    """An entry module identifier could not be resolved."""


class Bundler:
    """Concatenating bundler used by Compiler when no other is supplied."""

    def bundle(self, config: "BuildConfig") -> Compilation:
        context = Path(config.context)
        if not context.is_dir():
            raise PipelineError(f"Project directory not found: {context}")
        if not config.entry:
            raise PipelineError("No entry points configured")

        compilation = Compilation(config=config)

        for name, module_ids in config.entry.items():
            if not module_ids:
                compilation.warnings.append(f"Entry '{name}' has no modules")

            parts: list[str] = []
            for module_id in module_ids:
                try:
                    source = self.resolve(module_id, context)
                except ModuleNotFound as e:
                    compilation.errors.append(f"[{name}] {e}")
                    continue
                compilation.modules.append(module_id)
                parts.append(f"/* {module_id} */\n{source.rstrip()}\n")

            compilation.assets[f"{name}.js"] = "\n".join(parts).encode("utf-8")

        if config.html:
            self._emit_document(compilation, context / config.html)

        return compilation

    def resolve(self, module_id: str, context: Path) -> str:
        """Return the source of module_id."""
        path, _, query = module_id.partition("?")

        if path in BUILTIN_MODULES:
            source = (
                resources.files("buildapp.client")
                .joinpath(BUILTIN_MODULES[path])
                .read_text(encoding="utf-8")
            )
            if path == HOT_CLIENT_MODULE:
                source = source.replace(HOT_OPTIONS_PLACEHOLDER, json.dumps(self._hot_options(query)))
            return source

        module_path = context / path
        if not module_path.is_file():
            raise ModuleNotFound(f"Module not found: Can't resolve '{module_id}' in '{context}'")
        try:
            return module_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PipelineError(f"Cannot read module {module_path}: {e}") from e

    @staticmethod
    def _hot_options(query: str) -> dict[str, Any]:
        params = parse_qs(query)
        options: dict[str, Any] = {"path": HOT_PATH, "timeout": 20000, "reload": False}
        if "timeout" in params:
            options["timeout"] = int(params["timeout"][0])
        if "reload" in params:
            options["reload"] = params["reload"][0] == "true"
        if "path" in params:
            options["path"] = params["path"][0]
        return options

    def _emit_document(self, compilation: Compilation, template: Path) -> None:
        if not template.is_file():
            compilation.errors.append(f"Root document not found: {template}")
            return

        try:
            content = template.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PipelineError(f"Cannot read root document {template}: {e}") from e

        scripts = "".join(
            f'<script src="{name}"></script>\n'
            for name in compilation.assets
            if name.endswith(".js")
        )

        # Inject scripts before </body>
        if "</body>" in content:
            content = content.replace("</body>", scripts + "</body>", 1)
        elif "</html>" in content:
            content = content.replace("</html>", scripts + "</html>", 1)
        else:
            content += scripts

        compilation.assets["index.html"] = content.encode("utf-8")
