"""
Reverse proxy middleware.

Requests whose path matches a context are forwarded to a target with httpx;
everything else falls through to the next middleware. A context is either a
path prefix ("/api") or a glob ("/api/**/*.json"); a list of contexts
matches if any of them does.

Options accept both the camelCase keys used in JSON/YAML proxy tables and
snake_case: target, changeOrigin, pathRewrite, headers, secure, timeout
(seconds) or proxyTimeout (milliseconds).
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Mapping, Optional, Union
from urllib.parse import urlsplit

import httpx

from buildapp.core.errors import ConfigError
from buildapp.core.utils import log

if TYPE_CHECKING:
    from buildapp.server.app import DevRequestHandler, Next

logger = logging.getLogger(__name__)

# Headers that apply to a single connection and must not be forwarded
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

_OPTION_ALIASES = {
    "changeOrigin": "change_origin",
    "pathRewrite": "path_rewrite",
}


@dataclass
class ProxyOptions:
    """Options for one proxy rule."""

    target: str
    change_origin: bool = False
    path_rewrite: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    secure: bool = True
    timeout: Optional[float] = None

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "ProxyOptions":
        values = {_OPTION_ALIASES.get(key, key): value for key, value in options.items()}
        target = values.get("target")
        if not target or not isinstance(target, str):
            raise ConfigError(f"Proxy options need a 'target' URL, got {dict(options)!r}")
        unknown = set(values) - set(cls.__dataclass_fields__) - {"proxyTimeout"}
        if unknown:
            logger.debug("Ignoring unsupported proxy options: %s", ", ".join(sorted(unknown)))
        timeout = values.get("timeout")
        if values.get("proxyTimeout") is not None:
            # milliseconds, as written in JSON proxy tables
            timeout = float(values["proxyTimeout"]) / 1000
        return cls(
            target=target,
            change_origin=bool(values.get("change_origin", False)),
            path_rewrite=dict(values.get("path_rewrite") or {}),
            headers={str(k): str(v) for k, v in (values.get("headers") or {}).items()},
            secure=bool(values.get("secure", True)),
            timeout=float(timeout) if timeout is not None else None,
        )


def _is_glob(context: str) -> bool:
    return any(ch in context for ch in "*?[")


class ProxyMiddleware:
    """Forward matching requests to options.target."""

    def __init__(self, context: Union[str, list[str]], options: Union[ProxyOptions, Mapping[str, Any]]):
        self.contexts = [context] if isinstance(context, str) else list(context)
        self.options = options if isinstance(options, ProxyOptions) else ProxyOptions.from_mapping(options)
        self._rewrites = [(re.compile(pattern), repl) for pattern, repl in self.options.path_rewrite.items()]
        self._client = httpx.Client(
            verify=self.options.secure,
            timeout=self.options.timeout,
            follow_redirects=False,
        )
        log.info(f"Proxy created: {', '.join(self.contexts)}  ->  {self.options.target}")

    def matches(self, path: str) -> bool:
        for context in self.contexts:
            if _is_glob(context):
                if fnmatch.fnmatchcase(path, context):
                    return True
            elif path.startswith(context):
                return True
        return False

    def rewrite_path(self, path: str) -> str:
        for pattern, repl in self._rewrites:
            rewritten = pattern.sub(repl, path, count=1)
            if rewritten != path:
                return rewritten
        return path

    def target_url(self, path: str) -> str:
        target = urlsplit(self.options.target)
        base_path = target.path.rstrip("/")
        return f"{target.scheme}://{target.netloc}{base_path}{self.rewrite_path(path)}"

    def _forward_headers(self, request: "DevRequestHandler") -> dict[str, str]:
        headers = {
            name: value
            for name, value in request.headers.items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        }
        if self.options.change_origin:
            headers = {k: v for k, v in headers.items() if k.lower() != "host"}
            headers["Host"] = urlsplit(self.options.target).netloc
        headers.update(self.options.headers)
        return headers

    def __call__(self, request: "DevRequestHandler", next: "Next") -> None:
        if not self.matches(request.url_path):
            next()
            return

        url = self.target_url(request.path)
        logger.debug("Proxying %s %s -> %s", request.command, request.path, url)

        try:
            with self._client.stream(
                request.command,
                url,
                headers=self._forward_headers(request),
                content=request.read_body() or None,
            ) as upstream:
                request.send_response(upstream.status_code)
                for name, value in upstream.headers.multi_items():
                    if name.lower() in HOP_BY_HOP_HEADERS:
                        continue
                    request.send_header(name, value)
                request.end_headers()
                if request.command != "HEAD":
                    for chunk in upstream.iter_raw():
                        request.wfile.write(chunk)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            log.error(f"Error occurred while proxying {request.path} to {self.options.target}: {e}")
            if not request.response_started:
                request.send_error(HTTPStatus.GATEWAY_TIMEOUT)
        except httpx.HTTPError as e:
            log.error(f"Error occurred while proxying {request.path} to {self.options.target}: {e}")
            if not request.response_started:
                request.send_error(HTTPStatus.INTERNAL_SERVER_ERROR)

    def close(self) -> None:
        self._client.close()


def proxy_middlewares(rules: Mapping[str, Any]) -> list[ProxyMiddleware]:
    """One middleware per rule, in table order.

    A bare string value is the target URL; anything else is a full options
    mapping passed through as is.
    """
    middlewares = []
    for context, options in rules.items():
        if isinstance(options, str):
            middlewares.append(ProxyMiddleware(context, {"target": options}))
        else:
            middlewares.append(ProxyMiddleware(context, options))
    return middlewares
