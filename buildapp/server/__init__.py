"""
buildapp.server - Dev server building blocks.

Middleware chain and listener, history fallback, static and in-memory file
serving, reverse proxying, the hot reload channel and TLS detection.
"""

from buildapp.server.app import DevApplication, DevRequestHandler, DevServer
from buildapp.server.hot import HotMiddleware
from buildapp.server.memory import DevMiddleware
from buildapp.server.middleware import HistoryApiFallback, StaticMiddleware, history_api_fallback
from buildapp.server.proxy import ProxyMiddleware, ProxyOptions, proxy_middlewares
from buildapp.server.tls import TLSMaterial, find_tls_material

__all__ = [
    "DevApplication",
    "DevRequestHandler",
    "DevServer",
    "HotMiddleware",
    "DevMiddleware",
    "HistoryApiFallback",
    "StaticMiddleware",
    "history_api_fallback",
    "ProxyMiddleware",
    "ProxyOptions",
    "proxy_middlewares",
    "TLSMaterial",
    "find_tls_material",
]
