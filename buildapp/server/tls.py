"""TLS material detection for the dev server."""

from __future__ import annotations

import os
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from buildapp.core.utils import CERT_CRT_FILE, CERT_DIR, CERT_KEY_FILE


@dataclass(frozen=True)
class TLSMaterial:
    """Key and certificate paths. Contents are only read when serving."""

    key_path: Path
    cert_path: Path

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=str(self.cert_path), keyfile=str(self.key_path))
        return context


def _readable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.R_OK)


def find_tls_material(base_dir: Optional[Path] = None) -> Optional[TLSMaterial]:
    """Return TLS material if both .cert/server.key and .cert/server.crt exist."""
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    key_path = (base / CERT_DIR / CERT_KEY_FILE).resolve()
    cert_path = (base / CERT_DIR / CERT_CRT_FILE).resolve()

    if _readable(key_path) and _readable(cert_path):
        return TLSMaterial(key_path=key_path, cert_path=cert_path)
    return None
