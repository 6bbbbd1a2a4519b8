"""
Shared pytest fixtures for buildapp tests.

Provides a throwaway project directory with a project file, factories for
RunArguments and BuildConfig bound to it, and a cleanup registry so that
watchers and servers started by a test are always closed.

Test Tier Markers:
  @pytest.mark.evergreen - Tests that always run, never skip (production tests)
  @pytest.mark.dev       - Development/WIP tests, toggle-able
"""

from __future__ import annotations

import datetime
import ipaddress
import time
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from buildapp.build.config import BuildConfig, RunArguments, create_config
from buildapp.core.utils import log


# =============================================================================
# Test Data Constants
# =============================================================================

MAIN_JS = "console.log('main');\n"
UTIL_JS = "function util() { return 42; }\n"
INDEX_HTML = """<!DOCTYPE html>
<html>
<head><title>app</title></head>
<body>
<div id="app"></div>
</body>
</html>
"""
UNIT_JS = "describe('app', function () {});\n"

PROJECT_YML = """\
entry:
  main:
    - src/util.js
    - src/main.js
tests:
  unit: tests/unit/all.js
watch:
  poll: 0.1
  aggregate_timeout: 0.05
"""


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test tiers."""
    config.addinivalue_line(
        "markers",
        "evergreen: tests that always run, never skip (production tests)"
    )
    config.addinivalue_line(
        "markers",
        "dev: development/WIP tests, toggle-able for active development"
    )


@pytest.fixture(autouse=True)
def plain_output() -> Generator[None, None, None]:
    """Keep Logger output free of color codes so assertions can match it."""
    log.set_color(False)
    yield
    log.set_color(False)


# =============================================================================
# Project Fixtures
# =============================================================================


def write_project(root: Path, project_yml: str = PROJECT_YML) -> Path:
    """Lay out a small web project under root."""
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "tests" / "unit").mkdir(parents=True, exist_ok=True)
    (root / "src" / "main.js").write_text(MAIN_JS, encoding="utf-8")
    (root / "src" / "util.js").write_text(UTIL_JS, encoding="utf-8")
    (root / "src" / "index.html").write_text(INDEX_HTML, encoding="utf-8")
    (root / "tests" / "unit" / "all.js").write_text(UNIT_JS, encoding="utf-8")
    (root / "buildapp.yml").write_text(project_yml, encoding="utf-8")
    return root


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project directory with sources, a root document and buildapp.yml."""
    return write_project(tmp_path / "project")


def write_self_signed_cert(cert_dir: Path) -> None:
    """Write a fresh localhost key and certificate as server.key and server.crt."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    cert_dir.mkdir(parents=True, exist_ok=True)
    (cert_dir / "server.key").write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    (cert_dir / "server.crt").write_bytes(cert.public_bytes(serialization.Encoding.PEM))


@pytest.fixture
def tls_project_dir(project_dir: Path) -> Path:
    """project_dir with a valid self-signed certificate in .cert/."""
    write_self_signed_cert(project_dir / ".cert")
    return project_dir


@pytest.fixture
def make_args(project_dir: Path) -> Callable[..., RunArguments]:
    """Factory for RunArguments bound to project_dir, listening on port 0."""

    def factory(**overrides: Any) -> RunArguments:
        values: dict[str, Any] = {"project_dir": project_dir, "port": 0}
        values.update(overrides)
        return RunArguments(**values)

    return factory


@pytest.fixture
def make_config(make_args: Callable[..., RunArguments]) -> Callable[..., BuildConfig]:
    """Factory for a BuildConfig of the given mode."""

    def factory(mode: str = "dist", **overrides: Any) -> BuildConfig:
        return create_config(mode, make_args(mode=mode, **overrides))

    return factory


@pytest.fixture
def cleanup() -> Generator[list[Any], None, None]:
    """Objects appended here are closed after the test, last first."""
    handles: list[Any] = []
    yield handles
    for handle in reversed(handles):
        handle.close()


# =============================================================================
# Helpers
# =============================================================================


def _wait_until(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
    """Poll predicate until it holds or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """wait_until(predicate, timeout=10.0) polls until predicate() is true."""
    return _wait_until
