"""
Pytest configuration and fixtures for backend tests.

Provides fixtures for:
- Temporary sandbox base directory
- Identity, path resolver and scanner wiring
- Reset of the lazily built scanner singletons
"""
import sys
from pathlib import Path

import pytest

# Add project root to path before importing project modules
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from zipline_sandbox.core.identity import IdentityResolver  # noqa: E402
from zipline_sandbox.core.path_validator import SandboxPathResolver  # noqa: E402
from zipline_sandbox.security.content_inspection import SecretScanInspector  # noqa: E402
from zipline_sandbox.security.scanner_config import reset_scanner_config  # noqa: E402
from zipline_sandbox.security.sensitive_data_scanner import (  # noqa: E402
    SensitiveDataScanner,
    reset_scanner,
)

TEST_TOKEN = "zipline-test-token-0001"
OTHER_TOKEN = "zipline-test-token-0002"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests that touch the real filesystem layout"
    )


@pytest.fixture(autouse=True)
def reset_global_instances():
    """Reset global scanner and config instances around each test."""
    reset_scanner()
    reset_scanner_config()
    yield
    reset_scanner()
    reset_scanner_config()


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Sandbox base directory (stands in for ~/.zipline_tmp)."""
    base = tmp_path / "zipline_tmp"
    base.mkdir()
    return base


@pytest.fixture
def token() -> str:
    return TEST_TOKEN


@pytest.fixture
def identity(base_dir: Path) -> IdentityResolver:
    return IdentityResolver(base_dir)


@pytest.fixture
def paths(identity: IdentityResolver) -> SandboxPathResolver:
    return SandboxPathResolver(identity)


@pytest.fixture
def sandbox_root(identity: IdentityResolver, token: str) -> Path:
    """Existing sandbox root for the test token."""
    root = identity.resolve_root(token)
    root.mkdir(parents=True)
    return root


@pytest.fixture
def secret_inspector() -> SecretScanInspector:
    """Inspector backed by the built-in regex patterns only."""
    return SecretScanInspector(SensitiveDataScanner())
