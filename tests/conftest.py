"""
Sandbox Deployer - Test Fixtures

Shared pytest fixtures for all test modules.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from sandbox_deployer.chains.resolver import configure_block_resolver
from sandbox_deployer.ci import CIContext
from sandbox_deployer.config import get_settings
from sandbox_deployer.monitoring.logging import clear_context

# =============================================================================
# Global State
# =============================================================================


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset cached settings, the global resolver and log context."""
    configure_block_resolver(None)
    get_settings.cache_clear()
    clear_context()
    yield
    configure_block_resolver(None)
    get_settings.cache_clear()
    clear_context()


# =============================================================================
# HTTP Mocks
# =============================================================================


def build_response(
    status_code: int = 200,
    json_data: Any = None,
    json_error: Exception | None = None,
) -> MagicMock:
    """Create a mock httpx.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    if json_error is not None:
        response.json.side_effect = json_error
        response.text = "<html>not json</html>"
    else:
        response.json.return_value = json_data
        response.text = json.dumps(json_data)
    return response


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    """Factory for mock httpx responses."""
    return build_response


@pytest.fixture
def mock_http_client():
    """Create a mock httpx.AsyncClient with an async post()."""
    client = MagicMock()
    client.post = AsyncMock()
    return client


# =============================================================================
# CI Context
# =============================================================================


@pytest.fixture
def ci_context() -> CIContext:
    """A fully specified GitHub Actions context."""
    return CIContext(
        repository="acme/contracts",
        repository_owner="acme",
        sha="0123456789abcdef0123456789abcdef01234567",
        workflow="deploy",
        server_url="https://github.com",
        run_id="42",
        output=None,
        step_summary=None,
    )


# =============================================================================
# Artifact Trees
# =============================================================================


def run_file(
    transactions: list[dict[str, Any]] | None = None,
    receipts: list[dict[str, Any]] | None = None,
    libraries: list[str] | None = None,
) -> dict[str, Any]:
    """Content of a run-latest.json file."""
    return {
        "transactions": transactions or [],
        "receipts": receipts or [],
        "libraries": libraries or [],
        "timestamp": 1700000000,
    }


@pytest.fixture
def write_run(tmp_path: Path) -> Callable[..., Path]:
    """Write broadcast/<script>/<chain_id>/run-latest.json under tmp_path."""

    def _write(script: str, chain_id: int, content: dict[str, Any] | str) -> Path:
        directory = tmp_path / "broadcast" / script / str(chain_id)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "run-latest.json"
        path.write_text(content if isinstance(content, str) else json.dumps(content))
        return path

    return _write


@pytest.fixture
def make_run() -> Callable[..., dict[str, Any]]:
    """Factory for run-latest.json content."""
    return run_file
