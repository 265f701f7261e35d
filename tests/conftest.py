"""
Pytest configuration and shared fixtures for Lens tests.
"""

import asyncio
import io
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from lens_core.config import RuntimeConfig, ServerConfig
from lens_core.logging import LensLogger, LogConfig
from lens_core.mcp import ProtocolClient
from lens_core.types import LogFormat, LogLevel

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def tests_dir() -> Path:
    """Return the tests directory."""
    return Path(__file__).parent


@pytest.fixture(scope="session")
def mock_server_path(tests_dir: Path) -> Path:
    """Return the scripted stdio MCP server."""
    return tests_dir / "mocks" / "mock_server.py"


# =============================================================================
# Server Fixtures
# =============================================================================


@pytest.fixture
def server_config(mock_server_path: Path) -> Callable[..., ServerConfig]:
    """Factory for ServerConfigs that launch the mock server in a given mode."""

    def _make(
        mode: str = "normal",
        name: str = "mock",
        env: dict[str, str] | None = None,
        disabled: bool = False,
    ) -> ServerConfig:
        return ServerConfig(
            name=name,
            command=sys.executable,
            args=(str(mock_server_path), mode),
            env=env or {},
            disabled=disabled,
        )

    return _make


@pytest.fixture
def settings() -> RuntimeConfig:
    """Runtime settings with short timeouts for tests."""
    return RuntimeConfig(request_timeout=5.0, restart_delay=0.05, stop_timeout=2.0)


class GatedClient(ProtocolClient):
    """ProtocolClient whose start() waits for its factory's gate before spawning."""

    def __init__(self, factory: "GatedFactory", *args):
        super().__init__(*args)
        self._factory = factory

    async def start(self):
        if self.name in self._factory.gated:
            self._factory.waiting.set()
            await self._factory.gate.wait()
        return await super().start()


class GatedFactory:
    """Client factory that holds starts for the given names until ``gate`` is set."""

    def __init__(self, gated: set[str]):
        self.gated = gated
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()
        self.created: list[ProtocolClient] = []

    def __call__(self, config, settings, logger, on_exit) -> ProtocolClient:
        client = GatedClient(self, config, settings, logger, on_exit)
        self.created.append(client)
        return client


@pytest.fixture
def gated_factory() -> Callable[[set[str]], GatedFactory]:
    """Build a GatedFactory for a set of server names."""
    return GatedFactory


# =============================================================================
# Logging Fixtures
# =============================================================================


@pytest.fixture
def log_output() -> io.StringIO:
    """Capture log output."""
    return io.StringIO()


@pytest.fixture
def logger(log_output: io.StringIO) -> LensLogger:
    """Debug-level JSON logger writing to log_output."""
    return LensLogger(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=log_output))


# =============================================================================
# Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Tests that spawn server processes")
    config.addinivalue_line("markers", "property: Property-based tests")
    config.addinivalue_line("markers", "slow: Slow tests")
