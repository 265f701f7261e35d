"""Lens Application - wires configuration, logging and the connection runtime.

Initialization sequence:

1. Config loading (lens.yaml: runtime, logging, optional servers)
2. Logger setup
3. Error factory
4. Connection registry
5. Orchestrator over the configured servers plus the mcp.json files
"""

import sys
from pathlib import Path
from typing import TextIO

from lens_core.config import (
    ChainedConfigSource,
    ConfigLoader,
    FileConfigSource,
    LensConfig,
    StaticConfigSource,
)
from lens_core.errors import ErrorFactory, ErrorRegistry
from lens_core.logging import LensLogger
from lens_core.mcp import ConnectionRegistry, Orchestrator, ServerSnapshot, SnapshotListener


def default_server_files(workspace: str | Path | None = None) -> list[Path]:
    """Global then workspace mcp.json locations.

    Args:
        workspace: Workspace root (defaults to the current directory)
    """
    root = Path(workspace) if workspace is not None else Path.cwd()
    return [
        Path.home() / ".lens" / "mcp.json",
        root / ".vscode" / "mcp.json",
    ]


class LensApplication:
    """Lens application orchestrator.

    Owns the single ConnectionRegistry for the process and exposes the
    Orchestrator to the presentation layer.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        server_files: list[str | Path] | None = None,
        log_output: TextIO | None = None,
        listener: SnapshotListener | None = None,
    ):
        """Initialize application.

        Args:
            config_path: Path to lens.yaml (optional, see ConfigLoader.load)
            server_files: mcp.json files, lowest precedence first
                (default: default_server_files())
            log_output: Output stream for logs (default: sys.stderr)
            listener: Snapshot listener handed to the orchestrator
        """
        self._config_path = config_path
        self._server_files = server_files
        self._log_output = log_output or sys.stderr
        self._listener = listener
        self._initialized = False

        # Components (initialized in initialize())
        self.config_loader: ConfigLoader | None = None
        self.config: LensConfig | None = None
        self.logger: LensLogger | None = None
        self.error_factory: ErrorFactory | None = None
        self.registry: ConnectionRegistry | None = None
        self.orchestrator: Orchestrator | None = None

    async def initialize(self) -> None:
        """Build every component. Servers are not started until refresh()."""
        if self._initialized:
            return

        # 1. Config
        self.config_loader = ConfigLoader()
        self.config = self.config_loader.load(self._config_path)

        # 2. Logger
        log_config = self.config.logging.to_log_config()
        log_config.output = self._log_output
        self.logger = LensLogger(log_config)

        # 3. Errors
        self.error_factory = ErrorFactory(registry=ErrorRegistry())

        # 4. Registry
        self.registry = ConnectionRegistry(settings=self.config.runtime, logger=self.logger)

        # 5. Orchestrator
        files = self._server_files if self._server_files is not None else default_server_files()
        source = ChainedConfigSource(
            [
                StaticConfigSource(self.config.servers.values()),
                FileConfigSource(files, logger=self.logger),
            ]
        )
        self.orchestrator = Orchestrator(
            self.registry,
            source=source,
            listener=self._listener,
            logger=self.logger,
            settings=self.config.runtime,
            error_factory=self.error_factory,
        )

        self._initialized = True

    async def refresh(self) -> dict[str, ServerSnapshot]:
        """Reload server definitions and rediscover everything."""
        if not self._initialized:
            await self.initialize()
        assert self.orchestrator is not None
        return await self.orchestrator.refresh()

    async def shutdown(self) -> None:
        """Stop every server connection."""
        if not self._initialized:
            return
        assert self.orchestrator is not None
        await self.orchestrator.shutdown()
        self._initialized = False
