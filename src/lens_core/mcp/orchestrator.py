"""Orchestrator - discovery over configured servers with progressive snapshots."""

from collections.abc import Iterable
from typing import Any

from lens_core.config.models import RuntimeConfig, ServerConfig
from lens_core.config.sources import ConfigSource, StaticConfigSource
from lens_core.errors import DuplicateStartError, ErrorFactory, LensError, create_error
from lens_core.logging import LensLogger
from lens_core.types import LogLevel, MCPTransport, ServerStatus

from .client import ProtocolClient
from .registry import ConnectionRegistry
from .types import ServerSnapshot, SnapshotListener, ToolDescriptor


class Orchestrator:
    """Drives the registry from a config source and reports to a listener.

    Servers are processed one at a time in config order. The listener
    receives the full snapshot after every entry, so a UI can fill in
    servers as they come up.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        source: ConfigSource | None = None,
        listener: SnapshotListener | None = None,
        logger: LensLogger | None = None,
        settings: RuntimeConfig | None = None,
        error_factory: ErrorFactory | None = None,
    ):
        """Initialize orchestrator.

        Args:
            registry: Connection registry to drive
            source: Config source read by refresh()
            listener: Receives snapshots after every change
            logger: Optional logger
            settings: Runtime settings (keep_connected)
            error_factory: Optional error factory for failure messages
        """
        self._registry = registry
        self._source = source or StaticConfigSource()
        self._listener = listener
        self._logger = logger
        self._settings = settings or RuntimeConfig()
        self._error_factory = error_factory or ErrorFactory()
        self._configs: dict[str, ServerConfig] = {}
        self._snapshots: dict[str, ServerSnapshot] = {}
        # Bumped by refresh() and shutdown(); a discovery pass stops when it changes
        self._epoch = 0

    def _log(self, level: LogLevel, message: str, context: dict[str, Any] | None = None) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, "orchestrator", message, context)

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def set_listener(self, listener: SnapshotListener | None) -> None:
        self._listener = listener

    def snapshot(self) -> dict[str, ServerSnapshot]:
        """Copy of the current name -> snapshot map."""
        return {name: snap.copy() for name, snap in self._snapshots.items()}

    async def refresh(self) -> dict[str, ServerSnapshot]:
        """Stop everything, reload configs and rediscover all servers.

        Raises:
            LensError(CONFIG_INVALID): If the config source cannot be read
        """
        self._epoch += 1
        self._registry.stop_all()

        try:
            configs = self._source.load()
        except LensError as e:
            self._log(LogLevel.ERROR, f"Failed to load server configuration: {e.message}")
            self._configs = {}
            self._snapshots = {}
            self._notify()
            raise

        self._configs = {config.name: config for config in configs}
        self._snapshots = {
            config.name: self._make_snapshot(
                config,
                ServerStatus.STOPPED if config.disabled else ServerStatus.UNKNOWN,
            )
            for config in configs
        }
        self._log(LogLevel.INFO, f"Loaded {len(configs)} server definitions")
        self._notify()

        return await self.discover(configs)

    async def discover(self, configs: Iterable[ServerConfig]) -> dict[str, ServerSnapshot]:
        """Start each server and fetch its tools, sequentially.

        Failures are recorded on the server's snapshot; processing continues.
        A later refresh() or shutdown() ends the pass; the entry in flight is
        then dropped without a snapshot update.
        """
        epoch = self._epoch
        for config in configs:
            if self._epoch != epoch:
                break
            self._configs[config.name] = config
            snap = await self._discover_one(config)
            if self._epoch != epoch:
                self._log(LogLevel.DEBUG, f"Discovery superseded while starting '{config.name}'")
                break
            self._snapshots[config.name] = snap
            self._notify()

        running = sum(1 for s in self._snapshots.values() if s.status == ServerStatus.RUNNING)
        self._log(LogLevel.INFO, f"Discovery finished: {running}/{len(self._snapshots)} running")
        return self.snapshot()

    async def start_server(self, name: str) -> ServerSnapshot:
        """Start one configured server and list its tools.

        Raises:
            ServerNotFoundError: If the name is not configured
        """
        config = self._require(name)
        snap = await self._discover_one(config, include_disabled=True)
        return self._update(snap)

    async def stop_server(self, name: str) -> ServerSnapshot:
        """Stop one configured server; its last known tools are kept.

        Raises:
            ServerNotFoundError: If the name is not configured
        """
        config = self._require(name)
        await self._registry.stop(name)

        previous = self._snapshots.get(name)
        tools = list(previous.tools) if previous else []
        return self._update(self._make_snapshot(config, ServerStatus.STOPPED, tools))

    async def restart_server(self, name: str) -> ServerSnapshot:
        """Restart one configured server and list its tools again.

        Raises:
            ServerNotFoundError: If the name is not configured
        """
        config = self._require(name)
        if config.transport != MCPTransport.STDIO:
            return self._update(self._unsupported(config))

        try:
            client = await self._registry.restart(name, config)
        except Exception as e:
            return self._update(self._failed(config, e))

        tools = await client.list_tools()
        return self._update(
            self._make_snapshot(config, ServerStatus.from_state(client.state), tools, client)
        )

    async def list_tools(self, name: str) -> list[ToolDescriptor]:
        """Fetch tools from a running server and refresh its snapshot.

        Raises:
            ServerNotFoundError: If the name is not configured
        """
        config = self._require(name)
        client = self._registry.get(name)
        if client is None:
            return []

        tools = await client.list_tools()
        self._update(
            self._make_snapshot(config, ServerStatus.from_state(client.state), tools, client)
        )
        return tools

    async def shutdown(self) -> None:
        """Stop every connection and mark running servers stopped.

        A discovery pass still in progress ends without starting further servers.
        """
        self._epoch += 1
        await self._registry.close()

        for snap in self._snapshots.values():
            if snap.status in (ServerStatus.RUNNING, ServerStatus.UNKNOWN):
                snap.status = ServerStatus.STOPPED
        self._notify()

    # Internals

    async def _discover_one(
        self, config: ServerConfig, include_disabled: bool = False
    ) -> ServerSnapshot:
        if config.disabled and not include_disabled:
            return self._make_snapshot(config, ServerStatus.STOPPED)
        if config.transport != MCPTransport.STDIO:
            return self._unsupported(config)

        try:
            client = await self._registry.start(config)
        except DuplicateStartError as e:
            existing = self._registry.get(config.name)
            if existing is None:
                return self._failed(config, e)
            client = existing
        except Exception as e:
            return self._failed(config, e)

        tools = await client.list_tools()
        status = ServerStatus.from_state(client.state)

        if not self._settings.keep_connected:
            if self._registry.get(config.name) is client:
                await self._registry.stop(config.name)
            status = ServerStatus.STOPPED

        return self._make_snapshot(config, status, tools, client)

    def _failed(self, config: ServerConfig, exc: Exception) -> ServerSnapshot:
        error = self._error_factory.from_exception(exc, server_name=config.name)
        self._log(
            LogLevel.ERROR,
            f"Server '{config.name}' failed: {error.message}",
            {"server": config.name, "code": error.code, "detail": error.detail},
        )
        return self._make_snapshot(config, ServerStatus.ERROR, error=self._describe(error))

    def _unsupported(self, config: ServerConfig) -> ServerSnapshot:
        error = create_error(
            "TRANSPORT_UNSUPPORTED",
            server_name=config.name,
            transport=config.transport.value,
        )
        self._log(LogLevel.WARN, f"Server '{config.name}': {error.message}")
        return self._make_snapshot(config, ServerStatus.ERROR, error=error.message)

    def _make_snapshot(
        self,
        config: ServerConfig,
        status: ServerStatus,
        tools: list[ToolDescriptor] | None = None,
        client: ProtocolClient | None = None,
        error: str | None = None,
    ) -> ServerSnapshot:
        if error is None and status == ServerStatus.ERROR and client is not None:
            last_error = client.last_error
            error = self._describe(last_error) if last_error else None
        return ServerSnapshot(
            name=config.name,
            status=status,
            tools=list(tools or []),
            error=error,
            transport=config.transport,
            command=config.command_line,
            disabled=config.disabled,
        )

    @staticmethod
    def _describe(error: LensError) -> str:
        if error.detail:
            return f"{error.message}: {error.detail}"
        return error.message

    def _require(self, name: str) -> ServerConfig:
        config = self._configs.get(name)
        if config is None:
            raise create_error("SERVER_NOT_FOUND", server_name=name)
        return config

    def _update(self, snap: ServerSnapshot) -> ServerSnapshot:
        self._snapshots[snap.name] = snap
        self._notify()
        return snap.copy()

    def _notify(self) -> None:
        if self._listener is None:
            return
        try:
            self._listener(self.snapshot())
        except Exception as e:
            self._log(LogLevel.WARN, f"Snapshot listener failed: {e}")
