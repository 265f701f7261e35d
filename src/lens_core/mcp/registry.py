"""Connection Registry - the process-wide table of live server connections."""

import asyncio
from collections.abc import Callable
from typing import Any

from lens_core.config.models import RuntimeConfig, ServerConfig
from lens_core.errors import LensError, create_error
from lens_core.logging import LensLogger
from lens_core.types import LogLevel, ServerStatus

from .client import ExitCallback, ProtocolClient
from .types import ToolDescriptor

# Builds a client: (config, settings, logger, on_exit) -> client
ClientFactory = Callable[
    [ServerConfig, RuntimeConfig, LensLogger | None, ExitCallback],
    ProtocolClient,
]


class ConnectionRegistry:
    """Owns at most one ProtocolClient per server name.

    Mutating operations on a name are serialised by a per-name lock, so
    two starts for the same name can never overlap.
    """

    def __init__(
        self,
        settings: RuntimeConfig | None = None,
        logger: LensLogger | None = None,
        client_factory: ClientFactory | None = None,
    ):
        """Initialize registry.

        Args:
            settings: Runtime settings handed to every client
            logger: Optional logger
            client_factory: Optional client constructor (defaults to ProtocolClient)
        """
        self._settings = settings or RuntimeConfig()
        self._logger = logger
        self._client_factory = client_factory or ProtocolClient
        self._clients: dict[str, ProtocolClient] = {}
        self._starting: dict[str, ProtocolClient] = {}
        self._generation = 0
        self._locks: dict[str, asyncio.Lock] = {}

    def _log(self, level: LogLevel, message: str, context: dict[str, Any] | None = None) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, "registry", message, context)

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    def __contains__(self, name: object) -> bool:
        return name in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def get(self, name: str) -> ProtocolClient | None:
        return self._clients.get(name)

    def names(self) -> list[str]:
        return list(self._clients)

    def is_running(self, name: str) -> bool:
        client = self._clients.get(name)
        return client is not None and client.is_running()

    def status(self, name: str) -> ServerStatus:
        """User-facing status of a name; STOPPED when there is no connection."""
        client = self._clients.get(name)
        if client is None:
            return ServerStatus.STOPPED
        return ServerStatus.from_state(client.state)

    async def start(self, config: ServerConfig) -> ProtocolClient:
        """Start a server and register its connection.

        Args:
            config: Server definition

        Returns:
            The ready client

        Raises:
            DuplicateStartError: If a live connection already exists for the name
            SpawnError, HandshakeError: If the client fails to start (nothing is registered)
            ProcessExit: If stop_all() or close() ran while the server was starting
        """
        async with self._lock(config.name):
            return await self._start_locked(config)

    async def stop(self, name: str) -> bool:
        """Stop and unregister a server.

        Returns:
            True if a connection existed
        """
        async with self._lock(name):
            return await self._stop_locked(name)

    async def restart(self, name: str, config: ServerConfig | None = None) -> ProtocolClient:
        """Stop (if present), wait restart_delay, then start again.

        Args:
            name: Server name
            config: New definition; defaults to the running connection's

        Raises:
            ServerNotFoundError: If the name is absent and no config is given
        """
        async with self._lock(name):
            existing = self._clients.get(name)
            if config is None:
                if existing is None:
                    raise create_error("SERVER_NOT_FOUND", server_name=name)
                config = existing.config

            if existing is not None:
                self._log(LogLevel.INFO, f"Restarting '{name}'")
                await self._stop_locked(name)
                await asyncio.sleep(self._settings.restart_delay)

            return await self._start_locked(config)

    def stop_all(self) -> int:
        """Signal every connection and clear the table without waiting.

        Starts still in flight are signalled too and end without registering.

        Returns:
            Number of connections signalled
        """
        clients = self._clear()
        for client in clients:
            client.terminate()
        if clients:
            self._log(LogLevel.INFO, f"Stopped {len(clients)} servers")
        return len(clients)

    async def close(self) -> int:
        """Stop every connection and wait for the processes to exit.

        Starts still in flight are signalled and end without registering.

        Returns:
            Number of connections stopped
        """
        clients = self._clear()
        await asyncio.gather(*(client.stop() for client in clients))
        if clients:
            self._log(LogLevel.INFO, f"Closed {len(clients)} servers")
        return len(clients)

    async def list_tools(self, name: str) -> list[ToolDescriptor]:
        """Tools of a registered server; [] when absent."""
        client = self._clients.get(name)
        if client is None:
            return []
        return await client.list_tools()

    async def _start_locked(self, config: ServerConfig) -> ProtocolClient:
        existing = self._clients.get(config.name)
        if existing is not None:
            if existing.is_running():
                raise create_error("DUPLICATE_START", server_name=config.name)
            self._log(LogLevel.DEBUG, f"Replacing stale connection for '{config.name}'")
            del self._clients[config.name]
            existing.terminate()

        generation = self._generation
        client = self._client_factory(config, self._settings, self._logger, self._handle_exit)
        self._starting[config.name] = client
        try:
            await client.start()
        except LensError as e:
            if generation != self._generation:
                raise self._cleared_error(config.name) from e
            raise
        finally:
            if self._starting.get(config.name) is client:
                del self._starting[config.name]

        if generation != self._generation:
            await client.stop()
            raise self._cleared_error(config.name)

        self._clients[config.name] = client
        self._log(
            LogLevel.DEBUG,
            f"Registered '{config.name}'",
            {"server": config.name, "pid": client.pid},
        )
        return client

    async def _stop_locked(self, name: str) -> bool:
        client = self._clients.pop(name, None)
        if client is None:
            return False
        await client.stop()
        return True

    def _handle_exit(self, name: str, client: ProtocolClient) -> None:
        if self._clients.get(name) is client:
            del self._clients[name]
            self._log(LogLevel.WARN, f"Server '{name}' exited and was unregistered")

    def _clear(self) -> list[ProtocolClient]:
        """Empty the table and signal starts in flight; returns the registered clients."""
        self._generation += 1
        for client in self._starting.values():
            client.terminate()
        clients = list(self._clients.values())
        self._clients.clear()
        return clients

    def _cleared_error(self, name: str) -> LensError:
        self._log(LogLevel.DEBUG, f"Discarding '{name}': registry cleared during start")
        return create_error(
            "PROCESS_EXITED",
            server_name=name,
            detail="Registry was cleared while the server was starting",
        )
