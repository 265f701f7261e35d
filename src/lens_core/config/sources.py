"""Config sources supplying server definitions to the orchestrator."""

from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from lens_core.types import LogLevel

from .loader import ConfigLoader, servers_from_mapping
from .models import ServerConfig


@runtime_checkable
class ConfigSource(Protocol):
    """Anything that can produce the current list of server definitions."""

    def load(self) -> list[ServerConfig]:
        """Return server definitions in display order."""
        ...


class StaticConfigSource:
    """Fixed in-memory list of servers. Used by tests and embedding code."""

    def __init__(self, servers: Iterable[ServerConfig] = ()):
        self._servers = list(servers)

    def set(self, servers: Iterable[ServerConfig]) -> None:
        """Replace the served list; picked up by the next load()."""
        self._servers = list(servers)

    def load(self) -> list[ServerConfig]:
        return list(self._servers)


class FileConfigSource:
    """Read servers from one or more mcp.json / lens.yaml files.

    Files are read in order on every load(). A later file replaces an
    earlier file's server of the same name (the entry keeps its first
    position); missing files are skipped.
    Typical usage passes the global file first and the workspace file last.
    """

    def __init__(self, paths: Iterable[str | Path], logger: Any = None):
        """Initialize source.

        Args:
            paths: Config files, lowest precedence first
            logger: Optional LensLogger instance
        """
        self.paths = [Path(p) for p in paths]
        self._logger = logger
        self._loader = ConfigLoader(logger)

    def load(self) -> list[ServerConfig]:
        """Read every existing file and merge their ``servers`` sections.

        Raises:
            LensError(CONFIG_INVALID): If an existing file cannot be parsed
        """
        merged: dict[str, ServerConfig] = {}
        for path in self.paths:
            if not path.exists():
                if self._logger:
                    self._logger._log(LogLevel.DEBUG, "config", f"Skipping missing {path}")
                continue

            data = self._loader.read_file(path)
            servers = data.get("servers") or {}
            if not isinstance(servers, dict):
                continue
            for name, server in servers_from_mapping(servers).items():
                merged[name] = server

            if self._logger:
                self._logger._log(
                    LogLevel.DEBUG,
                    "config",
                    f"Read {len(servers)} servers from {path}",
                )

        return list(merged.values())


class ChainedConfigSource:
    """Merge several sources in order; later sources win on name clashes."""

    def __init__(self, sources: Iterable[ConfigSource]):
        self.sources = list(sources)

    def load(self) -> list[ServerConfig]:
        merged: dict[str, ServerConfig] = {}
        for source in self.sources:
            for server in source.load():
                merged[server.name] = server
        return list(merged.values())
