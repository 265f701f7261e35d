"""Lens Core - connection runtime for inspecting local MCP servers.

Spawns stdio MCP servers, performs the initialize handshake, lists their
tools and reports per-server status to a presentation layer.
"""

from lens_core.application import LensApplication

__version__ = "0.1.0"
__all__ = ["__version__", "LensApplication"]
