"""Unit tests for LensApplication wiring."""

import io
import json
import sys
from pathlib import Path

import pytest

from lens_core import LensApplication
from lens_core.application import default_server_files
from lens_core.types import ServerStatus


@pytest.fixture
def lens_yaml(tmp_path):
    path = tmp_path / "lens.yaml"
    path.write_text(
        "runtime:\n"
        "  request_timeout: 5\n"
        "  restart_delay: 0.05\n"
        "  stop_timeout: 2\n"
        "logging:\n"
        "  level: debug\n"
        "  format: json\n"
    )
    return path


@pytest.fixture
def mcp_json(tmp_path, mock_server_path):
    path = tmp_path / "mcp.json"
    path.write_text(
        json.dumps(
            {
                "servers": {
                    "mock": {"command": sys.executable, "args": [str(mock_server_path)]},
                    "off": {"command": "unused", "disabled": True},
                }
            }
        )
    )
    return path


def test_default_server_files(tmp_path):
    files = default_server_files(tmp_path)

    assert files[0] == Path.home() / ".lens" / "mcp.json"
    assert files[1] == tmp_path / ".vscode" / "mcp.json"


class TestLensApplication:
    """Tests for LensApplication."""

    @pytest.mark.asyncio
    async def test_initialize_builds_components(self, lens_yaml, tmp_path):
        app = LensApplication(config_path=lens_yaml, server_files=[], log_output=io.StringIO())

        await app.initialize()

        assert app.config.runtime.request_timeout == 5
        assert app.registry is not None
        assert app.orchestrator.registry is app.registry
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_refresh_discovers_servers(self, lens_yaml, mcp_json):
        snapshots = []
        output = io.StringIO()
        app = LensApplication(
            config_path=lens_yaml,
            server_files=[mcp_json],
            log_output=output,
            listener=snapshots.append,
        )

        try:
            result = await app.refresh()

            assert result["mock"].status == ServerStatus.RUNNING
            assert [tool.name for tool in result["mock"].tools] == ["echo", "add"]
            assert result["off"].status == ServerStatus.STOPPED
            assert len(snapshots) >= 2
            events = [json.loads(line).get("event") for line in output.getvalue().splitlines()]
            assert "handshake_completed" in events
        finally:
            await app.shutdown()

        assert len(app.registry) == 0

    @pytest.mark.asyncio
    async def test_yaml_servers_are_overridden_by_files(self, tmp_path, mock_server_path):
        lens_yaml = tmp_path / "lens.yaml"
        lens_yaml.write_text(
            "runtime:\n"
            "  stop_timeout: 2\n"
            "servers:\n"
            "  mock:\n"
            "    command: /nonexistent/server\n"
        )
        mcp_json = tmp_path / "mcp.json"
        mcp_json.write_text(
            json.dumps(
                {"servers": {"mock": {"command": sys.executable, "args": [str(mock_server_path)]}}}
            )
        )
        app = LensApplication(
            config_path=lens_yaml, server_files=[mcp_json], log_output=io.StringIO()
        )

        try:
            result = await app.refresh()
            assert result["mock"].status == ServerStatus.RUNNING
        finally:
            await app.shutdown()
