"""Unit tests for ConfigLoader."""

import os
from unittest.mock import MagicMock, patch

import pytest

from lens_core.config import ConfigLoader, parse_config_text, server_from_mapping
from lens_core.errors import LensError
from lens_core.types import LogFormat, LogLevel, MCPTransport


class TestParseConfigText:
    """Tests for parse_config_text."""

    def test_jsonc_with_comments(self):
        """JSONC files may carry line and block comments."""
        text = """
        {
            // global servers
            "servers": {
                /* the github one */
                "github": {"command": "npx", "args": ["-y", "http://example.com/x"]}
            }
        }
        """
        data = parse_config_text(text, ".json")

        assert data["servers"]["github"]["args"] == ["-y", "http://example.com/x"]

    def test_yaml(self):
        data = parse_config_text("servers:\n  fs:\n    command: mcp-fs\n", ".yaml")
        assert data == {"servers": {"fs": {"command": "mcp-fs"}}}

    def test_empty_text_is_empty_mapping(self):
        assert parse_config_text("", ".json") == {}
        assert parse_config_text("", ".yaml") == {}

    def test_invalid_json_raises(self):
        with pytest.raises(LensError) as exc_info:
            parse_config_text('{"servers": ', ".json")
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_non_mapping_root_raises(self):
        with pytest.raises(LensError):
            parse_config_text("- a\n- b\n", ".yaml")


class TestServerFromMapping:
    """Tests for server_from_mapping."""

    def test_full_entry(self):
        server = server_from_mapping(
            "github",
            {
                "type": "stdio",
                "command": "npx",
                "args": ["-y", "server-github"],
                "env": {"TOKEN": "abc", "DEBUG": 1},
                "envFile": ".env",
            },
        )

        assert server.name == "github"
        assert server.args == ("-y", "server-github")
        assert server.env == {"TOKEN": "abc", "DEBUG": "1"}
        assert server.env_file == ".env"
        assert server.command_line == "npx -y server-github"
        assert server.transport == MCPTransport.STDIO

    def test_transport_aliases(self):
        assert server_from_mapping("a", {"type": "sse", "url": "u"}).transport == MCPTransport.SSE
        assert (
            server_from_mapping("b", {"type": "streamable-http"}).transport == MCPTransport.HTTP
        )

    def test_unknown_transport_rejected(self):
        with pytest.raises(LensError) as exc_info:
            server_from_mapping("a", {"type": "carrier-pigeon"})
        assert "carrier-pigeon" in exc_info.value.detail

    def test_args_must_be_list(self):
        with pytest.raises(LensError):
            server_from_mapping("a", {"command": "x", "args": "--flag"})


class TestConfigLoader:
    """Tests for loading files and dictionaries."""

    def test_load_defaults_when_missing(self, tmp_path):
        """A missing file falls back to defaults."""
        config = ConfigLoader().load(tmp_path / "absent.yaml")

        assert config.servers == {}
        assert config.runtime.request_timeout == 10.0

    def test_missing_file_without_defaults_raises(self, tmp_path):
        with pytest.raises(LensError):
            ConfigLoader().load(tmp_path / "absent.yaml", use_defaults=False)

    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "lens.yaml"
        path.write_text(
            "runtime:\n"
            "  request_timeout: 3\n"
            "  keep_connected: false\n"
            "logging:\n"
            "  level: debug\n"
            "  format: json\n"
            "servers:\n"
            "  fs:\n"
            "    command: mcp-fs\n"
        )

        config = ConfigLoader().load(path)

        assert config.runtime.request_timeout == 3
        assert config.runtime.keep_connected is False
        assert config.logging.level == LogLevel.DEBUG
        assert config.logging.format == LogFormat.JSON
        assert config.servers["fs"].command == "mcp-fs"

    def test_yaml_env_vars_are_strict(self, tmp_path):
        """YAML files fail on unresolved required variables."""
        path = tmp_path / "lens.yaml"
        path.write_text("servers:\n  a:\n    command: ${LENS_TEST_MISSING_VAR}\n")

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(LensError):
                ConfigLoader().load(path)

    def test_json_env_vars_are_lenient(self, tmp_path):
        """JSON files keep editor placeholders they cannot resolve."""
        path = tmp_path / "mcp.json"
        path.write_text(
            '{"servers": {"a": {"command": "run", '
            '"args": ["${workspaceFolder}", "${LENS_TEST_SET_VAR}"]}}}'
        )

        with patch.dict(os.environ, {"LENS_TEST_SET_VAR": "yes"}, clear=True):
            data = ConfigLoader().read_file(path)

        assert data["servers"]["a"]["args"] == ["${workspaceFolder}", "yes"]

    def test_invalid_config_lists_errors(self):
        """Validation failures are reported together."""
        with pytest.raises(LensError) as exc_info:
            ConfigLoader().load_from_dict(
                {
                    "servers": {"a": {"args": []}, "b": {"command": "x", "env": []}},
                    "runtime": {"request_timeout": -1},
                }
            )

        detail = exc_info.value.detail
        assert "servers.a.command" in detail
        assert "servers.b.env" in detail
        assert "request_timeout" in detail

    def test_unknown_keys_logged_as_warnings(self):
        logger = MagicMock()
        ConfigLoader(logger).load_from_dict({"mystery": 1})

        messages = [call.args[2] for call in logger._log.call_args_list]
        assert any("mystery" in message for message in messages)

    def test_get_before_load_raises(self):
        with pytest.raises(LensError):
            ConfigLoader().get()

    def test_reload_notifies_callbacks(self, tmp_path):
        path = tmp_path / "lens.yaml"
        path.write_text("servers:\n  a:\n    command: one\n")
        loader = ConfigLoader()
        loader.load(path)
        seen = []
        loader.on_change(seen.append)

        path.write_text("servers:\n  a:\n    command: two\n")
        config = loader.reload()

        assert config.servers["a"].command == "two"
        assert seen == [config]
        assert loader.get() is config

    def test_reload_without_path_raises(self):
        loader = ConfigLoader()
        loader.load_defaults()

        with pytest.raises(LensError):
            loader.reload()

    def test_config_path_from_env(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("servers:\n  a:\n    command: x\n")

        with patch.dict(os.environ, {"LENS_CONFIG_PATH": str(path)}):
            config = ConfigLoader().load()

        assert "a" in config.servers
