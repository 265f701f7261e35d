"""Lens configuration loader."""

import json
import os
import re
import typing
from collections.abc import Callable, Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from lens_core.errors import create_error
from lens_core.types import LogLevel, MCPTransport, ValidationIssue, ValidationResult

from .models import LensConfig, LoggingConfig, RuntimeConfig, ServerConfig

_TRANSPORT_ALIASES = {
    "stdio": MCPTransport.STDIO,
    "http": MCPTransport.HTTP,
    "streamable-http": MCPTransport.HTTP,
    "sse": MCPTransport.SSE,
}


def resolve_env_vars(value: str, strict: bool = True) -> str:
    """Resolve environment variable references in string.

    Supports:
    - ${VAR} - Required, error if not set
    - ${VAR:-default} - With default value
    - ${VAR:?error message} - Required with custom error

    Args:
        value: String with potential env var references
        strict: If False, unresolvable references are left untouched
            (editor placeholders such as ${workspaceFolder})

    Returns:
        String with env vars resolved

    Raises:
        LensError: If a required var is not set and strict is True
    """
    # Pattern: ${VAR}, ${VAR:-default}, ${VAR:?error}
    pattern = r"\$\{([^}:]+)(?::([?-])([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        operator = match.group(2)  # '-' or '?' or None
        operand = match.group(3)  # default value or error message

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value

        if operator == "-":
            return operand or ""
        if not strict:
            return match.group(0)
        if operator == "?":
            error_msg = operand or f"Required environment variable {var_name} not set"
            raise create_error("CONFIG_INVALID", detail=error_msg)
        raise create_error(
            "CONFIG_INVALID",
            detail=f"Required environment variable {var_name} not set",
        )

    return re.sub(pattern, replacer, value)


def strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments that sit outside string literals (JSONC)."""
    out: list[str] = []
    i = 0
    length = len(text)
    in_string = False

    while i < length:
        char = text[i]
        if in_string:
            out.append(char)
            if char == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if char == '"':
                in_string = False
            i += 1
            continue

        if char == '"':
            in_string = True
            out.append(char)
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = length if newline == -1 else newline
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
        else:
            out.append(char)
            i += 1

    return "".join(out)


def _resolve_env_vars_recursive(data: Any, strict: bool = True) -> Any:
    """Recursively resolve env vars in data structure."""
    if isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v, strict) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item, strict) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data, strict)
    else:
        return data


def parse_config_text(text: str, suffix: str = ".yaml") -> dict[str, Any]:
    """Parse configuration text as JSON/JSONC (``.json``) or YAML.

    Raises:
        LensError(CONFIG_INVALID): If the text cannot be parsed
    """
    try:
        if suffix.lower() in (".json", ".jsonc"):
            data = json.loads(strip_json_comments(text)) if text.strip() else {}
        else:
            data = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise create_error("CONFIG_INVALID", detail=f"Invalid configuration syntax: {e}") from e

    if not isinstance(data, dict):
        raise create_error("CONFIG_INVALID", detail="Configuration root must be a mapping")
    return data


def server_from_mapping(name: str, entry: Mapping[str, Any]) -> ServerConfig:
    """Build a ServerConfig from one ``servers`` entry.

    Raises:
        LensError(CONFIG_INVALID): If a field has the wrong shape
    """
    transport_name = str(entry.get("type", entry.get("transport", "stdio"))).lower()
    transport = _TRANSPORT_ALIASES.get(transport_name)
    if transport is None:
        raise create_error(
            "CONFIG_INVALID",
            detail=f"Server '{name}' has unknown type '{transport_name}'",
        )

    args = entry.get("args") or []
    if not isinstance(args, list):
        raise create_error("CONFIG_INVALID", detail=f"Server '{name}': args must be a list")

    env = entry.get("env") or {}
    if not isinstance(env, dict):
        raise create_error("CONFIG_INVALID", detail=f"Server '{name}': env must be a mapping")

    return ServerConfig(
        name=name,
        command=str(entry.get("command") or ""),
        args=tuple(str(arg) for arg in args),
        env={str(k): str(v) for k, v in env.items()},
        transport=transport,
        disabled=bool(entry.get("disabled", False)),
        url=entry.get("url"),
        env_file=entry.get("envFile", entry.get("env_file")),
    )


def servers_from_mapping(servers: Mapping[str, Any]) -> dict[str, ServerConfig]:
    """Build ServerConfigs from a ``servers`` mapping (the mcp.json shape), keeping order."""
    result: dict[str, ServerConfig] = {}
    for name, entry in servers.items():
        if not isinstance(entry, Mapping):
            raise create_error("CONFIG_INVALID", detail=f"Server '{name}' must be a mapping")
        result[name] = server_from_mapping(name, entry)
    return result


class ConfigLoader:
    """Load and validate Lens configuration."""

    def __init__(self, logger: Any = None):
        """Initialize config loader.

        Args:
            logger: Optional LensLogger instance
        """
        self._config: LensConfig | None = None
        self._config_path: Path | None = None
        self._logger = logger
        self._change_callbacks: list[Callable[[LensConfig], None]] = []

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger:
            self._logger._log(level, "config", message)

    def load(self, path: str | Path | None = None, use_defaults: bool = True) -> LensConfig:
        """Load configuration from file.

        Resolution order if path not specified:
        1. LENS_CONFIG_PATH environment variable
        2. ./lens.yaml
        3. ~/.lens/config.yaml
        4. If use_defaults=True and no file found, use default configuration

        Args:
            path: Optional path to config file (YAML, JSON or JSONC)
            use_defaults: If True, use default config when no file found

        Returns:
            Loaded LensConfig instance

        Raises:
            LensError: If file not found (when use_defaults=False) or invalid
        """
        if path is None:
            path = self._resolve_config_path()

        config_path = Path(path)

        if not config_path.exists():
            if use_defaults:
                self._log(LogLevel.INFO, "No config file found, using default configuration")
                return self.load_defaults()
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Configuration file not found: {config_path}",
            )

        data = self.read_file(config_path)
        return self.load_from_dict(data, config_path)

    def read_file(self, config_path: Path) -> dict[str, Any]:
        """Read and parse one configuration file with env vars resolved.

        JSON files follow editor conventions, so unresolvable ${...}
        placeholders are kept as written instead of failing.
        """
        try:
            text = config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Cannot read configuration file {config_path}: {e}",
            ) from e

        data = parse_config_text(text, config_path.suffix)
        strict = config_path.suffix.lower() not in (".json", ".jsonc")
        return _resolve_env_vars_recursive(data, strict)

    def load_defaults(self) -> LensConfig:
        """Load default configuration without a file."""
        return self.load_from_dict({})

    def load_from_dict(self, data: dict[str, Any], config_path: Path | None = None) -> LensConfig:
        """Load configuration from dictionary.

        Args:
            data: Configuration dictionary
            config_path: Optional path to config file (for tracking)

        Returns:
            Loaded LensConfig instance

        Raises:
            LensError: If configuration is invalid
        """
        validation = self.validate(data)
        for warning in validation.warnings:
            self._log(LogLevel.WARN, warning.message)
        if not validation.valid:
            error_messages = [f"- {issue.message}" for issue in validation.errors]
            raise create_error(
                "CONFIG_INVALID",
                detail="Configuration validation failed:\n" + "\n".join(error_messages),
            )

        try:
            config = self._dict_to_config(data)
        except (TypeError, ValueError) as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Failed to parse configuration: {e}",
            ) from e

        self._config = config
        self._config_path = config_path

        self._log(LogLevel.INFO, f"Configuration loaded ({len(config.servers)} servers)")

        return config

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """Validate config data without loading.

        Args:
            data: Configuration dictionary

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        valid_keys = {"runtime", "logging", "servers", "inputs", "commands"}

        for key in data:
            if key not in valid_keys:
                warnings.append(
                    ValidationIssue(
                        path=key,
                        message=f"Unknown configuration key: {key}",
                        severity="warning",
                    )
                )

        servers = data.get("servers", {})
        if not isinstance(servers, dict):
            errors.append(
                ValidationIssue(path="servers", message="servers must be a dictionary")
            )
        else:
            for name, entry in servers.items():
                path = f"servers.{name}"
                if not isinstance(entry, dict):
                    errors.append(ValidationIssue(path=path, message=f"{path} must be a dictionary"))
                    continue
                transport = str(entry.get("type", entry.get("transport", "stdio"))).lower()
                if transport not in _TRANSPORT_ALIASES:
                    errors.append(
                        ValidationIssue(
                            path=f"{path}.type",
                            message=f"{path}.type '{transport}' is not a known transport",
                        )
                    )
                elif transport == "stdio" and not entry.get("command"):
                    errors.append(
                        ValidationIssue(
                            path=f"{path}.command",
                            message=f"{path}.command is required for stdio servers",
                        )
                    )
                if "args" in entry and not isinstance(entry["args"], list):
                    errors.append(
                        ValidationIssue(path=f"{path}.args", message=f"{path}.args must be a list")
                    )
                if "env" in entry and not isinstance(entry["env"], dict):
                    errors.append(
                        ValidationIssue(
                            path=f"{path}.env", message=f"{path}.env must be a dictionary"
                        )
                    )

        runtime = data.get("runtime", {})
        if isinstance(runtime, dict):
            for timeout_key in ["request_timeout", "restart_delay", "stop_timeout"]:
                if timeout_key in runtime:
                    value = runtime[timeout_key]
                    if (
                        isinstance(value, bool)
                        or not isinstance(value, (int, float))
                        or value < 0
                    ):
                        errors.append(
                            ValidationIssue(
                                path=f"runtime.{timeout_key}",
                                message=f"{timeout_key} must be a non-negative number",
                            )
                        )
        else:
            errors.append(ValidationIssue(path="runtime", message="runtime must be a dictionary"))

        return ValidationResult(valid=len(errors) == 0, errors=errors, warnings=warnings)

    def get(self) -> LensConfig:
        """Get current configuration.

        Raises:
            LensError: If configuration not loaded
        """
        if self._config is None:
            raise create_error("CONFIG_INVALID", detail="Configuration not loaded")
        return self._config

    def reload(self) -> LensConfig:
        """Reload configuration from file and notify registered callbacks.

        Raises:
            LensError: If no config path set or reload fails
        """
        if self._config_path is None:
            raise create_error("CONFIG_INVALID", detail="No config path set, cannot reload")

        new_config = self.load(self._config_path)

        for callback in self._change_callbacks:
            try:
                callback(new_config)
            except Exception as e:
                self._log(LogLevel.ERROR, f"Config change callback failed: {e}")

        return new_config

    def on_change(self, callback: Callable[[LensConfig], None]) -> None:
        """Register callback for config changes."""
        self._change_callbacks.append(callback)

    def _resolve_config_path(self) -> Path:
        """Resolve config file path using resolution order."""
        env_path = os.environ.get("LENS_CONFIG_PATH")
        if env_path:
            return Path(env_path)

        local_path = Path("lens.yaml")
        if local_path.exists():
            return local_path

        home_path = Path.home() / ".lens" / "config.yaml"
        if home_path.exists():
            return home_path

        # Not found - use local path as default
        return local_path

    def _dict_to_config(self, data: dict[str, Any]) -> LensConfig:
        """Convert dictionary to LensConfig."""
        return LensConfig(
            runtime=self._convert_field(RuntimeConfig, data.get("runtime") or {}),
            logging=self._convert_field(LoggingConfig, data.get("logging") or {}),
            servers=servers_from_mapping(data.get("servers") or {}),
        )

    def _convert_field(self, field_type: Any, value: Any) -> Any:
        """Convert field value to appropriate type.

        Args:
            field_type: Expected field type
            value: Value to convert

        Returns:
            Converted value
        """
        if value is None:
            return None

        origin = typing.get_origin(field_type)

        if origin is dict:
            if not isinstance(value, dict):
                return value
            args = typing.get_args(field_type)
            if args and len(args) == 2:
                value_type = args[1]
                return {k: self._convert_field(value_type, v) for k, v in value.items()}
            return value

        if hasattr(field_type, "__dataclass_fields__"):
            if isinstance(value, dict):
                kwargs = {}
                for f in fields(field_type):
                    if f.name in value:
                        kwargs[f.name] = self._convert_field(f.type, value[f.name])
                return field_type(**kwargs)
            return value

        # Enums (LogLevel, LogFormat)
        if hasattr(field_type, "__mro__") and any(
            base.__name__ == "Enum" for base in field_type.__mro__
        ):
            if isinstance(value, str):
                return field_type(value if field_type is not LogLevel else value.upper())
            return value

        return value


# Convenience singleton
_default_loader: ConfigLoader | None = None


def get_config_loader() -> ConfigLoader:
    """Get default config loader singleton."""
    global _default_loader  # noqa: PLW0603
    if _default_loader is None:
        _default_loader = ConfigLoader()
    return _default_loader


def load_config(path: str | Path | None = None) -> LensConfig:
    """Convenience function to load config.

    Args:
        path: Optional path to config file

    Returns:
        Loaded LensConfig instance
    """
    return get_config_loader().load(path)
