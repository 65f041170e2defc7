"""
Configuration loading.

Layers, lowest precedence first: built-in defaults, an optional YAML file,
environment variables, explicit overrides (command-line options).
"""

from __future__ import annotations

import copy
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from volume_syncer.exceptions import ConfigurationError
from volume_syncer.utils.durations import parse_duration
from volume_syncer.utils.logging import LOG_FORMATS

CONFIG_ENV_VAR = "VOLUME_SYNCER_CONFIG"

DEFAULTS: dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 8080, "shutdown_grace": "30s"},
    "sync": {"default_timeout": "5m"},
    "logging": {"level": "INFO", "format": "text", "file": None},
}

# env var -> dotted config key
ENV_OVERRIDES = {
    "HOST": "server.host",
    "PORT": "server.port",
    "SHUTDOWN_GRACE": "server.shutdown_grace",
    "SYNC_TIMEOUT": "sync.default_timeout",
    "LOG_LEVEL": "logging.level",
    "LOG_FORMAT": "logging.format",
    "LOG_FILE": "logging.file",
}

_PLACEHOLDER = re.compile(r"\${([^}]+)}")


class Config:
    """volume-syncer configuration container with dotted access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        value = self.get(key)
        if value is None:
            raise KeyError(f"Config key '{key}' not found")
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    @property
    def host(self) -> str:
        return str(self.get("server.host"))

    @property
    def port(self) -> int:
        return self.get("server.port")

    @property
    def shutdown_grace(self) -> float:
        """Seconds to wait for a running sync on shutdown."""
        return self.get("server.shutdown_grace")

    @property
    def default_timeout(self) -> float:
        """Seconds allowed for a sync when the request sets no timeout."""
        return self.get("sync.default_timeout")

    @property
    def log_level(self) -> str:
        return self.get("logging.level")

    @property
    def log_format(self) -> str:
        return self.get("logging.format")

    @property
    def log_file(self) -> str | None:
        return self.get("logging.file")

    def validate(self) -> None:
        """Validate and normalize values in place.

        Raises:
            ConfigurationError: If any value is out of range or unparseable
        """
        errors = []

        port = self.get("server.port")
        try:
            port = int(port)
            if not 0 < port < 65536:
                raise ValueError
            self.data["server"]["port"] = port
        except (TypeError, ValueError):
            errors.append(f"server.port must be an integer between 1 and 65535, got {port!r}")

        for key in ("server.shutdown_grace", "sync.default_timeout"):
            section, name = key.split(".")
            raw = self.get(key)
            try:
                seconds = parse_duration(raw)
            except ValueError as e:
                errors.append(f"{key}: {e}")
                continue
            if key == "sync.default_timeout" and seconds <= 0:
                errors.append(f"{key} must be positive, got {raw!r}")
                continue
            self.data[section][name] = seconds

        level = str(self.get("logging.level", "")).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"logging.level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, got {level!r}")
        else:
            self.data["logging"]["level"] = level

        fmt = str(self.get("logging.format", "")).lower()
        if fmt not in LOG_FORMATS:
            errors.append(f"logging.format must be one of {', '.join(LOG_FORMATS)}, got {fmt!r}")
        else:
            self.data["logging"]["format"] = fmt

        if errors:
            raise ConfigurationError("\n".join(errors), details={"errors": errors})


def load_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Config:
    """
    Load volume-syncer configuration.

    Args:
        config_path: Optional YAML file (default: ``$VOLUME_SYNCER_CONFIG`` if set)
        environ: Environment mapping (default: ``os.environ``)
        overrides: Dotted keys set last, e.g. from command-line options; None values are ignored

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    environ = os.environ if environ is None else environ
    config_data = copy.deepcopy(DEFAULTS)

    if config_path is None and environ.get(CONFIG_ENV_VAR):
        config_path = environ[CONFIG_ENV_VAR]

    if config_path is not None:
        file_data = _load_yaml(Path(config_path))
        _merge_dict(config_data, _resolve_value(file_data, environ))

    for var, key in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is not None and value != "":
            section, name = key.split(".")
            config_data[section][name] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            section, name = key.split(".")
            config_data[section][name] = value

    config = Config(config_data)
    config.validate()
    return config


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        raise ConfigurationError(f"Error parsing {path}{where}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")
    return data


def _merge_dict(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value


def _resolve_value(value: Any, environ: Mapping[str, str]) -> Any:
    """Recursively substitute ``${VAR}`` placeholders; unknown vars are left as-is."""
    if isinstance(value, dict):
        return {k: _resolve_value(v, environ) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_value(item, environ) for item in value]
    elif isinstance(value, str):
        return _PLACEHOLDER.sub(lambda m: environ.get(m.group(1), m.group(0)), value)
    else:
        return value
