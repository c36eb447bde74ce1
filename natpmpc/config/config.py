"""Configuration management for natpmpc.

Configuration is loaded hierarchically: defaults -> TOML file ->
environment -> CLI options (applied by the caller).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from natpmpc.exceptions import ConfigurationError
from natpmpc.models import Config

# Global configuration instance
_config_manager: ConfigManager | None = None

ENV_MAPPINGS: dict[str, str] = {
    # Client
    "NATPMPC_GATEWAY": "client.gateway",
    "NATPMPC_TIMEOUT": "client.timeout",
    "NATPMPC_MAX_ATTEMPTS": "client.max_attempts",
    "NATPMPC_RETRY_BACKOFF": "client.retry_backoff",
    "NATPMPC_RETRY_BASE_DELAY": "client.retry_base_delay",
    "NATPMPC_RETRY_MAX_DELAY": "client.retry_max_delay",
    "NATPMPC_MAPPING_LIFETIME": "client.mapping_lifetime",
    # Observability
    "NATPMPC_LOG_LEVEL": "observability.log_level",
    "NATPMPC_LOG_FILE": "observability.log_file",
    "NATPMPC_STRUCTURED_LOGGING": "observability.structured_logging",
    "NATPMPC_LOG_CORRELATION_ID": "observability.log_correlation_id",
}

# Values kept as strings even when they look numeric
_STRING_PATHS = {"client.gateway", "observability.log_file"}


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for natpmpc.toml

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations.

        Raises:
            ConfigurationError: If an explicitly given file does not exist

        """
        if config_file:
            path = Path(config_file)
            if not path.is_file():
                msg = f"Configuration file not found: {path}"
                raise ConfigurationError(msg)
            return path

        search_paths = [
            Path.cwd() / "natpmpc.toml",
            Path.home() / ".config" / "natpmpc" / "natpmpc.toml",
            Path.home() / ".natpmpc.toml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                logging.warning(
                    "Failed to load config file %s: %s", self.config_file, e
                )

        env_config = self._get_env_config()
        config_data = self._merge_config(config_data, env_config)

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        def _parse_env_value(raw: str, path: str) -> bool | int | float | str:
            if path in _STRING_PATHS:
                return raw
            if path == "observability.log_level":
                return raw.upper()
            low = raw.lower()
            if low in {"true", "yes", "on"}:
                return True
            if low in {"false", "no", "off"}:
                return False
            try:
                if "." in raw:
                    return float(raw)
                return int(raw)
            except ValueError:
                return raw

        def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
            parts = path.split(".")
            cur = d
            for p in parts[:-1]:
                cur = cur.setdefault(p, {})
            cur[parts[-1]] = value

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def export(self) -> str:
        """Export current configuration as TOML."""
        data = self.config.model_dump(mode="json", exclude_none=True)
        return toml.dumps(data)


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def reload_config() -> Config:
    """Reload configuration from file."""
    if _config_manager is None:
        msg = "Configuration not initialized"
        raise ConfigurationError(msg)

    _config_manager.config = _config_manager._load_config()  # noqa: SLF001
    return _config_manager.config


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None)
    _config_manager.config = new_config
