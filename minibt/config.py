"""Configuration management for minibt.

Provides centralized configuration with TOML support, validation and
hierarchical loading from defaults -> config file -> environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml
from pydantic import ValidationError as PydanticValidationError

from minibt.exceptions import ConfigurationError
from minibt.logging_config import setup_logging
from minibt.models import Config

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "minibt.toml"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    # Network
    "MINIBT_LISTEN_PORT": "network.listen_port",
    "MINIBT_CONNECTION_TIMEOUT": "network.connection_timeout",
    "MINIBT_TRACKER_TIMEOUT": "network.tracker_timeout",
    "MINIBT_BLOCK_SIZE": "network.block_size",
    "MINIBT_MAX_MESSAGE_LENGTH": "network.max_message_length",
    "MINIBT_VERIFY_INFO_HASH": "network.verify_info_hash",
    "MINIBT_STRICT_BLOCK_CORRELATION": "network.strict_block_correlation",
    "MINIBT_PEER_ID_PREFIX": "network.peer_id_prefix",
    # Observability
    "MINIBT_LOG_LEVEL": "observability.log_level",
    "MINIBT_LOG_FILE": "observability.log_file",
    "MINIBT_STRUCTURED_LOGGING": "observability.structured_logging",
    "MINIBT_LOG_CORRELATION_ID": "observability.log_correlation_id",
}

# Global configuration instance
_config_manager: ConfigManager | None = None


def _parse_env_value(raw: str) -> bool | int | float | str:
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


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for minibt.toml

        Raises:
            ConfigurationError: If the file is unreadable or values are invalid

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()

    def _find_config_file(self, config_file: str | Path | None) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / CONFIG_FILE_NAME,
            Path.home() / ".config" / "minibt" / CONFIG_FILE_NAME,
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            if not self.config_file.exists():
                msg = f"Config file not found: {self.config_file}"
                raise ConfigurationError(msg)
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return Config(**config_data)
        except PydanticValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}
        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw))
        return env_config

    def _merge_config(
        self, base: dict[str, Any], override: dict[str, Any]
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

    def setup_logging(self) -> None:
        """Apply the observability section to the logging system."""
        setup_logging(self.config.observability)


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

    _config_manager.config = _config_manager._load_config()
    logger.debug("Configuration reloaded from %s", _config_manager.config_file)
    return _config_manager.config


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager.__new__(ConfigManager)
        _config_manager.config_file = None
    _config_manager.config = new_config


def reset_config() -> None:
    """Forget the global configuration so the next lookup reloads it."""
    global _config_manager
    _config_manager = None
