"""
Configuration management for roomlog.

Handles loading and merging configuration from:
- Built-in defaults
- Default configuration file
- User configuration file
- Environment variables
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "storage": {
        "data_dir": "./data",
        "identity_dir": "./.mcp-identities",
    },
    "retention": {
        "max_entries": None,
    },
    "lock": {
        "retries": 10,
        "min_timeout_ms": 100,
        "max_timeout_ms": 2000,
        "factor": 2,
        "stale_ms": 10000,
    },
    "logging": {
        "level": "INFO",
        "format": "json",
    },
}


class Config:
    """Configuration manager for roomlog."""

    def __init__(
        self,
        config_file: Optional[str] = None,
        environ: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file. If None, only the
                default file and environment are used.
            environ: Environment mapping (defaults to os.environ)
        """
        self._config: Dict[str, Any] = {}
        self._environ = os.environ if environ is None else environ
        self._merge_config(DEFAULTS)
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        """Load default configuration."""
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f)
            if file_config:
                self._merge_config(file_config)

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """
        Deep merge new configuration into existing configuration.

        Args:
            new_config: Configuration dictionary to merge
        """
        self._config = self._deep_merge(self._config, new_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if data_dir := self._environ.get("ROOMLOG_DATA_DIR"):
            self.set("storage.data_dir", data_dir)

        if identity_dir := self._environ.get("ROOMLOG_IDENTITY_DIR"):
            self.set("storage.identity_dir", identity_dir)

        # Kept raw; the retention module validates and clamps it.
        if retention := self._environ.get("MCP_MESSAGE_RETENTION_LIMIT"):
            self.set("retention.max_entries", retention)

        if stale_ms := self._environ.get("ROOMLOG_LOCK_STALE_MS"):
            self.set("lock.stale_ms", stale_ms)

        if log_level := self._environ.get("ROOMLOG_LOG_LEVEL"):
            self.set("logging.level", log_level)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "lock.stale_ms")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Get entire configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return self._config.copy()


# Global configuration instance
_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Optional configuration file path

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
