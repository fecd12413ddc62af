"""
Configuration loading and validation for the tablestore package.

Loads a YAML configuration file with sensible defaults and supports
environment variable overrides.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_FILENAME = "tablestore.yaml"

# Default configuration values (fallback if file not found)
DEFAULT_CONFIG = {
    "storage": {
        "root": "tables",
        "log_dir_name": "_log",
        "version_width": 20,
    },
    "writer": {
        "compression": "snappy",
        "auto_create": True,
        "enforce_table_schema": True,
        "engine_info": "tablestore",
    },
    "operations": {
        "timeout_seconds": None,
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}

VALID_COMPRESSIONS = {"snappy", "gzip", "brotli", "zstd", "lz4", "none"}

# Environment variable -> config key path
ENV_OVERRIDES = {
    "TABLESTORE_ROOT": ("storage", "root"),
    "TABLESTORE_COMPRESSION": ("writer", "compression"),
    "TABLESTORE_LOG_LEVEL": ("logging", "level"),
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load a YAML file and return its contents as a dictionary.

    Args:
        file_path: Path to YAML file

    Returns:
        Dictionary with YAML contents

    Raises:
        FileNotFoundError: If file doesn't exist
        yaml.YAMLError: If file is not valid YAML
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config if config is not None else {}


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply TABLESTORE_* environment variables on top of a configuration."""
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            config.setdefault(section, {})[key] = value
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration values.

    Raises:
        ValueError: If a value is out of range or of the wrong kind
    """
    compression = str(config["writer"]["compression"]).lower()
    if compression not in VALID_COMPRESSIONS:
        raise ValueError(
            f"Invalid compression: {compression}. Must be one of {sorted(VALID_COMPRESSIONS)}"
        )

    width = config["storage"]["version_width"]
    if not isinstance(width, int) or width < 1:
        raise ValueError(f"storage.version_width must be a positive integer, got {width!r}")

    log_dir_name = config["storage"]["log_dir_name"]
    if not log_dir_name or "/" in log_dir_name:
        raise ValueError(f"storage.log_dir_name must be a plain directory name, got {log_dir_name!r}")

    timeout = config["operations"]["timeout_seconds"]
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ValueError(f"operations.timeout_seconds must be positive or null, got {timeout!r}")


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Load configuration from YAML file with fallback to defaults.

    Precedence (lowest to highest): defaults, YAML file, environment
    variables, explicit overrides.

    Args:
        config_path: Path to YAML config file (default: ./tablestore.yaml)
        overrides: Optional dictionary of configuration overrides

    Returns:
        Configuration dictionary

    Example:
        >>> config = load_config(Path("tablestore.yaml"))
        >>> config["writer"]["compression"]
        'snappy'
    """
    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_FILENAME)
    else:
        config_path = Path(config_path)

    try:
        user_config = load_yaml_file(config_path)
        config = deep_merge(copy.deepcopy(DEFAULT_CONFIG), user_config)
    except FileNotFoundError:
        config = copy.deepcopy(DEFAULT_CONFIG)

    config = apply_env_overrides(config)

    if overrides:
        config = deep_merge(config, overrides)

    validate_config(config)
    return config


class Config:
    """
    Configuration manager for tablestore.

    Provides convenient access to all configuration sections.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to YAML config file (default: ./tablestore.yaml)
            overrides: Optional dictionary of configuration overrides
        """
        self.config_path = Path(config_path) if config_path else Path(DEFAULT_CONFIG_FILENAME)
        self.overrides = overrides or {}
        self._config: Optional[Dict[str, Any]] = None

    @property
    def data(self) -> Dict[str, Any]:
        """Get full configuration (lazy load)."""
        if self._config is None:
            self._config = load_config(self.config_path, self.overrides)
        return self._config

    @property
    def storage(self) -> Dict[str, Any]:
        return self.data["storage"]

    @property
    def writer(self) -> Dict[str, Any]:
        return self.data["writer"]

    @property
    def operations(self) -> Dict[str, Any]:
        return self.data["operations"]

    @property
    def logging(self) -> Dict[str, Any]:
        return self.data["logging"]

    @property
    def log_dir_name(self) -> str:
        return self.storage["log_dir_name"]

    @property
    def version_width(self) -> int:
        return self.storage["version_width"]

    @property
    def compression(self) -> str:
        return str(self.writer["compression"]).lower()

    @property
    def timeout_seconds(self) -> Optional[float]:
        return self.operations["timeout_seconds"]

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._config = None

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a nested configuration value by key path.

        Args:
            *keys: Keys to traverse (e.g., "writer", "compression")
            default: Default value if key path not found

        Returns:
            Configuration value or default

        Example:
            >>> config = Config()
            >>> config.get("storage", "log_dir_name")
            '_log'
        """
        value = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value
