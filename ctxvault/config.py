"""
Configuration management for ctxvault.

Provides default configuration, loading from ``config.toml`` and a small set
of environment variable overrides.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for older Python versions

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


def default_home() -> Path:
    """Directory holding the config file and the default database."""
    return Path(os.environ.get("CTXVAULT_HOME", Path.home() / ".ctxvault"))


DEFAULT_CONFIG = {
    "indexer": {
        # Appended to the built-in exclude set for every run
        "extra_exclude": [],
        "max_file_size": 1048576,  # 1MB of decoded text
        "max_chunk_size": 2000,    # characters
        "log_every": 10,
    },
    "embeddings": {
        "model": "all-MiniLM-L6-v2",
        "dimension": 384,
        "device": None,
    },
    "search": {
        "default_top_k": 3,
    },
    "jobs": {
        "max_logs": 50,
        "retention_seconds": 24 * 60 * 60,
        "cleanup_interval_seconds": 60 * 60,
        "serialize_per_project": True,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 3000,
    },
    "storage": {
        "db_path": None,  # resolved to <home>/data.lance
    },
    "mcp": {
        "default_project_id": None,
        "default_directory_path": None,
        "default_top_k": 5,
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "json": False,
    },
}

# Environment variable -> config keys
ENV_OVERRIDES = {
    "CTXVAULT_DB_PATH": ("storage", "db_path"),
    "CTXVAULT_EMBEDDING_MODEL": ("embeddings", "model"),
    "CTXVAULT_HOST": ("server", "host"),
    "CTXVAULT_PORT": ("server", "port"),
    "CTXVAULT_LOG_LEVEL": ("logging", "level"),
    "DEFAULT_PROJECT_ID": ("mcp", "default_project_id"),
    "DEFAULT_DIRECTORY_PATH": ("mcp", "default_directory_path"),
}


class Config:
    """
    Configuration manager for ctxvault.

    Loads configuration from ``config.toml`` if it exists, otherwise uses
    defaults. Environment variables listed in ``ENV_OVERRIDES`` win over both.
    """

    def __init__(self, config_path: Optional[Path] = None, use_env: bool = True):
        """
        Initialize configuration.

        Args:
            config_path: Path to a TOML config file (defaults to <home>/config.toml)
            use_env: Apply environment variable overrides
        """
        self.home = default_home()
        self.config_path = Path(config_path) if config_path else self.home / "config.toml"
        self._config = self._load_config()
        if use_env:
            self._apply_env()

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file or use defaults."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    user_config = tomllib.load(f)
                logger.info(f"Loaded config from {self.config_path}")
                return self._merge_configs(DEFAULT_CONFIG, user_config)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                logger.warning("Using default configuration")
                return copy.deepcopy(DEFAULT_CONFIG)
        else:
            logger.debug("No config file found, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)

    def _merge_configs(self, default: dict, user: dict) -> dict:
        """
        Recursively merge user config with defaults.

        User values take precedence, but missing keys use defaults.
        """
        merged = copy.deepcopy(default)
        for key, value in user.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_configs(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _apply_env(self) -> None:
        for var, keys in ENV_OVERRIDES.items():
            value = os.environ.get(var)
            if value:
                if keys == ("server", "port"):
                    try:
                        value = int(value)
                    except ValueError as e:
                        raise ConfigError(f"{var} must be an integer, got {value!r}") from e
                self.set(*keys, value=value)
                logger.debug(f"Config override from {var}")

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value by nested keys.

        Examples:
            config.get("indexer", "max_file_size")
            config.get("embeddings", "model")

        Args:
            *keys: Nested keys to traverse
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return default if value is None else value

    def set(self, *keys: str, value: Any) -> None:
        """
        Set a configuration value by nested keys.

        Args:
            *keys: Nested keys to traverse
            value: Value to set
        """
        if not keys:
            return

        current = self._config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    @property
    def db_path(self) -> Path:
        """Location of the LanceDB database directory."""
        configured = self.get("storage", "db_path")
        return Path(configured).expanduser() if configured else self.home / "data.lance"

    @property
    def indexer(self) -> dict[str, Any]:
        """Get indexer configuration."""
        return self._config.get("indexer", {})

    @property
    def embeddings(self) -> dict[str, Any]:
        """Get embeddings configuration."""
        return self._config.get("embeddings", {})

    @property
    def search(self) -> dict[str, Any]:
        """Get search configuration."""
        return self._config.get("search", {})

    @property
    def jobs(self) -> dict[str, Any]:
        """Get job coordinator configuration."""
        return self._config.get("jobs", {})

    @property
    def server(self) -> dict[str, Any]:
        """Get REST server configuration."""
        return self._config.get("server", {})

    def __repr__(self) -> str:
        """String representation."""
        return f"Config(config_path={self.config_path})"
