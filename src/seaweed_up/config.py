"""Core configuration management.

Handles persistent configuration stored in ~/.seaweed-up/config.yaml.
Supports environment variable overrides.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .shared.logging import configure_logging
from .shared.paths import BINARY_CACHE_DIR, CONFIG_FILE, PLUGINS_DIR

logger = logging.getLogger(__name__)

# Default values
DEFAULT_LOG_LEVEL = "warning"
DEFAULT_EXECUTE_TIMEOUT = 300.0
DEFAULT_INIT_TIMEOUT = 30.0
DEFAULT_CLEANUP_TIMEOUT = 10.0

# Environment variable mappings
ENV_VARS = {
    "plugins_dir": "SEAWEED_UP_PLUGINS_DIR",
    "binary_cache_dir": "SEAWEED_UP_BINARY_CACHE",
    "log_level": "SEAWEED_UP_LOG_LEVEL",
    "execute_timeout": "SEAWEED_UP_EXECUTE_TIMEOUT",
}

_PATH_KEYS = ("plugins_dir", "binary_cache_dir")
_FLOAT_KEYS = ("execute_timeout", "init_timeout", "cleanup_timeout")
CONFIG_KEYS = ("plugins_dir", "binary_cache_dir", "log_level", *_FLOAT_KEYS)


@dataclass
class CoreConfig:
    """Plugin core configuration."""

    plugins_dir: Path = field(default_factory=lambda: PLUGINS_DIR)
    binary_cache_dir: Path = field(default_factory=lambda: BINARY_CACHE_DIR)
    log_level: str = DEFAULT_LOG_LEVEL
    execute_timeout: float = DEFAULT_EXECUTE_TIMEOUT
    init_timeout: float = DEFAULT_INIT_TIMEOUT
    cleanup_timeout: float = DEFAULT_CLEANUP_TIMEOUT

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def setup_logging(self, log_file: str | Path | None = None, json_output: bool = False) -> None:
        """Configure logging at the configured log_level."""
        configure_logging(level=self.log_level, log_file=log_file, json_output=json_output)


def get_config_path() -> Path:
    """Get the config file path, honouring a test override."""
    override = os.environ.get("SEAWEED_UP_CONFIG")
    return Path(override) if override else CONFIG_FILE


def _coerce(key: str, value: Any) -> Any:
    if key in _PATH_KEYS:
        return Path(str(value)).expanduser()
    if key in _FLOAT_KEYS:
        return float(value)
    return str(value)


def load_config() -> CoreConfig:
    """Load core configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (~/.seaweed-up/config.yaml)
    3. Defaults

    Returns:
        CoreConfig with values and sources
    """
    config = CoreConfig()
    sources: dict[str, str] = {key: "default" for key in CONFIG_KEYS}

    config_path = get_config_path()
    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
            if not isinstance(file_config, dict):
                raise ValueError("config file must contain a mapping")
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable config file {config_path}: {e}")
            file_config = {}

        for key in CONFIG_KEYS:
            if key not in file_config:
                continue
            try:
                setattr(config, key, _coerce(key, file_config[key]))
                sources[key] = "config file"
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid value for {key} in {config_path}")

    for key, env_var in ENV_VARS.items():
        raw = os.environ.get(env_var)
        if not raw:
            continue
        try:
            setattr(config, key, _coerce(key, raw))
            sources[key] = "environment"
        except ValueError:
            logger.warning(f"Ignoring invalid value for {env_var}: {raw!r}")

    config._sources = sources
    return config


def _read_existing(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            existing = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return existing if isinstance(existing, dict) else {}


def save_config(key: str, value: Any) -> None:
    """Save a config value to the config file.

    Args:
        key: Config key (one of CONFIG_KEYS)
        value: Value to save

    Raises:
        KeyError: If key is not a known config key
    """
    if key not in CONFIG_KEYS:
        raise KeyError(f"Unknown config key: {key}")

    config_path = get_config_path()
    existing = _read_existing(config_path)
    existing[key] = str(value) if isinstance(value, Path) else value

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False)


def unset_config(key: str) -> bool:
    """Remove a config value from the config file.

    Args:
        key: Config key to remove

    Returns:
        True if key was removed, False if not found
    """
    config_path = get_config_path()
    existing = _read_existing(config_path)
    if key not in existing:
        return False

    del existing[key]

    with open(config_path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False)

    return True
