"""Shared modules for seaweed-up.

Provides functionality used across the plugin core and the bundled plugins:
- Logging setup
- Filesystem layout
"""

from .logging import configure_logging, get_logger, plugin_logger
from .paths import (
    BINARY_CACHE_DIR,
    CONFIG_FILE,
    PLUGINS_DIR,
    SEAWEED_UP_DIR,
    ensure_dirs,
)

__all__ = [
    # Paths
    "SEAWEED_UP_DIR",
    "PLUGINS_DIR",
    "CONFIG_FILE",
    "BINARY_CACHE_DIR",
    "ensure_dirs",
    # Logging
    "configure_logging",
    "get_logger",
    "plugin_logger",
]
