"""Path management for seaweed-up.

Manages the ~/.seaweed-up/ directory structure.
"""

from pathlib import Path

# Base directory for all seaweed-up data
SEAWEED_UP_DIR = Path.home() / ".seaweed-up"

# Installed plugins, one subdirectory per plugin
PLUGINS_DIR = SEAWEED_UP_DIR / "plugins"

# Persistent configuration
CONFIG_FILE = SEAWEED_UP_DIR / "config.yaml"

# Local cache for downloaded component binaries
BINARY_CACHE_DIR = Path("/tmp/tikv-binaries")


def ensure_dirs() -> None:
    """Create directory structure if missing.

    Creates:
    - ~/.seaweed-up/ (mode 0o700 - user-only access)
    - ~/.seaweed-up/plugins/
    """
    SEAWEED_UP_DIR.mkdir(mode=0o700, exist_ok=True)
    PLUGINS_DIR.mkdir(exist_ok=True)
